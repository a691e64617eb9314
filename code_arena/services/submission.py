import logging
from uuid import UUID
from typing import Self, ClassVar, Optional, List

from code_arena.db.database import DataBase
from code_arena.db.enums import ChangeStream
from code_arena.db.schemas.submission import SubmissionCreate, SubmissionRead
from code_arena.services.admission import AdmissionGate
from code_arena.services.audit_log import instrument_service_class
from code_arena.services.evaluation import EvaluationPipeline, Progress, auto_evaluate
from code_arena.services.judge_client import language_id_for
from code_arena.services.notifier import ChangeNotifier

logger = logging.getLogger(__name__)


class SubmissionService:
	_instance: ClassVar[Optional["SubmissionService"]] = None

	def __new__(cls, *args, **kwargs) -> Self:
		if cls._instance is None:
			cls._instance = super().__new__(cls)
		return cls._instance

	def __init__(
		self,
		*,
		database: Optional[DataBase] = None,
		admission_gate: Optional[AdmissionGate] = None,
		pipeline: Optional[EvaluationPipeline] = None,
		change_notifier: Optional[ChangeNotifier] = None,
	) -> None:
		if getattr(self, "_initialized", False):
			return

		self._database = database or DataBase()
		self._notifier = change_notifier or ChangeNotifier()
		self._gate = admission_gate or AdmissionGate(database=self._database)
		self.pipeline = pipeline or EvaluationPipeline(database=self._database, change_notifier=self._notifier)
		self._initialized = True

	@classmethod
	def reset(cls) -> None:
		cls._instance = None

	@auto_evaluate()
	async def submit(self, payload: SubmissionCreate, *, progress: Optional[Progress] = None) -> SubmissionRead:
		"""
		Store a pending submission and hand it to the evaluation pipeline.

		Rejections (:class:`AdmissionDenied`, :class:`UnsupportedLanguage`) happen
		before anything is written. ``progress`` receives each test-case verdict.
		"""
		admission = await self._gate.admit(payload.contest_id, payload.problem_id)
		language_id_for(payload.language)

		problem = await self._database.get_problem(payload.problem_id)
		total = len(problem.test_cases) if problem is not None else 0
		created = await self._database.create_submission(payload, total_test_cases=total)
		logger.info(
			"Submission %s accepted for contest %s problem #%d (%s)",
			created.id, admission.contest.id, admission.contest_problem.order_index, created.language,
		)

		await self._notifier.publish(ChangeStream.SUBMISSIONS, payload.contest_id)
		return created

	async def get_submission(self, sub_id: UUID) -> Optional[SubmissionRead]:
		return await self._database.get_submission(sub_id)

	async def recent_submissions(
		self,
		user_id: UUID,
		contest_id: UUID,
		problem_id: Optional[UUID] = None,
		limit: int = 10,
	) -> List[SubmissionRead]:
		"""Latest first."""
		return await self._database.list_submissions(
			contest_id=contest_id,
			user_id=user_id,
			problem_id=problem_id,
			limit=limit,
		)


instrument_service_class(SubmissionService, prefix="services.submission", include={"submit"})
