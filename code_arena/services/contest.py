from uuid import UUID
from typing import Self, ClassVar, Optional, Tuple, List

from sqlalchemy.exc import IntegrityError

from code_arena.config import Settings
from code_arena.db.database import DataBase
from code_arena.db.enums import ChangeStream
from code_arena.db.schemas.activity import ArenaOverview, ContestActivity
from code_arena.db.schemas.contest import (
	ContestCreate, ContestRead, ContestUpdate,
	ContestProblemCreate, ContestProblemRead, ContestProblemDetail, ContestStats,
)
from code_arena.db.schemas.participant import ParticipantRead
from code_arena.db.schemas.problem import ProblemCreate, ProblemRead
from code_arena.db.schemas.user import UserRead
from code_arena.services.admission import AdmissionGate
from code_arena.services.audit_log import instrument_service_class
from code_arena.services.contest_clock import ContestClock, compute_status
from code_arena.services.notifier import ChangeNotifier
from code_arena.utils.sentinels import provided


class ContestService:
	_instance: ClassVar[Optional["ContestService"]] = None

	def __new__(cls, *args, **kwargs) -> Self:
		if cls._instance is None:
			cls._instance = super().__new__(cls)
		return cls._instance

	def __init__(
		self,
		*,
		database: Optional[DataBase] = None,
		contest_clock: Optional[ContestClock] = None,
		change_notifier: Optional[ChangeNotifier] = None,
	) -> None:
		if getattr(self, "_initialized", False):
			return

		self._database = database or DataBase()
		self._notifier = change_notifier or ChangeNotifier()
		self.clock = contest_clock or ContestClock(database=self._database, change_notifier=self._notifier)
		self._gate = AdmissionGate(database=self._database, contest_clock=self.clock)
		self._initialized = True

	@classmethod
	def reset(cls) -> None:
		cls._instance = None

	# --- authoring ---

	async def create_problem(self, payload: ProblemCreate) -> ProblemRead:
		return await self._database.create_problem(payload)

	async def get_problem(self, problem_id: UUID) -> Optional[ProblemRead]:
		return await self._database.get_problem(problem_id)

	async def create_contest(self, payload: ContestCreate) -> ContestRead:
		contest = await self._database.create_contest(payload)
		return await self.clock.refresh(contest)

	async def update_contest(self, payload: ContestUpdate) -> ContestRead:
		"""Partially update a contest. A window edit may not send it back to an earlier status."""
		current = await self._database.get_contest(payload.id)
		if current is None:
			raise LookupError("Contest not found.")
		reached = await self.clock.sync(current)
		start = payload.start_at if provided(payload.start_at) else current.start_at
		end = payload.end_at if provided(payload.end_at) else current.end_at
		if compute_status(self.clock.now(), start, end).order < reached.order:
			raise ValueError(f"Contest is already {reached.value}, the new window would move it back")

		contest = await self._database.update_contest(payload)
		await self._notifier.publish(ChangeStream.CONTESTS, contest.id)
		return await self.clock.refresh(contest)

	async def attach_problem(
		self,
		contest_id: UUID,
		problem_id: UUID,
		points: Optional[int] = None,
		order_index: Optional[int] = None,
	) -> ContestProblemRead:
		"""
		Add a problem to a contest.

		Without ``order_index`` the problem goes last. A problem without test cases
		cannot be attached, since nothing could ever be judged against it.
		"""
		contest = await self._database.get_contest(contest_id)
		if contest is None:
			raise LookupError("Contest not found.")
		problem = await self._database.get_problem(problem_id)
		if problem is None:
			raise LookupError("Problem not found.")
		if not problem.test_cases:
			raise ValueError("Problem has no test cases")

		if order_index is None:
			existing = await self._database.list_contest_problems(contest_id)
			order_index = max((cp.order_index for cp in existing), default=-1) + 1

		payload = ContestProblemCreate(
			contest_id=contest_id,
			problem_id=problem_id,
			points=points if points is not None else Settings().default_problem_points,
			order_index=order_index,
		)
		try:
			link = await self._database.attach_problem(payload)
		except IntegrityError as exc:
			raise ValueError("Problem is already attached or the order index is taken") from exc

		await self._notifier.publish(ChangeStream.CONTESTS, contest_id)
		return link

	# --- reads (status is synced on every read) ---

	async def get_contest(self, contest_id: UUID) -> Optional[ContestRead]:
		contest = await self._database.get_contest(contest_id)
		if contest is None:
			return None
		return await self.clock.refresh(contest)

	async def list_contests(self, page: int, page_size: int, public_only: bool = True) -> Tuple[List[ContestRead], int]:
		limit = max(0, int(page_size))
		offset = max(0, int(page)) * limit
		items, total = await self._database.list_contests(limit=limit, offset=offset, public_only=public_only)
		return await self.clock.refresh_many(items), total

	async def list_problems(self, contest_id: UUID) -> List[ContestProblemDetail]:
		return await self._database.list_contest_problems(contest_id)

	async def stats(self, contest_id: UUID) -> ContestStats:
		return await self._database.contest_stats(contest_id)

	async def overview(self, recent_limit: int = 10, contest_limit: int = 5) -> ArenaOverview:
		"""System-wide counts, the latest submissions and activity of the newest contests."""
		counts = await self._database.arena_counts(self.clock.now())

		recent = await self._database.submission_digests(limit=recent_limit)
		authors = await self._database.get_users({d.user_id for d in recent})
		recent = [
			d.model_copy(update={"author": authors[d.user_id].display_name}) if d.user_id in authors else d
			for d in recent
		]

		newest, _ = await self._database.list_contests(limit=contest_limit, offset=0, public_only=False)
		activity: List[ContestActivity] = []
		for contest in await self.clock.refresh_many(newest):
			stats = await self._database.contest_stats(contest.id)
			activity.append(ContestActivity(
				contest_id=contest.id,
				title=contest.title,
				status=contest.status,
				participant_count=stats.participant_count,
				submission_count=stats.submission_count,
				accepted_count=stats.accepted_count,
			))
		return ArenaOverview(counts=counts, recent_submissions=recent, contests=activity)

	# --- participation ---

	async def join(self, contest_id: UUID, user: UserRead) -> ParticipantRead:
		"""Join an active contest; joining twice returns the existing participant."""
		await self._gate.open_contest(contest_id)
		participant, created = await self._database.ensure_participant(contest_id, user.id)
		if created:
			await self._notifier.publish(ChangeStream.PARTICIPANTS, contest_id)
		return participant

	async def get_participant(self, contest_id: UUID, user: UserRead) -> Optional[ParticipantRead]:
		return await self._database.get_participant(contest_id, user.id)


instrument_service_class(
	ContestService,
	prefix="services.contest",
	include={"create_problem", "create_contest", "update_contest", "attach_problem", "join"},
	actor_fields=("user",),
)
