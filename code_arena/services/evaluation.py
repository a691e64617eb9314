"""Turns one pending submission into a verdict and a score.

Test cases are judged one after another, in their defined order, and every
verdict is handed to the optional ``progress`` callback before the next test
starts. A failing judge call only fails its own test case. The terminal fields
are written once, atomically, together with the participant score delta.

:func:`auto_evaluate` wraps ``SubmissionService.submit`` so that
every admitted submission is evaluated in the background right after it is stored.
"""
from __future__ import annotations

import asyncio
import inspect
import logging
from collections import Counter
from dataclasses import dataclass, field
from functools import wraps
from typing import AsyncIterator, Awaitable, Callable, Optional, Sequence, Union
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from code_arena.config import Settings
from code_arena.db.database import DataBase
from code_arena.db.enums import ChangeStream, SubmissionStatus
from code_arena.db.schemas.participant import ScoreDelta
from code_arena.db.schemas.problem import TestCase
from code_arena.db.schemas.submission import SubmissionRead, SubmissionVerdict
from code_arena.errors import (
	EvaluationPersistFailure,
	EvaluationTransportError,
	PipelineFatalError,
	SubmissionNotFound,
	UnsupportedLanguage,
)
from code_arena.services.judge_client import (
	FailureKind,
	Judge,
	JudgeClient,
	JudgeRequest,
	classify_status,
	language_id_for,
)
from code_arena.services.notifier import ChangeNotifier

logger = logging.getLogger(__name__)

# Extra seconds on top of the judge's own HTTP timeout before the pipeline gives up on a call.
CALL_TIMEOUT_MARGIN = 5.0


@dataclass(slots=True)
class TestCaseVerdict:
	__test__ = False  # not a pytest class

	index: int
	passed: bool
	status_description: str
	failure: Optional[FailureKind] = None
	output: str = ""
	error: Optional[str] = None
	time_used: Optional[float] = None
	memory_used: Optional[int] = None
	hidden: bool = True


@dataclass(slots=True)
class EvaluationResult:
	submission_id: UUID
	status: SubmissionStatus
	test_cases_passed: int
	total_test_cases: int
	score: int
	max_points: Optional[int] = None
	verdicts: list[TestCaseVerdict] = field(default_factory=list)
	score_delta: Optional[ScoreDelta] = None
	already_final: bool = False

	@classmethod
	def from_submission(cls, submission: SubmissionRead) -> "EvaluationResult":
		return cls(
			submission_id=submission.id,
			status=submission.status,
			test_cases_passed=submission.test_cases_passed,
			total_test_cases=submission.total_test_cases,
			score=submission.score,
			already_final=True,
		)


Progress = Callable[[TestCaseVerdict], Union[Awaitable[None], None]]


def score_for(passed: int, total: int, points: int) -> int:
	"""``passed / total * points`` rounded half up; 0 when there is nothing to pass."""
	if total <= 0 or passed <= 0:
		return 0
	passed = min(passed, total)
	return (2 * passed * points + total) // (2 * total)


def decide_status(verdicts: Sequence[TestCaseVerdict], total: int) -> SubmissionStatus:
	"""
	``accepted`` when every test passed; otherwise the most specific failure seen.

	Compilation failures and runtime traps map to ``runtime_error``, a time limit
	reported by the judge to ``time_limit_exceeded``. Plain mismatches and calls that
	never reached a verdict fall back to ``wrong_answer``.
	"""
	passed = sum(1 for v in verdicts if v.passed)
	if passed == total and len(verdicts) == total:
		return SubmissionStatus.ACCEPTED
	kinds = {v.failure for v in verdicts if not v.passed}
	if FailureKind.COMPILATION in kinds or FailureKind.RUNTIME in kinds:
		return SubmissionStatus.RUNTIME_ERROR
	if FailureKind.TIME_LIMIT in kinds:
		return SubmissionStatus.TIME_LIMIT_EXCEEDED
	return SubmissionStatus.WRONG_ANSWER


class EvaluationPipeline:
	"""Evaluates submissions; at most one run per submission id at a time."""

	def __init__(
		self,
		*,
		judge: Optional[Judge] = None,
		database: Optional[DataBase] = None,
		change_notifier: Optional[ChangeNotifier] = None,
		call_timeout: Optional[float] = None,
	) -> None:
		settings = Settings()
		self._judge: Judge = judge or JudgeClient()
		self._database = database or DataBase()
		self._notifier = change_notifier or ChangeNotifier()
		self._call_timeout = float(call_timeout if call_timeout is not None else settings.judge_timeout_seconds + CALL_TIMEOUT_MARGIN)
		self._default_points = settings.default_problem_points
		self._locks: dict[UUID, asyncio.Lock] = {}
		self._lock_users: Counter[UUID] = Counter()
		self._tasks: set[asyncio.Task] = set()

	# -----------------
	# Judging sequence
	# -----------------
	async def iter_verdicts(
		self,
		code: str,
		language: str,
		test_cases: Sequence[TestCase],
		*,
		time_limit_ms: Optional[int] = None,
		memory_limit_kb: Optional[int] = None,
	) -> AsyncIterator[TestCaseVerdict]:
		"""
		Yield one verdict per test case, in order.

		Iterating again starts over from the first test case. Raises
		:class:`~code_arena.errors.UnsupportedLanguage` before any judge call.
		"""
		language_id = language_id_for(language)
		cpu_limit = time_limit_ms / 1000 if time_limit_ms else None

		for index, case in enumerate(test_cases):
			request = JudgeRequest(
				source_code=code,
				language_id=language_id,
				stdin=case.input,
				expected_output=case.expected_output,
				cpu_time_limit=cpu_limit,
				memory_limit=memory_limit_kb,
			)
			yield await self._judge_one(index, case, request)

	async def _judge_one(self, index: int, case: TestCase, request: JudgeRequest) -> TestCaseVerdict:
		try:
			response = await asyncio.wait_for(self._judge.execute(request), timeout=self._call_timeout)
		except TimeoutError:
			logger.warning("Judge call for test case %d timed out after %ss", index, self._call_timeout)
			return TestCaseVerdict(
				index=index,
				passed=False,
				status_description="Judge timeout",
				failure=FailureKind.TIMEOUT,
				error=f"Judge call timed out after {self._call_timeout:g}s",
				hidden=case.hidden,
			)
		except EvaluationTransportError as exc:
			logger.warning("Judge call for test case %d failed: %s", index, exc)
			return TestCaseVerdict(
				index=index,
				passed=False,
				status_description="Judge timeout" if exc.timed_out else "Judge unavailable",
				failure=FailureKind.TIMEOUT if exc.timed_out else FailureKind.TRANSPORT,
				error=str(exc),
				hidden=case.hidden,
			)
		except Exception as exc:
			logger.exception("Judge call for test case %d raised unexpectedly", index)
			return TestCaseVerdict(
				index=index,
				passed=False,
				status_description="Judge unavailable",
				failure=FailureKind.TRANSPORT,
				error=repr(exc),
				hidden=case.hidden,
			)

		return TestCaseVerdict(
			index=index,
			passed=response.passed,
			status_description=response.status_description,
			failure=classify_status(response.verdict_id),
			output=response.stdout,
			error=response.error_text,
			time_used=response.time_used,
			memory_used=response.memory_used,
			hidden=case.hidden,
		)

	# -------------
	# Evaluation
	# -------------
	async def evaluate(self, submission_id: UUID, progress: Optional[Progress] = None) -> EvaluationResult:
		"""
		Judge a pending submission and persist its verdict.

		Calling this again for a finished submission is a no-op that returns the
		stored result. Raises :class:`SubmissionNotFound` or
		:class:`EvaluationPersistFailure`; in both cases the submission stays ``pending``.
		"""
		self._lock_users[submission_id] += 1
		lock = self._locks.setdefault(submission_id, asyncio.Lock())
		try:
			async with lock:
				return await self._evaluate_locked(submission_id, progress)
		finally:
			self._lock_users[submission_id] -= 1
			if self._lock_users[submission_id] <= 0:
				del self._lock_users[submission_id]
				self._locks.pop(submission_id, None)

	async def _evaluate_locked(self, submission_id: UUID, progress: Optional[Progress]) -> EvaluationResult:
		try:
			submission = await self._database.get_submission(submission_id)
			if submission is None:
				raise SubmissionNotFound(submission_id)
			if submission.status.is_terminal:
				logger.info("Submission %s already evaluated (%s); skipping", submission_id, submission.status.value)
				return EvaluationResult.from_submission(submission)

			problem = await self._database.get_problem(submission.problem_id)
			if problem is None:
				raise SubmissionNotFound(submission_id, what="Problem")
			link = await self._database.get_contest_problem(submission.contest_id, submission.problem_id)
		except SQLAlchemyError as exc:
			raise PipelineFatalError(f"Could not load submission {submission_id}: {exc}") from exc

		points = link.points if link is not None else self._default_points
		test_cases = list(problem.test_cases)
		total = len(test_cases)
		logger.info("Evaluating submission %s with %d test cases", submission_id, total)

		verdicts: list[TestCaseVerdict] = []
		async for verdict in self.iter_verdicts(
			submission.code,
			submission.language,
			test_cases,
			time_limit_ms=problem.time_limit_ms,
			memory_limit_kb=problem.memory_limit_kb,
		):
			verdicts.append(verdict)
			await self._report(progress, verdict)

		passed = sum(1 for v in verdicts if v.passed)
		status = decide_status(verdicts, total)
		score = score_for(passed, total, points)
		logger.info(
			"Submission %s: status=%s passed=%d/%d score=%d/%d",
			submission_id, status.value, passed, total, score, points,
		)

		delta = await self._persist(
			submission,
			SubmissionVerdict(
				id=submission_id,
				status=status,
				test_cases_passed=passed,
				total_test_cases=total,
				score=score,
			),
		)
		if delta is None:
			stored = await self._database.get_submission(submission_id)
			if stored is None:
				raise SubmissionNotFound(submission_id)
			logger.info("Submission %s was finalised by another run; keeping stored verdict", submission_id)
			return EvaluationResult.from_submission(stored)

		await self._notifier.publish(ChangeStream.SUBMISSIONS, submission.contest_id)
		if delta.delta > 0:
			await self._notifier.publish(ChangeStream.PARTICIPANTS, submission.contest_id)

		return EvaluationResult(
			submission_id=submission_id,
			status=status,
			test_cases_passed=passed,
			total_test_cases=total,
			score=score,
			max_points=points,
			verdicts=verdicts,
			score_delta=delta,
		)

	async def _persist(self, submission: SubmissionRead, verdict: SubmissionVerdict) -> Optional[ScoreDelta]:
		try:
			try:
				return await self._database.finalize_submission(verdict, joined_at=submission.created_at)
			except IntegrityError:
				# lost the insert race for the participant or ledger row; it exists now
				logger.info("Retrying verdict write for submission %s", submission.id)
				return await self._database.finalize_submission(verdict, joined_at=submission.created_at)
		except (SQLAlchemyError, RuntimeError) as exc:
			logger.exception("Failed to persist verdict for submission %s", submission.id)
			raise EvaluationPersistFailure(submission.id, exc) from exc

	@staticmethod
	async def _report(progress: Optional[Progress], verdict: TestCaseVerdict) -> None:
		if progress is None:
			return
		try:
			result = progress(verdict)
			if inspect.isawaitable(result):
				await result
		except asyncio.CancelledError:
			raise
		except Exception:
			# A broken progress view must not cost the submission its verdict.
			logger.warning("Progress callback failed for test case %d", verdict.index, exc_info=True)

	# --------------------
	# Background running
	# --------------------
	def schedule(self, submission_id: UUID, progress: Optional[Progress] = None) -> asyncio.Task:
		"""Start evaluating in the background; the task is tracked until it finishes."""
		task = asyncio.create_task(self.evaluate(submission_id, progress), name=f"evaluate:{submission_id}")
		self._tasks.add(task)
		task.add_done_callback(self._on_task_done)
		return task

	def _on_task_done(self, task: asyncio.Task) -> None:
		self._tasks.discard(task)
		if task.cancelled():
			return
		exc = task.exception()
		if isinstance(exc, PipelineFatalError):
			logger.warning("Background evaluation %s failed: %s", task.get_name(), exc)
		elif exc is not None:
			logger.error("Background evaluation %s crashed", task.get_name(), exc_info=exc)

	@property
	def in_flight(self) -> int:
		return len(self._tasks)

	async def drain(self) -> None:
		"""Wait for every scheduled evaluation to finish."""
		while self._tasks:
			await asyncio.gather(*list(self._tasks), return_exceptions=True)

	async def close(self) -> None:
		close = getattr(self._judge, "close", None)
		if close is not None:
			await close()

	async def resume_pending(self, limit: int = 100) -> int:
		"""
		Schedule submissions left ``pending`` by an earlier crash or persist failure.

		Submissions in a language the judge has no mapping for are skipped; they stay
		``pending`` until the mapping exists. Returns the number scheduled.
		"""
		pending = await self._database.list_submissions(status=SubmissionStatus.PENDING, limit=limit)
		scheduled = 0
		for sub in reversed(pending):
			try:
				language_id_for(sub.language)
			except UnsupportedLanguage:
				logger.warning("Not resuming submission %s: no judge mapping for %r", sub.id, sub.language)
				continue
			self.schedule(sub.id)
			scheduled += 1
		if scheduled:
			logger.info("Resumed %d pending submissions", scheduled)
		return scheduled


def auto_evaluate() -> Callable[[Callable[..., Awaitable[SubmissionRead]]], Callable[..., Awaitable[SubmissionRead]]]:
	"""Decorator for a service ``submit`` coroutine that schedules evaluation of its result.

	The owning service exposes the pipeline as ``.pipeline``. An optional ``progress``
	keyword argument of the wrapped call is forwarded to the evaluation.
	"""
	def _decorator(func: Callable[..., Awaitable[SubmissionRead]]) -> Callable[..., Awaitable[SubmissionRead]]:
		@wraps(func)
		async def _wrapper(service_self, *args, **kwargs):
			created = await func(service_self, *args, **kwargs)
			if isinstance(created, SubmissionRead) and not created.status.is_terminal:
				pipeline: EvaluationPipeline = service_self.pipeline
				pipeline.schedule(created.id, kwargs.get("progress"))
			return created

		return _wrapper

	return _decorator


__all__ = [
	"auto_evaluate",
	"EvaluationPipeline",
	"EvaluationResult",
	"Progress",
	"TestCaseVerdict",
	"decide_status",
	"score_for",
]
