import asyncio
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Optional

import pytest

from code_arena.config import Settings
from code_arena.db.database import DataBase
from code_arena.db.schemas.contest import ContestCreate, ContestProblemCreate, ContestRead
from code_arena.db.schemas.problem import ProblemCreate, ProblemRead, TestCase
from code_arena.db.schemas.submission import SubmissionCreate, SubmissionRead
from code_arena.db.schemas.user import UserCreate, UserRead
from code_arena.services.admission import AdmissionGate
from code_arena.services.audit_log import audit_logger
from code_arena.services.contest import ContestService
from code_arena.services.contest_clock import ContestClock
from code_arena.services.evaluation import EvaluationPipeline
from code_arena.services.judge_client import JudgeRequest, JudgeResponse, STATUS_ACCEPTED
from code_arena.services.leaderboard import LeaderboardAggregator
from code_arena.services.notifier import ChangeNotifier, ChangeSignal
from code_arena.services.submission import SubmissionService
from code_arena.services.user import UserService

T0 = datetime(2030, 1, 1, 12, 0, 0)
T1 = T0 + timedelta(hours=2)
DURING = T0 + timedelta(minutes=30)

HANG = "hang"

_DESCRIPTIONS = {
    3: "Accepted",
    4: "Wrong Answer",
    5: "Time Limit Exceeded",
    6: "Compilation Error",
    11: "Runtime Error (NZEC)",
    13: "Internal Error",
}


class FrozenClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set(self, now: datetime) -> None:
        self.now = now


class ScriptedJudge:
    """
    Fake judge keyed by the test-case stdin. An outcome is a judge status id,
    an exception instance to raise, or ``HANG`` to never answer.
    """

    def __init__(self) -> None:
        self.outcomes: dict[str, Any] = {}
        self.calls: list[JudgeRequest] = []
        self.on_call: Optional[Callable[[JudgeRequest], None]] = None

    async def execute(self, request: JudgeRequest) -> JudgeResponse:
        self.calls.append(request)
        if self.on_call is not None:
            self.on_call(request)
        await asyncio.sleep(0)
        outcome = self.outcomes.get(request.stdin, STATUS_ACCEPTED)
        if outcome == HANG:
            await asyncio.sleep(30)
        if isinstance(outcome, BaseException):
            raise outcome
        return JudgeResponse(
            verdict_id=outcome,
            status_description=_DESCRIPTIONS.get(outcome, "Unknown"),
            stdout=request.expected_output if outcome == STATUS_ACCEPTED else "",
        )


class Arena:
    """Services wired to one test database, a frozen clock and a scripted judge."""

    def __init__(self, db: DataBase, clock: FrozenClock) -> None:
        self.db = db
        self.clock = clock
        self.judge = ScriptedJudge()
        self.notifier = ChangeNotifier()
        self.contest_clock = ContestClock(database=db, clock=clock, change_notifier=self.notifier)
        self.gate = AdmissionGate(database=db, contest_clock=self.contest_clock)
        self.pipeline = EvaluationPipeline(judge=self.judge, database=db, change_notifier=self.notifier, call_timeout=0.2)
        self.contests = ContestService(database=db, contest_clock=self.contest_clock, change_notifier=self.notifier)
        self.submissions = SubmissionService(
            database=db, admission_gate=self.gate, pipeline=self.pipeline, change_notifier=self.notifier
        )
        self.leaderboard = LeaderboardAggregator(database=db, change_notifier=self.notifier)
        self.users = UserService(database=db)
        self._users = 0

    async def user(self, name: Optional[str] = None) -> UserRead:
        self._users += 1
        return await self.db.create_user(UserCreate(tg_id=1000 + self._users, full_name=name or f"user{self._users}"))

    async def problem(self, cases: int = 4, title: str = "A + B") -> ProblemRead:
        test_cases = [TestCase(input=str(i), expected_output=f"out{i}", hidden=i > 1) for i in range(1, cases + 1)]
        return await self.db.create_problem(ProblemCreate(title=title, test_cases=test_cases))

    async def contest(
        self,
        problems: tuple[tuple[ProblemRead, int], ...] = (),
        start: datetime = T0,
        end: datetime = T1,
        title: str = "Weekly round",
        is_public: bool = True,
    ) -> ContestRead:
        contest = await self.db.create_contest(ContestCreate(title=title, start_at=start, end_at=end, is_public=is_public))
        for index, (problem, points) in enumerate(problems):
            await self.db.attach_problem(
                ContestProblemCreate(contest_id=contest.id, problem_id=problem.id, points=points, order_index=index)
            )
        return contest

    async def pending(
        self,
        user: UserRead,
        contest: ContestRead,
        problem: ProblemRead,
        language: str = "python",
        code: str = "print(input())",
    ) -> SubmissionRead:
        """A stored pending submission, bypassing admission."""
        payload = SubmissionCreate(user_id=user.id, contest_id=contest.id, problem_id=problem.id, language=language, code=code)
        return await self.db.create_submission(payload, total_test_cases=len(problem.test_cases))

    def record(self, stream: str, contest_id=None) -> list[ChangeSignal]:
        seen: list[ChangeSignal] = []
        self.notifier.subscribe(stream, seen.append, contest_id=contest_id)
        return seen


def _reset_singletons() -> None:
    ContestService.reset()
    SubmissionService.reset()
    UserService.reset()
    ChangeNotifier().clear()


@pytest.fixture()
def run_arena(tmp_path, monkeypatch) -> Callable[..., Any]:
    """Run ``scenario(arena)`` inside one event loop against a fresh SQLite database."""
    url = f"sqlite+aiosqlite:///{tmp_path / 'arena.db'}"
    monkeypatch.setenv("DATABASE_URL", url)
    monkeypatch.setenv("DEFAULT_PROBLEM_POINTS", "100")
    monkeypatch.setenv("ADMINS", "")
    Settings.reload()
    _reset_singletons()
    audit_logger.enabled = False

    def _run(scenario: Callable[[Arena], Awaitable[Any]], now: datetime = DURING) -> Any:
        async def _main() -> Any:
            db = DataBase(url)
            await db.create_all()
            arena = Arena(db, FrozenClock(now))
            try:
                return await scenario(arena)
            finally:
                await arena.pipeline.drain()
                await DataBase.reset()

        return asyncio.run(_main())

    yield _run

    _reset_singletons()
    audit_logger.enabled = True
