import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Optional, ClassVar, Self, Any, Iterable, List, Tuple

from sqlalchemy import select, func, update, case
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload

from code_arena.config import Settings
from code_arena.db.enums import ContestStatus, SubmissionStatus
from code_arena.db.models._base import Base
from code_arena.db.models.user import User
from code_arena.db.models.problem import Problem
from code_arena.db.models.contest import Contest
from code_arena.db.models.contest_problem import ContestProblem
from code_arena.db.models.participant import Participant
from code_arena.db.models.problem_score import ProblemScore
from code_arena.db.models.submission import Submission
from code_arena.db.models.audit_log import AuditLog
from code_arena.db.schemas.user import UserCreate, UserRead, UserUpdate
from code_arena.db.schemas.problem import ProblemCreate, ProblemRead
from code_arena.db.schemas.contest import (
    ContestCreate, ContestRead, ContestUpdate,
    ContestProblemCreate, ContestProblemRead, ContestProblemDetail, ContestStats,
)
from code_arena.db.schemas.participant import ParticipantRead, ScoreDelta
from code_arena.db.schemas.submission import SubmissionCreate, SubmissionRead, SubmissionVerdict
from code_arena.db.schemas.leaderboard import SubmissionTally, ScoreDrift
from code_arena.db.schemas.activity import ArenaCounts, SubmissionDigest
from code_arena.db.schemas.audit_log import AuditLogCreate, AuditLogRead
from code_arena.utils.clock import utcnow, as_naive_utc
from code_arena.utils.sentinels import provided


class DataBase():
    """
    Async SQLAlchemy database singleton.
    Usage:
        db = DataBase()  # same instance everywhere
        async with db.session() as s:
            ...
    """
    _instance: ClassVar[Optional["DataBase"]] = None

    def __new__(cls, *args: Any, **kwargs: Any) -> Self:
        if cls._instance is None:
            cls._instance = super().__new__(cls)

        return cls._instance

    def __init__(self, url: Optional[str] = None, echo: bool = False) -> None:
        if getattr(self, "_initialized", False):
            return

        url = url or Settings().database_url
        self._engine: AsyncEngine = create_async_engine(url, echo=echo, pool_pre_ping=True)
        self._sessionmaker: async_sessionmaker[AsyncSession] = async_sessionmaker(
            bind=self._engine,
            expire_on_commit=False,
            autoflush=False,
        )

        self._initialized = True

    @classmethod
    async def reset(cls) -> None:
        """Dispose the current engine and forget the singleton (tests, reconfiguration)."""
        instance = cls._instance
        cls._instance = None
        if instance is not None and getattr(instance, "_initialized", False):
            await instance._engine.dispose()

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """
        Provides an AsyncSession with safe commit/rollback semantics.
        """
        session: AsyncSession = self._sessionmaker()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    # --- schema management helpers (optional) ---

    async def create_all(self) -> None:
        """
        Create tables based on Base metadata. Use only in dev/tests; prefer migrations in prod.
        """
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def drop_all(self) -> None:
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    # ---------------------------------
    # Users
    # ---------------------------------

    async def create_user(self, data: UserCreate) -> UserRead:
        """
        Create a user and return its DTO.
        On unique-constraint violation (tg_id), re-raises IntegrityError for the caller to handle.
        """
        tg_username = data.tg_username
        if tg_username and tg_username.startswith("@"):
            tg_username = tg_username[1:]

        user = User(
            tg_id=data.tg_id,
            tg_username=tg_username,
            full_name=data.full_name,
            role=data.role,
        )
        async with self.session() as s:
            s.add(user)
            await s.flush()
            await s.refresh(user)

        return UserRead.model_validate(user)

    async def get_user(self, uid: Optional[uuid.UUID] = None, tg_id: Optional[int] = None) -> Optional[UserRead]:
        """
        Fetch a user by internal id, falling back to the Telegram id.
        """
        if uid is not None:
            async with self.session() as s:
                row = await s.get(User, uid)
            if row is not None:
                return UserRead.model_validate(row)
        if tg_id is not None:
            async with self.session() as s:
                res = await s.execute(select(User).where(User.tg_id == tg_id))
                row = res.scalar_one_or_none()
            if row is not None:
                return UserRead.model_validate(row)
        return None

    async def get_users(self, ids: Iterable[uuid.UUID]) -> dict[uuid.UUID, UserRead]:
        keys = list({i for i in ids if i})
        if not keys:
            return {}
        async with self.session() as s:
            rows = (await s.execute(select(User).where(User.id.in_(keys)))).scalars().all()
        return {r.id: UserRead.model_validate(r) for r in rows}

    async def update_user(self, data: UserUpdate) -> UserRead:
        async with self.session() as s:
            db_obj = await s.get(User, data.id)
            if db_obj is None:
                raise LookupError("User not found.")
            if provided(data.tg_username):
                db_obj.tg_username = data.tg_username
            if provided(data.full_name):
                db_obj.full_name = data.full_name
            if provided(data.role):
                db_obj.role = data.role
            await s.flush()
            await s.refresh(db_obj)
            return UserRead.model_validate(db_obj)

    # ---------------------------------
    # Problems
    # ---------------------------------

    async def create_problem(self, payload: ProblemCreate) -> ProblemRead:
        """Create a new problem with its ordered test cases."""
        obj = Problem(
            title=payload.title,
            description=payload.description,
            difficulty=payload.difficulty,
            time_limit_ms=payload.time_limit_ms,
            memory_limit_kb=payload.memory_limit_kb,
            test_cases=[tc.model_dump() for tc in payload.test_cases],
            boilerplate=dict(payload.boilerplate) if payload.boilerplate else None,
        )
        async with self.session() as s:
            s.add(obj)
            await s.flush()
            await s.refresh(obj)
            return ProblemRead.model_validate(obj)

    async def get_problem(self, problem_id: uuid.UUID) -> Optional[ProblemRead]:
        """Fetch a problem by its UUID."""
        if not problem_id:
            return None
        async with self.session() as s:
            row = await s.get(Problem, problem_id)
        return ProblemRead.model_validate(row) if row is not None else None

    # ---------------------------------
    # Contests
    # ---------------------------------

    async def create_contest(self, payload: ContestCreate) -> ContestRead:
        """Create a new contest. The window check is repeated by a CHECK constraint."""
        obj = Contest(
            title=payload.title,
            description=payload.description,
            start_at=as_naive_utc(payload.start_at),
            end_at=as_naive_utc(payload.end_at),
            is_public=payload.is_public,
            status=ContestStatus.UPCOMING,
            created_by=payload.created_by,
        )
        async with self.session() as s:
            s.add(obj)
            await s.flush()
            await s.refresh(obj)
            return ContestRead.model_validate(obj)

    async def get_contest(self, contest_id: uuid.UUID) -> Optional[ContestRead]:
        """Fetch a contest by its UUID."""
        if not contest_id:
            return None
        async with self.session() as s:
            row = await s.get(Contest, contest_id)
        return ContestRead.model_validate(row) if row is not None else None

    async def list_contests(self, *, limit: int, offset: int, public_only: bool = True) -> Tuple[list[ContestRead], int]:
        """
        Contests ordered by start time, newest first, then id for a stable order.
        Returns (items, total).
        """
        limit = max(0, int(limit))
        offset = max(0, int(offset))
        async with self.session() as s:
            total_stmt = select(func.count(Contest.id))
            items_stmt = (
                select(Contest)
                .order_by(Contest.start_at.desc(), Contest.id.asc())
                .limit(limit)
                .offset(offset)
            )
            if public_only:
                total_stmt = total_stmt.where(Contest.is_public.is_(True))
                items_stmt = items_stmt.where(Contest.is_public.is_(True))

            total = int((await s.execute(total_stmt)).scalar_one())
            if limit == 0:
                return [], total
            rows: List[Contest] = (await s.execute(items_stmt)).scalars().all()

        return [ContestRead.model_validate(r) for r in rows], total

    async def update_contest(self, payload: ContestUpdate) -> ContestRead:
        """Partially update a contest by id, keeping start < end."""
        async with self.session() as s:
            db_obj = await s.get(Contest, payload.id)
            if db_obj is None:
                raise LookupError("Contest not found.")

            if provided(payload.title):
                db_obj.title = payload.title
            if provided(payload.description):
                db_obj.description = payload.description
            if provided(payload.start_at):
                db_obj.start_at = as_naive_utc(payload.start_at)
            if provided(payload.end_at):
                db_obj.end_at = as_naive_utc(payload.end_at)
            if provided(payload.is_public):
                db_obj.is_public = payload.is_public
            if db_obj.start_at >= db_obj.end_at:
                raise ValueError("Contest start must be before its end")

            await s.flush()
            await s.refresh(db_obj)
            return ContestRead.model_validate(db_obj)

    async def advance_contest_status(self, contest_id: uuid.UUID, status: ContestStatus) -> bool:
        """
        Move the stored status forward to ``status``.

        Returns True only when a row changed; an equal or later stored status is left as is.
        """
        earlier = [st for st in ContestStatus if st.order < status.order]
        if not earlier:
            return False
        async with self.session() as s:
            res = await s.execute(
                update(Contest)
                .where(Contest.id == contest_id, Contest.status.in_(earlier))
                .values(status=status)
                .execution_options(synchronize_session=False)
            )
            return res.rowcount == 1

    async def attach_problem(self, payload: ContestProblemCreate) -> ContestProblemRead:
        """Link a problem to a contest; duplicate problem or order index raises IntegrityError."""
        obj = ContestProblem(
            contest_id=payload.contest_id,
            problem_id=payload.problem_id,
            points=payload.points,
            order_index=payload.order_index,
        )
        async with self.session() as s:
            s.add(obj)
            await s.flush()
            await s.refresh(obj)
            return ContestProblemRead.model_validate(obj)

    async def get_contest_problem(self, contest_id: uuid.UUID, problem_id: uuid.UUID) -> Optional[ContestProblemRead]:
        async with self.session() as s:
            res = await s.execute(
                select(ContestProblem).where(
                    ContestProblem.contest_id == contest_id,
                    ContestProblem.problem_id == problem_id,
                )
            )
            row = res.scalar_one_or_none()
        return ContestProblemRead.model_validate(row) if row is not None else None

    async def list_contest_problems(self, contest_id: uuid.UUID) -> list[ContestProblemDetail]:
        """Problems of a contest with their definitions, ordered by order_index."""
        async with self.session() as s:
            res = await s.execute(
                select(ContestProblem)
                .where(ContestProblem.contest_id == contest_id)
                .options(selectinload(ContestProblem.problem))
                .order_by(ContestProblem.order_index.asc())
            )
            rows = res.scalars().all()
            return [ContestProblemDetail.model_validate(r) for r in rows]

    async def contest_stats(self, contest_id: uuid.UUID) -> ContestStats:
        accepted = func.coalesce(func.sum(case((Submission.status == SubmissionStatus.ACCEPTED, 1), else_=0)), 0)
        async with self.session() as s:
            participants = int((await s.execute(
                select(func.count(Participant.id)).where(Participant.contest_id == contest_id)
            )).scalar_one())
            row = (await s.execute(
                select(func.count(Submission.id), accepted).where(Submission.contest_id == contest_id)
            )).one()
        return ContestStats(
            contest_id=contest_id,
            participant_count=participants,
            submission_count=int(row[0] or 0),
            accepted_count=int(row[1] or 0),
        )

    # ---------------------------------
    # Participants
    # ---------------------------------

    async def get_participant(self, contest_id: uuid.UUID, user_id: uuid.UUID) -> Optional[ParticipantRead]:
        async with self.session() as s:
            res = await s.execute(
                select(Participant).where(
                    Participant.contest_id == contest_id,
                    Participant.user_id == user_id,
                )
            )
            row = res.scalar_one_or_none()
        return ParticipantRead.model_validate(row) if row is not None else None

    async def ensure_participant(
        self,
        contest_id: uuid.UUID,
        user_id: uuid.UUID,
        joined_at: Optional[datetime] = None,
    ) -> Tuple[ParticipantRead, bool]:
        """
        Idempotent join: return (participant, created).

        A concurrent insert of the same (contest, user) pair loses on the unique
        constraint and reads back the winner's row.
        """
        existing = await self.get_participant(contest_id, user_id)
        if existing is not None:
            return existing, False

        try:
            async with self.session() as s:
                obj = Participant(
                    contest_id=contest_id,
                    user_id=user_id,
                    total_score=0,
                    joined_at=joined_at or utcnow(),
                )
                s.add(obj)
                await s.flush()
                await s.refresh(obj)
                created = ParticipantRead.model_validate(obj)
        except IntegrityError:
            winner = await self.get_participant(contest_id, user_id)
            if winner is None:
                raise
            return winner, False
        return created, True

    async def list_participants(self, contest_id: uuid.UUID) -> list[ParticipantRead]:
        async with self.session() as s:
            res = await s.execute(
                select(Participant)
                .where(Participant.contest_id == contest_id)
                .order_by(Participant.joined_at.asc(), Participant.user_id.asc())
            )
            rows = res.scalars().all()
        return [ParticipantRead.model_validate(r) for r in rows]

    async def submission_tallies(
        self,
        contest_id: Optional[uuid.UUID] = None,
        user_id: Optional[uuid.UUID] = None,
    ) -> dict[uuid.UUID, SubmissionTally]:
        """
        Per-user submission counters, for one contest or across all contests,
        optionally for a single user.
        """
        accepted = func.sum(case((Submission.status == SubmissionStatus.ACCEPTED, 1), else_=0))
        stmt = select(
            Submission.user_id,
            func.count(Submission.id).label("submission_count"),
            accepted.label("accepted_count"),
            func.min(Submission.created_at).label("first_submitted_at"),
        ).group_by(Submission.user_id)
        if contest_id is not None:
            stmt = stmt.where(Submission.contest_id == contest_id)
        if user_id is not None:
            stmt = stmt.where(Submission.user_id == user_id)

        async with self.session() as s:
            rows = (await s.execute(stmt)).all()
        return {
            row.user_id: SubmissionTally(
                user_id=row.user_id,
                submission_count=int(row.submission_count or 0),
                accepted_count=int(row.accepted_count or 0),
                first_submitted_at=row.first_submitted_at,
            )
            for row in rows
        }

    async def total_scores_by_user(self) -> dict[uuid.UUID, int]:
        """Sum of contest totals per user, across every contest."""
        async with self.session() as s:
            rows = (await s.execute(
                select(Participant.user_id, func.coalesce(func.sum(Participant.total_score), 0))
                .group_by(Participant.user_id)
            )).all()
        return {user_id: int(total or 0) for user_id, total in rows}

    async def participation_summary(self, user_id: uuid.UUID) -> Tuple[int, int]:
        """(number of contests joined, sum of their totals) for one user."""
        async with self.session() as s:
            row = (await s.execute(
                select(func.count(Participant.id), func.coalesce(func.sum(Participant.total_score), 0))
                .where(Participant.user_id == user_id)
            )).one()
        return int(row[0] or 0), int(row[1] or 0)

    async def recompute_participant_totals(self, contest_id: uuid.UUID, *, apply: bool = True) -> list[ScoreDrift]:
        """
        Compare every participant total with the sum of its per-problem best scores.

        With ``apply`` the ledger sum is written back for drifting rows, in one transaction.
        """
        ledger_sum = (
            select(func.coalesce(func.sum(ProblemScore.best_score), 0))
            .where(ProblemScore.participant_id == Participant.id)
            .correlate(Participant)
            .scalar_subquery()
        )
        drifts: list[ScoreDrift] = []
        async with self.session() as s:
            rows = (await s.execute(
                select(Participant.id, Participant.user_id, Participant.total_score, ledger_sum.label("ledger_total"))
                .where(Participant.contest_id == contest_id)
                .with_for_update(of=Participant)
            )).all()
            for row in rows:
                if int(row.total_score) == int(row.ledger_total):
                    continue
                drifts.append(ScoreDrift(
                    participant_id=row.id,
                    user_id=row.user_id,
                    recorded_total=int(row.total_score),
                    ledger_total=int(row.ledger_total),
                ))
                if apply:
                    await s.execute(
                        update(Participant)
                        .where(Participant.id == row.id)
                        .values(total_score=int(row.ledger_total))
                        .execution_options(synchronize_session=False)
                    )
        return drifts

    # ---------------------------------
    # Submissions
    # ---------------------------------

    async def create_submission(self, data: SubmissionCreate, total_test_cases: int) -> SubmissionRead:
        """
        Insert a new pending submission row.
        """
        async with self.session() as s:
            db_obj = Submission(
                user_id=data.user_id,
                contest_id=data.contest_id,
                problem_id=data.problem_id,
                language=data.language,
                code=data.code,
                status=SubmissionStatus.PENDING,
                test_cases_passed=0,
                total_test_cases=max(0, int(total_test_cases)),
                score=0,
            )
            s.add(db_obj)
            await s.flush()
            await s.refresh(db_obj)
            return SubmissionRead.model_validate(db_obj)

    async def get_submission(self, sub_id: uuid.UUID) -> Optional[SubmissionRead]:
        """
        Fetch a single submission by id.
        """
        if not sub_id:
            return None
        async with self.session() as s:
            db_obj = await s.get(Submission, sub_id)
            return SubmissionRead.model_validate(db_obj) if db_obj else None

    async def list_submissions(
        self,
        *,
        contest_id: Optional[uuid.UUID] = None,
        user_id: Optional[uuid.UUID] = None,
        problem_id: Optional[uuid.UUID] = None,
        status: Optional[SubmissionStatus] = None,
        limit: int = 20,
    ) -> list[SubmissionRead]:
        """
        Recent-first submissions filtered by any of contest, user, problem and status.
        """
        limit = max(0, int(limit))
        if limit == 0:
            return []
        stmt = select(Submission).order_by(Submission.created_at.desc(), Submission.id.desc()).limit(limit)
        if contest_id is not None:
            stmt = stmt.where(Submission.contest_id == contest_id)
        if user_id is not None:
            stmt = stmt.where(Submission.user_id == user_id)
        if problem_id is not None:
            stmt = stmt.where(Submission.problem_id == problem_id)
        if status is not None:
            stmt = stmt.where(Submission.status == status)
        async with self.session() as s:
            rows = (await s.execute(stmt)).scalars().all()
        return [SubmissionRead.model_validate(r) for r in rows]

    async def submission_digests(self, *, user_id: Optional[uuid.UUID] = None, limit: int = 20) -> list[SubmissionDigest]:
        """Recent-first submissions across contests, with contest and problem titles."""
        limit = max(0, int(limit))
        if limit == 0:
            return []
        stmt = (
            select(
                Submission.id,
                Submission.user_id,
                Submission.contest_id,
                Contest.title.label("contest_title"),
                Submission.problem_id,
                Problem.title.label("problem_title"),
                Submission.language,
                Submission.status,
                Submission.score,
                Submission.created_at,
            )
            .select_from(Submission)
            .join(Contest, Contest.id == Submission.contest_id)
            .join(Problem, Problem.id == Submission.problem_id)
            .order_by(Submission.created_at.desc(), Submission.id.desc())
            .limit(limit)
        )
        if user_id is not None:
            stmt = stmt.where(Submission.user_id == user_id)
        async with self.session() as s:
            rows = (await s.execute(stmt)).all()
        return [SubmissionDigest(**row._mapping) for row in rows]

    async def finalize_submission(
        self,
        verdict: SubmissionVerdict,
        evaluated_at: Optional[datetime] = None,
        joined_at: Optional[datetime] = None,
    ) -> Optional[ScoreDelta]:
        """
        Write the terminal verdict and apply the participant score delta in one transaction.

        - The submission row is only updated while it is still ``pending``; when another
          run already finalised it, nothing is written and None is returned.
        - The delta is ``max(0, score - best)`` against the ``problem_score`` row locked
          for update, and is added with ``total_score = total_score + delta`` so concurrent
          completions for the same participant never overwrite each other.
        - A missing participant or ledger row is created in the same transaction, the
          participant with ``joined_at`` (default ``evaluated_at``). A concurrent insert of
          either row raises IntegrityError and leaves the submission pending.
        """
        evaluated_at = evaluated_at or utcnow()
        async with self.session() as s:
            res = await s.execute(
                update(Submission)
                .where(Submission.id == verdict.id, Submission.status == SubmissionStatus.PENDING)
                .values(
                    status=verdict.status,
                    test_cases_passed=verdict.test_cases_passed,
                    total_test_cases=verdict.total_test_cases,
                    score=verdict.score,
                    evaluated_at=evaluated_at,
                )
                .execution_options(synchronize_session=False)
            )
            if res.rowcount != 1:
                return None

            sub = (await s.execute(
                select(Submission.contest_id, Submission.user_id, Submission.problem_id)
                .where(Submission.id == verdict.id)
            )).one()

            participant = (await s.execute(
                select(Participant)
                .where(Participant.contest_id == sub.contest_id, Participant.user_id == sub.user_id)
                .with_for_update()
            )).scalar_one_or_none()
            if participant is None:
                participant = Participant(contest_id=sub.contest_id, user_id=sub.user_id, total_score=0, joined_at=joined_at or evaluated_at)
                s.add(participant)
                await s.flush()

            standing = (await s.execute(
                select(ProblemScore)
                .where(ProblemScore.participant_id == participant.id, ProblemScore.problem_id == sub.problem_id)
                .with_for_update()
            )).scalar_one_or_none()
            if standing is None:
                standing = ProblemScore(participant_id=participant.id, problem_id=sub.problem_id, best_score=0)
                s.add(standing)
                await s.flush()

            previous = int(standing.best_score)
            new_best = max(previous, int(verdict.score))
            delta = new_best - previous
            if delta > 0:
                guarded = await s.execute(
                    update(ProblemScore)
                    .where(ProblemScore.id == standing.id, ProblemScore.best_score == previous)
                    .values(best_score=new_best, best_submission_id=verdict.id, updated_at=evaluated_at)
                    .execution_options(synchronize_session=False)
                )
                if guarded.rowcount != 1:
                    raise RuntimeError(f"Best score of participant {participant.id} changed concurrently")
                await s.execute(
                    update(Participant)
                    .where(Participant.id == participant.id)
                    .values(total_score=Participant.total_score + delta)
                    .execution_options(synchronize_session=False)
                )

            total = (await s.execute(
                select(Participant.total_score).where(Participant.id == participant.id)
            )).scalar_one()

            return ScoreDelta(
                participant_id=participant.id,
                previous_best=previous,
                new_best=new_best,
                delta=delta,
                total_score=int(total),
            )

    # ---------------------------------
    # Overview
    # ---------------------------------

    async def arena_counts(self, now: datetime) -> ArenaCounts:
        """Row counts for the admin overview; a contest is active when ``now`` is inside its window."""
        now = as_naive_utc(now)
        async with self.session() as s:
            users = (await s.execute(select(func.count(User.id)))).scalar_one()
            contests = (await s.execute(select(func.count(Contest.id)))).scalar_one()
            problems = (await s.execute(select(func.count(Problem.id)))).scalar_one()
            active = (await s.execute(
                select(func.count(Contest.id)).where(Contest.start_at <= now, Contest.end_at > now)
            )).scalar_one()
        return ArenaCounts(
            user_count=int(users),
            contest_count=int(contests),
            problem_count=int(problems),
            active_contest_count=int(active),
        )

    # ---------------------------------
    # Audit log helpers
    # ---------------------------------

    async def create_audit_log(self, payload: AuditLogCreate) -> AuditLogRead:
        """Persist a new audit log entry."""
        async with self.session() as s:
            record = AuditLog(
                actor_id=payload.actor_id,
                action=payload.action,
                payload=dict(payload.payload or {}),
            )
            s.add(record)
            await s.flush()
            await s.refresh(record)
            return AuditLogRead.model_validate(record)

    async def list_audit_logs(
        self,
        *,
        limit: int = 100,
        offset: int = 0,
        actor_id: uuid.UUID | None = None,
        action: str | None = None,
    ) -> tuple[list[AuditLogRead], int]:
        """Return paginated audit log entries filtered by actor/action."""
        limit = max(0, int(limit))
        offset = max(0, int(offset))

        async with self.session() as s:
            stmt = select(AuditLog).order_by(AuditLog.created_at.desc())
            count_stmt = select(func.count(AuditLog.id))
            if actor_id:
                stmt = stmt.where(AuditLog.actor_id == actor_id)
                count_stmt = count_stmt.where(AuditLog.actor_id == actor_id)
            if action:
                stmt = stmt.where(AuditLog.action == action)
                count_stmt = count_stmt.where(AuditLog.action == action)

            if limit:
                stmt = stmt.limit(limit)
            if offset:
                stmt = stmt.offset(offset)

            rows = (await s.execute(stmt)).scalars().all()
            total = int((await s.execute(count_stmt)).scalar_one())

        return [AuditLogRead.model_validate(row) for row in rows], total
