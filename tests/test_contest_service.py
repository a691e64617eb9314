import uuid
from datetime import timedelta

import pytest
from pydantic import ValidationError

from code_arena.db.enums import ChangeStream, ContestStatus
from code_arena.db.schemas.contest import ContestCreate, ContestUpdate
from code_arena.db.schemas.problem import ProblemCreate, TestCase
from code_arena.db.schemas.submission import SubmissionCreate
from code_arena.errors import AdmissionDenied, AdmissionReason
from code_arena.services.audit_log import audit_logger

from conftest import DURING, T0, T1


def test_contest_window_must_be_ordered():
    with pytest.raises(ValidationError):
        ContestCreate(title="Backwards", start_at=T1, end_at=T0)
    with pytest.raises(ValidationError):
        ContestCreate(title="Empty", start_at=T0, end_at=T0)


def test_create_contest_reports_the_current_status(run_arena):
    async def scenario(arena):
        contest = await arena.contests.create_contest(ContestCreate(title="Live", start_at=T0, end_at=T1))
        assert contest.status == ContestStatus.ACTIVE
        assert (await arena.db.get_contest(contest.id)).status == ContestStatus.ACTIVE

    run_arena(scenario, now=DURING)


def test_update_contest_keeps_window_ordered(run_arena):
    async def scenario(arena):
        contest = await arena.contest(start=T0 + timedelta(hours=1), end=T1 + timedelta(hours=1))
        updates = arena.record(ChangeStream.CONTESTS, contest.id)

        with pytest.raises(ValueError):
            await arena.contests.update_contest(ContestUpdate(id=contest.id, end_at=T0 - timedelta(hours=1)))
        assert (await arena.db.get_contest(contest.id)).end_at == T1 + timedelta(hours=1)

        moved = await arena.contests.update_contest(
            ContestUpdate(id=contest.id, start_at=T0 + timedelta(hours=2), title="Moved")
        )
        assert moved.title == "Moved"
        assert moved.status == ContestStatus.UPCOMING
        assert len(updates) == 1

        with pytest.raises(LookupError):
            await arena.contests.update_contest(ContestUpdate(id=uuid.uuid4(), title="Ghost"))

    run_arena(scenario, now=DURING)


def test_started_contest_cannot_be_moved_back_to_upcoming(run_arena):
    async def scenario(arena):
        contest = await arena.contest()

        with pytest.raises(ValueError):
            await arena.contests.update_contest(ContestUpdate(id=contest.id, start_at=T0 + timedelta(hours=1)))
        stored = await arena.db.get_contest(contest.id)
        assert (stored.start_at, stored.status) == (T0, ContestStatus.ACTIVE)

        longer = await arena.contests.update_contest(ContestUpdate(id=contest.id, end_at=T1 + timedelta(hours=1)))
        assert longer.status == ContestStatus.ACTIVE

    run_arena(scenario, now=DURING)


def test_completed_contest_stays_closed_after_its_end_is_extended(run_arena):
    async def scenario(arena):
        user = await arena.user()
        problem = await arena.problem()
        contest = await arena.contest(problems=((problem, 100),))
        assert (await arena.contests.get_contest(contest.id)).status == ContestStatus.COMPLETED

        with pytest.raises(ValueError):
            await arena.contests.update_contest(ContestUpdate(id=contest.id, end_at=T1 + timedelta(hours=3)))
        assert (await arena.db.get_contest(contest.id)).end_at == T1

        renamed = await arena.contests.update_contest(ContestUpdate(id=contest.id, title="Archived"))
        assert renamed.status == ContestStatus.COMPLETED

        with pytest.raises(AdmissionDenied) as info:
            await arena.submissions.submit(SubmissionCreate(
                user_id=user.id, contest_id=contest.id, problem_id=problem.id, language="python", code="print(1)"
            ))
        assert info.value.reason == AdmissionReason.CONTEST_NOT_ACTIVE
        assert await arena.db.list_submissions(contest_id=contest.id) == []

    run_arena(scenario, now=T1 + timedelta(minutes=1))


def test_attach_problem_validation(run_arena):
    async def scenario(arena):
        contest = await arena.contest()
        empty = await arena.contests.create_problem(ProblemCreate(title="Nothing to judge"))
        problem = await arena.problem()

        with pytest.raises(ValueError):
            await arena.contests.attach_problem(contest.id, empty.id)
        with pytest.raises(LookupError):
            await arena.contests.attach_problem(uuid.uuid4(), problem.id)
        with pytest.raises(LookupError):
            await arena.contests.attach_problem(contest.id, uuid.uuid4())

        await arena.contests.attach_problem(contest.id, problem.id, points=50)
        with pytest.raises(ValueError):
            await arena.contests.attach_problem(contest.id, problem.id)

    run_arena(scenario)


def test_attach_problem_appends_with_default_points(run_arena):
    async def scenario(arena):
        contest = await arena.contest()
        first, second = await arena.problem(title="First"), await arena.problem(title="Second")
        changes = arena.record(ChangeStream.CONTESTS, contest.id)

        a = await arena.contests.attach_problem(contest.id, first.id, points=250)
        b = await arena.contests.attach_problem(contest.id, second.id)

        assert (a.order_index, a.points) == (0, 250)
        assert (b.order_index, b.points) == (1, 100)
        listed = await arena.contests.list_problems(contest.id)
        assert [cp.problem.title for cp in listed] == ["First", "Second"]
        assert len(changes) == 2

    run_arena(scenario)


def test_problem_keeps_test_case_order_and_visibility(run_arena):
    async def scenario(arena):
        created = await arena.contests.create_problem(ProblemCreate(
            title="Echo",
            test_cases=[
                TestCase(input="a", expected_output="a", hidden=False),
                TestCase(input="b", expected_output="b"),
                TestCase(input="c", expected_output="c", hidden=False),
            ],
        ))
        problem = await arena.contests.get_problem(created.id)
        assert [tc.input for tc in problem.test_cases] == ["a", "b", "c"]
        assert [tc.input for tc in problem.visible_test_cases] == ["a", "c"]

    run_arena(scenario)


def test_join_is_idempotent(run_arena):
    async def scenario(arena):
        contest = await arena.contest()
        user = await arena.user()
        joins = arena.record(ChangeStream.PARTICIPANTS, contest.id)

        first = await arena.contests.join(contest.id, user)
        second = await arena.contests.join(contest.id, user)

        assert first.id == second.id
        assert first.total_score == 0
        assert len(joins) == 1
        assert (await arena.contests.get_participant(contest.id, user)).id == first.id

    run_arena(scenario)


@pytest.mark.parametrize("now", [T0 - timedelta(minutes=5), T1])
def test_join_outside_window_is_denied(run_arena, now):
    async def scenario(arena):
        contest = await arena.contest()
        user = await arena.user()

        with pytest.raises(AdmissionDenied) as info:
            await arena.contests.join(contest.id, user)

        assert info.value.reason == AdmissionReason.CONTEST_NOT_ACTIVE
        assert await arena.contests.get_participant(contest.id, user) is None

    run_arena(scenario, now=now)


def test_get_contest_syncs_status(run_arena):
    async def scenario(arena):
        contest = await arena.contest()
        assert (await arena.contests.get_contest(contest.id)).status == ContestStatus.UPCOMING

        arena.clock.set(DURING)
        assert (await arena.contests.get_contest(contest.id)).status == ContestStatus.ACTIVE

        arena.clock.set(T1)
        assert (await arena.contests.get_contest(contest.id)).status == ContestStatus.COMPLETED
        assert (await arena.db.get_contest(contest.id)).status == ContestStatus.COMPLETED

        assert await arena.contests.get_contest(uuid.uuid4()) is None

    run_arena(scenario, now=T0 - timedelta(hours=1))


def test_list_contests_pages_newest_first(run_arena):
    async def scenario(arena):
        for day in range(5):
            await arena.contest(start=T0 + timedelta(days=day), end=T1 + timedelta(days=day), title=f"Day {day}")
        await arena.contest(title="Private", is_public=False)

        page, total = await arena.contests.list_contests(page=0, page_size=2)
        assert total == 5
        assert [c.title for c in page] == ["Day 4", "Day 3"]

        last, _ = await arena.contests.list_contests(page=2, page_size=2)
        assert [c.title for c in last] == ["Day 0"]
        assert last[0].status == ContestStatus.ACTIVE

        everything, total_all = await arena.contests.list_contests(page=0, page_size=10, public_only=False)
        assert total_all == 6
        assert "Private" in {c.title for c in everything}

    run_arena(scenario, now=DURING)


def test_stats_counts_participants_and_submissions(run_arena):
    async def scenario(arena):
        problem = await arena.problem()
        contest = await arena.contest(problems=((problem, 100),))
        alice, bob = await arena.user("alice"), await arena.user("bob")
        await arena.contests.join(contest.id, alice)

        await arena.pipeline.evaluate((await arena.pending(alice, contest, problem)).id)
        arena.judge.outcomes = {"1": 4}
        await arena.pipeline.evaluate((await arena.pending(bob, contest, problem)).id)

        stats = await arena.contests.stats(contest.id)
        assert (stats.participant_count, stats.submission_count, stats.accepted_count) == (2, 2, 1)

    run_arena(scenario)


def test_join_is_audited_with_the_joining_user(run_arena):
    async def scenario(arena):
        audit_logger.enabled = True
        contest = await arena.contest()
        user = await arena.user("alice")

        await arena.contests.join(contest.id, user)
        with pytest.raises(AdmissionDenied):
            await arena.contests.join(uuid.uuid4(), user)

        joined, _ = await arena.db.list_audit_logs(action="services.contest.join")
        failed, _ = await arena.db.list_audit_logs(action="services.contest.join.error")
        assert [e.actor_id for e in joined] == [user.id]
        assert joined[0].payload["actor"]["name"] == "alice"
        assert joined[0].payload["args"][0] == str(contest.id)
        assert "contest_not_found" in failed[0].payload["error"]

    run_arena(scenario)
