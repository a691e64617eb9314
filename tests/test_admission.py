import uuid
from datetime import timedelta

import pytest

from code_arena.db.enums import ContestStatus
from code_arena.db.schemas.submission import SubmissionCreate
from code_arena.errors import AdmissionDenied, AdmissionReason

from conftest import DURING, T0, T1


async def _denied(arena, contest_id, problem_id) -> AdmissionReason:
    with pytest.raises(AdmissionDenied) as info:
        await arena.gate.admit(contest_id, problem_id)
    return info.value.reason


def test_unknown_contest_is_not_found(run_arena):
    async def scenario(arena):
        problem = await arena.problem()
        assert await _denied(arena, uuid.uuid4(), problem.id) == AdmissionReason.CONTEST_NOT_FOUND

    run_arena(scenario)


@pytest.mark.parametrize("now", [T0 - timedelta(seconds=1), T1, T1 + timedelta(days=1)])
def test_contest_outside_window_is_not_active(run_arena, now):
    async def scenario(arena):
        problem = await arena.problem()
        contest = await arena.contest(problems=((problem, 100),))
        assert await _denied(arena, contest.id, problem.id) == AdmissionReason.CONTEST_NOT_ACTIVE

    run_arena(scenario, now=now)


def test_stale_active_status_is_rechecked_against_the_clock(run_arena):
    async def scenario(arena):
        problem = await arena.problem()
        contest = await arena.contest(problems=((problem, 100),))
        assert await arena.contest_clock.sync(contest) == ContestStatus.ACTIVE
        assert (await arena.db.get_contest(contest.id)).status == ContestStatus.ACTIVE

        arena.clock.set(T1)
        assert await _denied(arena, contest.id, problem.id) == AdmissionReason.CONTEST_NOT_ACTIVE
        assert (await arena.db.get_contest(contest.id)).status == ContestStatus.COMPLETED

    run_arena(scenario, now=DURING)


def test_problem_outside_contest_is_rejected(run_arena):
    async def scenario(arena):
        attached, stray = await arena.problem(), await arena.problem(title="Stray")
        contest = await arena.contest(problems=((attached, 100),))
        assert await _denied(arena, contest.id, stray.id) == AdmissionReason.PROBLEM_NOT_IN_CONTEST

    run_arena(scenario)


def test_inactive_contest_wins_over_missing_problem(run_arena):
    async def scenario(arena):
        stray = await arena.problem()
        contest = await arena.contest()
        assert await _denied(arena, contest.id, stray.id) == AdmissionReason.CONTEST_NOT_ACTIVE

    run_arena(scenario, now=T1)


def test_admission_returns_contest_and_link(run_arena):
    async def scenario(arena):
        problem = await arena.problem()
        contest = await arena.contest(problems=((problem, 250),))

        admission = await arena.gate.admit(contest.id, problem.id)

        assert admission.contest.id == contest.id
        assert admission.contest.status == ContestStatus.ACTIVE
        assert admission.contest_problem.points == 250
        assert admission.contest_problem.order_index == 0

    run_arena(scenario)


def test_rejected_submission_leaves_no_row(run_arena):
    async def scenario(arena):
        user = await arena.user()
        problem = await arena.problem()
        contest = await arena.contest(problems=((problem, 100),))
        payload = SubmissionCreate(
            user_id=user.id, contest_id=contest.id, problem_id=problem.id, language="python", code="print(1)"
        )

        with pytest.raises(AdmissionDenied):
            await arena.submissions.submit(payload)

        assert await arena.db.list_submissions(contest_id=contest.id) == []
        assert arena.judge.calls == []

    run_arena(scenario, now=T1)


def test_open_contest_for_joining(run_arena):
    async def scenario(arena):
        contest = await arena.contest()
        opened = await arena.gate.open_contest(contest.id)
        assert opened.status == ContestStatus.ACTIVE

        with pytest.raises(AdmissionDenied) as info:
            await arena.gate.open_contest(uuid.uuid4())
        assert info.value.reason == AdmissionReason.CONTEST_NOT_FOUND

    run_arena(scenario)
