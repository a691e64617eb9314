import asyncio

import pytest

from code_arena.db.enums import ChangeStream, SubmissionStatus
from code_arena.db.schemas.submission import SubmissionCreate
from code_arena.errors import AdmissionDenied, UnsupportedLanguage
from code_arena.services.audit_log import audit_logger

from conftest import T1


async def _entry(arena, cases=4):
    user = await arena.user()
    problem = await arena.problem(cases=cases)
    contest = await arena.contest(problems=((problem, 100),))
    return user, problem, contest


def _payload(user, contest, problem, language="python", code="print(input())"):
    return SubmissionCreate(user_id=user.id, contest_id=contest.id, problem_id=problem.id, language=language, code=code)


def test_submit_stores_pending_and_evaluates_in_background(run_arena):
    async def scenario(arena):
        user, problem, contest = await _entry(arena)
        signals = arena.record(ChangeStream.SUBMISSIONS, contest.id)

        created = await arena.submissions.submit(_payload(user, contest, problem))

        assert created.status == SubmissionStatus.PENDING
        assert created.total_test_cases == 4
        assert arena.pipeline.in_flight == 1

        await arena.pipeline.drain()

        final = await arena.submissions.get_submission(created.id)
        assert final.status == SubmissionStatus.ACCEPTED
        assert (final.test_cases_passed, final.total_test_cases, final.score) == (4, 4, 100)
        assert len(signals) == 2
        assert (await arena.db.get_participant(contest.id, user.id)).total_score == 100

    run_arena(scenario)


def test_submit_forwards_progress(run_arena):
    async def scenario(arena):
        user, problem, contest = await _entry(arena, cases=3)
        arena.judge.outcomes = {"2": 4}
        seen = []

        await arena.submissions.submit(_payload(user, contest, problem), progress=seen.append)
        await arena.pipeline.drain()

        assert [(v.index, v.passed) for v in seen] == [(0, True), (1, False), (2, True)]

    run_arena(scenario)


def test_submit_after_the_end_writes_nothing(run_arena):
    async def scenario(arena):
        user, problem, contest = await _entry(arena)

        with pytest.raises(AdmissionDenied):
            await arena.submissions.submit(_payload(user, contest, problem))

        assert await arena.submissions.recent_submissions(user.id, contest.id) == []
        assert arena.pipeline.in_flight == 0

    run_arena(scenario, now=T1)


def test_submit_rejects_unknown_language_before_storing(run_arena):
    async def scenario(arena):
        user, problem, contest = await _entry(arena)

        with pytest.raises(UnsupportedLanguage):
            await arena.submissions.submit(_payload(user, contest, problem, language="brainfuck"))

        assert await arena.submissions.recent_submissions(user.id, contest.id) == []

    run_arena(scenario)


def test_recent_submissions_latest_first(run_arena):
    async def scenario(arena):
        user, problem, contest = await _entry(arena)
        other = await arena.problem(title="Other")
        await arena.contests.attach_problem(contest.id, other.id)

        ids = []
        for target in (problem, other, problem):
            ids.append((await arena.submissions.submit(_payload(user, contest, target))).id)
            await asyncio.sleep(0.01)
        await arena.pipeline.drain()

        recent = await arena.submissions.recent_submissions(user.id, contest.id)
        assert [s.id for s in recent] == ids[::-1]

        only_first = await arena.submissions.recent_submissions(user.id, contest.id, problem_id=problem.id, limit=1)
        assert [s.id for s in only_first] == [ids[2]]

    run_arena(scenario)


def test_submit_is_audited(run_arena):
    async def scenario(arena):
        audit_logger.enabled = True
        user, problem, contest = await _entry(arena)

        created = await arena.submissions.submit(_payload(user, contest, problem, code="#" * 600 + "\nprint(1)"))
        await arena.pipeline.drain()

        entries, total = await arena.db.list_audit_logs(action="services.submission.submit")
        assert total == 1
        payload = entries[0].payload
        assert payload["result"]["id"] == str(created.id)
        assert payload["args"][0]["code"].endswith("...")

    run_arena(scenario)
