from datetime import timedelta

from code_arena.db.enums import ContestStatus, SubmissionStatus

from conftest import DURING, T0, T1


async def _judge(arena, user, contest, problem, failing=()):
    arena.judge.outcomes = {str(i): 4 for i in failing}
    sub = await arena.pending(user, contest, problem)
    await arena.pipeline.evaluate(sub.id)
    return sub


def test_profile_adds_best_scores_across_contests(run_arena):
    async def scenario(arena):
        first, second = await arena.problem(title="Sum"), await arena.problem(title="Product")
        weekly = await arena.contest(problems=((first, 100),), title="Weekly")
        cup = await arena.contest(problems=((second, 50),), title="Cup")
        alice, bob = await arena.user("alice"), await arena.user("bob")

        await _judge(arena, alice, weekly, first, failing=(4,))
        await _judge(arena, alice, weekly, first)
        await _judge(arena, alice, cup, second)
        await _judge(arena, bob, weekly, first, failing=(1, 2))

        profile = await arena.users.profile(alice)

        assert profile.display_name == "alice"
        assert (profile.submission_count, profile.accepted_count, profile.success_rate) == (3, 2, 67)
        assert (profile.contest_count, profile.total_score) == (2, 150)
        assert [(d.contest_title, d.problem_title) for d in profile.history] == [
            ("Cup", "Product"), ("Weekly", "Sum"), ("Weekly", "Sum"),
        ]
        assert [d.status for d in profile.history] == [
            SubmissionStatus.ACCEPTED, SubmissionStatus.ACCEPTED, SubmissionStatus.WRONG_ANSWER,
        ]
        assert {d.user_id for d in profile.history} == {alice.id}

        short = await arena.users.profile(alice, history_limit=1)
        assert [d.score for d in short.history] == [50]
        assert short.submission_count == 3

    run_arena(scenario)


def test_profile_of_a_newcomer_is_empty(run_arena):
    async def scenario(arena):
        newcomer = await arena.user("newcomer")
        profile = await arena.users.profile(newcomer)
        assert (profile.submission_count, profile.success_rate, profile.contest_count, profile.total_score) == (0, 0, 0, 0)
        assert profile.history == []

    run_arena(scenario)


def test_overview_counts_and_recent_activity(run_arena):
    async def scenario(arena):
        problem = await arena.problem(title="Sum")
        await arena.problem(title="Unused")
        live = await arena.contest(problems=((problem, 100),), title="Live")
        await arena.contest(start=T1, end=T1 + timedelta(hours=2), title="Later")
        await arena.contest(start=T0 - timedelta(days=1), end=T1 - timedelta(days=1), title="Old", is_public=False)
        alice, bob = await arena.user("alice"), await arena.user("bob")

        await _judge(arena, alice, live, problem)
        await arena.pending(bob, live, problem)

        overview = await arena.contests.overview()

        counts = overview.counts
        assert (counts.user_count, counts.contest_count, counts.problem_count, counts.active_contest_count) == (2, 3, 2, 1)
        assert [(d.author, d.status) for d in overview.recent_submissions] == [
            ("bob", SubmissionStatus.PENDING), ("alice", SubmissionStatus.ACCEPTED),
        ]
        assert {d.contest_title for d in overview.recent_submissions} == {"Live"}
        assert [(c.title, c.status) for c in overview.contests] == [
            ("Later", ContestStatus.UPCOMING), ("Live", ContestStatus.ACTIVE), ("Old", ContestStatus.COMPLETED),
        ]
        by_title = {c.title: c for c in overview.contests}
        assert (by_title["Live"].participant_count, by_title["Live"].submission_count, by_title["Live"].accepted_count) == (1, 2, 1)
        assert by_title["Later"].submission_count == 0

        trimmed = await arena.contests.overview(recent_limit=1, contest_limit=1)
        assert [d.author for d in trimmed.recent_submissions] == ["bob"]
        assert [c.title for c in trimmed.contests] == ["Later"]

    run_arena(scenario, now=DURING)


def test_overview_active_count_follows_the_clock(run_arena):
    async def scenario(arena):
        await arena.contest()
        assert (await arena.contests.overview()).counts.active_contest_count == 0

        arena.clock.set(DURING)
        assert (await arena.contests.overview()).counts.active_contest_count == 1

        arena.clock.set(T1)
        assert (await arena.contests.overview()).counts.active_contest_count == 0

    run_arena(scenario, now=T0 - timedelta(minutes=1))
