# services/leaderboard.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from uuid import UUID

from code_arena.db.database import DataBase
from code_arena.db.enums import ChangeStream
from code_arena.db.schemas.leaderboard import GlobalLeaderboardEntry, LeaderboardEntry, ScoreDrift
from code_arena.db.schemas.user import UserRead
from code_arena.services.notifier import ChangeNotifier

logger = logging.getLogger(__name__)


def percentage(part: int, whole: int) -> int:
	"""``100 * part / whole`` rounded half up; 0 for an empty whole."""
	if whole <= 0:
		return 0
	return (200 * part + whole) // (2 * whole)


@dataclass(slots=True)
class _Standing:
	user_id: UUID
	participant_id: Optional[UUID]
	total_score: int
	joined_at: datetime


def _display_name(users: dict[UUID, UserRead], user_id: UUID) -> str:
	user = users.get(user_id)
	return user.display_name if user is not None else str(user_id)[:8]


class LeaderboardAggregator:
	"""
	Reads rankings straight from storage on every call.

	Totals are never written here except by :meth:`recompute`; the evaluation
	pipeline owns the regular score updates.
	"""

	def __init__(self, *, database: Optional[DataBase] = None, change_notifier: Optional[ChangeNotifier] = None) -> None:
		self._database = database or DataBase()
		self._notifier = change_notifier or ChangeNotifier()

	async def rank(self, contest_id: UUID) -> list[LeaderboardEntry]:
		"""
		Participants of a contest ordered by total score, then earliest join, then user id.

		A user with submissions in the contest but no participant row is listed with
		score 0 and their first submission time as join time.
		"""
		participants = await self._database.list_participants(contest_id)
		tallies = await self._database.submission_tallies(contest_id)

		standings = [
			_Standing(user_id=p.user_id, participant_id=p.id, total_score=p.total_score, joined_at=p.joined_at)
			for p in participants
		]
		known = {p.user_id for p in participants}
		for user_id, tally in tallies.items():
			if user_id in known or tally.first_submitted_at is None:
				continue
			logger.debug("User %s has submissions in contest %s but no participant row", user_id, contest_id)
			standings.append(_Standing(user_id=user_id, participant_id=None, total_score=0, joined_at=tally.first_submitted_at))

		standings.sort(key=lambda s: (-s.total_score, s.joined_at, s.user_id))
		users = await self._database.get_users(s.user_id for s in standings)

		board: list[LeaderboardEntry] = []
		for position, st in enumerate(standings, start=1):
			tally = tallies.get(st.user_id)
			submitted = tally.submission_count if tally else 0
			accepted = tally.accepted_count if tally else 0
			board.append(LeaderboardEntry(
				rank=position,
				user_id=st.user_id,
				display_name=_display_name(users, st.user_id),
				participant_id=st.participant_id,
				total_score=st.total_score,
				submission_count=submitted,
				accepted_count=accepted,
				accuracy=percentage(accepted, submitted),
				joined_at=st.joined_at,
			))
		return board

	async def global_rank(self, limit: Optional[int] = None) -> list[GlobalLeaderboardEntry]:
		"""Every user ranked by the sum of their contest totals, then accepted count, then id."""
		totals = await self._database.total_scores_by_user()
		tallies = await self._database.submission_tallies()

		user_ids = set(totals) | set(tallies)

		def _key(uid: UUID):
			tally = tallies.get(uid)
			return (-totals.get(uid, 0), -(tally.accepted_count if tally else 0), uid)

		ordered = sorted(user_ids, key=_key)
		if limit is not None:
			ordered = ordered[:max(0, int(limit))]
		users = await self._database.get_users(ordered)

		board: list[GlobalLeaderboardEntry] = []
		for position, uid in enumerate(ordered, start=1):
			tally = tallies.get(uid)
			submitted = tally.submission_count if tally else 0
			accepted = tally.accepted_count if tally else 0
			board.append(GlobalLeaderboardEntry(
				rank=position,
				user_id=uid,
				display_name=_display_name(users, uid),
				total_score=totals.get(uid, 0),
				submission_count=submitted,
				accepted_count=accepted,
				success_rate=percentage(accepted, submitted),
			))
		return board

	async def recompute(self, contest_id: UUID, *, apply: bool = True) -> list[ScoreDrift]:
		"""Rebuild contest totals from the per-problem best scores and report what drifted."""
		drifts = await self._database.recompute_participant_totals(contest_id, apply=apply)
		for d in drifts:
			logger.warning(
				"Participant %s in contest %s: recorded total %d, ledger total %d",
				d.participant_id, contest_id, d.recorded_total, d.ledger_total,
			)
		if drifts and apply:
			await self._notifier.publish(ChangeStream.PARTICIPANTS, contest_id)
		return drifts


__all__ = ["LeaderboardAggregator", "percentage"]
