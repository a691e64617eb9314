"""Contest status derived from wall-clock time.

There is no background scheduler: every read path calls :meth:`ContestClock.sync`,
so a stored status is at most one read behind. Clients keep the displayed status
fresh by polling every ``STATUS_POLL_INTERVAL_SECONDS``.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy.exc import SQLAlchemyError

from code_arena.config import Settings
from code_arena.db.database import DataBase
from code_arena.db.enums import ChangeStream, ContestStatus
from code_arena.db.schemas.contest import ContestRead
from code_arena.services.notifier import ChangeNotifier
from code_arena.utils.clock import Clock, as_naive_utc, utcnow

logger = logging.getLogger(__name__)


def compute_status(now: datetime, start: datetime, end: datetime) -> ContestStatus:
	"""Status of the half-open window ``[start, end)`` at instant ``now``."""
	now, start, end = as_naive_utc(now), as_naive_utc(start), as_naive_utc(end)
	if now < start:
		return ContestStatus.UPCOMING
	if now < end:
		return ContestStatus.ACTIVE
	return ContestStatus.COMPLETED


class ContestClock:
	def __init__(
		self,
		*,
		database: Optional[DataBase] = None,
		clock: Clock = utcnow,
		change_notifier: Optional[ChangeNotifier] = None,
	) -> None:
		self._database = database or DataBase()
		self._clock = clock
		self._notifier = change_notifier or ChangeNotifier()

	@property
	def poll_interval(self) -> int:
		return Settings().status_poll_interval_seconds

	def now(self) -> datetime:
		return self._clock()

	def status_of(self, contest: ContestRead) -> ContestStatus:
		"""Freshly computed status, without touching storage."""
		return compute_status(self.now(), contest.start_at, contest.end_at)

	async def sync(self, contest: ContestRead) -> ContestStatus:
		"""
		Compute the contest status for this instant and persist it if it moved forward.

		The later of the computed and stored status is returned, so a contest that
		once completed stays completed even if its window is edited afterwards. A
		forward status is returned even when the write fails.
		"""
		status = self.status_of(contest)
		if status.order <= contest.status.order:
			return contest.status

		try:
			changed = await self._database.advance_contest_status(contest.id, status)
		except SQLAlchemyError:
			logger.warning("Could not persist status %s for contest %s", status.value, contest.id, exc_info=True)
			return status

		if changed:
			logger.info("Contest %s status %s -> %s", contest.id, contest.status.value, status.value)
			await self._notifier.publish(ChangeStream.CONTESTS, contest.id)
		return status

	async def refresh(self, contest: ContestRead) -> ContestRead:
		"""Return a copy of ``contest`` carrying the freshly synced status."""
		status = await self.sync(contest)
		if status == contest.status:
			return contest
		return contest.model_copy(update={"status": status})

	async def refresh_many(self, contests: Iterable[ContestRead]) -> list[ContestRead]:
		return [await self.refresh(c) for c in contests]


__all__ = ["ContestClock", "compute_status"]
