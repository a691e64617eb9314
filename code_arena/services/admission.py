# services/admission.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from code_arena.db.database import DataBase
from code_arena.db.enums import ContestStatus
from code_arena.db.schemas.contest import ContestProblemRead, ContestRead
from code_arena.errors import AdmissionDenied, AdmissionReason
from code_arena.services.contest_clock import ContestClock

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Admission:
	contest: ContestRead
	contest_problem: ContestProblemRead


class AdmissionGate:
	"""Decides whether a submission may be created at all.

	The contest status is recomputed from the clock on every call; a status read
	earlier in the same request is never reused.
	"""

	def __init__(self, *, database: Optional[DataBase] = None, contest_clock: Optional[ContestClock] = None) -> None:
		self._database = database or DataBase()
		self._clock = contest_clock or ContestClock(database=self._database)

	async def open_contest(self, contest_id: UUID) -> ContestRead:
		"""Load a contest and require it to be active right now."""
		contest = await self._database.get_contest(contest_id)
		if contest is None:
			raise AdmissionDenied(AdmissionReason.CONTEST_NOT_FOUND, str(contest_id))
		status = await self._clock.sync(contest)
		if status != ContestStatus.ACTIVE:
			logger.info("Contest %s is %s; rejecting", contest_id, status.value)
			raise AdmissionDenied(AdmissionReason.CONTEST_NOT_ACTIVE, status.value)
		return contest.model_copy(update={"status": status})

	async def admit(self, contest_id: UUID, problem_id: UUID) -> Admission:
		contest = await self._database.get_contest(contest_id)
		if contest is None:
			raise AdmissionDenied(AdmissionReason.CONTEST_NOT_FOUND, str(contest_id))

		link = await self._database.get_contest_problem(contest_id, problem_id)

		# time is checked last so the decision reflects the instant of admission
		status = await self._clock.sync(contest)
		if status != ContestStatus.ACTIVE:
			logger.info("Submission to contest %s rejected: status is %s", contest_id, status.value)
			raise AdmissionDenied(AdmissionReason.CONTEST_NOT_ACTIVE, status.value)
		if link is None:
			raise AdmissionDenied(AdmissionReason.PROBLEM_NOT_IN_CONTEST, str(problem_id))

		return Admission(contest=contest.model_copy(update={"status": status}), contest_problem=link)


__all__ = ["Admission", "AdmissionGate"]
