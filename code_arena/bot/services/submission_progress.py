"""One Telegram message that follows a submission from queued to its final verdict."""
from __future__ import annotations

import logging
from typing import Optional
from uuid import UUID

from aiogram import Bot
from aiogram.exceptions import TelegramBadRequest, TelegramForbiddenError

from code_arena.db.enums import ChangeStream
from code_arena.db.schemas.submission import SubmissionRead
from code_arena.i18n import Localizer
from code_arena.services.evaluation import TestCaseVerdict
from code_arena.services.notifier import ChangeNotifier, ChangeSignal, Subscription
from code_arena.services.submission import SubmissionService
from code_arena.bot.routers.utils import submission_status_label

logger = logging.getLogger(__name__)

PASSED_MARK = "✅"
FAILED_MARK = "❌"
PENDING_MARK = "⏳"


class SubmissionProgressView:
	"""
	``on_verdict`` is the evaluation progress callback; the final verdict arrives through
	a ``submissions`` signal, after which the view re-reads the stored submission and
	stops listening.
	"""

	def __init__(self, bot: Bot, chat_id: int, message_id: int, lz: Localizer, total: int) -> None:
		self._bot = bot
		self._chat_id = chat_id
		self._message_id = message_id
		self._lz = lz
		self._total = total
		self._marks: list[str] = []
		self._submission_id: Optional[UUID] = None
		self._subscription: Optional[Subscription] = None
		self._finished = False

	async def follow(self, submission: SubmissionRead) -> None:
		"""Start listening for the final verdict of ``submission``; it may already be in."""
		self._submission_id = submission.id
		self._total = submission.total_test_cases
		self._subscription = ChangeNotifier().subscribe(
			ChangeStream.SUBMISSIONS, self.on_signal, contest_id=submission.contest_id
		)
		await self.on_signal(ChangeSignal(ChangeStream.SUBMISSIONS, submission.contest_id))

	async def on_verdict(self, verdict: TestCaseVerdict) -> None:
		self._marks.append(PASSED_MARK if verdict.passed else FAILED_MARK)
		pending = PENDING_MARK * max(0, self._total - len(self._marks))
		text = self._lz.get(
			"submissions.progress",
			marks="".join(self._marks) + pending,
			done=len(self._marks),
			total=self._total,
		)
		await self._edit(text)

	async def on_signal(self, signal: ChangeSignal) -> None:
		if self._finished or self._submission_id is None:
			return
		submission = await SubmissionService().get_submission(self._submission_id)
		if submission is None or not submission.status.is_terminal:
			return

		self._finished = True
		if self._subscription is not None:
			self._subscription.unsubscribe()
		text = self._lz.get(
			"submissions.final",
			status=submission_status_label(self._lz, submission.status),
			passed=submission.test_cases_passed,
			total=submission.total_test_cases,
			score=submission.score,
		)
		await self._edit(text)
		logger.info("Submission %s verdict delivered to chat %s", submission.id, self._chat_id)

	async def _edit(self, text: str) -> None:
		try:
			await self._bot.edit_message_text(text=text, chat_id=self._chat_id, message_id=self._message_id)
		except (TelegramForbiddenError, TelegramBadRequest):
			logger.warning("Failed to update progress message in chat %s", self._chat_id, exc_info=True)
