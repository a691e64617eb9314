"""Live leaderboard messages refreshed from ``participants`` change signals."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import ClassVar, Optional
from uuid import UUID

from aiogram import Bot
from aiogram.exceptions import TelegramBadRequest, TelegramForbiddenError

from code_arena.db.enums import ChangeStream
from code_arena.i18n import Localizer
from code_arena.services.contest import ContestService
from code_arena.services.leaderboard import LeaderboardAggregator
from code_arena.services.notifier import ChangeNotifier, ChangeSignal, Subscription
from code_arena.bot.routers.utils import render_leaderboard

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class _Watch:
	chat_id: int
	message_id: int
	contest_id: UUID
	lz: Localizer
	subscriptions: tuple[Subscription, ...] = ()
	last_text: Optional[str] = None


class LeaderboardWatchService:
	"""Singleton keeping at most one live leaderboard message per chat."""

	_instance: ClassVar[Optional["LeaderboardWatchService"]] = None

	def __new__(cls) -> "LeaderboardWatchService":
		if cls._instance is None:
			cls._instance = super().__new__(cls)
		return cls._instance

	def __init__(self) -> None:
		if getattr(self, "_initialized", False):
			return
		self._initialized = True
		self._bot: Optional[Bot] = None
		self._watches: dict[int, _Watch] = {}
		self._aggregator: Optional[LeaderboardAggregator] = None

	def bind_bot(self, bot: Bot) -> None:
		self._bot = bot
		logger.info("Leaderboard watcher bound to bot %s", getattr(bot, "id", None))

	@property
	def aggregator(self) -> LeaderboardAggregator:
		if self._aggregator is None:
			self._aggregator = LeaderboardAggregator()
		return self._aggregator

	def watch(self, chat_id: int, message_id: int, contest_id: UUID, lz: Localizer) -> None:
		"""Keep ``message_id`` showing the current ranking of ``contest_id``."""
		self.unwatch(chat_id)
		entry = _Watch(chat_id=chat_id, message_id=message_id, contest_id=contest_id, lz=lz)

		async def _observer(signal: ChangeSignal) -> None:
			await self._refresh(entry, signal)

		notifier = ChangeNotifier()
		entry.subscriptions = (
			notifier.subscribe(ChangeStream.PARTICIPANTS, _observer, contest_id=contest_id),
			notifier.subscribe(ChangeStream.CONTESTS, _observer, contest_id=contest_id),
		)
		self._watches[chat_id] = entry
		logger.info("Chat %s watches leaderboard of contest %s", chat_id, contest_id)

	def unwatch(self, chat_id: int) -> bool:
		entry = self._watches.pop(chat_id, None)
		if entry is None:
			return False
		for sub in entry.subscriptions:
			sub.unsubscribe()
		return True

	def is_watching(self, chat_id: int) -> bool:
		return chat_id in self._watches

	async def _refresh(self, entry: _Watch, signal: ChangeSignal) -> None:
		if self._bot is None:
			logger.debug("Leaderboard watcher bot is not bound")
			return

		contest = await ContestService().get_contest(entry.contest_id)
		if contest is None:
			self.unwatch(entry.chat_id)
			return
		board = await self.aggregator.rank(entry.contest_id)
		text = render_leaderboard(entry.lz, contest, board)
		if text == entry.last_text:
			return

		try:
			await self._bot.edit_message_text(text=text, chat_id=entry.chat_id, message_id=entry.message_id)
		except TelegramForbiddenError:
			logger.warning("Chat %s blocked the bot; dropping leaderboard watch", entry.chat_id)
			self.unwatch(entry.chat_id)
			return
		except TelegramBadRequest as exc:
			if "not modified" in str(exc).lower():
				return
			logger.warning("Leaderboard message %s in chat %s is gone: %s", entry.message_id, entry.chat_id, exc)
			self.unwatch(entry.chat_id)
			return
		entry.last_text = text
		logger.debug("Leaderboard of contest %s refreshed in chat %s on %s", entry.contest_id, entry.chat_id, signal.stream.value)


leaderboard_watch = LeaderboardWatchService()
