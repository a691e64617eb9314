"""In-process "something changed" fan-out.

Observers subscribe to a stream (``contests``, ``submissions``, ``participants``),
optionally scoped to one contest. A publish delivers a content-less
:class:`ChangeSignal`; observers are expected to re-read the authoritative state
rather than trust anything carried by the signal itself.
"""
from __future__ import annotations

import asyncio
import inspect
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Awaitable, Callable, ClassVar, DefaultDict, Optional, Tuple, Union
from uuid import UUID

from code_arena.db.enums import ChangeStream

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ChangeSignal:
	stream: ChangeStream
	contest_id: Optional[UUID] = None


Observer = Callable[[ChangeSignal], Union[Awaitable[None], None]]
_Key = Tuple[ChangeStream, Optional[UUID]]


@dataclass(eq=False, slots=True)
class Subscription:
	"""Handle returned by :meth:`ChangeNotifier.subscribe`."""
	key: _Key
	observer: Observer
	_notifier: "ChangeNotifier" = field(repr=False)
	active: bool = True

	def unsubscribe(self) -> None:
		if self.active:
			self._notifier._remove(self)
			self.active = False


class ChangeNotifier:
	"""Singleton observer registry keyed by (stream, contest id)."""

	_instance: ClassVar[Optional["ChangeNotifier"]] = None

	def __new__(cls) -> "ChangeNotifier":
		if cls._instance is None:
			cls._instance = super().__new__(cls)
		return cls._instance

	def __init__(self) -> None:
		if getattr(self, "_initialized", False):
			return
		self._observers: DefaultDict[_Key, list[Subscription]] = defaultdict(list)
		self._initialized = True

	def subscribe(
		self,
		stream: ChangeStream | str,
		observer: Observer,
		contest_id: Optional[UUID] = None,
	) -> Subscription:
		"""Register ``observer``; without ``contest_id`` it receives every signal of the stream."""
		key = (ChangeStream(stream), contest_id)
		sub = Subscription(key=key, observer=observer, _notifier=self)
		self._observers[key].append(sub)
		logger.debug("Observer %r subscribed to %s/%s", observer, key[0].value, contest_id or "*")
		return sub

	def _remove(self, sub: Subscription) -> None:
		bucket = self._observers.get(sub.key)
		if not bucket:
			return
		try:
			bucket.remove(sub)
		except ValueError:
			return
		if not bucket:
			del self._observers[sub.key]

	def subscriber_count(self, stream: ChangeStream | str, contest_id: Optional[UUID] = None) -> int:
		return len(self._observers.get((ChangeStream(stream), contest_id), ()))

	def clear(self) -> None:
		self._observers.clear()

	async def publish(self, stream: ChangeStream | str, contest_id: Optional[UUID] = None) -> int:
		"""
		Deliver a signal to scoped and stream-wide observers.

		Returns the number of observers that handled it without raising. Observer
		failures are logged and never reach the publisher.
		"""
		signal = ChangeSignal(stream=ChangeStream(stream), contest_id=contest_id)
		targets: list[Subscription] = list(self._observers.get((signal.stream, None), ()))
		if contest_id is not None:
			targets.extend(self._observers.get((signal.stream, contest_id), ()))

		delivered = 0
		for sub in targets:
			if not sub.active:
				continue
			try:
				result = sub.observer(signal)
				if inspect.isawaitable(result):
					await result
			except asyncio.CancelledError:
				raise
			except Exception:
				logger.exception("Observer %r failed on %s signal", sub.observer, signal.stream.value)
				continue
			delivered += 1
		return delivered


notifier = ChangeNotifier()

__all__ = ["ChangeNotifier", "ChangeSignal", "Subscription", "notifier"]
