# utils/clock.py
from datetime import datetime, timezone
from typing import Callable

# All datetimes in the project are naive UTC.
Clock = Callable[[], datetime]


def utcnow() -> datetime:
	return datetime.now(timezone.utc).replace(tzinfo=None)


def as_naive_utc(value: datetime) -> datetime:
	if value.tzinfo is None:
		return value
	return value.astimezone(timezone.utc).replace(tzinfo=None)
