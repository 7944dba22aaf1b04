"""Time helpers shared by the tracking services."""

from __future__ import annotations

import math
from datetime import date, datetime, time, timezone
from typing import Callable

Clock = Callable[[], datetime]

_SECONDS_PER_DAY = 86400


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive values read back from the store."""

    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def start_of_day(value: date) -> datetime:
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


def day_span(start: datetime, end: datetime) -> int:
    """Whole days between two instants, rounded up and never negative."""

    seconds = (as_utc(end) - as_utc(start)).total_seconds()
    return max(0, math.ceil(seconds / _SECONDS_PER_DAY))


def get_clock() -> Clock:
    """FastAPI dependency; tests override it with a fixed clock."""

    return utcnow
