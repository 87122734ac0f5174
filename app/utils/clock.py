"""Injectable clock and duration arithmetic.

Every operation reads ``now`` once from a ``Clock`` and threads that value
through all of its calculations.
"""
import math
from datetime import datetime, timedelta, timezone
from typing import Optional, Protocol


class Clock(Protocol):
    """Source of the current time."""

    def now(self) -> datetime:
        ...


class SystemClock:
    """Wall clock, always UTC-aware."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FakeClock:
    """Settable clock for tests and scripted replays."""

    def __init__(self, initial: Optional[datetime] = None):
        self._current = to_utc(initial) if initial else datetime.now(timezone.utc)

    def now(self) -> datetime:
        return self._current

    def set_time(self, value: datetime) -> None:
        self._current = to_utc(value)

    def advance(self, seconds: float = 0, minutes: float = 0, hours: float = 0) -> datetime:
        self._current = self._current + timedelta(
            seconds=seconds, minutes=minutes, hours=hours
        )
        return self._current


def to_utc(value: datetime) -> datetime:
    """
    Normalize a datetime to aware UTC.

    Naive values are taken to already be UTC (that is how MongoDB hands
    them back when the client is not tz-aware).
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def elapsed_seconds(start: datetime, end: datetime) -> int:
    """
    Whole seconds from start to end, never negative.

    Example:
        >>> a = datetime(2025, 1, 1, 9, 0, tzinfo=timezone.utc)
        >>> elapsed_seconds(a, a + timedelta(hours=1, milliseconds=900))
        3600
        >>> elapsed_seconds(a + timedelta(minutes=5), a)
        0
    """
    delta = (to_utc(end) - to_utc(start)).total_seconds()
    return max(0, math.floor(delta))


def clip_interval(start: datetime, end: datetime, upper_bound: datetime) -> int:
    """
    Length in seconds of [start, min(end, upper_bound)].

    Returns 0 when the interval starts at or after the bound.
    """
    if to_utc(start) >= to_utc(upper_bound):
        return 0
    return elapsed_seconds(start, min(to_utc(end), to_utc(upper_bound)))
