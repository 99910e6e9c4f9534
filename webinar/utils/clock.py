"""Clock abstractions.

Every component receives its notion of "now" from a clock instead of reading
wall-clock time directly, so tests can replay arbitrary instants without
sleeping.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from threading import Lock
from typing import Protocol, runtime_checkable

from webinar.utils.datetime_utils import as_utc, utcnow


@runtime_checkable
class Clock(Protocol):
    """Protocol implemented by time sources."""

    def now(self) -> datetime:
        """Return the current time as an aware UTC datetime."""


class SystemClock:
    """Wall-clock time source used in production."""

    def now(self) -> datetime:
        return utcnow()


class FrozenClock:
    """Deterministic clock used for tests.

    Time only moves when :meth:`set` or :meth:`advance` is called.
    """

    def __init__(self, start: datetime) -> None:
        self._current = as_utc(start)
        self._lock = Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._current

    def set(self, value: datetime) -> datetime:
        with self._lock:
            self._current = as_utc(value)
            return self._current

    def advance(self, seconds: float = 0.0, **kwargs) -> datetime:
        """Advance the clock (must be non-negative)."""
        delta = timedelta(seconds=seconds, **kwargs)
        if delta < timedelta(0):
            raise ValueError("clock cannot move backwards")
        with self._lock:
            self._current += delta
            return self._current
