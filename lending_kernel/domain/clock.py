"""
Clock -- injectable time source.

Services never call ``datetime.now()`` directly: paid_at, completed_at,
liquidated_at and the first due date of a schedule all come from the Clock
they were constructed with, so tests can pin them.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone


class Clock(ABC):
    """Abstract clock. ``now()`` is always timezone-aware UTC."""

    @abstractmethod
    def now(self) -> datetime:
        ...

    def today(self) -> date:
        return self.now().date()


class SystemClock(Clock):
    """Production clock backed by the system time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Test clock with controlled time.

    Returns the same instant until ``advance()`` or ``set_time()`` is called.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._current = fixed_time or datetime(2024, 1, 15, 12, 0, 0, tzinfo=timezone.utc)
        if self._current.tzinfo is None:
            raise ValueError("DeterministicClock requires a timezone-aware datetime")

    def now(self) -> datetime:
        return self._current

    def set_time(self, time: datetime) -> None:
        self._current = time

    def advance(self, *, days: int = 0, seconds: int = 0) -> datetime:
        self._current = self._current + timedelta(days=days, seconds=seconds)
        return self._current
