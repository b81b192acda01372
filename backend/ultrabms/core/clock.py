"""
Ultra BMS - Clock

Current time is always injected so date comparisons are deterministic in tests.
"""

import uuid
from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Optional


IdFactory = Callable[[], uuid.UUID]


class Clock(ABC):
    """Supplies the current date and time."""

    @abstractmethod
    def today(self) -> date:
        ...

    @abstractmethod
    def now(self) -> datetime:
        ...


class SystemClock(Clock):
    """Wall clock, UTC."""

    def today(self) -> date:
        return datetime.now(timezone.utc).date()

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock(Clock):
    """Frozen clock for tests and replays."""

    def __init__(self, current: date, at: Optional[datetime] = None) -> None:
        self._today = current
        self._now = at or datetime(current.year, current.month, current.day, 9, 0, tzinfo=timezone.utc)

    def today(self) -> date:
        return self._today

    def now(self) -> datetime:
        return self._now

    def advance(self, days: int) -> None:
        self._today = self._today + timedelta(days=days)
        self._now = self._now + timedelta(days=days)


def days_remaining(today: date, lease_end: date) -> int:
    """Whole days from today until lease end (negative once past)."""
    return (lease_end - today).days
