"""
Injectable time source.

"Now" decides which recurring occurrences are due, where a new schedule
starts and whether a caller is still inside its rate-limit window.  Every
service therefore receives a ``Clock`` instead of calling ``datetime.now()``;
``SystemClock`` is the only place the wall clock is read.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone


class Clock(ABC):
    """Source of the current instant, always timezone-aware UTC."""

    @abstractmethod
    def now(self) -> datetime:
        ...


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """Frozen clock for tests and replays; moves only when told to.

    Naive datetimes are read as UTC.  Defaults to 2024-01-01T12:00:00Z.
    """

    DEFAULT_START = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __init__(self, fixed_time: datetime | None = None):
        self._current = _to_utc(fixed_time or self.DEFAULT_START)

    def now(self) -> datetime:
        return self._current

    def set_time(self, value: datetime) -> None:
        self._current = _to_utc(value)

    def advance(self, seconds: float | timedelta = 1) -> datetime:
        """Move forward by ``seconds`` (or a timedelta) and return the new instant."""
        step = seconds if isinstance(seconds, timedelta) else timedelta(seconds=seconds)
        self._current += step
        return self._current


def _to_utc(value: datetime) -> datetime:
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value.astimezone(timezone.utc)
