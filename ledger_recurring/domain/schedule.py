"""
Pure schedule arithmetic for recurring rules.

Contract:
    Every function here is PURE -- no I/O, no clock reads.  "Now" is always
    passed in by the caller (from the injected Clock).

Architecture: ledger_recurring/domain.  ZERO I/O.

Invariants enforced:
    - All datetimes are timezone-aware UTC; naive inputs are taken as UTC.
    - Weekly occurrences fall on ``day_of_week`` (0 = Sunday) and are exactly
      7 days apart.
    - Monthly occurrences fall on ``day_of_month`` (1-28, so every month has
      it) and keep the anchor's UTC time of day.
    - ``DueOccurrences`` never yields a candidate after ``end_at`` or after
      ``now``.
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from typing import Iterator

from ledger_kernel.exceptions import ValidationError

from ledger_recurring.domain.types import (
    Cadence,
    MonthlyCadence,
    Schedule,
    WeeklyCadence,
)

MAX_DAY_OF_MONTH = 28

_MONTH_PATTERN = re.compile(r"^(\d{4})-(0[1-9]|1[0-2])$")


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def weekday_index(value: datetime) -> int:
    """Day of week with 0 = Sunday ... 6 = Saturday."""
    return (value.weekday() + 1) % 7


# =============================================================================
# Cadence construction
# =============================================================================


def schedule_from_fields(
    cadence: Cadence | str,
    day_of_week: int | None = None,
    day_of_month: int | None = None,
) -> Schedule:
    """Build the cadence variant from persisted or user-supplied fields.

    Raises:
        ValidationError: Unknown cadence, or the day field the cadence needs
            is missing or out of range.
    """
    try:
        cadence = Cadence(cadence)
    except ValueError:
        raise ValidationError(f"Unknown cadence: {cadence!r}", field="cadence")

    if cadence is Cadence.WEEKLY:
        if day_of_week is None:
            raise ValidationError(
                "dayOfWeek is required for weekly cadence", field="dayOfWeek",
            )
        if isinstance(day_of_week, bool) or not isinstance(day_of_week, int) \
                or not 0 <= day_of_week <= 6:
            raise ValidationError(
                f"dayOfWeek must be 0-6, got {day_of_week!r}", field="dayOfWeek",
            )
        return WeeklyCadence(day_of_week=day_of_week)

    if day_of_month is None:
        raise ValidationError(
            "dayOfMonth is required for monthly cadence", field="dayOfMonth",
        )
    if isinstance(day_of_month, bool) or not isinstance(day_of_month, int) \
            or not 1 <= day_of_month <= MAX_DAY_OF_MONTH:
        raise ValidationError(
            f"dayOfMonth must be 1-{MAX_DAY_OF_MONTH}, got {day_of_month!r}",
            field="dayOfMonth",
        )
    return MonthlyCadence(day_of_month=day_of_month)


# =============================================================================
# Occurrence arithmetic
# =============================================================================


def _at_day(year: int, month: int, day: int, anchor: datetime) -> datetime:
    """``day`` of ``month`` (which may overflow into the next year) at anchor's time."""
    year += (month - 1) // 12
    month = (month - 1) % 12 + 1
    return anchor.replace(year=year, month=month, day=day)


def compute_initial_next_run(schedule: Schedule, start_at: datetime) -> datetime:
    """First occurrence on or after ``start_at``.

    Weekly: ``start_at``'s own weekday counts.  Monthly: this month's
    ``day_of_month`` if it is not before ``start_at``, else next month's.
    """
    start_at = as_utc(start_at)

    if isinstance(schedule, WeeklyCadence):
        diff = (schedule.day_of_week - weekday_index(start_at)) % 7
        return start_at + timedelta(days=diff)

    candidate = _at_day(start_at.year, start_at.month, schedule.day_of_month, start_at)
    if candidate < start_at:
        candidate = _at_day(
            start_at.year, start_at.month + 1, schedule.day_of_month, start_at,
        )
    return candidate


def advance_once(current: datetime, schedule: Schedule) -> datetime:
    """The occurrence after ``current``."""
    current = as_utc(current)
    if isinstance(schedule, WeeklyCadence):
        return current + timedelta(days=7)
    return _at_day(current.year, current.month + 1, schedule.day_of_month, current)


def calculate_next_from_now(schedule: Schedule, now: datetime) -> datetime:
    """First occurrence strictly after ``now``, ignoring any stale cursor.

    Used when a rule's schedule is edited or it is resumed: past occurrences
    are forfeited rather than caught up.
    """
    now = as_utc(now)
    candidate = compute_initial_next_run(schedule, now)
    while candidate <= now:
        candidate = advance_once(candidate, schedule)
    return candidate


class DueOccurrences:
    """Finite iterator over the occurrences of a rule that are due at ``now``.

    Starts at ``next_run_at`` and yields candidates in order.  Iteration stops
    at the first candidate after ``end_at`` (``reached_end`` becomes True and
    the rule should be paused) or after ``now``.

    ``cursor`` is always the first candidate not yet handed out, i.e. the
    value to persist as the rule's next_run_at.  Not restartable.
    """

    def __init__(
        self,
        schedule: Schedule,
        next_run_at: datetime,
        now: datetime,
        end_at: datetime | None = None,
    ):
        self._schedule = schedule
        self._now = as_utc(now)
        self._end_at = as_utc(end_at) if end_at is not None else None
        self.cursor = as_utc(next_run_at)
        self.reached_end = False
        self._exhausted = False

    def __iter__(self) -> Iterator[datetime]:
        return self

    def __next__(self) -> datetime:
        if self._exhausted:
            raise StopIteration
        if self._end_at is not None and self.cursor > self._end_at:
            self.reached_end = True
            self._exhausted = True
            raise StopIteration
        if self.cursor > self._now:
            self._exhausted = True
            raise StopIteration

        occurrence = self.cursor
        self.cursor = advance_once(occurrence, self._schedule)
        return occurrence


def project_occurrence_in_window(
    schedule: Schedule,
    next_run_at: datetime,
    start_at: datetime,
    range_start: datetime,
    range_end: datetime,
    end_at: datetime | None = None,
    max_steps: int = 240,
) -> datetime | None:
    """First occurrence inside [range_start, range_end], or None.

    Walks forward from ``next_run_at`` without mutating anything; used for
    upcoming-payment previews.  Gives up after ``max_steps`` advances.
    """
    occurrence = as_utc(next_run_at)
    minimum = max(as_utc(range_start), as_utc(start_at))

    steps = 0
    while occurrence < minimum:
        occurrence = advance_once(occurrence, schedule)
        steps += 1
        if steps > max_steps:
            return None

    if end_at is not None and occurrence > as_utc(end_at):
        return None
    if occurrence > as_utc(range_end):
        return None
    return occurrence


# =============================================================================
# Month window
# =============================================================================


def month_boundaries(month: str) -> tuple[datetime, datetime]:
    """``"YYYY-MM"`` -> (first instant of the month, first instant of the next), UTC.

    Raises:
        ValidationError: If ``month`` is not a valid ``YYYY-MM`` string.
    """
    match = _MONTH_PATTERN.match(month or "")
    if match is None:
        raise ValidationError(f"Month must be YYYY-MM, got {month!r}", field="month")

    year, mon = int(match.group(1)), int(match.group(2))
    if year < 1:
        raise ValidationError(f"Month must be YYYY-MM, got {month!r}", field="month")
    start = datetime(year, mon, 1, tzinfo=timezone.utc)
    end = _at_day(year, mon + 1, 1, start)
    return start, end
