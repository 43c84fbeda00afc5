"""
ledger_recurring.domain -- pure types and schedule arithmetic.  ZERO I/O.
"""

from ledger_recurring.domain.schedule import (
    DueOccurrences,
    advance_once,
    calculate_next_from_now,
    compute_initial_next_run,
    month_boundaries,
    project_occurrence_in_window,
    schedule_from_fields,
    weekday_index,
)
from ledger_recurring.domain.types import (
    UNSET,
    Cadence,
    DueRunResult,
    MonthlyCadence,
    RecurringRule,
    RuleDraft,
    RuleFailure,
    RuleKind,
    RulePatch,
    RunLogEntry,
    Schedule,
    UpcomingOccurrence,
    WeeklyCadence,
)

__all__ = [
    "UNSET",
    "Cadence",
    "DueOccurrences",
    "DueRunResult",
    "MonthlyCadence",
    "RecurringRule",
    "RuleDraft",
    "RuleFailure",
    "RuleKind",
    "RulePatch",
    "RunLogEntry",
    "Schedule",
    "UpcomingOccurrence",
    "WeeklyCadence",
    "advance_once",
    "calculate_next_from_now",
    "compute_initial_next_run",
    "month_boundaries",
    "project_occurrence_in_window",
    "schedule_from_fields",
    "weekday_index",
]
