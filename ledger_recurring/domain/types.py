"""
ledger_recurring.domain.types -- Pure frozen dataclasses for recurring rules.

ZERO I/O.  Follows the kernel's pattern: frozen dataclasses with str-enum
fields and tuples for immutable collections.

Invariants enforced:
    - DTOs are frozen (immutable snapshots of persisted state).
    - The cadence is a tagged variant: a rule carries either a WeeklyCadence
      or a MonthlyCadence, never loose day fields.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Union
from uuid import UUID

from ledger_kernel.domain.types import TransactionType


# =============================================================================
# Enums
# =============================================================================


class RuleKind(str, Enum):
    """What a rule posts on each occurrence."""

    NORMAL = "normal"  # One income/expense posting
    TRANSFER = "transfer"  # A linked out/in posting pair


class Cadence(str, Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"


# =============================================================================
# Cadence variant
# =============================================================================


@dataclass(frozen=True)
class WeeklyCadence:
    """Every week on ``day_of_week`` (0 = Sunday ... 6 = Saturday)."""

    day_of_week: int

    @property
    def cadence(self) -> Cadence:
        return Cadence.WEEKLY


@dataclass(frozen=True)
class MonthlyCadence:
    """Every month on ``day_of_month`` (1-28)."""

    day_of_month: int

    @property
    def cadence(self) -> Cadence:
        return Cadence.MONTHLY


Schedule = Union[WeeklyCadence, MonthlyCadence]


class _Unset:
    """Marker for "field not supplied" in a RulePatch."""

    _instance: _Unset | None = None

    def __new__(cls) -> _Unset:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


# =============================================================================
# Rule DTOs
# =============================================================================


@dataclass(frozen=True)
class RecurringRule:
    """Immutable snapshot of a persisted recurring rule."""

    id: UUID
    owner_id: UUID
    kind: RuleKind
    amount: Decimal
    schedule: Schedule
    start_at: datetime
    next_run_at: datetime
    account_id: UUID | None = None
    category_id: UUID | None = None
    type: TransactionType | None = None
    from_account_id: UUID | None = None
    to_account_id: UUID | None = None
    description: str | None = None
    end_at: datetime | None = None
    last_run_at: datetime | None = None
    is_paused: bool = False
    deleted_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def cadence(self) -> Cadence:
        return self.schedule.cadence

    def to_dict(self) -> dict[str, Any]:
        """Wire shape used by the HTTP surface (camelCase, ISO timestamps)."""

        def iso(value: datetime | None) -> str | None:
            return value.isoformat() if value is not None else None

        def text(value: Any) -> str | None:
            return str(value) if value is not None else None

        return {
            "id": str(self.id),
            "kind": self.kind.value,
            "accountId": text(self.account_id),
            "categoryId": text(self.category_id),
            "type": self.type.value if self.type is not None else None,
            "fromAccountId": text(self.from_account_id),
            "toAccountId": text(self.to_account_id),
            "amount": str(self.amount),
            "description": self.description,
            "cadence": self.cadence.value,
            "dayOfWeek": getattr(self.schedule, "day_of_week", None),
            "dayOfMonth": getattr(self.schedule, "day_of_month", None),
            "startAt": iso(self.start_at),
            "endAt": iso(self.end_at),
            "nextRunAt": iso(self.next_run_at),
            "lastRunAt": iso(self.last_run_at),
            "isPaused": self.is_paused,
            "createdAt": iso(self.created_at),
            "updatedAt": iso(self.updated_at),
        }


@dataclass(frozen=True)
class RuleDraft:
    """Input for creating a rule.

    Exactly the fields matching ``kind`` must be supplied: account_id,
    category_id and type for NORMAL; from_account_id and to_account_id for
    TRANSFER.
    """

    kind: RuleKind
    amount: Decimal
    cadence: Cadence
    start_at: datetime
    day_of_week: int | None = None
    day_of_month: int | None = None
    account_id: UUID | None = None
    category_id: UUID | None = None
    type: TransactionType | None = None
    from_account_id: UUID | None = None
    to_account_id: UUID | None = None
    description: str | None = None
    end_at: datetime | None = None


@dataclass(frozen=True)
class RulePatch:
    """Partial update for a rule.  Fields left as UNSET are not touched.

    ``end_at=None`` clears the end date; ``description=""`` clears the
    description.
    """

    amount: Any = UNSET
    description: Any = UNSET
    cadence: Any = UNSET
    day_of_week: Any = UNSET
    day_of_month: Any = UNSET
    end_at: Any = UNSET
    is_paused: Any = UNSET

    @property
    def schedule_changed(self) -> bool:
        return (
            self.cadence is not UNSET
            or self.day_of_week is not UNSET
            or self.day_of_month is not UNSET
        )


# =============================================================================
# Run ledger / processing results
# =============================================================================


@dataclass(frozen=True)
class RunLogEntry:
    """Immutable snapshot of one claimed occurrence."""

    id: UUID
    rule_id: UUID
    owner_id: UUID
    scheduled_at: datetime
    generated_posting_ids: tuple[UUID, ...] = ()
    created_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "ruleId": str(self.rule_id),
            "scheduledAt": self.scheduled_at.isoformat(),
            "generatedTransactionIds": [str(p) for p in self.generated_posting_ids],
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass(frozen=True)
class RuleFailure:
    """One rule whose processing stopped on an error during a due pass."""

    rule_id: UUID
    scheduled_at: datetime
    error_code: str
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "ruleId": str(self.rule_id),
            "scheduledAt": self.scheduled_at.isoformat(),
            "code": self.error_code,
            "message": self.message,
        }


@dataclass(frozen=True)
class DueRunResult:
    """Counters for one due-processing pass."""

    processed_rules: int = 0
    processed_runs: int = 0
    generated_transactions: int = 0
    failures: tuple[RuleFailure, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "processedRules": self.processed_rules,
            "processedRuns": self.processed_runs,
            "generatedTransactions": self.generated_transactions,
        }
        if self.failures:
            payload["failedRules"] = [f.to_dict() for f in self.failures]
        return payload


@dataclass(frozen=True)
class UpcomingOccurrence:
    """A projected expense occurrence inside a look-ahead window."""

    rule_id: UUID
    title: str
    amount: Decimal
    currency: str
    due_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": f"recurring:{self.rule_id}:{self.due_at.isoformat()}",
            "title": self.title,
            "amount": str(self.amount),
            "currency": self.currency,
            "dueDate": self.due_at.isoformat(),
            "sourceType": "recurring",
        }
