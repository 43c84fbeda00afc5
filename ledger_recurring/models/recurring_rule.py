"""
ORM model for recurring rules.

Contract:
    RecurringRuleModel persists one user-declared obligation and its
    scheduling cursor (next_run_at / last_run_at).  ``to_dto()`` returns an
    immutable RecurringRule snapshot.

Architecture: ledger_recurring/models. Imports from ledger_kernel.db.base only.

Invariants enforced:
    - Exactly the fields matching ``kind`` are populated (checked by
      RuleLifecycle before insert; re-checked by DueRuleProcessor before
      posting).
    - ``version`` is an optimistic-concurrency token: every UPDATE checks and
      bumps it, so a stale writer fails instead of silently overwriting.
    - Rules are soft-deleted only (db/immutability.py).
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Boolean, Index, Integer, SmallInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase, UUIDString

if TYPE_CHECKING:
    from ledger_recurring.domain.types import RecurringRule, Schedule


class RecurringRuleModel(TrackedBase):
    """Persistent recurring rule."""

    __tablename__ = "recurring_rules"

    __table_args__ = (
        Index("ix_recurring_rules_due", "owner_id", "next_run_at", "deleted_at", "is_paused"),
        Index("ix_recurring_rules_due_scan", "deleted_at", "is_paused", "next_run_at"),
        Index("ix_recurring_rules_listing", "owner_id", "deleted_at", "cadence"),
    )

    owner_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    kind: Mapped[str] = mapped_column(String(10), nullable=False)

    # kind == normal
    account_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    category_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    type: Mapped[str | None] = mapped_column(String(10), nullable=True)

    # kind == transfer
    from_account_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    to_account_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    amount: Mapped[Decimal] = mapped_column(nullable=False)
    description: Mapped[str | None] = mapped_column(String(500), nullable=True)

    cadence: Mapped[str] = mapped_column(String(10), nullable=False)
    day_of_week: Mapped[int | None] = mapped_column(SmallInteger, nullable=True)
    day_of_month: Mapped[int | None] = mapped_column(SmallInteger, nullable=True)

    start_at: Mapped[datetime] = mapped_column(nullable=False)
    end_at: Mapped[datetime | None] = mapped_column(nullable=True)
    next_run_at: Mapped[datetime] = mapped_column(nullable=False)
    last_run_at: Mapped[datetime | None] = mapped_column(nullable=True)

    is_paused: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    deleted_at: Mapped[datetime | None] = mapped_column(nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<RecurringRule {self.kind} {self.cadence} next={self.next_run_at}>"

    @property
    def schedule(self) -> Schedule:
        """The tagged cadence built from the persisted day fields."""
        from ledger_recurring.domain.schedule import schedule_from_fields

        return schedule_from_fields(self.cadence, self.day_of_week, self.day_of_month)

    def apply_schedule(self, schedule: Schedule) -> None:
        """Store ``schedule`` back into the cadence/day columns."""
        from ledger_recurring.domain.types import WeeklyCadence

        self.cadence = schedule.cadence.value
        if isinstance(schedule, WeeklyCadence):
            self.day_of_week = schedule.day_of_week
            self.day_of_month = None
        else:
            self.day_of_week = None
            self.day_of_month = schedule.day_of_month

    def to_dto(self) -> RecurringRule:
        from ledger_kernel.domain.types import TransactionType
        from ledger_recurring.domain.types import RecurringRule, RuleKind

        return RecurringRule(
            id=self.id,
            owner_id=self.owner_id,
            kind=RuleKind(self.kind),
            amount=self.amount,
            schedule=self.schedule,
            start_at=self.start_at,
            next_run_at=self.next_run_at,
            account_id=self.account_id,
            category_id=self.category_id,
            type=TransactionType(self.type) if self.type else None,
            from_account_id=self.from_account_id,
            to_account_id=self.to_account_id,
            description=self.description,
            end_at=self.end_at,
            last_run_at=self.last_run_at,
            is_paused=self.is_paused,
            deleted_at=self.deleted_at,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )
