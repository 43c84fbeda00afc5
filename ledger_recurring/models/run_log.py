"""
ORM model for the recurring run ledger.

Contract:
    One RunLogEntryModel row per claimed (rule, occurrence).  The
    UNIQUE (rule_id, scheduled_at) constraint is the sole concurrency control
    for exactly-once posting: whoever inserts the row owns the occurrence.

Architecture: ledger_recurring/models. Imports from ledger_kernel.db.base only.

Invariants enforced:
    - (rule_id, scheduled_at) is unique.
    - generated_posting_ids is attached once, from empty
      (db/immutability.py).
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import JSON, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase, UUIDString

if TYPE_CHECKING:
    from ledger_recurring.domain.types import RunLogEntry


class RunLogEntryModel(TrackedBase):
    """Claimed occurrence of a recurring rule."""

    __tablename__ = "recurring_run_logs"

    __table_args__ = (
        UniqueConstraint("rule_id", "scheduled_at", name="uq_recurring_run_rule_occurrence"),
        Index("ix_recurring_run_logs_owner_scheduled", "owner_id", "scheduled_at"),
    )

    rule_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    owner_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    scheduled_at: Mapped[datetime] = mapped_column(nullable=False)
    generated_posting_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    def __repr__(self) -> str:
        return f"<RunLogEntry rule={self.rule_id} at={self.scheduled_at}>"

    def to_dto(self) -> RunLogEntry:
        from ledger_recurring.domain.types import RunLogEntry

        return RunLogEntry(
            id=self.id,
            rule_id=self.rule_id,
            owner_id=self.owner_id,
            scheduled_at=self.scheduled_at,
            generated_posting_ids=tuple(UUID(p) for p in self.generated_posting_ids or ()),
            created_at=self.created_at,
        )
