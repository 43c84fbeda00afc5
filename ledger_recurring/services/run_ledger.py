"""
RunLedger -- exactly-once claims for recurring occurrences.

Contract:
    ``claim(rule, scheduled_at)`` inserts a run log row inside a SAVEPOINT.
    If the (rule_id, scheduled_at) row already exists the insert's
    IntegrityError is rolled back to the savepoint and ``None`` is returned:
    some other invocation owns (or already posted) that occurrence.

Architecture: ledger_recurring/services.

Invariants enforced:
    - The UNIQUE (rule_id, scheduled_at) constraint is the only concurrency
      primitive; no application-level locks.
    - A uniqueness conflict never surfaces as an exception.
    - ``release()`` is the compensating action when posting fails after a
      successful claim, so the occurrence is retried on the next pass.

Non-goals:
    - Does NOT call ``session.commit()`` -- caller controls boundaries.
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledger_kernel.logging_config import get_logger

from ledger_recurring.models.recurring_rule import RecurringRuleModel
from ledger_recurring.models.run_log import RunLogEntryModel

logger = get_logger("recurring.run_ledger")


class RunLedger:
    """Claims, completes and releases recurring occurrences."""

    def __init__(self, session: Session):
        self._session = session

    def claim(
        self, rule: RecurringRuleModel, scheduled_at: datetime,
    ) -> RunLogEntryModel | None:
        """Claim one occurrence; ``None`` if it is already claimed."""
        entry = RunLogEntryModel(
            rule_id=rule.id,
            owner_id=rule.owner_id,
            scheduled_at=scheduled_at,
            generated_posting_ids=[],
        )
        savepoint = self._session.begin_nested()
        try:
            self._session.add(entry)
            self._session.flush()
        except IntegrityError:
            savepoint.rollback()
            logger.info(
                "recurring_claim_conflict",
                extra={
                    "rule_id": str(rule.id),
                    "scheduled_at": scheduled_at.isoformat(),
                },
            )
            return None
        savepoint.commit()

        logger.debug(
            "recurring_occurrence_claimed",
            extra={
                "rule_id": str(rule.id),
                "run_log_id": str(entry.id),
                "scheduled_at": scheduled_at.isoformat(),
            },
        )
        return entry

    def attach_postings(
        self, entry: RunLogEntryModel, posting_ids: Iterable[UUID],
    ) -> None:
        """Record the postings generated for a claimed occurrence (once)."""
        entry.generated_posting_ids = [str(p) for p in posting_ids]
        self._session.flush()

    def release(self, entry: RunLogEntryModel) -> None:
        """Delete a claim whose posting failed, so it can be retried."""
        self._session.delete(entry)
        self._session.flush()

        logger.warning(
            "recurring_claim_released",
            extra={
                "rule_id": str(entry.rule_id),
                "scheduled_at": entry.scheduled_at.isoformat(),
            },
        )

    def is_claimed(self, rule_id: UUID, scheduled_at: datetime) -> bool:
        found = self._session.execute(
            select(RunLogEntryModel.id).where(
                RunLogEntryModel.rule_id == rule_id,
                RunLogEntryModel.scheduled_at == scheduled_at,
            )
        ).first()
        return found is not None

    def history(self, owner_id: UUID, rule_id: UUID) -> list[RunLogEntryModel]:
        """All claimed occurrences of one rule, oldest first."""
        return list(
            self._session.execute(
                select(RunLogEntryModel)
                .where(
                    RunLogEntryModel.owner_id == owner_id,
                    RunLogEntryModel.rule_id == rule_id,
                )
                .order_by(RunLogEntryModel.scheduled_at, RunLogEntryModel.id)
            ).scalars().all()
        )
