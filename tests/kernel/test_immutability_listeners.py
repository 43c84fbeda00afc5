"""
Tests for ORM-level posting immutability.

Postings accept only a one-time soft delete and can never be hard-deleted.
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from ledger_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from ledger_kernel.exceptions import ImmutabilityViolationError
from ledger_kernel.models.posting import Posting

OCCURRED = datetime(2024, 4, 1, tzinfo=timezone.utc)


@pytest.fixture
def posting(session, posting_engine, owner_id, accounts, categories) -> Posting:
    row = posting_engine.create_normal_transaction(
        owner_id=owner_id,
        account_id=accounts["checking"].id,
        category_id=categories["rent"].id,
        transaction_type="expense",
        amount="100",
        occurred_at=OCCURRED,
    )
    session.commit()
    return row


class TestPostingImmutability:
    def test_amount_change_blocked(self, session, posting, captured_logs):
        posting.amount = Decimal("1")
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        session.rollback()

        assert exc_info.value.entity_type == "Posting"
        assert "amount" in exc_info.value.reason
        assert any(r["message"] == "immutability_violation_blocked" for r in captured_logs())

    def test_soft_delete_allowed_once(self, session, posting):
        posting.deleted_at = OCCURRED
        session.commit()

        posting.deleted_at = datetime(2024, 4, 2, tzinfo=timezone.utc)
        with pytest.raises(ImmutabilityViolationError, match="already deleted"):
            session.flush()
        session.rollback()

    def test_hard_delete_blocked(self, session, posting):
        session.delete(posting)
        with pytest.raises(ImmutabilityViolationError, match="hard-deleted"):
            session.flush()
        session.rollback()

    def test_listeners_can_be_removed_and_restored(self, session, posting):
        unregister_immutability_listeners()
        try:
            posting.description = "corrected"
            session.flush()
        finally:
            session.rollback()
            register_immutability_listeners()

        posting.description = "corrected again"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()
