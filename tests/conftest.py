"""
Pytest fixtures for the ledger test suite.

Provides:
- A fresh SQLite database per test (file-backed, so sessions opened by the
  trigger see the same data), built with the production engine helper
- Owner, account and category fixtures
- A deterministic clock
- Structured log capture
"""

import json
import logging
from datetime import datetime, timezone
from decimal import Decimal
from io import StringIO
from typing import Generator
from uuid import UUID, uuid4

import pytest
from sqlalchemy.orm import Session, sessionmaker

from ledger_kernel.db.engine import build_engine, create_tables
from ledger_kernel.db.immutability import register_immutability_listeners
from ledger_kernel.domain.clock import DeterministicClock
from ledger_kernel.domain.types import TransactionType
from ledger_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from ledger_kernel.models.account import Account, AccountType
from ledger_kernel.models.category import Category
from ledger_config import LedgerSettings
from ledger_recurring.domain.types import Cadence, RuleDraft, RuleKind
from ledger_recurring.models import register_recurring_immutability_listeners
from ledger_recurring.orchestrator import RecurringOrchestrator

# 2024-04-05 is a Friday.
NOW = datetime(2024, 4, 5, 12, 0, tzinfo=timezone.utc)

TEST_SECRET = "test-cron-secret-0123456789"


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture ledger_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, processor):
            processor.process_due()
            logs = captured_logs()
            assert any(r["message"] == "due_processing_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("ledger_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _immutability_listeners():
    register_immutability_listeners()
    register_recurring_immutability_listeners()


@pytest.fixture
def engine(tmp_path):
    eng = build_engine(f"sqlite:///{tmp_path / 'ledger.db'}")
    create_tables(eng, model_packages=["ledger_recurring.models"])
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def session(session_factory) -> Generator[Session, None, None]:
    sess = session_factory()
    try:
        yield sess
    finally:
        sess.rollback()
        sess.close()


# =============================================================================
# Clock / settings
# =============================================================================


@pytest.fixture
def clock():
    return DeterministicClock(fixed_time=NOW)


@pytest.fixture
def settings():
    return LedgerSettings(environment="test", cron_secret=TEST_SECRET)


# =============================================================================
# Owner data
# =============================================================================


@pytest.fixture
def owner_id() -> UUID:
    return uuid4()


@pytest.fixture
def accounts(session, owner_id) -> dict[str, Account]:
    """checking/savings hold EUR, wallet holds USD."""
    rows = {
        "checking": Account(
            owner_id=owner_id, name="Checking", account_type=AccountType.BANK.value,
            currency="EUR",
        ),
        "savings": Account(
            owner_id=owner_id, name="Savings", account_type=AccountType.BANK.value,
            currency="EUR",
        ),
        "wallet": Account(
            owner_id=owner_id, name="Wallet", account_type=AccountType.CASH.value,
            currency="USD",
        ),
    }
    session.add_all(rows.values())
    session.commit()
    return rows


@pytest.fixture
def categories(session, owner_id) -> dict[str, Category]:
    """salary (income) and rent (expense) are owner-private; groceries is a system category."""
    rows = {
        "salary": Category(owner_id=owner_id, name="Salary", type=TransactionType.INCOME.value),
        "rent": Category(owner_id=owner_id, name="Rent", type=TransactionType.EXPENSE.value),
        "groceries": Category(
            owner_id=None, name="Groceries", key="groceries",
            type=TransactionType.EXPENSE.value, is_system=True,
        ),
    }
    session.add_all(rows.values())
    session.commit()
    return rows


# =============================================================================
# Service fixtures
# =============================================================================


@pytest.fixture
def orchestrator(session, clock, settings) -> RecurringOrchestrator:
    return RecurringOrchestrator.from_session(session, clock=clock, settings=settings)


@pytest.fixture
def posting_engine(orchestrator):
    return orchestrator.posting_engine


@pytest.fixture
def run_ledger(orchestrator):
    return orchestrator.run_ledger


@pytest.fixture
def processor(orchestrator):
    return orchestrator.due_processor


@pytest.fixture
def lifecycle(orchestrator):
    return orchestrator.rule_lifecycle


@pytest.fixture
def make_rule(session, lifecycle, owner_id, accounts, categories):
    """Create and commit a rule; defaults to a monthly rent expense on the 1st."""

    def _make(**overrides):
        fields = dict(
            kind=RuleKind.NORMAL,
            amount=Decimal("950.00"),
            cadence=Cadence.MONTHLY,
            day_of_month=1,
            start_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
            account_id=accounts["checking"].id,
            category_id=categories["rent"].id,
            type=TransactionType.EXPENSE,
        )
        if overrides.get("kind") == RuleKind.TRANSFER:
            fields.update(account_id=None, category_id=None, type=None)
        fields.update(overrides)
        rule = lifecycle.create_rule(owner_id, RuleDraft(**fields))
        session.commit()
        return rule

    return _make
