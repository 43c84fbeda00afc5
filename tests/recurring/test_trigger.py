"""
Tests for DueProcessingTrigger: secret checking, rate limiting and the
session it runs the due pass in.

The trigger opens its own sessions, so every test commits the fixture
session before calling ``run()``.
"""

from datetime import datetime, timezone

import pytest
from sqlalchemy import func, select

from ledger_config import DueProcessingSettings, LedgerSettings
from ledger_kernel.exceptions import (
    AccountNotFoundError,
    ForbiddenError,
    RateLimitExceededError,
)
from ledger_kernel.models.posting import Posting
from ledger_recurring.orchestrator import RecurringOrchestrator
from ledger_recurring.services.trigger import read_bearer_token

from tests.conftest import TEST_SECRET


def _posting_count(session) -> int:
    return session.execute(select(func.count()).select_from(Posting)).scalar_one()


@pytest.fixture
def trigger(orchestrator, session_factory):
    return orchestrator.create_trigger(session_factory)


class TestBearerToken:
    @pytest.mark.parametrize(
        "header, expected",
        [
            ("Bearer abc", "abc"),
            ("Bearer abc extra", "abc"),
            ("Bearer ", None),
            ("Bearer", None),
            ("bearer abc", None),
            ("Basic abc", None),
            ("", None),
            (None, None),
        ],
    )
    def test_parsing(self, header, expected):
        assert read_bearer_token(header) == expected


class TestAuthentication:
    def test_secret_header(self, session, trigger, make_rule):
        make_rule()

        result = trigger.run(cron_secret=TEST_SECRET)

        assert result == {"processedRules": 1, "processedRuns": 4, "generatedTransactions": 4}
        assert _posting_count(session) == 4

    def test_bearer_token(self, trigger, make_rule):
        make_rule()
        result = trigger.run(authorization=f"Bearer {TEST_SECRET}")
        assert result["processedRuns"] == 4

    def test_secret_header_takes_precedence(self, trigger):
        with pytest.raises(ForbiddenError):
            trigger.run(cron_secret="wrong", authorization=f"Bearer {TEST_SECRET}")

    @pytest.mark.parametrize(
        "kwargs",
        [
            {},
            {"cron_secret": "wrong"},
            {"authorization": "Bearer wrong"},
            {"authorization": TEST_SECRET},
        ],
    )
    def test_rejected(self, session, trigger, make_rule, kwargs, captured_logs):
        make_rule()

        with pytest.raises(ForbiddenError):
            trigger.run(**kwargs)

        assert _posting_count(session) == 0
        assert any(r["message"] == "due_trigger_forbidden" for r in captured_logs())


class TestRateLimit:
    def test_sixth_call_in_window_is_limited(self, trigger):
        for _ in range(5):
            trigger.run(cron_secret=TEST_SECRET)

        with pytest.raises(RateLimitExceededError):
            trigger.run(cron_secret=TEST_SECRET)

    def test_limit_applies_before_authentication(self, trigger):
        for _ in range(5):
            with pytest.raises(ForbiddenError):
                trigger.run(cron_secret="wrong")

        with pytest.raises(RateLimitExceededError):
            trigger.run(cron_secret=TEST_SECRET)

    def test_window_expires(self, trigger, clock):
        for _ in range(5):
            trigger.run(cron_secret=TEST_SECRET)

        clock.advance(60)
        assert trigger.run(cron_secret=TEST_SECRET)["processedRules"] == 0


class TestSessionHandling:
    def test_failure_rolls_back_and_propagates(
        self, session, session_factory, clock, make_rule, accounts, captured_logs,
    ):
        make_rule()
        accounts["checking"].deleted_at = datetime(2024, 1, 15, tzinfo=timezone.utc)
        session.commit()

        settings = LedgerSettings(
            environment="test",
            cron_secret=TEST_SECRET,
            due_processing=DueProcessingSettings(fail_fast=True),
        )
        trigger = RecurringOrchestrator.from_session(
            session, clock=clock, settings=settings,
        ).create_trigger(session_factory)

        with pytest.raises(AccountNotFoundError):
            trigger.run(cron_secret=TEST_SECRET)

        assert _posting_count(session) == 0
        assert any(r["message"] == "due_trigger_failed" for r in captured_logs())

    def test_logs_carry_trigger_id(self, trigger, make_rule, captured_logs):
        make_rule()
        trigger.run(cron_secret=TEST_SECRET)

        started = next(r for r in captured_logs() if r["message"] == "due_processing_started")
        assert started["trigger_id"]
        assert started["correlation_id"] == started["trigger_id"]
