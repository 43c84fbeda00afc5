"""Tests for JSON log rendering and LogContext (ledger_kernel/logging_config.py)."""

import json
import logging
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from ledger_kernel.exceptions import CurrencyMismatchError
from ledger_kernel.logging_config import (
    LogContext,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _fresh_logging():
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()


@pytest.fixture
def emit():
    """Configure logging on an in-memory stream; returns (logger, read_lines)."""

    def _configure(level=logging.INFO):
        stream = StringIO()
        configure_logging(stream=stream, level=level)

        def read_lines() -> list[dict]:
            return [json.loads(line) for line in stream.getvalue().splitlines() if line]

        return get_logger("test"), read_lines

    return _configure


class TestJsonLines:
    def test_core_fields(self, emit):
        logger, read = emit()
        logger.info("rule_created")

        [line] = read()
        assert line["level"] == "INFO"
        assert line["message"] == "rule_created"
        assert line["logger"] == "ledger_kernel.test"
        assert line["ts"].endswith("+00:00")

    def test_extra_fields_copied(self, emit):
        logger, read = emit()
        logger.info("due_processing_completed", extra={"processed_runs": 4, "cadence": "monthly"})

        [line] = read()
        assert line["processed_runs"] == 4
        assert line["cadence"] == "monthly"

    def test_uuid_and_decimal_values(self, emit):
        logger, read = emit()
        posting_id = uuid4()
        logger.info("posted", extra={"posting_id": posting_id, "amount": Decimal("950.00")})

        [line] = read()
        assert line["posting_id"] == str(posting_id)
        assert line["amount"] == "950.00"

    def test_debug_dropped_at_info(self, emit):
        logger, read = emit()
        logger.debug("noise")
        logger.warning("kept")

        assert [line["message"] for line in read()] == ["kept"]

    def test_child_loggers_share_root(self, emit):
        _, read = emit(level=logging.DEBUG)
        get_logger("recurring.due_processor").debug("nested")

        [line] = read()
        assert line["logger"] == "ledger_kernel.recurring.due_processor"


class TestExceptionFields:
    def test_plain_exception(self, emit):
        logger, read = emit()
        try:
            raise ValueError("boom")
        except ValueError:
            logger.exception("failed")

        [line] = read()
        assert line["exc_type"] == "ValueError"
        assert line["exc_message"] == "boom"
        assert "Traceback" in line["traceback"]
        assert "exc_code" not in line

    def test_ledger_error_code_and_attributes(self, emit):
        logger, read = emit()
        try:
            raise CurrencyMismatchError(expected="EUR", received="USD")
        except CurrencyMismatchError:
            logger.exception("currency_error")

        [line] = read()
        assert line["exc_code"] == "CURRENCY_MISMATCH"
        assert line["exc_expected"] == "EUR"
        assert line["exc_received"] == "USD"


class TestLogContext:
    def test_context_stamped_on_lines(self, emit):
        logger, read = emit()
        LogContext.set(correlation_id="abc-123", rule_id="rule-456")
        logger.info("with_context")
        LogContext.clear()
        logger.info("without_context")

        first, second = read()
        assert first["correlation_id"] == "abc-123"
        assert first["rule_id"] == "rule-456"
        assert "correlation_id" not in second

    def test_set_ignores_none(self):
        LogContext.set(owner_id="o")
        LogContext.set(owner_id=None, trigger_id="t")
        assert LogContext.get_all() == {"owner_id": "o", "trigger_id": "t"}

    def test_bind_nests_and_restores(self):
        LogContext.set(rule_id="outer")
        with LogContext.bind(rule_id="inner", trigger_id="t"):
            assert LogContext.get_all() == {"rule_id": "inner", "trigger_id": "t"}
        assert LogContext.get_all() == {"rule_id": "outer"}

    def test_bind_restores_on_error(self):
        with pytest.raises(RuntimeError):
            with LogContext.bind(owner_id="o"):
                raise RuntimeError
        assert LogContext.get_all() == {}


class TestConfigureLogging:
    def test_second_call_is_ignored(self):
        configure_logging(stream=StringIO())
        configure_logging(stream=StringIO())
        assert len(logging.getLogger("ledger_kernel").handlers) == 1

    def test_explicit_handler_gets_json_formatter(self):
        handler = logging.StreamHandler(StringIO())
        configure_logging(handler=handler)
        get_logger("test").info("hello")
        assert json.loads(handler.stream.getvalue())["message"] == "hello"

    def test_reset_removes_handlers(self):
        configure_logging(stream=StringIO())
        reset_logging()
        assert logging.getLogger("ledger_kernel").handlers == []
