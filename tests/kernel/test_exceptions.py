"""Tests for the typed exception hierarchy and its wire payload."""

import pytest

from ledger_kernel.exceptions import (
    AccessError,
    AccountNotFoundError,
    CurrencyMismatchError,
    ForbiddenError,
    InvalidAmountError,
    LedgerError,
    NotFoundError,
    OptimisticLockError,
    PostingNotFoundError,
    RateLimitExceededError,
    RecurringRuleNotFoundError,
    TransferAccountConflictError,
    TransferCurrencyMismatchError,
    ValidationError,
    error_payload,
)


@pytest.mark.parametrize(
    "exc, code, parent",
    [
        (InvalidAmountError("-1"), "INVALID_AMOUNT", ValidationError),
        (AccountNotFoundError("a"), "ACCOUNT_NOT_FOUND", NotFoundError),
        (PostingNotFoundError("p"), "POSTING_NOT_FOUND", NotFoundError),
        (RecurringRuleNotFoundError("r"), "RECURRING_RULE_NOT_FOUND", NotFoundError),
        (TransferCurrencyMismatchError("EUR", "USD"), "TRANSFER_CURRENCY_MISMATCH",
         CurrencyMismatchError),
        (TransferAccountConflictError("a"), "TRANSFER_ACCOUNT_CONFLICT", LedgerError),
        (ForbiddenError(), "FORBIDDEN", AccessError),
        (RateLimitExceededError(5, 60, 12.0), "RATE_LIMITED", AccessError),
        (OptimisticLockError("RecurringRule", "r"), "OPTIMISTIC_LOCK_CONFLICT", LedgerError),
    ],
)
def test_codes_and_hierarchy(exc, code, parent):
    assert exc.code == code
    assert isinstance(exc, parent)
    assert isinstance(exc, LedgerError)


def test_structured_fields():
    exc = RateLimitExceededError(max_calls=5, window_seconds=60, retry_after_seconds=30.0)
    assert exc.retry_after_seconds == 30.0
    assert "5 calls per 60s" in str(exc)

    invalid = InvalidAmountError("0")
    assert invalid.field == "amount"
    assert invalid.amount == "0"


def test_error_payload_shape():
    payload = error_payload(RecurringRuleNotFoundError("abc"))
    assert payload == {
        "error": {
            "code": "RECURRING_RULE_NOT_FOUND",
            "message": "Recurring rule not found: abc",
        }
    }
