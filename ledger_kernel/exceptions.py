"""
Typed Exception Hierarchy for the Ledger Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (the HTTP layer, the operator CLI, the due-processing trigger) must
react to failures without parsing message strings. Every exception here:
  1. Has its own class (catch by type, not message)
  2. Has a stable CODE class attribute (machine-readable, API-safe)
  3. Carries structured DATA as attributes (ids, currencies, reasons)

Example:
    try:
        engine.create_transfer_pair(...)
    except TransferAccountConflictError as e:
        return error_payload(e)          # {"error": {"code": ..., ...}}

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    LedgerError (base)
    |
    +-- ValidationError
    |   +-- InvalidAmountError
    |
    +-- NotFoundError
    |   +-- AccountNotFoundError
    |   +-- CategoryNotFoundError
    |   +-- PostingNotFoundError
    |   +-- RecurringRuleNotFoundError
    |
    +-- InvalidRuleConfigurationError
    +-- InvalidCategoryTypeError
    |
    +-- CurrencyMismatchError
    |   +-- TransferCurrencyMismatchError
    |
    +-- TransferAccountConflictError
    |
    +-- AccessError
    |   +-- ForbiddenError
    |   +-- RateLimitExceededError
    |
    +-- ConcurrencyError
    |   +-- OptimisticLockError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Code                        | When Raised
----------------------------|-------------------------------------------------
VALIDATION_ERROR            | Malformed schedule, missing day field, bad month
INVALID_AMOUNT              | Amount is zero, negative or not a number
ACCOUNT_NOT_FOUND           | Account missing, soft-deleted, or other owner's
CATEGORY_NOT_FOUND          | Category missing, soft-deleted, or other owner's
POSTING_NOT_FOUND           | Posting missing, already deleted, or other owner's
RECURRING_RULE_NOT_FOUND    | Rule missing, soft-deleted, or other owner's
RECURRING_RULE_INVALID      | Normal rule without account/category/type, or
                            | transfer rule without from/to
CATEGORY_TYPE_MISMATCH      | Transaction type differs from category type
CURRENCY_MISMATCH           | Requested currency differs from account currency
TRANSFER_CURRENCY_MISMATCH  | Transfer accounts hold different currencies
TRANSFER_ACCOUNT_CONFLICT   | Transfer from an account to itself
FORBIDDEN                   | Bad shared secret on the due-processing trigger
RATE_LIMITED                | Trigger invoked too often
OPTIMISTIC_LOCK_CONFLICT    | Rule saved concurrently by another writer
IMMUTABILITY_VIOLATION      | Modifying a posting / run log outside its rules

===============================================================================
HANDLING PATTERNS
===============================================================================

1. A RunLedger uniqueness conflict is NOT an exception at this level: the
   run ledger returns ``None`` from ``claim()`` and the processor skips the
   occurrence.

2. Posting failures during due processing are not retried inline. The
   claimed run log is deleted (compensating action), so the occurrence is
   retried on the next pass.
"""

from typing import Any


class LedgerError(Exception):
    """
    Base exception for all ledger errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "LEDGER_ERROR"


def error_payload(exc: LedgerError) -> dict[str, Any]:
    """Render an exception as the structured failure shape ``{"error": {...}}``."""
    return {"error": {"code": exc.code, "message": str(exc)}}


# Validation exceptions


class ValidationError(LedgerError):
    """Input is malformed (schedule fields, month window, dates)."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class InvalidAmountError(ValidationError):
    """Amount must be a strictly positive decimal."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, amount: Any):
        self.amount = amount
        super().__init__(f"Amount must be strictly positive, got {amount}", field="amount")


# Not-found exceptions


class NotFoundError(LedgerError):
    """Base exception for owner-scoped lookups that found nothing active."""

    code: str = "NOT_FOUND"


class AccountNotFoundError(NotFoundError):
    """Account does not exist, is soft-deleted, or belongs to another owner."""

    code: str = "ACCOUNT_NOT_FOUND"

    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__(f"Account not found: {account_id}")


class CategoryNotFoundError(NotFoundError):
    """Category does not exist, is soft-deleted, or belongs to another owner."""

    code: str = "CATEGORY_NOT_FOUND"

    def __init__(self, category_id: str):
        self.category_id = category_id
        super().__init__(f"Category not found: {category_id}")


class PostingNotFoundError(NotFoundError):
    """Posting does not exist, is already deleted, or belongs to another owner."""

    code: str = "POSTING_NOT_FOUND"

    def __init__(self, posting_id: str):
        self.posting_id = posting_id
        super().__init__(f"Posting not found: {posting_id}")


class RecurringRuleNotFoundError(NotFoundError):
    """Recurring rule does not exist, is soft-deleted, or belongs to another owner."""

    code: str = "RECURRING_RULE_NOT_FOUND"

    def __init__(self, rule_id: str):
        self.rule_id = rule_id
        super().__init__(f"Recurring rule not found: {rule_id}")


# Rule / posting configuration exceptions


class InvalidRuleConfigurationError(LedgerError):
    """Recurring rule is missing the fields its kind requires."""

    code: str = "RECURRING_RULE_INVALID"

    def __init__(self, rule_id: str | None, reason: str):
        self.rule_id = rule_id
        self.reason = reason
        super().__init__(f"Invalid recurring rule {rule_id or '<new>'}: {reason}")


class InvalidCategoryTypeError(LedgerError):
    """Transaction type does not match the category type."""

    code: str = "CATEGORY_TYPE_MISMATCH"

    def __init__(self, category_type: str, transaction_type: str):
        self.category_type = category_type
        self.transaction_type = transaction_type
        super().__init__(
            f"Transaction type '{transaction_type}' must match "
            f"category type '{category_type}'"
        )


# Currency exceptions


class CurrencyMismatchError(LedgerError):
    """Requested currency differs from the account currency."""

    code: str = "CURRENCY_MISMATCH"

    def __init__(self, expected: str, received: str):
        self.expected = expected
        self.received = received
        super().__init__(
            f"Currency mismatch: account holds {expected}, got {received}"
        )


class TransferCurrencyMismatchError(CurrencyMismatchError):
    """Both sides of a transfer must hold the same currency."""

    code: str = "TRANSFER_CURRENCY_MISMATCH"


class TransferAccountConflictError(LedgerError):
    """Transfer source and destination are the same account."""

    code: str = "TRANSFER_ACCOUNT_CONFLICT"

    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__(
            f"Transfer source and destination must differ (both {account_id})"
        )


# Access exceptions


class AccessError(LedgerError):
    """Base exception for trigger access control."""

    code: str = "ACCESS_ERROR"


class ForbiddenError(AccessError):
    """Shared secret missing or wrong."""

    code: str = "FORBIDDEN"

    def __init__(self, reason: str = "Invalid cron secret"):
        self.reason = reason
        super().__init__(reason)


class RateLimitExceededError(AccessError):
    """Trigger was invoked more often than the configured window allows."""

    code: str = "RATE_LIMITED"

    def __init__(self, max_calls: int, window_seconds: int, retry_after_seconds: float):
        self.max_calls = max_calls
        self.window_seconds = window_seconds
        self.retry_after_seconds = retry_after_seconds
        super().__init__(
            f"Rate limit of {max_calls} calls per {window_seconds}s exceeded; "
            f"retry after {retry_after_seconds:.0f}s"
        )


# Concurrency exceptions


class ConcurrencyError(LedgerError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Optimistic locking conflict detected."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )


# Immutability exceptions


class ImmutabilityError(LedgerError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an immutable record.

    Postings are immutable except for soft delete; run log entries may only
    have their posting ids attached once.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
