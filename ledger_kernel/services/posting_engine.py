"""
PostingEngine -- creates single postings and double-entry transfer pairs.

Responsibility:
    Owner-scoped resolution of accounts and categories, validation of
    transaction type / currency / amount, and persistence of postings.
    Transfers are written as two linked legs.

Architecture position:
    Kernel > Services -- imperative shell.  Called by the recurring
    DueRuleProcessor and by RuleLifecycle (for validation only).

Invariants enforced:
    - A normal posting's type equals its category's type.
    - A posting's currency equals its account's currency.
    - A transfer is exactly two postings: an ``out`` expense on the source
      account and an ``in`` income on the destination account, with equal
      amount and currency, a shared transfer_group_id and mutual
      related_account_id.  Both inserts run in one SAVEPOINT, so a failure
      between them leaves no one-sided transfer.
    - Amounts are strictly positive Decimals.

Failure modes:
    - AccountNotFoundError / CategoryNotFoundError for missing, soft-deleted
      or foreign records.
    - InvalidCategoryTypeError, CurrencyMismatchError,
      TransferCurrencyMismatchError, TransferAccountConflictError,
      InvalidAmountError on validation failures.

Non-goals:
    - Does NOT call ``session.commit()`` -- caller controls boundaries.
    - Does NOT convert between currencies.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.types import PostingKind, TransactionType, TransferDirection
from ledger_kernel.exceptions import (
    AccountNotFoundError,
    CategoryNotFoundError,
    CurrencyMismatchError,
    InvalidAmountError,
    InvalidCategoryTypeError,
    PostingNotFoundError,
    TransferAccountConflictError,
    TransferCurrencyMismatchError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import Account
from ledger_kernel.models.category import Category
from ledger_kernel.models.posting import Posting

logger = get_logger("services.posting_engine")


@dataclass(frozen=True)
class TransferPair:
    """The two legs of one transfer, linked by ``group_id``."""

    group_id: UUID
    from_posting: Posting
    to_posting: Posting

    @property
    def posting_ids(self) -> tuple[UUID, UUID]:
        return (self.from_posting.id, self.to_posting.id)


def normalize_amount(amount: Any) -> Decimal:
    """Coerce ``amount`` to a strictly positive Decimal or raise."""
    if isinstance(amount, float):
        amount = str(amount)
    try:
        value = amount if isinstance(amount, Decimal) else Decimal(amount)
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidAmountError(amount)
    if not value.is_finite() or value <= 0:
        raise InvalidAmountError(amount)
    return value


class PostingEngine:
    """
    Writes postings on behalf of an owner.

    Contract:
        Every public write method validates first and flushes second; a
        validation error leaves the session untouched.

    Non-goals:
        - Does NOT commit.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()

    # -------------------------------------------------------------------------
    # Resolution
    # -------------------------------------------------------------------------

    def resolve_active_account(self, owner_id: UUID, account_id: UUID) -> Account:
        """Return the owner's active account or raise AccountNotFoundError."""
        account = self._session.execute(
            select(Account).where(
                Account.id == account_id,
                Account.owner_id == owner_id,
                Account.deleted_at.is_(None),
            )
        ).scalar_one_or_none()
        if account is None:
            raise AccountNotFoundError(str(account_id))
        return account

    def resolve_active_category(self, owner_id: UUID, category_id: UUID) -> Category:
        """Return an active category owned by ``owner_id`` or a system category."""
        category = self._session.execute(
            select(Category).where(
                Category.id == category_id,
                or_(Category.owner_id == owner_id, Category.owner_id.is_(None)),
                Category.deleted_at.is_(None),
            )
        ).scalar_one_or_none()
        if category is None:
            raise CategoryNotFoundError(str(category_id))
        return category

    # -------------------------------------------------------------------------
    # Validation
    # -------------------------------------------------------------------------

    @staticmethod
    def validate_transaction_type(
        category_type: TransactionType | str,
        transaction_type: TransactionType | str,
    ) -> None:
        if TransactionType(category_type) != TransactionType(transaction_type):
            raise InvalidCategoryTypeError(
                category_type=TransactionType(category_type).value,
                transaction_type=TransactionType(transaction_type).value,
            )

    @staticmethod
    def validate_currency(account_currency: str, requested_currency: str | None) -> str:
        """Return the account currency, raising if a different one was requested."""
        if requested_currency is None:
            return account_currency
        if requested_currency.upper() != account_currency.upper():
            raise CurrencyMismatchError(
                expected=account_currency, received=requested_currency,
            )
        return account_currency

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def create_normal_transaction(
        self,
        owner_id: UUID,
        account_id: UUID,
        category_id: UUID,
        transaction_type: TransactionType | str,
        amount: Decimal | str | int,
        occurred_at: datetime,
        currency: str | None = None,
        description: str | None = None,
    ) -> Posting:
        """Create one income or expense posting on ``account_id``."""
        value = normalize_amount(amount)
        account = self.resolve_active_account(owner_id, account_id)
        category = self.resolve_active_category(owner_id, category_id)
        self.validate_transaction_type(category.type, transaction_type)
        posting_currency = self.validate_currency(account.currency, currency)

        posting = Posting(
            owner_id=owner_id,
            account_id=account.id,
            category_id=category.id,
            type=TransactionType(transaction_type).value,
            kind=PostingKind.NORMAL.value,
            amount=value,
            currency=posting_currency,
            description=description,
            occurred_at=occurred_at,
        )
        self._session.add(posting)
        self._session.flush()

        logger.info(
            "posting_created",
            extra={
                "posting_id": str(posting.id),
                "owner_id": str(owner_id),
                "account_id": str(account.id),
                "type": posting.type,
                "amount": str(value),
                "currency": posting_currency,
            },
        )
        return posting

    def create_transfer_pair(
        self,
        owner_id: UUID,
        from_account_id: UUID,
        to_account_id: UUID,
        amount: Decimal | str | int,
        occurred_at: datetime,
        description: str | None = None,
    ) -> TransferPair:
        """Move ``amount`` between two of the owner's accounts."""
        value = normalize_amount(amount)
        if from_account_id == to_account_id:
            raise TransferAccountConflictError(str(from_account_id))

        from_account = self.resolve_active_account(owner_id, from_account_id)
        to_account = self.resolve_active_account(owner_id, to_account_id)
        if from_account.currency != to_account.currency:
            raise TransferCurrencyMismatchError(
                expected=from_account.currency, received=to_account.currency,
            )

        group_id = uuid4()
        out_leg = Posting(
            owner_id=owner_id,
            account_id=from_account.id,
            category_id=None,
            type=TransactionType.EXPENSE.value,
            kind=PostingKind.TRANSFER.value,
            transfer_group_id=group_id,
            transfer_direction=TransferDirection.OUT.value,
            related_account_id=to_account.id,
            amount=value,
            currency=from_account.currency,
            description=description,
            occurred_at=occurred_at,
        )
        in_leg = Posting(
            owner_id=owner_id,
            account_id=to_account.id,
            category_id=None,
            type=TransactionType.INCOME.value,
            kind=PostingKind.TRANSFER.value,
            transfer_group_id=group_id,
            transfer_direction=TransferDirection.IN.value,
            related_account_id=from_account.id,
            amount=value,
            currency=to_account.currency,
            description=description,
            occurred_at=occurred_at,
        )

        with self._session.begin_nested():
            self._session.add_all([out_leg, in_leg])
            self._session.flush()

        logger.info(
            "transfer_pair_created",
            extra={
                "transfer_group_id": str(group_id),
                "owner_id": str(owner_id),
                "from_account_id": str(from_account.id),
                "to_account_id": str(to_account.id),
                "amount": str(value),
                "currency": from_account.currency,
            },
        )
        return TransferPair(group_id=group_id, from_posting=out_leg, to_posting=in_leg)

    def soft_delete_posting(self, owner_id: UUID, posting_id: UUID) -> list[Posting]:
        """
        Soft-delete a posting; a transfer leg takes its sibling with it.

        Returns the postings that were marked deleted.
        """
        posting = self._session.execute(
            select(Posting).where(
                Posting.id == posting_id,
                Posting.owner_id == owner_id,
                Posting.deleted_at.is_(None),
            )
        ).scalar_one_or_none()
        if posting is None:
            raise PostingNotFoundError(str(posting_id))

        targets = [posting]
        if posting.transfer_group_id is not None:
            targets = [
                leg for leg in self.get_transfer_legs(posting.transfer_group_id)
                if leg.deleted_at is None
            ]

        now = self._clock.now()
        for leg in targets:
            leg.deleted_at = now
        self._session.flush()

        logger.info(
            "posting_soft_deleted",
            extra={
                "posting_ids": [str(p.id) for p in targets],
                "owner_id": str(owner_id),
                "transfer_group_id": (
                    str(posting.transfer_group_id) if posting.transfer_group_id else None
                ),
            },
        )
        return targets

    def get_transfer_legs(self, group_id: UUID) -> list[Posting]:
        """Both legs of a transfer, ``out`` first."""
        legs = self._session.execute(
            select(Posting).where(Posting.transfer_group_id == group_id)
        ).scalars().all()
        return sorted(
            legs,
            key=lambda p: 0 if p.transfer_direction == TransferDirection.OUT.value else 1,
        )
