"""
Module: ledger_kernel.models.account
Responsibility: ORM persistence for owner accounts (cash, bank, credit) --
    the target of every posting.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Accounts are owner-scoped; lookups always filter by owner_id.
    - Accounts are soft-deleted (deleted_at), never removed, because postings
      and recurring rules keep referring to them.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import Index, String
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase, UUIDString


class AccountType(str, Enum):
    """Kinds of money containers an owner can hold."""

    CASH = "cash"
    BANK = "bank"
    CREDIT = "credit"


class Account(TrackedBase):
    """
    A single owner account holding money in one currency.

    Guarantees:
        - currency is a 3-letter upper-case ISO-4217 code.
        - deleted_at is NULL while the account is active.
    """

    __tablename__ = "accounts"

    __table_args__ = (
        Index("idx_account_owner_active", "owner_id", "deleted_at", "created_at"),
    )

    owner_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    name: Mapped[str] = mapped_column(String(120), nullable=False)

    account_type: Mapped[AccountType] = mapped_column(String(20), nullable=False)

    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    deleted_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return f"<Account {self.name} ({self.currency})>"

    @property
    def is_active(self) -> bool:
        return self.deleted_at is None
