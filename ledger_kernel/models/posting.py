"""
Module: ledger_kernel.models.posting
Responsibility: ORM persistence for ledger postings (single transactions and
    the two legs of a transfer).
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - A transfer is exactly two postings sharing transfer_group_id, with
      equal amount and currency, opposite transfer_direction, and each
      related_account_id pointing at the other leg's account.
    - Postings are immutable once created except for soft delete
      (db/immutability.py).
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Index, String
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase, UUIDString
from ledger_kernel.domain.types import PostingKind, TransactionType, TransferDirection


class Posting(TrackedBase):
    """A single ledger transaction record."""

    __tablename__ = "postings"

    __table_args__ = (
        Index("idx_posting_owner_feed", "owner_id", "deleted_at", "occurred_at"),
        Index("idx_posting_owner_account", "owner_id", "account_id", "deleted_at"),
        Index("idx_posting_owner_category", "owner_id", "deleted_at", "category_id", "occurred_at"),
        Index("idx_posting_transfer_group", "transfer_group_id"),
    )

    owner_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    account_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    category_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    type: Mapped[TransactionType] = mapped_column(String(10), nullable=False)

    kind: Mapped[PostingKind] = mapped_column(
        String(10), nullable=False, default=PostingKind.NORMAL.value,
    )

    transfer_group_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    transfer_direction: Mapped[TransferDirection | None] = mapped_column(
        String(3), nullable=True,
    )

    related_account_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    amount: Mapped[Decimal] = mapped_column(nullable=False)

    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    description: Mapped[str | None] = mapped_column(String(500), nullable=True)

    occurred_at: Mapped[datetime] = mapped_column(nullable=False)

    deleted_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return f"<Posting {self.kind} {self.type} {self.amount} {self.currency}>"

    @property
    def is_transfer_leg(self) -> bool:
        return self.kind == PostingKind.TRANSFER
