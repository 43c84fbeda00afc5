"""
Module: ledger_kernel.models.category
Responsibility: ORM persistence for income/expense categories.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - A category with owner_id NULL is a system category visible to every
      owner; otherwise it is private to its owner.
    - A normal posting's type must equal its category's type (enforced by
      PostingEngine, not this model).
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import Boolean, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from ledger_kernel.db.base import TrackedBase, UUIDString
from ledger_kernel.domain.types import TransactionType


class Category(TrackedBase):
    """Income or expense category, owner-private or system-wide."""

    __tablename__ = "categories"

    __table_args__ = (
        Index("idx_category_owner_type", "owner_id", "deleted_at", "type", "name"),
    )

    owner_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    name: Mapped[str] = mapped_column(String(120), nullable=False)

    key: Mapped[str | None] = mapped_column(String(120), nullable=True)

    type: Mapped[TransactionType] = mapped_column(String(10), nullable=False)

    color: Mapped[str] = mapped_column(String(7), nullable=False, default="#9E9E9E")

    icon: Mapped[str | None] = mapped_column(String(64), nullable=True)

    is_system: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    deleted_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return f"<Category {self.name} ({self.type})>"
