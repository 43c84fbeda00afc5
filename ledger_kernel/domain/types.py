"""
Shared ledger enums.

Pure values used by both the posting engine and the recurring scheduler.
ZERO I/O.
"""

from enum import Enum


class TransactionType(str, Enum):
    """Direction of money for a posting (and for a category)."""

    INCOME = "income"
    EXPENSE = "expense"


class PostingKind(str, Enum):
    """Whether a posting stands alone or is one leg of a transfer."""

    NORMAL = "normal"
    TRANSFER = "transfer"


class TransferDirection(str, Enum):
    """Which side of a transfer a posting represents."""

    OUT = "out"  # Source account, booked as expense
    IN = "in"  # Destination account, booked as income

    @property
    def opposite(self) -> "TransferDirection":
        return TransferDirection.IN if self is TransferDirection.OUT else TransferDirection.OUT
