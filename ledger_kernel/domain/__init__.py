"""
Pure domain layer for the ledger kernel.

NO dependencies on the ORM, the database, or I/O (SystemClock excepted).
"""

from ledger_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from ledger_kernel.domain.types import PostingKind, TransactionType, TransferDirection

__all__ = [
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "PostingKind",
    "TransactionType",
    "TransferDirection",
]
