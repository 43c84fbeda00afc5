"""Kernel services: the posting engine."""

from ledger_kernel.services.posting_engine import (
    PostingEngine,
    TransferPair,
    normalize_amount,
)

__all__ = [
    "PostingEngine",
    "TransferPair",
    "normalize_amount",
]
