"""ORM models for the ledger kernel."""

from ledger_kernel.models.account import Account, AccountType
from ledger_kernel.models.category import Category
from ledger_kernel.models.posting import Posting

__all__ = [
    "Account",
    "AccountType",
    "Category",
    "Posting",
]
