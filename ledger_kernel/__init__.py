"""
Ledger Kernel - personal-finance ledger core.

Provides:
- Accounts, categories and postings (single or linked transfer pairs)
- Owner-scoped, soft-delete aware lookups
- Append-only posting records (soft delete only)
- Structured logging and typed, code-carrying exceptions
"""

__version__ = "0.1.0"
