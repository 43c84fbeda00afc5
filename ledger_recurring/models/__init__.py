"""
ledger_recurring.models -- ORM models for recurring rules and their run ledger.

Architecture: ledger_recurring/models. Imports from ledger_kernel.db only.
Importing this package registers the tables on the shared Base.metadata;
``register_recurring_immutability_listeners()`` installs the ORM guards.
"""

from ledger_recurring.models.immutability import (
    register_recurring_immutability_listeners,
    unregister_recurring_immutability_listeners,
)
from ledger_recurring.models.recurring_rule import RecurringRuleModel
from ledger_recurring.models.run_log import RunLogEntryModel

__all__ = [
    "RecurringRuleModel",
    "RunLogEntryModel",
    "register_recurring_immutability_listeners",
    "unregister_recurring_immutability_listeners",
]
