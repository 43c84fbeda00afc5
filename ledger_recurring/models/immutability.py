"""
Immutability guards for the recurring tables.

Entity          | Allowed changes                      | Delete
----------------|--------------------------------------|---------------------
RunLogEntry     | generated_posting_ids (empty -> ids, | allowed (compensating
                | once), updated_at                    | release of a claim)
RecurringRule   | any                                  | never (soft delete)

The (rule_id, scheduled_at) natural key of a run log entry is the
exactly-once record for a scheduled occurrence, so it never moves once
claimed.  Built on the kernel helpers in ledger_kernel.db.immutability.
"""

from sqlalchemy.orm.attributes import get_history

from ledger_kernel.db.immutability import (
    changed_fields,
    install_listeners,
    reject_mutation,
    remove_listeners,
)
from ledger_kernel.logging_config import get_logger

from ledger_recurring.models.recurring_rule import RecurringRuleModel
from ledger_recurring.models.run_log import RunLogEntryModel

logger = get_logger("recurring.immutability")

_RUN_LOG_MUTABLE_FIELDS = frozenset({"generated_posting_ids", "updated_at"})


def _check_run_log_update(mapper, connection, target):
    forbidden = changed_fields(target) - _RUN_LOG_MUTABLE_FIELDS
    if forbidden:
        reject_mutation(
            "RunLogEntry", target, "UPDATE",
            f"Run log entries are immutable; attempted to change {sorted(forbidden)}",
        )

    history = get_history(target, "generated_posting_ids")
    if history.has_changes() and any(history.deleted):
        reject_mutation(
            "RunLogEntry", target, "UPDATE",
            "Generated posting ids are already attached",
        )


def _check_rule_delete(mapper, connection, target):
    reject_mutation(
        "RecurringRule", target, "DELETE",
        "Recurring rules cannot be hard-deleted; set deleted_at instead",
    )


_LISTENERS = (
    (RunLogEntryModel, "before_update", _check_run_log_update),
    (RecurringRuleModel, "before_delete", _check_rule_delete),
)


def register_recurring_immutability_listeners() -> None:
    """Register the run log and rule guards (idempotent)."""
    install_listeners(_LISTENERS)
    logger.info("immutability_listeners_registered", extra={"scope": "recurring"})


def unregister_recurring_immutability_listeners() -> None:
    """Remove the run log and rule guards. FOR TESTING ONLY."""
    remove_listeners(_LISTENERS)
