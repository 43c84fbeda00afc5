"""
ORM-Level Immutability Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

A ledger is only trustworthy if what was posted stays posted. Postings are
never edited in place: a mistake is corrected by soft-deleting the posting
(and, for a transfer, its sibling leg) and recording a new one.

SQLAlchemy fires events before UPDATE/DELETE operations reach the database.
We register listeners that intercept these events and check our invariants:

    session.flush()
         |
         v
    [before_update event] --> _check_*_update() --> ImmutabilityViolationError
         |                                                  ^
         v                                                  |
    [before_delete event] --> _check_*_delete() ------------+
         |
         v
    SQL sent to database (only if checks pass)

Packages built on the kernel guard their own tables with the same helpers
(``changed_fields``, ``reject_mutation``, ``install_listeners``); see
ledger_recurring.models.immutability for the run log and rule guards.

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity          | Allowed changes                      | Delete
----------------|--------------------------------------|---------------------
Posting         | deleted_at (NULL -> value, once),    | never
                | updated_at                           |

===============================================================================
USAGE
===============================================================================

    from ledger_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # Called once at startup

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()

The Posting model is imported inline so this module stays importable from
the db layer without pulling in the model package.
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from ledger_kernel.exceptions import ImmutabilityViolationError
from ledger_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_POSTING_MUTABLE_FIELDS = frozenset({"deleted_at", "updated_at"})


def changed_fields(target) -> set[str]:
    """Names of column attributes with pending changes on ``target``."""
    state = inspect(target)
    changed = set()
    for attr in state.mapper.column_attrs:
        if state.attrs[attr.key].history.has_changes():
            changed.add(attr.key)
    return changed


def reject_mutation(entity_type: str, target, operation: str, reason: str) -> None:
    """Log the blocked write and raise ImmutabilityViolationError."""
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
            "reason": reason,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


def install_listeners(listeners) -> None:
    """Attach ``(model, event_name, fn)`` triples, skipping ones already attached."""
    for model, event_name, listener in listeners:
        if not event.contains(model, event_name, listener):
            event.listen(model, event_name, listener)


def remove_listeners(listeners) -> None:
    for model, event_name, listener in listeners:
        if event.contains(model, event_name, listener):
            event.remove(model, event_name, listener)


def _check_posting_update(mapper, connection, target):
    """
    Postings only accept a soft delete.

    ``deleted_at`` may go from NULL to a timestamp exactly once; every other
    financial field is frozen from creation.
    """
    forbidden = changed_fields(target) - _POSTING_MUTABLE_FIELDS
    if forbidden:
        reject_mutation(
            "Posting", target, "UPDATE",
            f"Postings are immutable; attempted to change {sorted(forbidden)}",
        )

    history = get_history(target, "deleted_at")
    if history.has_changes():
        previous = [v for v in history.deleted if v is not None]
        if previous:
            reject_mutation("Posting", target, "UPDATE", "Posting is already deleted")


def _check_posting_delete(mapper, connection, target):
    reject_mutation(
        "Posting", target, "DELETE",
        "Postings cannot be hard-deleted; set deleted_at instead",
    )


def _posting_listeners():
    from ledger_kernel.models.posting import Posting

    return (
        (Posting, "before_update", _check_posting_update),
        (Posting, "before_delete", _check_posting_delete),
    )


def register_immutability_listeners() -> None:
    """Register the posting immutability listeners (idempotent)."""
    install_listeners(_posting_listeners())
    logger.info("immutability_listeners_registered", extra={"scope": "kernel"})


def unregister_immutability_listeners() -> None:
    """Remove the posting immutability listeners. FOR TESTING ONLY."""
    remove_listeners(_posting_listeners())
