"""
ledger_recurring -- recurring obligations turned into exactly-once postings.

Users declare recurring rules (weekly or monthly, a normal income/expense or
a transfer between two of their accounts).  A guarded trigger periodically
posts every occurrence that has come due, catching up after downtime.

Architecture:
    ledger_recurring/ is a top-level package built on ledger_kernel.
    Nothing in ledger_kernel imports from ledger_recurring.  Callers pass
    "ledger_recurring.models" to create_tables() and call
    register_recurring_immutability_listeners() next to the kernel guards.

Invariants:
    - Exactly-once: an occurrence is posted only by whoever inserts its
      (rule_id, scheduled_at) run log row.
    - Catch-up: a pass posts every missed occurrence up to now, in order.
    - End date: an occurrence after end_at is never posted; the rule pauses.
    - Compensation: a failed posting releases its claim for retry.
    - Clock injection: no datetime.now() calls outside SystemClock.
    - Schedule evaluation is pure (ledger_recurring.domain).
"""
