"""
ledger_recurring.services -- run ledger, due processing, rule lifecycle, trigger.
"""

from ledger_recurring.services.due_processor import DueRuleProcessor
from ledger_recurring.services.rate_limiter import SlidingWindowRateLimiter
from ledger_recurring.services.rule_lifecycle import RuleLifecycle
from ledger_recurring.services.run_ledger import RunLedger
from ledger_recurring.services.trigger import DueProcessingTrigger, read_bearer_token

__all__ = [
    "DueProcessingTrigger",
    "DueRuleProcessor",
    "RuleLifecycle",
    "RunLedger",
    "SlidingWindowRateLimiter",
    "read_bearer_token",
]
