"""
DueProcessingTrigger -- the guarded entry point that runs a due pass.

Contract:
    ``run(cron_secret=None, authorization=None)`` rate-limits the call,
    checks the shared secret, then runs ``DueRuleProcessor.process_due()`` in
    a fresh session and returns the result dictionary.

    The secret is taken from ``cron_secret`` (the ``x-cron-secret`` header
    value) or, when that is absent, from ``authorization`` in the form
    ``Bearer <token>``.  It is compared in constant time.

Architecture: ledger_recurring/services.  Built by
    RecurringOrchestrator.create_trigger().

Invariants enforced:
    - The rate limit is applied before authentication, so rejected callers
      still consume the window.
    - The session is committed on success, rolled back on error, and always
      closed.
"""

from __future__ import annotations

import hmac
from typing import Any, Callable
from uuid import uuid4

from sqlalchemy.orm import Session

from ledger_kernel.exceptions import ForbiddenError
from ledger_kernel.logging_config import LogContext, get_logger

from ledger_recurring.services.due_processor import DueRuleProcessor
from ledger_recurring.services.rate_limiter import SlidingWindowRateLimiter

logger = get_logger("recurring.trigger")

RATE_LIMIT_KEY = "recurring.run_due"


def read_bearer_token(authorization: str | None) -> str | None:
    """``"Bearer <token>"`` -> ``"<token>"``; anything else -> None."""
    if not authorization:
        return None
    parts = authorization.split(" ")
    if len(parts) < 2 or parts[0] != "Bearer" or not parts[1]:
        return None
    return parts[1]


class DueProcessingTrigger:
    """Authenticated, rate-limited wrapper around one due-processing pass."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        processor_factory: Callable[[Session], DueRuleProcessor],
        cron_secret: str,
        rate_limiter: SlidingWindowRateLimiter,
    ):
        self._session_factory = session_factory
        self._processor_factory = processor_factory
        self._cron_secret = cron_secret
        self._rate_limiter = rate_limiter

    def run(
        self,
        cron_secret: str | None = None,
        authorization: str | None = None,
    ) -> dict[str, Any]:
        trigger_id = str(uuid4())
        with LogContext.bind(trigger_id=trigger_id, correlation_id=trigger_id):
            self._rate_limiter.acquire(RATE_LIMIT_KEY)
            self._authenticate(cron_secret, authorization)

            session = self._session_factory()
            try:
                result = self._processor_factory(session).process_due()
                session.commit()
            except Exception:
                session.rollback()
                logger.exception("due_trigger_failed")
                raise
            finally:
                session.close()

            return result.to_dict()

    def _authenticate(self, cron_secret: str | None, authorization: str | None) -> None:
        provided = cron_secret if cron_secret is not None else read_bearer_token(authorization)
        if provided is None or not hmac.compare_digest(
            provided.encode("utf-8"), self._cron_secret.encode("utf-8"),
        ):
            logger.warning(
                "due_trigger_forbidden",
                extra={"secret_supplied": provided is not None},
            )
            raise ForbiddenError()
