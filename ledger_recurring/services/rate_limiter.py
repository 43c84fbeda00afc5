"""
SlidingWindowRateLimiter -- in-process call limiter for the due trigger.

Contract:
    ``acquire(key)`` records one call for ``key`` or raises
    RateLimitExceededError if ``max_calls`` calls already happened within the
    last ``window_seconds``.  Time comes from the injected Clock.

Non-goals:
    - NOT shared across processes (a single active trigger is assumed).
"""

from __future__ import annotations

import threading
from collections import defaultdict, deque
from datetime import datetime, timedelta

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.exceptions import RateLimitExceededError
from ledger_kernel.logging_config import get_logger

logger = get_logger("recurring.rate_limiter")


class SlidingWindowRateLimiter:
    """At most ``max_calls`` per ``window_seconds`` per key."""

    def __init__(
        self,
        max_calls: int = 5,
        window_seconds: int = 60,
        clock: Clock | None = None,
    ):
        if max_calls <= 0 or window_seconds <= 0:
            raise ValueError("max_calls and window_seconds must be positive")
        self._max_calls = max_calls
        self._window = timedelta(seconds=window_seconds)
        self._window_seconds = window_seconds
        self._clock = clock or SystemClock()
        self._calls: dict[str, deque[datetime]] = defaultdict(deque)
        self._lock = threading.Lock()

    def acquire(self, key: str = "default") -> None:
        now = self._clock.now()
        with self._lock:
            calls = self._calls[key]
            while calls and calls[0] <= now - self._window:
                calls.popleft()

            if len(calls) >= self._max_calls:
                retry_after = (calls[0] + self._window - now).total_seconds()
                logger.warning(
                    "rate_limit_exceeded",
                    extra={"key": key, "retry_after_seconds": retry_after},
                )
                raise RateLimitExceededError(
                    max_calls=self._max_calls,
                    window_seconds=self._window_seconds,
                    retry_after_seconds=retry_after,
                )
            calls.append(now)

    def remaining(self, key: str = "default") -> int:
        now = self._clock.now()
        with self._lock:
            recent = [t for t in self._calls.get(key, ()) if t > now - self._window]
            return max(self._max_calls - len(recent), 0)

    def reset(self) -> None:
        with self._lock:
            self._calls.clear()
