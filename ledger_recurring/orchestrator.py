"""
RecurringOrchestrator -- DI container for the recurring-rule system.

Contract:
    Wires PostingEngine, RunLedger, DueRuleProcessor and RuleLifecycle over
    one session, and builds the DueProcessingTrigger.  Single place where
    all recurring dependencies are composed.

Architecture: ledger_recurring (top-level).  Canonical entry point for the
    operator CLI and for any outer HTTP layer.

Invariants enforced:
    - Clock injection: every service receives the same Clock.
    - Settings are read once (ledger_config.get_settings) and passed in.
"""

from __future__ import annotations

from typing import Callable

from sqlalchemy.orm import Session

from ledger_config import LedgerSettings
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.logging_config import get_logger
from ledger_kernel.services.posting_engine import PostingEngine

from ledger_recurring.services.due_processor import DueRuleProcessor
from ledger_recurring.services.rate_limiter import SlidingWindowRateLimiter
from ledger_recurring.services.rule_lifecycle import RuleLifecycle
from ledger_recurring.services.run_ledger import RunLedger
from ledger_recurring.services.trigger import DueProcessingTrigger

logger = get_logger("recurring.orchestrator")


class RecurringOrchestrator:
    """DI container for recurring rules.

    Contract:
        - ``from_session()`` factory creates a fully wired orchestrator.
        - ``create_trigger()`` returns a DueProcessingTrigger that opens its
          own session per run.

    Non-goals:
        - Does NOT manage session lifecycle -- caller controls commits
          (the trigger commits its own sessions).
    """

    def __init__(
        self,
        session: Session,
        posting_engine: PostingEngine,
        run_ledger: RunLedger,
        due_processor: DueRuleProcessor,
        rule_lifecycle: RuleLifecycle,
        clock: Clock,
        settings: LedgerSettings,
    ) -> None:
        self._session = session
        self._posting_engine = posting_engine
        self._run_ledger = run_ledger
        self._due_processor = due_processor
        self._rule_lifecycle = rule_lifecycle
        self._clock = clock
        self._settings = settings

    # -------------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------------

    @classmethod
    def from_session(
        cls,
        session: Session,
        clock: Clock | None = None,
        settings: LedgerSettings | None = None,
        auto_commit: bool = True,
    ) -> RecurringOrchestrator:
        """Create a fully wired RecurringOrchestrator from a session.

        Args:
            session: SQLAlchemy session for persistence.
            clock: Optional clock for deterministic testing.
            settings: Runtime settings; defaults to LedgerSettings().
            auto_commit: Passed to DueRuleProcessor.
        """
        effective_clock = clock or SystemClock()
        effective_settings = settings or LedgerSettings()

        posting_engine = PostingEngine(session, clock=effective_clock)
        run_ledger = RunLedger(session)

        return cls(
            session=session,
            posting_engine=posting_engine,
            run_ledger=run_ledger,
            due_processor=DueRuleProcessor(
                session=session,
                posting_engine=posting_engine,
                run_ledger=run_ledger,
                clock=effective_clock,
                fail_fast=effective_settings.due_processing.fail_fast,
                auto_commit=auto_commit,
            ),
            rule_lifecycle=RuleLifecycle(
                session=session,
                posting_engine=posting_engine,
                run_ledger=run_ledger,
                clock=effective_clock,
            ),
            clock=effective_clock,
            settings=effective_settings,
        )

    # -------------------------------------------------------------------------
    # Trigger
    # -------------------------------------------------------------------------

    def create_trigger(
        self,
        session_factory: Callable[[], Session],
        rate_limiter: SlidingWindowRateLimiter | None = None,
    ) -> DueProcessingTrigger:
        """Create a DueProcessingTrigger sharing this orchestrator's clock/settings.

        Args:
            session_factory: Callable returning a new session for each run.
            rate_limiter: Optional limiter; defaults to one built from
                ``settings.rate_limit``.  Reuse the same limiter across
                triggers for the limit to hold.
        """
        clock = self._clock
        settings = self._settings
        limiter = rate_limiter or SlidingWindowRateLimiter(
            max_calls=settings.rate_limit.max_calls,
            window_seconds=settings.rate_limit.window_seconds,
            clock=clock,
        )

        def processor_factory(session: Session) -> DueRuleProcessor:
            return RecurringOrchestrator.from_session(
                session, clock=clock, settings=settings,
            ).due_processor

        return DueProcessingTrigger(
            session_factory=session_factory,
            processor_factory=processor_factory,
            cron_secret=settings.cron_secret,
            rate_limiter=limiter,
        )

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def session(self) -> Session:
        return self._session

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def settings(self) -> LedgerSettings:
        return self._settings

    @property
    def posting_engine(self) -> PostingEngine:
        return self._posting_engine

    @property
    def run_ledger(self) -> RunLedger:
        return self._run_ledger

    @property
    def due_processor(self) -> DueRuleProcessor:
        return self._due_processor

    @property
    def rule_lifecycle(self) -> RuleLifecycle:
        return self._rule_lifecycle
