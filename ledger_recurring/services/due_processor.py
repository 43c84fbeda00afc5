"""
DueRuleProcessor -- turns due recurring occurrences into postings.

Contract:
    ``process_due()`` finds every active rule with next_run_at <= now and,
    per rule, walks its due occurrences in order:

        Scheduled -> Claiming -> Posted            -> Scheduled ...
                              -> Skipped (conflict) -> Scheduled ...
        ... -> Paused (end_at passed) | Idle (next occurrence in the future)

    Each occurrence is claimed in the RunLedger before anything is posted, so
    overlapping or retried passes post every occurrence at most once.

Architecture: ledger_recurring/services.  Uses ledger_recurring.domain for
    pure occurrence enumeration, RunLedger for claims and the kernel
    PostingEngine for writes.

Invariants enforced:
    - Every timestamp comes from the injected Clock.
    - An occurrence after end_at is never posted; reaching it pauses the rule.
    - A posting failure releases its claim (compensating delete) and leaves
      next_run_at on the failed occurrence, so the next pass retries it.
    - A rule row is written only if next_run_at, last_run_at or is_paused
      changed.

Non-goals:
    - NOT a distributed scheduler (a single active trigger is assumed;
      correctness still holds if violated, throughput may not).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.exceptions import (
    InvalidRuleConfigurationError,
    LedgerError,
    OptimisticLockError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.services.posting_engine import PostingEngine

from ledger_recurring.domain.schedule import DueOccurrences
from ledger_recurring.domain.types import DueRunResult, RuleFailure, RuleKind
from ledger_recurring.models.recurring_rule import RecurringRuleModel
from ledger_recurring.services.run_ledger import RunLedger

logger = get_logger("recurring.due_processor")


@dataclass
class _RuleOutcome:
    runs: int = 0
    generated: int = 0
    failure: RuleFailure | None = None
    error: Exception | None = None


class DueRuleProcessor:
    """Processes all due recurring rules in one pass.

    Contract:
        - ``process_due()`` returns a DueRunResult with counters and any
          per-rule failures.
        - With ``auto_commit=True`` every claim, posting and compensation is
          committed as it happens, so claims are visible to overlapping
          invocations.  With ``auto_commit=False`` the caller owns the
          transaction.
        - Failures are isolated per rule.  ``fail_fast=True`` re-raises the
          first failure after that rule's progress has been saved.
    """

    def __init__(
        self,
        session: Session,
        posting_engine: PostingEngine,
        run_ledger: RunLedger,
        clock: Clock | None = None,
        fail_fast: bool = False,
        auto_commit: bool = True,
    ):
        self._session = session
        self._posting_engine = posting_engine
        self._run_ledger = run_ledger
        self._clock = clock or SystemClock()
        self._fail_fast = fail_fast
        self._auto_commit = auto_commit

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def find_due_rules(self, now: datetime) -> list[RecurringRuleModel]:
        """Active, unpaused rules whose next occurrence is at or before ``now``."""
        return list(
            self._session.execute(
                select(RecurringRuleModel)
                .where(
                    RecurringRuleModel.deleted_at.is_(None),
                    RecurringRuleModel.is_paused == False,  # noqa: E712
                    RecurringRuleModel.next_run_at <= now,
                )
                .order_by(RecurringRuleModel.next_run_at, RecurringRuleModel.id)
            ).scalars().all()
        )

    def process_due(self) -> DueRunResult:
        """Run one due-processing pass at ``clock.now()``."""
        now = self._clock.now()
        due_rules = self.find_due_rules(now)

        logger.info(
            "due_processing_started",
            extra={"now": now.isoformat(), "due_rules": len(due_rules)},
        )

        processed_rules = 0
        processed_runs = 0
        generated = 0
        failures: list[RuleFailure] = []

        for rule in due_rules:
            processed_rules += 1
            with LogContext.bind(rule_id=str(rule.id), owner_id=str(rule.owner_id)):
                outcome = self.process_rule(rule, now)

            processed_runs += outcome.runs
            generated += outcome.generated
            if outcome.failure is not None:
                failures.append(outcome.failure)
                if self._fail_fast:
                    raise outcome.error

        result = DueRunResult(
            processed_rules=processed_rules,
            processed_runs=processed_runs,
            generated_transactions=generated,
            failures=tuple(failures),
        )

        logger.info(
            "due_processing_completed",
            extra={
                "processed_rules": processed_rules,
                "processed_runs": processed_runs,
                "generated_transactions": generated,
                "failed_rules": len(failures),
            },
        )
        return result

    def process_rule(self, rule: RecurringRuleModel, now: datetime) -> _RuleOutcome:
        """Post every due occurrence of one rule and save its cursor."""
        outcome = _RuleOutcome()

        try:
            occurrences = DueOccurrences(rule.schedule, rule.next_run_at, now, rule.end_at)
        except LedgerError as exc:
            return self._fail(outcome, rule, rule.next_run_at, exc)

        last_run_at = rule.last_run_at
        failed_at: datetime | None = None
        error: Exception | None = None

        for scheduled_at in occurrences:
            entry = self._run_ledger.claim(rule, scheduled_at)
            if entry is None:
                # Another invocation owns this occurrence.
                last_run_at = scheduled_at
                continue
            self._commit()

            try:
                with self._session.begin_nested():
                    posting_ids = self._post_occurrence(rule, scheduled_at)
                    self._run_ledger.attach_postings(entry, posting_ids)
            except Exception as exc:
                self._run_ledger.release(entry)
                self._commit()
                failed_at, error = scheduled_at, exc
                break

            self._commit()
            outcome.runs += 1
            outcome.generated += len(posting_ids)
            last_run_at = scheduled_at

            logger.info(
                "recurring_occurrence_posted",
                extra={
                    "scheduled_at": scheduled_at.isoformat(),
                    "posting_ids": [str(p) for p in posting_ids],
                },
            )

        next_run_at = failed_at if failed_at is not None else occurrences.cursor
        should_pause = rule.is_paused or (error is None and occurrences.reached_end)

        try:
            self._save_progress(rule, next_run_at, last_run_at, should_pause)
        except OptimisticLockError as exc:
            if error is None:
                failed_at, error = next_run_at, exc

        if error is not None:
            return self._fail(outcome, rule, failed_at, error)

        if should_pause and occurrences.reached_end:
            logger.info(
                "recurring_rule_paused_end_reached",
                extra={
                    "end_at": rule.end_at.isoformat() if rule.end_at else None,
                    "next_run_at": next_run_at.isoformat(),
                },
            )
        return outcome

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _post_occurrence(
        self, rule: RecurringRuleModel, scheduled_at: datetime,
    ) -> list[UUID]:
        """Create the posting(s) for one occurrence, by rule kind."""
        if rule.kind == RuleKind.TRANSFER.value:
            if rule.from_account_id is None or rule.to_account_id is None:
                raise InvalidRuleConfigurationError(
                    str(rule.id), "transfer rule requires fromAccountId and toAccountId",
                )
            pair = self._posting_engine.create_transfer_pair(
                owner_id=rule.owner_id,
                from_account_id=rule.from_account_id,
                to_account_id=rule.to_account_id,
                amount=rule.amount,
                occurred_at=scheduled_at,
                description=rule.description,
            )
            return list(pair.posting_ids)

        if rule.kind != RuleKind.NORMAL.value:
            raise InvalidRuleConfigurationError(str(rule.id), f"unknown kind {rule.kind!r}")
        if rule.account_id is None or rule.category_id is None or rule.type is None:
            raise InvalidRuleConfigurationError(
                str(rule.id), "normal rule requires accountId, categoryId and type",
            )
        posting = self._posting_engine.create_normal_transaction(
            owner_id=rule.owner_id,
            account_id=rule.account_id,
            category_id=rule.category_id,
            transaction_type=rule.type,
            amount=rule.amount,
            occurred_at=scheduled_at,
            description=rule.description,
        )
        return [posting.id]

    def _save_progress(
        self,
        rule: RecurringRuleModel,
        next_run_at: datetime,
        last_run_at: datetime | None,
        should_pause: bool,
    ) -> bool:
        """Persist the rule's cursor if anything moved.  Returns True if written."""
        if (
            next_run_at == rule.next_run_at
            and last_run_at == rule.last_run_at
            and should_pause == rule.is_paused
        ):
            return False

        try:
            with self._session.begin_nested():
                rule.next_run_at = next_run_at
                rule.last_run_at = last_run_at
                rule.is_paused = should_pause
                self._session.flush()
        except StaleDataError:
            logger.warning(
                "recurring_rule_save_conflict",
                extra={"next_run_at": next_run_at.isoformat()},
            )
            raise OptimisticLockError("RecurringRule", str(rule.id))

        self._commit()
        return True

    def _fail(
        self,
        outcome: _RuleOutcome,
        rule: RecurringRuleModel,
        scheduled_at: datetime,
        error: Exception,
    ) -> _RuleOutcome:
        code = getattr(error, "code", type(error).__name__)
        logger.error(
            "recurring_occurrence_failed",
            extra={
                "scheduled_at": scheduled_at.isoformat(),
                "error_code": code,
            },
            exc_info=error,
        )
        outcome.failure = RuleFailure(
            rule_id=rule.id,
            scheduled_at=scheduled_at,
            error_code=code,
            message=str(error),
        )
        outcome.error = error
        return outcome

    def _commit(self) -> None:
        if self._auto_commit:
            self._session.commit()
