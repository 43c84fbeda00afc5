"""
RuleLifecycle -- owner-scoped CRUD for recurring rules.

Contract:
    Create, list, read, patch and soft-delete recurring rules, plus the
    operator views over them (run history, upcoming payments).  Every method
    is scoped to ``owner_id``; a rule belonging to someone else is reported
    as not found.

Architecture: ledger_recurring/services.  Uses the kernel PostingEngine for
    account/category resolution so rules are validated exactly the way their
    postings will be.

Invariants enforced:
    - A created rule carries exactly the fields its kind requires.
    - A transfer rule's accounts differ and share a currency; checked before
      anything is persisted.
    - Editing the schedule, or resuming a rule whose next_run_at is not in
      the future, recomputes next_run_at from now (missed occurrences are
      forfeited, not caught up).  A rule that has not started yet restarts
      from start_at instead, so next_run_at never precedes start_at.
    - A rule whose next_run_at is past end_at is paused.
    - Deleting is a soft delete; run history is kept.

Non-goals:
    - Does NOT call ``session.commit()`` -- caller controls boundaries.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.types import TransactionType
from ledger_kernel.exceptions import (
    InvalidRuleConfigurationError,
    OptimisticLockError,
    RecurringRuleNotFoundError,
    TransferAccountConflictError,
    TransferCurrencyMismatchError,
    ValidationError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import Account
from ledger_kernel.models.category import Category
from ledger_kernel.services.posting_engine import PostingEngine, normalize_amount

from ledger_recurring.domain.schedule import (
    as_utc,
    calculate_next_from_now,
    compute_initial_next_run,
    month_boundaries,
    project_occurrence_in_window,
    schedule_from_fields,
)
from ledger_recurring.domain.types import (
    UNSET,
    Cadence,
    RecurringRule,
    RuleDraft,
    RuleKind,
    RulePatch,
    RunLogEntry,
    UpcomingOccurrence,
)
from ledger_recurring.models.recurring_rule import RecurringRuleModel
from ledger_recurring.services.run_ledger import RunLedger

logger = get_logger("recurring.rule_lifecycle")

MAX_DESCRIPTION_LENGTH = 500
UPCOMING_WINDOW_DAYS = 30
UPCOMING_LIST_LIMIT = 10
UPCOMING_FALLBACK_TITLE = "Recurring payment"


def _next_run_after_edit(schedule, start_at: datetime, now: datetime) -> datetime:
    """Cursor for an edited or resumed rule: never before start_at, never in the past."""
    if now < start_at:
        return compute_initial_next_run(schedule, start_at)
    return calculate_next_from_now(schedule, now)


def _clean_description(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    if len(value) > MAX_DESCRIPTION_LENGTH:
        raise ValidationError(
            f"description must be at most {MAX_DESCRIPTION_LENGTH} characters",
            field="description",
        )
    return value or None


class RuleLifecycle:
    """Owner-facing management of recurring rules."""

    def __init__(
        self,
        session: Session,
        posting_engine: PostingEngine,
        run_ledger: RunLedger,
        clock: Clock | None = None,
    ):
        self._session = session
        self._posting_engine = posting_engine
        self._run_ledger = run_ledger
        self._clock = clock or SystemClock()

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def list_rules(
        self,
        owner_id: UUID,
        month: str | None = None,
        include_deleted: bool = False,
    ) -> list[RecurringRule]:
        """The owner's rules, soonest next_run_at first.

        ``month`` ("YYYY-MM") keeps only rules whose next_run_at falls in that
        calendar month (UTC).
        """
        stmt = select(RecurringRuleModel).where(RecurringRuleModel.owner_id == owner_id)
        if not include_deleted:
            stmt = stmt.where(RecurringRuleModel.deleted_at.is_(None))
        if month:
            start, end = month_boundaries(month)
            stmt = stmt.where(
                RecurringRuleModel.next_run_at >= start,
                RecurringRuleModel.next_run_at < end,
            )
        stmt = stmt.order_by(RecurringRuleModel.next_run_at, RecurringRuleModel.id.desc())
        return [m.to_dto() for m in self._session.execute(stmt).scalars().all()]

    def get_rule(self, owner_id: UUID, rule_id: UUID) -> RecurringRule:
        return self._load(owner_id, rule_id).to_dto()

    def run_history(self, owner_id: UUID, rule_id: UUID) -> list[RunLogEntry]:
        """Claimed occurrences of a rule, including after it was deleted."""
        self._load(owner_id, rule_id, include_deleted=True)
        return [e.to_dto() for e in self._run_ledger.history(owner_id, rule_id)]

    def upcoming_payments(
        self,
        owner_id: UUID,
        window_days: int = UPCOMING_WINDOW_DAYS,
        limit: int = UPCOMING_LIST_LIMIT,
    ) -> list[UpcomingOccurrence]:
        """Next expense occurrence of each active rule due within the window.

        The window runs from the start of today (UTC) to the end of the day
        ``window_days`` later.
        """
        now = self._clock.now()
        range_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
        range_end = range_start + timedelta(days=window_days + 1) - timedelta(microseconds=1)

        rules = self._session.execute(
            select(RecurringRuleModel)
            .where(
                RecurringRuleModel.owner_id == owner_id,
                RecurringRuleModel.kind == RuleKind.NORMAL.value,
                RecurringRuleModel.type == TransactionType.EXPENSE.value,
                RecurringRuleModel.is_paused == False,  # noqa: E712
                RecurringRuleModel.deleted_at.is_(None),
                RecurringRuleModel.start_at <= range_end,
                RecurringRuleModel.next_run_at <= range_end,
                or_(
                    RecurringRuleModel.end_at.is_(None),
                    RecurringRuleModel.end_at >= range_start,
                ),
            )
            .order_by(RecurringRuleModel.next_run_at, RecurringRuleModel.id)
            .limit(100)
        ).scalars().all()
        if not rules:
            return []

        currencies = dict(
            self._session.execute(
                select(Account.id, Account.currency).where(
                    Account.owner_id == owner_id, Account.deleted_at.is_(None),
                )
            ).all()
        )
        category_ids = {r.category_id for r in rules if r.category_id is not None}
        category_names = dict(
            self._session.execute(
                select(Category.id, Category.name).where(Category.id.in_(category_ids))
            ).all()
        ) if category_ids else {}

        items: list[UpcomingOccurrence] = []
        for rule in rules:
            currency = currencies.get(rule.account_id)
            if currency is None:
                continue
            due_at = project_occurrence_in_window(
                rule.schedule, rule.next_run_at, rule.start_at,
                range_start, range_end, rule.end_at,
            )
            if due_at is None:
                continue
            title = (rule.description or "").strip() \
                or (category_names.get(rule.category_id) or "").strip() \
                or UPCOMING_FALLBACK_TITLE
            items.append(UpcomingOccurrence(
                rule_id=rule.id,
                title=title,
                amount=rule.amount,
                currency=currency,
                due_at=due_at,
            ))

        items.sort(key=lambda item: (item.due_at, str(item.rule_id)))
        return items[:limit]

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def create_rule(self, owner_id: UUID, draft: RuleDraft) -> RecurringRule:
        """Validate and persist a new rule; next_run_at is its first occurrence."""
        kind = RuleKind(draft.kind)
        amount = normalize_amount(draft.amount)
        schedule = schedule_from_fields(draft.cadence, draft.day_of_week, draft.day_of_month)
        start_at = as_utc(draft.start_at)
        end_at = as_utc(draft.end_at) if draft.end_at is not None else None
        if end_at is not None and end_at < start_at:
            raise ValidationError("endAt must not be before startAt", field="endAt")
        description = _clean_description(draft.description)

        if kind is RuleKind.NORMAL:
            self._validate_normal_draft(owner_id, draft)
        else:
            self._validate_transfer_draft(owner_id, draft)

        model = RecurringRuleModel(
            owner_id=owner_id,
            kind=kind.value,
            account_id=draft.account_id if kind is RuleKind.NORMAL else None,
            category_id=draft.category_id if kind is RuleKind.NORMAL else None,
            type=TransactionType(draft.type).value if kind is RuleKind.NORMAL else None,
            from_account_id=draft.from_account_id if kind is RuleKind.TRANSFER else None,
            to_account_id=draft.to_account_id if kind is RuleKind.TRANSFER else None,
            amount=amount,
            description=description,
            start_at=start_at,
            end_at=end_at,
            next_run_at=compute_initial_next_run(schedule, start_at),
            last_run_at=None,
            is_paused=False,
        )
        model.apply_schedule(schedule)
        self._session.add(model)
        self._session.flush()

        logger.info(
            "recurring_rule_created",
            extra={
                "rule_id": str(model.id),
                "owner_id": str(owner_id),
                "kind": model.kind,
                "cadence": model.cadence,
                "next_run_at": model.next_run_at.isoformat(),
            },
        )
        return model.to_dto()

    def update_rule(self, owner_id: UUID, rule_id: UUID, patch: RulePatch) -> RecurringRule:
        """Apply a partial update; see module docstring for schedule effects."""
        rule = self._load(owner_id, rule_id)
        now = self._clock.now()

        if patch.amount is not UNSET:
            rule.amount = normalize_amount(patch.amount)
        if patch.description is not UNSET:
            rule.description = _clean_description(patch.description)
        if patch.end_at is not UNSET:
            end_at = as_utc(patch.end_at) if patch.end_at is not None else None
            if end_at is not None and end_at < rule.start_at:
                raise ValidationError("endAt must not be before startAt", field="endAt")
            rule.end_at = end_at
        if patch.is_paused is not UNSET:
            rule.is_paused = bool(patch.is_paused)

        if patch.schedule_changed:
            cadence_changed = patch.cadence is not UNSET and patch.cadence != rule.cadence
            if cadence_changed and patch.cadence == Cadence.WEEKLY and patch.day_of_week is UNSET:
                raise ValidationError(
                    "dayOfWeek is required when setting weekly cadence", field="dayOfWeek",
                )
            if cadence_changed and patch.cadence == Cadence.MONTHLY and patch.day_of_month is UNSET:
                raise ValidationError(
                    "dayOfMonth is required when setting monthly cadence", field="dayOfMonth",
                )
            schedule = schedule_from_fields(
                rule.cadence if patch.cadence is UNSET else patch.cadence,
                rule.day_of_week if patch.day_of_week is UNSET else patch.day_of_week,
                rule.day_of_month if patch.day_of_month is UNSET else patch.day_of_month,
            )
            rule.apply_schedule(schedule)
        else:
            schedule = rule.schedule

        resumed_stale = patch.is_paused is False and rule.next_run_at <= now
        if patch.schedule_changed or resumed_stale:
            rule.next_run_at = _next_run_after_edit(schedule, rule.start_at, now)

        if rule.end_at is not None and rule.next_run_at > rule.end_at:
            rule.is_paused = True

        self._flush_rule(rule)

        logger.info(
            "recurring_rule_updated",
            extra={
                "rule_id": str(rule.id),
                "owner_id": str(owner_id),
                "schedule_changed": patch.schedule_changed,
                "next_run_at": rule.next_run_at.isoformat(),
                "is_paused": rule.is_paused,
            },
        )
        return rule.to_dto()

    def delete_rule(self, owner_id: UUID, rule_id: UUID) -> None:
        """Soft-delete a rule.  Its run history stays queryable."""
        rule = self._load(owner_id, rule_id)
        rule.deleted_at = self._clock.now()
        self._flush_rule(rule)

        logger.info(
            "recurring_rule_deleted",
            extra={"rule_id": str(rule.id), "owner_id": str(owner_id)},
        )

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _load(
        self, owner_id: UUID, rule_id: UUID, include_deleted: bool = False,
    ) -> RecurringRuleModel:
        stmt = select(RecurringRuleModel).where(
            RecurringRuleModel.id == rule_id,
            RecurringRuleModel.owner_id == owner_id,
        )
        if not include_deleted:
            stmt = stmt.where(RecurringRuleModel.deleted_at.is_(None))
        rule = self._session.execute(stmt).scalar_one_or_none()
        if rule is None:
            raise RecurringRuleNotFoundError(str(rule_id))
        return rule

    def _flush_rule(self, rule: RecurringRuleModel) -> None:
        try:
            self._session.flush()
        except StaleDataError:
            raise OptimisticLockError("RecurringRule", str(rule.id))

    def _validate_normal_draft(self, owner_id: UUID, draft: RuleDraft) -> None:
        if draft.from_account_id is not None or draft.to_account_id is not None:
            raise InvalidRuleConfigurationError(
                None, "normal rule must not set fromAccountId/toAccountId",
            )
        if draft.account_id is None or draft.category_id is None or draft.type is None:
            raise InvalidRuleConfigurationError(
                None, "normal rule requires accountId, categoryId and type",
            )
        self._posting_engine.resolve_active_account(owner_id, draft.account_id)
        category = self._posting_engine.resolve_active_category(owner_id, draft.category_id)
        self._posting_engine.validate_transaction_type(category.type, draft.type)

    def _validate_transfer_draft(self, owner_id: UUID, draft: RuleDraft) -> None:
        if draft.account_id is not None or draft.category_id is not None \
                or draft.type is not None:
            raise InvalidRuleConfigurationError(
                None, "transfer rule must not set accountId/categoryId/type",
            )
        if draft.from_account_id is None or draft.to_account_id is None:
            raise InvalidRuleConfigurationError(
                None, "transfer rule requires fromAccountId and toAccountId",
            )
        if draft.from_account_id == draft.to_account_id:
            raise TransferAccountConflictError(str(draft.from_account_id))

        from_account = self._posting_engine.resolve_active_account(
            owner_id, draft.from_account_id,
        )
        to_account = self._posting_engine.resolve_active_account(
            owner_id, draft.to_account_id,
        )
        if from_account.currency != to_account.currency:
            raise TransferCurrencyMismatchError(
                expected=from_account.currency, received=to_account.currency,
            )
