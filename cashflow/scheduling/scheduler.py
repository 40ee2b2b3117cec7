"""
Recurring Transaction Scheduler

Decides, for one recurring definition and an explicit "now", whether an
occurrence is due and what to do about it:

    inactive            -> Skipped(paused)
    now > end_date      -> Skipped(ended)   (definition stays active)
    next_run_date > now -> Skipped(not_due)
    due, auto_create    -> create one transaction per missed occurrence
    due, manual         -> Due (nothing written, next_run_date unchanged)

DESIGN DECISION: Each occurrence is written in its own unit of work:
the transaction insert and the next_run_date advance commit together or
not at all. A storage failure on occurrence N leaves occurrences 1..N-1
committed and next_run_date pointing at N.
"""

from datetime import date, datetime, timedelta
from typing import Any, Optional, Union
from uuid import UUID

import structlog

from cashflow.audit import AuditLogger, create_correlation_id
from cashflow.config import get_settings
from cashflow.models.finance import (
    OutcomeStatus,
    RecurringTransaction,
    RecurringTransactionDraft,
    RunSummary,
    SchedulerOutcome,
    SkipReason,
    Transaction,
    TransactionType,
)
from cashflow.scheduling.recurrence import (
    InvalidRecurrenceConfig,
    RecurrenceAnchors,
    initial_next_run,
    next_occurrence,
    preview,
)
from cashflow.services.storage import FinanceStorageInterface, StorageError
from cashflow.validation.validator import RecurringValidator


logger = structlog.get_logger(__name__)

# Editing any of these moves next_run_date
SCHEDULE_FIELDS = ("frequency", "day_of_week", "day_of_month", "month_of_year", "start_date")

# Managed by the scheduler and storage, never by user edits
PROTECTED_FIELDS = ("id", "version", "next_run_date", "last_run_date")

Now = Union[date, datetime]


def as_date(now: Now) -> date:
    """Due checks compare calendar dates only, never time of day."""
    return now.date() if isinstance(now, datetime) else now


class RecurringTransactionScheduler:
    """
    Materializes recurring definitions into transactions.

    Usage:
        scheduler = RecurringTransactionScheduler(storage, audit_logger)
        outcome = scheduler.tick(recurring, now=date(2024, 1, 15))
        summary = scheduler.run_due(now=date.today())
    """

    def __init__(
        self,
        storage: FinanceStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        validator: Optional[RecurringValidator] = None,
    ):
        self._storage = storage
        self._audit_logger = audit_logger
        self._validator = validator or RecurringValidator()
        self._settings = get_settings().app

    # -------------------------------------------------------------------------
    # Definition lifecycle
    # -------------------------------------------------------------------------

    def create(self, draft: RecurringTransactionDraft, now: Now) -> RecurringTransaction:
        """
        Validate and store a new definition.

        Raises:
            InvalidRecurrenceConfig: If the schedule is malformed
        """
        self._validator.ensure_valid(draft)

        next_run = initial_next_run(
            draft.frequency,
            RecurrenceAnchors(
                day_of_week=draft.day_of_week,
                day_of_month=draft.day_of_month,
                month_of_year=draft.month_of_year,
            ),
            draft.start_date,
            as_date(now),
        )
        recurring = RecurringTransaction(
            **draft.model_dump(),
            next_run_date=next_run,
        )
        stored = self._storage.add_recurring(recurring)

        if self._audit_logger:
            self._audit_logger.log_recurring_created(stored.id, stored.name, stored.next_run_date)

        return stored

    def update(
        self,
        recurring: RecurringTransaction,
        changes: dict[str, Any],
        now: Now,
    ) -> RecurringTransaction:
        """
        Apply field changes to a definition.

        next_run_date is recomputed from the start date whenever a
        schedule field actually changes value.

        Raises:
            ValueError: For unknown or protected fields
            InvalidRecurrenceConfig: If the new schedule is malformed
            ConcurrencyError: If the definition changed since it was read
        """
        unknown = set(changes) - set(RecurringTransaction.model_fields)
        if unknown:
            raise ValueError(f"Unknown fields: {', '.join(sorted(unknown))}")
        protected = set(changes) & set(PROTECTED_FIELDS)
        if protected:
            raise ValueError(f"Fields cannot be edited: {', '.join(sorted(protected))}")

        merged = recurring.model_dump()
        merged.update(changes)

        draft = RecurringTransactionDraft.model_validate(
            {k: v for k, v in merged.items() if k in RecurringTransactionDraft.model_fields}
        )
        self._validator.ensure_valid(draft)

        changed_fields = [k for k in changes if getattr(recurring, k) != getattr(draft, k)]
        schedule_changed = any(field in SCHEDULE_FIELDS for field in changed_fields)

        if schedule_changed:
            merged["next_run_date"] = initial_next_run(
                draft.frequency,
                RecurrenceAnchors(
                    day_of_week=draft.day_of_week,
                    day_of_month=draft.day_of_month,
                    month_of_year=draft.month_of_year,
                ),
                draft.start_date,
                as_date(now),
            )

        updated = RecurringTransaction.model_validate(merged)
        stored = self._storage.update_recurring(updated)

        if self._audit_logger:
            self._audit_logger.log_recurring_updated(stored.id, changed_fields, schedule_changed)

        return stored

    def pause(self, recurring: RecurringTransaction) -> RecurringTransaction:
        """Stop producing occurrences. next_run_date is kept."""
        stored = self._storage.update_recurring(
            recurring.model_copy(update={"is_active": False})
        )
        if self._audit_logger:
            self._audit_logger.log_recurring_paused(stored.id, stored.name)
        return stored

    def resume(
        self,
        recurring: RecurringTransaction,
        now: Optional[Now] = None,
        skip_missed: bool = False,
    ) -> RecurringTransaction:
        """
        Reactivate a paused definition.

        By default nothing else changes: the next tick catches up missed
        occurrences as usual. With skip_missed, next_run_date is moved
        past `now` first so the paused period produces no transactions.
        """
        update: dict[str, Any] = {"is_active": True}

        if skip_missed:
            if now is None:
                raise ValueError("skip_missed requires now")
            today = as_date(now)
            anchors = RecurrenceAnchors.of(recurring)
            next_run = recurring.next_run_date
            while next_run <= today:
                next_run = next_occurrence(recurring.frequency, anchors, next_run)
            update["next_run_date"] = next_run

        stored = self._storage.update_recurring(recurring.model_copy(update=update))
        if self._audit_logger:
            self._audit_logger.log_recurring_resumed(stored.id, stored.name, stored.next_run_date)
        return stored

    # -------------------------------------------------------------------------
    # Scheduling
    # -------------------------------------------------------------------------

    def _build_transaction(self, recurring: RecurringTransaction) -> Transaction:
        return Transaction(
            account_id=recurring.account_id,
            category_id=recurring.category_id,
            recurring_transaction_id=recurring.id,
            type=TransactionType(recurring.transaction_type.value),
            amount=recurring.amount,
            currency_code=recurring.currency_code,
            transaction_date=recurring.next_run_date,
            description=recurring.name,
        )

    def tick(
        self,
        recurring: RecurringTransaction,
        now: Now,
        correlation_id: Optional[UUID] = None,
    ) -> SchedulerOutcome:
        """
        Process one definition at `now`.

        Calling tick again with the same `now` after it returned is a
        no-op: the definition is no longer due.

        Raises:
            StorageError: If a write fails; the failed occurrence is rolled back
        """
        today = as_date(now)

        if not recurring.is_active:
            return self._skip(recurring, SkipReason.PAUSED, correlation_id)

        if recurring.has_ended(today):
            return self._skip(recurring, SkipReason.ENDED, correlation_id)

        if recurring.next_run_date > today:
            return self._skip(recurring, SkipReason.NOT_DUE, correlation_id)

        if not recurring.auto_create:
            if self._audit_logger:
                self._audit_logger.log_occurrence_due(
                    recurring.id, recurring.next_run_date, correlation_id
                )
            return SchedulerOutcome.due(recurring)

        anchors = RecurrenceAnchors.of(recurring)
        current = recurring
        created: list[Transaction] = []

        # Catch up every missed occurrence, one unit of work each
        while current.next_run_date <= today and not current.has_ended(current.next_run_date):
            occurrence = current.next_run_date
            transaction = self._build_transaction(current)
            advanced = current.model_copy(update={
                "next_run_date": next_occurrence(current.frequency, anchors, occurrence),
                "last_run_date": occurrence,
            })

            try:
                with self._storage.unit_of_work():
                    self._storage.add_transaction(transaction)
                    current = self._storage.update_recurring(advanced)
            except StorageError as e:
                logger.error(
                    "occurrence_failed",
                    recurring_id=str(recurring.id),
                    occurrence_date=occurrence.isoformat(),
                    created_before_failure=len(created),
                    error=str(e),
                )
                if self._audit_logger:
                    self._audit_logger.log_persistence_failed(
                        entity_type="recurring",
                        entity_id=recurring.id,
                        error_message=str(e),
                        correlation_id=correlation_id,
                    )
                raise

            created.append(transaction)
            if self._audit_logger:
                self._audit_logger.log_occurrence_materialized(
                    recurring_id=current.id,
                    transaction_id=transaction.id,
                    occurrence_date=occurrence,
                    amount=transaction.amount,
                    currency_code=transaction.currency_code,
                    correlation_id=correlation_id,
                )

        return SchedulerOutcome.created(current, created)

    def _skip(
        self,
        recurring: RecurringTransaction,
        reason: SkipReason,
        correlation_id: Optional[UUID],
    ) -> SchedulerOutcome:
        if self._audit_logger and reason != SkipReason.NOT_DUE:
            self._audit_logger.log_recurring_skipped(recurring.id, reason.value, correlation_id)
        return SchedulerOutcome.skipped(recurring, reason)

    def run_due(self, now: Now, correlation_id: Optional[UUID] = None) -> RunSummary:
        """
        Tick every active definition once.

        This is the entry point for the external daily trigger.
        A failure on one definition is recorded in the summary and does
        not stop the others.
        """
        today = as_date(now)
        correlation_id = correlation_id or create_correlation_id()
        summary = RunSummary(correlation_id=correlation_id, run_date=today)

        for recurring in self._storage.list_recurring(active_only=True):
            try:
                outcome = self.tick(recurring, today, correlation_id)
            except (StorageError, InvalidRecurrenceConfig) as e:
                summary.errors[str(recurring.id)] = str(e)
                continue

            summary.processed += 1
            if outcome.status == OutcomeStatus.CREATED:
                summary.transactions_created += len(outcome.transactions)
            elif outcome.status == OutcomeStatus.DUE:
                summary.due.append(recurring.id)
            else:
                summary.skipped += 1

        logger.info(
            "scheduler_run_finished",
            run_date=today.isoformat(),
            processed=summary.processed,
            created=summary.transactions_created,
            failed=len(summary.errors),
        )
        if self._audit_logger:
            self._audit_logger.log_run_completed(
                run_date=today,
                processed=summary.processed,
                created=summary.transactions_created,
                failed=len(summary.errors),
                correlation_id=correlation_id,
            )

        return summary

    # -------------------------------------------------------------------------
    # Read-only views
    # -------------------------------------------------------------------------

    def upcoming(self, now: Now, days: Optional[int] = None) -> list[RecurringTransaction]:
        """Active, not-ended definitions due within the next `days` days."""
        today = as_date(now)
        if days is None:
            days = self._settings.upcoming_days
        horizon = today + timedelta(days=days)
        return sorted(
            (
                r for r in self._storage.list_recurring(active_only=True)
                if not r.has_ended(today) and r.next_run_date <= horizon
            ),
            key=lambda r: r.next_run_date,
        )

    def preview(self, recurring: RecurringTransaction, count: Optional[int] = None) -> list[date]:
        return preview(recurring, self._settings.preview_count if count is None else count)
