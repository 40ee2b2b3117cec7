"""Tests for RecurringTransactionScheduler."""

from datetime import date, datetime
from uuid import UUID

import pytest

from cashflow.models.audit import AuditEventType
from cashflow.models.finance import (
    Frequency,
    OutcomeStatus,
    RecurringTransaction,
    RecurringTransactionDraft,
    RecurringType,
    SkipReason,
    TransactionType,
)
from cashflow.scheduling import InvalidRecurrenceConfig
from cashflow.scheduling.scheduler import RecurringTransactionScheduler
from cashflow.services.storage import (
    ConcurrencyError,
    InMemoryFinanceStorage,
    StorageError,
)
from cashflow.validation import RecurringValidator


MONDAY = 1


class FlakyStorage(InMemoryFinanceStorage):
    """In-memory storage whose definition updates can be made to fail."""

    def __init__(self, fail_on_call: int = 0, fail_ids: tuple[UUID, ...] = ()):
        super().__init__()
        self.fail_on_call = fail_on_call
        self.fail_ids = set(fail_ids)
        self.update_calls = 0

    def update_recurring(self, recurring: RecurringTransaction) -> RecurringTransaction:
        self.update_calls += 1
        if self.update_calls == self.fail_on_call or recurring.id in self.fail_ids:
            raise StorageError("disk I/O error")
        return super().update_recurring(recurring)


def weekly_monday(storage, account_id, **overrides) -> RecurringTransaction:
    fields = dict(
        account_id=account_id,
        name="Cleaner",
        transaction_type=RecurringType.EXPENSE,
        amount=300_000,
        currency_code="VND",
        frequency=Frequency.WEEKLY,
        day_of_week=MONDAY,
        start_date=date(2024, 1, 1),
        next_run_date=date(2024, 1, 1),
    )
    fields.update(overrides)
    return storage.add_recurring(RecurringTransaction(**fields))


class TestTick:
    """Tests for a single tick."""

    def test_weekly_catch_up(self, scheduler, storage, account_id):
        """Three missed Mondays produce three transactions and a future next run."""
        recurring = weekly_monday(storage, account_id)

        outcome = scheduler.tick(recurring, date(2024, 1, 15))

        assert outcome.status == OutcomeStatus.CREATED
        assert [tx.transaction_date for tx in outcome.transactions] == [
            date(2024, 1, 1), date(2024, 1, 8), date(2024, 1, 15),
        ]
        assert outcome.recurring.next_run_date == date(2024, 1, 22)
        assert outcome.recurring.last_run_date == date(2024, 1, 15)

        stored = storage.get_recurring(recurring.id)
        assert stored.next_run_date == date(2024, 1, 22)
        assert stored.version == 3
        assert len(storage.list_transactions()) == 3

    def test_transaction_fields_copied(self, scheduler, storage, account_id, salary_category):
        """Created transactions carry the definition's fields and a back-reference."""
        recurring = weekly_monday(
            storage, account_id,
            name="Salary",
            transaction_type=RecurringType.INCOME,
            amount=10_000_000,
            category_id=salary_category.id,
        )

        outcome = scheduler.tick(recurring, date(2024, 1, 1))

        tx = outcome.transactions[0]
        assert tx.type == TransactionType.INCOME
        assert tx.amount == 10_000_000
        assert tx.currency_code == "VND"
        assert tx.account_id == account_id
        assert tx.category_id == salary_category.id
        assert tx.description == "Salary"
        assert tx.recurring_transaction_id == recurring.id

    def test_not_due_is_idempotent(self, scheduler, storage, account_id):
        """Ticking again at the same instant changes nothing."""
        recurring = weekly_monday(storage, account_id)
        first = scheduler.tick(recurring, date(2024, 1, 15))

        second = scheduler.tick(first.recurring, date(2024, 1, 15))

        assert second.status == OutcomeStatus.SKIPPED
        assert second.reason == SkipReason.NOT_DUE
        assert len(storage.list_transactions()) == 3
        assert storage.get_recurring(recurring.id).version == first.recurring.version

    def test_accepts_datetime(self, scheduler, storage, account_id):
        """Time of day is ignored when deciding whether a run is due."""
        recurring = weekly_monday(storage, account_id)
        outcome = scheduler.tick(recurring, datetime(2024, 1, 1, 0, 0, 1))
        assert len(outcome.transactions) == 1

    def test_paused_is_skipped(self, scheduler, storage, account_id):
        """Inactive definitions are skipped without side effects."""
        recurring = weekly_monday(storage, account_id, is_active=False)

        outcome = scheduler.tick(recurring, date(2024, 1, 15))

        assert outcome.is_skipped
        assert outcome.reason == SkipReason.PAUSED
        assert storage.list_transactions() == []

    def test_ended_is_skipped_but_stays_active(self, scheduler, storage, account_id):
        """Past end_date the definition is skipped, not deactivated."""
        recurring = weekly_monday(storage, account_id, end_date=date(2024, 1, 10))

        outcome = scheduler.tick(recurring, date(2024, 1, 15))

        assert outcome.reason == SkipReason.ENDED
        assert storage.get_recurring(recurring.id).is_active is True
        assert storage.list_transactions() == []

    def test_catch_up_stops_at_end_date(self, scheduler, storage, account_id):
        """Occurrences dated after end_date are never materialized."""
        recurring = weekly_monday(storage, account_id, end_date=date(2024, 1, 10))

        outcome = scheduler.tick(recurring, date(2024, 1, 10))

        assert [tx.transaction_date for tx in outcome.transactions] == [
            date(2024, 1, 1), date(2024, 1, 8),
        ]
        assert outcome.recurring.next_run_date == date(2024, 1, 15)

    def test_manual_definition_reported_due(self, scheduler, storage, account_id):
        """Without auto_create nothing is written and next_run_date stays."""
        recurring = weekly_monday(storage, account_id, auto_create=False)

        outcome = scheduler.tick(recurring, date(2024, 1, 15))

        assert outcome.status == OutcomeStatus.DUE
        assert outcome.transactions == []
        assert storage.get_recurring(recurring.id).next_run_date == date(2024, 1, 1)
        assert storage.list_transactions() == []

    def test_stale_definition_rejected(self, scheduler, storage, account_id):
        """A definition read before someone else updated it cannot be ticked."""
        recurring = weekly_monday(storage, account_id)
        scheduler.tick(recurring, date(2024, 1, 1))

        with pytest.raises(ConcurrencyError):
            scheduler.tick(recurring, date(2024, 1, 1))

        assert len(storage.list_transactions()) == 1

    def test_failed_occurrence_rolls_back(self, account_id):
        """A failure keeps earlier occurrences and discards the failed one entirely."""
        storage = FlakyStorage(fail_on_call=2)
        scheduler = RecurringTransactionScheduler(storage)
        recurring = weekly_monday(storage, account_id)

        with pytest.raises(StorageError):
            scheduler.tick(recurring, date(2024, 1, 15))

        transactions = storage.list_transactions()
        assert [tx.transaction_date for tx in transactions] == [date(2024, 1, 1)]
        stored = storage.get_recurring(recurring.id)
        assert stored.next_run_date == date(2024, 1, 8)
        assert stored.version == 1

    def test_failure_is_audited(self, audit_logger, audit_storage, account_id):
        """A storage failure leaves a persistence_failed audit event."""
        storage = FlakyStorage(fail_on_call=1)
        scheduler = RecurringTransactionScheduler(storage, audit_logger)
        recurring = weekly_monday(storage, account_id)

        with pytest.raises(StorageError):
            scheduler.tick(recurring, date(2024, 1, 1))

        events = audit_storage.get_events_by_entity("recurring", recurring.id)
        assert [e.event_type for e in events] == [AuditEventType.PERSISTENCE_FAILED]


class TestRunDue:
    """Tests for the batch pass."""

    def test_counts_outcomes(self, scheduler, storage, account_id):
        """Created, due and skipped definitions are counted separately."""
        weekly_monday(storage, account_id, name="Auto")
        weekly_monday(storage, account_id, name="Manual", auto_create=False)
        weekly_monday(storage, account_id, name="Later", next_run_date=date(2024, 2, 5))
        weekly_monday(storage, account_id, name="Paused", is_active=False)

        summary = scheduler.run_due(date(2024, 1, 8))

        assert summary.processed == 3
        assert summary.transactions_created == 2
        assert len(summary.due) == 1
        assert summary.skipped == 1
        assert not summary.has_errors

    def test_failure_isolated_per_definition(self, account_id):
        """One failing definition does not stop the others."""
        storage = FlakyStorage()
        scheduler = RecurringTransactionScheduler(storage)
        broken = weekly_monday(storage, account_id, name="Broken")
        healthy = weekly_monday(storage, account_id, name="Healthy")
        storage.fail_ids.add(broken.id)

        summary = scheduler.run_due(date(2024, 1, 1))

        assert summary.has_errors
        assert list(summary.errors) == [str(broken.id)]
        assert "disk I/O error" in summary.errors[str(broken.id)]
        assert summary.transactions_created == 1
        assert storage.list_transactions()[0].recurring_transaction_id == healthy.id

    def test_events_share_correlation_id(self, scheduler, storage, audit_storage, account_id):
        """Every event of one run carries the run's correlation id."""
        weekly_monday(storage, account_id)

        summary = scheduler.run_due(date(2024, 1, 8))

        events = audit_storage.get_events_by_correlation_id(summary.correlation_id)
        types = [e.event_type for e in events]
        assert types.count(AuditEventType.OCCURRENCE_MATERIALIZED) == 2
        assert types[-1] == AuditEventType.SCHEDULER_RUN_COMPLETED


class TestLifecycle:
    """Tests for create, update, pause and resume."""

    def _draft(self, account_id, **overrides) -> RecurringTransactionDraft:
        fields = dict(
            account_id=account_id,
            name="Internet",
            transaction_type=RecurringType.EXPENSE,
            amount=250_000,
            currency_code="vnd",
            frequency=Frequency.MONTHLY,
            day_of_month=1,
            start_date=date(2024, 1, 1),
        )
        fields.update(overrides)
        return RecurringTransactionDraft(**fields)

    def test_create_computes_next_run(self, scheduler, storage, account_id):
        """A past start date is stepped to the first run after now."""
        created = scheduler.create(self._draft(account_id), date(2024, 3, 15))

        assert created.next_run_date == date(2024, 4, 1)
        assert created.currency_code == "VND"
        assert storage.get_recurring(created.id) is not None

    def test_create_future_start(self, scheduler, account_id):
        """A future start date is the first run."""
        created = scheduler.create(
            self._draft(account_id, start_date=date(2024, 6, 1)), date(2024, 3, 15)
        )
        assert created.next_run_date == date(2024, 6, 1)

    def test_create_rejects_bad_anchor(self, scheduler, storage, account_id):
        """Out-of-range anchors are rejected before anything is stored."""
        with pytest.raises(InvalidRecurrenceConfig):
            scheduler.create(self._draft(account_id, day_of_month=32), date(2024, 1, 1))
        assert storage.list_recurring() == []

    def test_strict_create_requires_weekday(self, storage, account_id):
        """Strict mode rejects weekly definitions without day_of_week."""
        scheduler = RecurringTransactionScheduler(storage, validator=RecurringValidator(strict=True))
        draft = self._draft(account_id, frequency=Frequency.WEEKLY, day_of_month=None)

        with pytest.raises(InvalidRecurrenceConfig) as exc_info:
            scheduler.create(draft, date(2024, 1, 1))

        assert exc_info.value.issues[0].field == "day_of_week"

    def test_lenient_create_allows_missing_weekday(self, scheduler, account_id):
        """Lenient mode stores weekly definitions without day_of_week."""
        draft = self._draft(account_id, frequency=Frequency.WEEKLY, day_of_month=None)
        created = scheduler.create(draft, date(2024, 1, 3))
        assert created.next_run_date == date(2024, 1, 8)

    def test_create_is_audited(self, scheduler, audit_storage, account_id):
        created = scheduler.create(self._draft(account_id), date(2024, 1, 1))
        events = audit_storage.get_events_by_entity("recurring", created.id)
        assert events[0].event_type == AuditEventType.RECURRING_CREATED

    def test_update_amount_keeps_schedule(self, scheduler, account_id):
        """Non-schedule edits leave next_run_date alone."""
        created = scheduler.create(self._draft(account_id), date(2024, 3, 15))

        updated = scheduler.update(created, {"amount": 300_000}, date(2024, 3, 20))

        assert updated.amount == 300_000
        assert updated.next_run_date == date(2024, 4, 1)
        assert updated.version == created.version + 1

    def test_update_schedule_recomputes_next_run(self, scheduler, account_id):
        """Changing the anchor day moves next_run_date."""
        created = scheduler.create(self._draft(account_id), date(2024, 3, 15))

        updated = scheduler.update(created, {"day_of_month": 20}, date(2024, 3, 15))

        assert updated.next_run_date == date(2024, 3, 20)

    def test_update_rejects_protected_field(self, scheduler, account_id):
        created = scheduler.create(self._draft(account_id), date(2024, 3, 15))
        with pytest.raises(ValueError, match="next_run_date"):
            scheduler.update(created, {"next_run_date": date(2024, 3, 16)}, date(2024, 3, 15))

    def test_update_rejects_unknown_field(self, scheduler, account_id):
        created = scheduler.create(self._draft(account_id), date(2024, 3, 15))
        with pytest.raises(ValueError, match="colour"):
            scheduler.update(created, {"colour": "red"}, date(2024, 3, 15))

    def test_pause_then_resume_catches_up(self, scheduler, storage, account_id):
        """Plain resume leaves missed occurrences for the next tick."""
        recurring = weekly_monday(storage, account_id)
        paused = scheduler.pause(recurring)
        assert scheduler.tick(paused, date(2024, 1, 15)).reason == SkipReason.PAUSED

        resumed = scheduler.resume(paused)

        assert resumed.is_active
        assert resumed.next_run_date == date(2024, 1, 1)
        assert len(scheduler.tick(resumed, date(2024, 1, 15)).transactions) == 3

    def test_resume_skip_missed(self, scheduler, storage, account_id):
        """skip_missed fast-forwards past now without creating anything."""
        recurring = scheduler.pause(weekly_monday(storage, account_id))

        resumed = scheduler.resume(recurring, now=date(2024, 1, 17), skip_missed=True)

        assert resumed.next_run_date == date(2024, 1, 22)
        assert storage.list_transactions() == []

    def test_resume_skip_missed_needs_now(self, scheduler, storage, account_id):
        recurring = scheduler.pause(weekly_monday(storage, account_id))
        with pytest.raises(ValueError):
            scheduler.resume(recurring, skip_missed=True)


class TestUpcoming:
    """Tests for upcoming() and preview()."""

    def test_window_and_order(self, scheduler, storage, account_id):
        """Only active, not-ended definitions inside the window, soonest first."""
        later = weekly_monday(storage, account_id, name="Later", next_run_date=date(2024, 1, 22))
        soon = weekly_monday(storage, account_id, name="Soon", next_run_date=date(2024, 1, 8))
        weekly_monday(storage, account_id, name="Far", next_run_date=date(2024, 3, 4))
        weekly_monday(storage, account_id, name="Paused", is_active=False)
        weekly_monday(storage, account_id, name="Ended", end_date=date(2024, 1, 1))

        upcoming = scheduler.upcoming(date(2024, 1, 5), days=30)

        assert [r.id for r in upcoming] == [soon.id, later.id]

    def test_default_window_from_settings(self, scheduler, storage, account_id):
        weekly_monday(storage, account_id, next_run_date=date(2024, 1, 29))
        assert len(scheduler.upcoming(date(2024, 1, 1))) == 1
        assert scheduler.upcoming(date(2024, 1, 1), days=7) == []

    def test_preview_default_count(self, scheduler, storage, account_id):
        recurring = weekly_monday(storage, account_id)
        dates = scheduler.preview(recurring)
        assert len(dates) == 12
        assert dates[1] == date(2024, 1, 8)

    def test_zero_day_window(self, scheduler, storage, account_id):
        """A window of 0 days means due today, not the default window."""
        today = weekly_monday(storage, account_id, name="Today")
        weekly_monday(storage, account_id, name="Next week", next_run_date=date(2024, 1, 8))

        assert [r.id for r in scheduler.upcoming(date(2024, 1, 1), days=0)] == [today.id]

    def test_preview_zero_count(self, scheduler, storage, account_id):
        assert scheduler.preview(weekly_monday(storage, account_id), count=0) == []
