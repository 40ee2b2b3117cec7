"""
In-Memory Storage Implementation

Used by tests and by the CLI when no database is configured.

Units of work snapshot every table on entry and restore the snapshot if
the block raises. A re-entrant lock serializes units of work, which gives
the per-record serialization the scheduler relies on.
"""

import threading
from contextlib import contextmanager
from datetime import date
from typing import Iterator, Optional
from uuid import UUID

from cashflow.models.finance import (
    Budget,
    Category,
    RecurringTransaction,
    Transaction,
    TransactionType,
)
from cashflow.models.audit import AuditEvent
from cashflow.services.storage.interface import (
    AuditStorageInterface,
    ConcurrencyError,
    DuplicateError,
    FinanceStorageInterface,
    NotFoundError,
)


class InMemoryFinanceStorage(FinanceStorageInterface):
    """
    Dictionary-backed finance storage.

    Stored records are copies, so callers mutating a returned model
    never change what is stored.
    """

    def __init__(self):
        self._recurring: dict[UUID, RecurringTransaction] = {}
        self._transactions: dict[UUID, Transaction] = {}
        self._categories: dict[UUID, Category] = {}
        self._budgets: dict[UUID, Budget] = {}
        self._lock = threading.RLock()
        self._depth = 0

    def _tables(self) -> tuple[dict, ...]:
        return (self._recurring, self._transactions, self._categories, self._budgets)

    @contextmanager
    def unit_of_work(self) -> Iterator[None]:
        with self._lock:
            outermost = self._depth == 0
            snapshot = [dict(table) for table in self._tables()] if outermost else None
            self._depth += 1
            try:
                yield
            except BaseException:
                if outermost:
                    for table, saved in zip(self._tables(), snapshot):
                        table.clear()
                        table.update(saved)
                raise
            finally:
                self._depth -= 1

    # -- Recurring definitions ------------------------------------------------

    def add_recurring(self, recurring: RecurringTransaction) -> RecurringTransaction:
        with self._lock:
            if recurring.id in self._recurring:
                raise DuplicateError(f"Recurring transaction already exists: {recurring.id}")
            self._recurring[recurring.id] = recurring.model_copy(deep=True)
            return recurring.model_copy(deep=True)

    def get_recurring(self, recurring_id: UUID) -> Optional[RecurringTransaction]:
        with self._lock:
            stored = self._recurring.get(recurring_id)
            return stored.model_copy(deep=True) if stored else None

    def update_recurring(self, recurring: RecurringTransaction) -> RecurringTransaction:
        with self._lock:
            stored = self._recurring.get(recurring.id)
            if stored is None:
                raise NotFoundError(f"Recurring transaction not found: {recurring.id}")
            if stored.version != recurring.version:
                raise ConcurrencyError(recurring.id, recurring.version, stored.version)
            updated = recurring.model_copy(update={"version": recurring.version + 1}, deep=True)
            self._recurring[recurring.id] = updated
            return updated.model_copy(deep=True)

    def list_recurring(self, active_only: bool = False) -> list[RecurringTransaction]:
        with self._lock:
            rows = [
                r.model_copy(deep=True)
                for r in self._recurring.values()
                if r.is_active or not active_only
            ]
        return sorted(rows, key=lambda r: (r.next_run_date, r.name))

    # -- Transactions ---------------------------------------------------------

    def add_transaction(self, transaction: Transaction) -> Transaction:
        with self._lock:
            if transaction.id in self._transactions:
                raise DuplicateError(f"Transaction already exists: {transaction.id}")
            self._transactions[transaction.id] = transaction.model_copy(deep=True)
            return transaction.model_copy(deep=True)

    def list_transactions(
        self,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        category_id: Optional[UUID] = None,
        transaction_type: Optional[TransactionType] = None,
        recurring_transaction_id: Optional[UUID] = None,
    ) -> list[Transaction]:
        with self._lock:
            rows = list(self._transactions.values())

        def matches(tx: Transaction) -> bool:
            if date_from and tx.transaction_date < date_from:
                return False
            if date_to and tx.transaction_date > date_to:
                return False
            if category_id and tx.category_id != category_id:
                return False
            if transaction_type and tx.type != transaction_type:
                return False
            if recurring_transaction_id and tx.recurring_transaction_id != recurring_transaction_id:
                return False
            return True

        return sorted(
            (tx.model_copy(deep=True) for tx in rows if matches(tx)),
            key=lambda tx: tx.transaction_date,
        )

    # -- Categories -----------------------------------------------------------

    def add_category(self, category: Category) -> Category:
        with self._lock:
            if category.id in self._categories:
                raise DuplicateError(f"Category already exists: {category.id}")
            self._categories[category.id] = category.model_copy(deep=True)
            return category

    def get_category(self, category_id: UUID) -> Optional[Category]:
        with self._lock:
            stored = self._categories.get(category_id)
            return stored.model_copy(deep=True) if stored else None

    def list_categories(self) -> list[Category]:
        with self._lock:
            return [c.model_copy(deep=True) for c in self._categories.values()]

    # -- Budgets --------------------------------------------------------------

    def add_budget(self, budget: Budget) -> Budget:
        with self._lock:
            if budget.id in self._budgets:
                raise DuplicateError(f"Budget already exists: {budget.id}")
            self._budgets[budget.id] = budget.model_copy(deep=True)
            return budget

    def update_budget(self, budget: Budget) -> Budget:
        with self._lock:
            if budget.id not in self._budgets:
                raise NotFoundError(f"Budget not found: {budget.id}")
            self._budgets[budget.id] = budget.model_copy(deep=True)
            return budget

    def list_budgets(self, active_only: bool = False) -> list[Budget]:
        with self._lock:
            return [
                b.model_copy(deep=True)
                for b in self._budgets.values()
                if b.is_active or not active_only
            ]


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of audit events."""

    def __init__(self):
        self._events: list[AuditEvent] = []
        self._lock = threading.Lock()

    def append_event(self, event: AuditEvent) -> bool:
        with self._lock:
            self._events.append(event)
        return True

    def get_events_by_correlation_id(self, correlation_id: UUID) -> list[AuditEvent]:
        return [e for e in self._events if e.correlation_id == correlation_id]

    def get_events_by_entity(self, entity_type: str, entity_id: UUID) -> list[AuditEvent]:
        return [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]

    def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        return list(reversed(self._events))[:limit]
