"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Keep the scheduling and aggregation logic free of persistence code
2. Use in-memory storage for testing
3. Swap SQLite for a server database later
4. Make the create-transaction + advance-schedule pairing atomic in one place

The interface is intentionally narrow - we're not building a full ORM.
Just the reads and writes the scheduler and aggregators need.

All operations are synchronous: the core is driven by a cron-style batch
and never suspends.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from datetime import date
from typing import Optional
from uuid import UUID

from cashflow.models.finance import (
    Budget,
    Category,
    RecurringTransaction,
    Transaction,
    TransactionType,
)
from cashflow.models.audit import AuditEvent


class FinanceStorageInterface(ABC):
    """
    Abstract interface for finance storage operations.

    Any storage implementation (in-memory, SQLite, etc.)
    must implement these methods.
    """

    @abstractmethod
    def unit_of_work(self) -> AbstractContextManager[None]:
        """
        Group writes so they commit together or not at all.

        Usage:
            with storage.unit_of_work():
                storage.add_transaction(tx)
                storage.update_recurring(recurring)

        If the block raises, every write made inside it is discarded.
        Writes made outside a unit of work commit immediately.
        """
        pass

    # -- Recurring definitions ------------------------------------------------

    @abstractmethod
    def add_recurring(self, recurring: RecurringTransaction) -> RecurringTransaction:
        """
        Insert a new recurring definition.

        Raises:
            DuplicateError: If the id already exists
        """
        pass

    @abstractmethod
    def get_recurring(self, recurring_id: UUID) -> Optional[RecurringTransaction]:
        """Retrieve a definition by id, or None."""
        pass

    @abstractmethod
    def update_recurring(self, recurring: RecurringTransaction) -> RecurringTransaction:
        """
        Replace a stored definition.

        The write only succeeds if the stored version equals
        recurring.version. The returned copy carries the bumped version.

        Raises:
            NotFoundError: If the definition doesn't exist
            ConcurrencyError: If someone else updated it first
        """
        pass

    @abstractmethod
    def list_recurring(self, active_only: bool = False) -> list[RecurringTransaction]:
        """List definitions ordered by next_run_date."""
        pass

    # -- Transactions ---------------------------------------------------------

    @abstractmethod
    def add_transaction(self, transaction: Transaction) -> Transaction:
        """
        Insert a transaction.

        Raises:
            DuplicateError: If the id already exists
        """
        pass

    @abstractmethod
    def list_transactions(
        self,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        category_id: Optional[UUID] = None,
        transaction_type: Optional[TransactionType] = None,
        recurring_transaction_id: Optional[UUID] = None,
    ) -> list[Transaction]:
        """
        List transactions matching all given filters.

        Date bounds are inclusive. Results are ordered by transaction_date.
        """
        pass

    # -- Categories -----------------------------------------------------------

    @abstractmethod
    def add_category(self, category: Category) -> Category:
        pass

    @abstractmethod
    def get_category(self, category_id: UUID) -> Optional[Category]:
        pass

    @abstractmethod
    def list_categories(self) -> list[Category]:
        pass

    # -- Budgets --------------------------------------------------------------

    @abstractmethod
    def add_budget(self, budget: Budget) -> Budget:
        pass

    @abstractmethod
    def update_budget(self, budget: Budget) -> Budget:
        """
        Replace a stored budget.

        Raises:
            NotFoundError: If the budget doesn't exist
        """
        pass

    @abstractmethod
    def list_budgets(self, active_only: bool = False) -> list[Budget]:
        pass

    def categories_by_id(self) -> dict[UUID, Category]:
        """Convenience lookup used by the projection calculator."""
        return {category.id: category for category in self.list_categories()}


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    def get_events_by_correlation_id(self, correlation_id: UUID) -> list[AuditEvent]:
        """Get all events of one scheduler run, in chronological order."""
        pass

    @abstractmethod
    def get_events_by_entity(self, entity_type: str, entity_id: UUID) -> list[AuditEvent]:
        """Get all events for a specific entity, in chronological order."""
        pass

    @abstractmethod
    def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        """Get the most recent audit events (newest first)."""
        pass


class StorageError(Exception):
    """
    Base exception for storage operations.

    Any read or write failure in the data store surfaces as a subclass
    of this. Callers decide whether to retry; the core never does.
    """
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConcurrencyError(StorageError):
    """The record changed since it was read (stale version)."""

    def __init__(self, entity_id: UUID, expected: int, actual: int):
        self.entity_id = entity_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Record {entity_id} was modified concurrently "
            f"(expected version {expected}, found {actual})"
        )


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
