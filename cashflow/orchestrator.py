"""
Main Orchestrator for Cashflow

Ties the storage backend, audit logger, scheduler, budget aggregator and
projection calculator together and defines the flows the command line
(or any other external trigger) drives:
1. Daily run (tick every active definition, then renew expired budgets)
2. Upcoming occurrences
3. Monthly projection
4. Budget report

DESIGN DECISION: The orchestrator owns "now".
Core components take the date as an argument and never read the clock;
this is the one place that does.
"""

from datetime import date
from typing import Mapping, Optional

import structlog

from cashflow.audit import AuditLogger
from cashflow.budgets import BudgetAggregator
from cashflow.config import get_settings
from cashflow.models.finance import (
    Budget,
    BudgetStatus,
    MonthlyProjection,
    RecurringTransaction,
    RunSummary,
)
from cashflow.projections import ProjectionCalculator
from cashflow.scheduling.scheduler import RecurringTransactionScheduler
from cashflow.services.storage import (
    AuditStorageInterface,
    FinanceStorageInterface,
    InMemoryAuditStorage,
    InMemoryFinanceStorage,
    SQLiteAuditStorage,
    SQLiteDatabase,
    SQLiteFinanceStorage,
)


logger = structlog.get_logger(__name__)


class CashflowApp:
    """
    Facade over the core components.

    Every flow accepts an explicit date; None means today.
    """

    def __init__(
        self,
        storage: FinanceStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        database: Optional[SQLiteDatabase] = None,
    ):
        self.storage = storage
        self.audit_logger = audit_logger or AuditLogger()
        self.scheduler = RecurringTransactionScheduler(storage, self.audit_logger)
        self.aggregator = BudgetAggregator(audit_logger=self.audit_logger)
        self.calculator = ProjectionCalculator()
        self._database = database

    def run_daily(self, today: Optional[date] = None) -> RunSummary:
        """Materialize due occurrences, then roll budgets into the current period."""
        today = today or date.today()
        summary = self.scheduler.run_due(today)
        renewed = self.aggregator.renew_stored(self.storage, today)
        if renewed:
            logger.info("budgets_renewed", count=len(renewed), run_date=today.isoformat())
        return summary

    def upcoming(
        self,
        today: Optional[date] = None,
        days: Optional[int] = None,
    ) -> list[RecurringTransaction]:
        return self.scheduler.upcoming(today or date.today(), days)

    def projection(
        self,
        currency_code: Optional[str] = None,
        rates: Optional[Mapping[str, float]] = None,
    ) -> MonthlyProjection:
        return self.calculator.project(
            self.storage.list_recurring(active_only=True),
            self.storage.categories_by_id(),
            currency_code=currency_code,
            rates=rates,
        )

    def budget_report(self) -> list[tuple[Budget, BudgetStatus]]:
        return self.aggregator.statuses(self.storage)

    def close(self) -> None:
        if self._database is not None:
            self._database.close()


def create_app_components(
    backend: Optional[str] = None,
    sqlite_path: Optional[str] = None,
) -> CashflowApp:
    """
    Factory function to create all application components.

    Args:
        backend: "memory" or "sqlite"; defaults to the storage setting
        sqlite_path: Database file, overriding the storage setting

    Returns:
        A CashflowApp wired to the chosen backend
    """
    settings = get_settings().storage
    backend = backend or settings.backend

    database = None
    audit_storage: AuditStorageInterface
    if backend == "sqlite":
        database = SQLiteDatabase(sqlite_path or settings.sqlite_path)
        storage: FinanceStorageInterface = SQLiteFinanceStorage(database)
        audit_storage = SQLiteAuditStorage(database)
    elif backend == "memory":
        storage = InMemoryFinanceStorage()
        audit_storage = InMemoryAuditStorage()
    else:
        raise ValueError(f"Unknown storage backend: {backend}")

    logger.debug("components_created", backend=backend)
    return CashflowApp(storage, AuditLogger(audit_storage), database=database)
