"""
Budget Aggregation

DESIGN DECISION: Budget status is DERIVED, never stored.
Spent is recomputed from the ledger every time it is asked for, so a
transaction created by the scheduler shows up in every budget covering
its date without any bookkeeping.

Aggregation is deterministic:
- Only expense transactions count
- Dates are compared inclusively against the budget window
- A budget with a category only sees that category
- Amounts are summed as integer minor units in the budget's currency
- Expenses in another currency are left out and logged, never converted
"""

import calendar
from datetime import date, timedelta
from typing import Iterable, Optional

import structlog

from cashflow.audit import AuditLogger
from cashflow.config import get_settings
from cashflow.models.finance import (
    Budget,
    BudgetAlert,
    BudgetHealth,
    BudgetStatus,
    Money,
    PeriodType,
    Transaction,
    TransactionType,
)
from cashflow.services.storage import FinanceStorageInterface


logger = structlog.get_logger(__name__)


def period_bounds(period_type: PeriodType, today: date) -> tuple[date, date]:
    """
    The calendar period of the given type containing today.

    Weeks run Monday to Sunday. Custom periods have no natural length
    and fall back to the current month.
    """
    if period_type == PeriodType.WEEKLY:
        start = today - timedelta(days=today.weekday())
        return start, start + timedelta(days=6)

    if period_type == PeriodType.QUARTERLY:
        first_month = 3 * ((today.month - 1) // 3) + 1
        last_month = first_month + 2
        return (
            date(today.year, first_month, 1),
            date(today.year, last_month, calendar.monthrange(today.year, last_month)[1]),
        )

    if period_type == PeriodType.YEARLY:
        return date(today.year, 1, 1), date(today.year, 12, 31)

    # monthly, custom
    return (
        date(today.year, today.month, 1),
        date(today.year, today.month, calendar.monthrange(today.year, today.month)[1]),
    )


class BudgetAggregator:
    """
    Computes spending status for budgets and renews expired ones.

    Usage:
        aggregator = BudgetAggregator()
        status = aggregator.compute_status(budget, transactions)
    """

    def __init__(
        self,
        warning_percent: Optional[float] = None,
        critical_percent: Optional[float] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        settings = get_settings().app
        self._warning_percent = (
            settings.budget_warning_percent if warning_percent is None else warning_percent
        )
        self._critical_percent = (
            settings.budget_critical_percent if critical_percent is None else critical_percent
        )
        self._audit_logger = audit_logger

    def _counts_toward(self, budget: Budget, transaction: Transaction) -> bool:
        if transaction.type != TransactionType.EXPENSE:
            return False
        if not budget.covers(transaction.transaction_date):
            return False
        if budget.category_id is not None and transaction.category_id != budget.category_id:
            return False
        return True

    def spent(self, budget: Budget, transactions: Iterable[Transaction]) -> Money:
        """Sum of matching expenses in the budget's currency."""
        total = Money.zero(budget.currency_code)
        for transaction in transactions:
            if not self._counts_toward(budget, transaction):
                continue
            if transaction.currency_code != budget.currency_code:
                logger.warning(
                    "budget_currency_skipped",
                    budget_id=str(budget.id),
                    transaction_id=str(transaction.id),
                    budget_currency=budget.currency_code,
                    transaction_currency=transaction.currency_code,
                )
                continue
            total = total.add(transaction.money)
        return total

    def compute_status(
        self,
        budget: Budget,
        transactions: Iterable[Transaction],
    ) -> BudgetStatus:
        """
        Spending position of a budget.

        percent is capped at 100; alerts and health use the uncapped ratio.
        The rollover flag plays no part here.
        """
        spent = self.spent(budget, transactions)
        remaining = budget.allocated_money.subtract(spent)

        if budget.amount > 0:
            ratio = 100.0 * spent.amount / budget.amount
        else:
            # Any spending against a zero target is fully over
            ratio = 100.0 if spent.amount > 0 else 0.0

        alert = None
        health = BudgetHealth.ON_TRACK
        if ratio >= self._critical_percent:
            alert = BudgetAlert.CRITICAL
            health = BudgetHealth.OVER_BUDGET
        elif ratio >= self._warning_percent:
            alert = BudgetAlert.WARNING
            health = BudgetHealth.WARNING

        return BudgetStatus(
            budget_id=budget.id,
            currency_code=budget.currency_code,
            amount=budget.amount,
            spent=spent.amount,
            remaining=remaining.amount,
            percent=round(min(100.0, ratio), 2) if budget.amount > 0 else 0.0,
            is_over_budget=spent.amount > budget.amount,
            alert=alert,
            health=health,
        )

    def rollover_carry(self, budget: Budget, status: BudgetStatus) -> int:
        """Amount carried into the next period. Unspent, never negative."""
        return max(status.remaining, 0)

    def renew_expired(
        self,
        budgets: Iterable[Budget],
        transactions: list[Transaction],
        today: date,
    ) -> list[Budget]:
        """
        Move expired budgets to the period containing today.

        Only active, non-custom budgets whose window ended before today
        are renewed. Returns the renewed copies; the inputs are untouched.
        """
        renewed = []

        for budget in budgets:
            if not budget.is_active or budget.period_type == PeriodType.CUSTOM:
                continue
            if budget.end_date >= today:
                continue

            start, end = period_bounds(budget.period_type, today)
            carried = 0
            if budget.rollover:
                carried = self.rollover_carry(budget, self.compute_status(budget, transactions))

            renewed.append(budget.model_copy(update={
                "start_date": start,
                "end_date": end,
                "amount": budget.amount + carried,
            }))
            logger.info(
                "budget_renewed",
                budget_id=str(budget.id),
                start_date=start.isoformat(),
                end_date=end.isoformat(),
                carried=carried,
            )
            if self._audit_logger:
                self._audit_logger.log_budget_renewed(budget.id, start, end, carried)

        return renewed

    # -------------------------------------------------------------------------
    # Storage-backed helpers
    # -------------------------------------------------------------------------

    def statuses(
        self,
        storage: FinanceStorageInterface,
    ) -> list[tuple[Budget, BudgetStatus]]:
        """Status of every active budget, reading the ledger once."""
        budgets = storage.list_budgets(active_only=True)
        if not budgets:
            return []

        transactions = storage.list_transactions(
            date_from=min(b.start_date for b in budgets),
            date_to=max(b.end_date for b in budgets),
            transaction_type=TransactionType.EXPENSE,
        )
        return [(budget, self.compute_status(budget, transactions)) for budget in budgets]

    def renew_stored(self, storage: FinanceStorageInterface, today: date) -> list[Budget]:
        """Renew expired budgets in storage as one unit of work."""
        budgets = storage.list_budgets(active_only=True)
        expired = [b for b in budgets if b.end_date < today]
        if not expired:
            return []

        transactions = storage.list_transactions(
            date_from=min(b.start_date for b in expired),
            date_to=max(b.end_date for b in expired),
            transaction_type=TransactionType.EXPENSE,
        )

        renewed = self.renew_expired(expired, transactions, today)
        with storage.unit_of_work():
            return [storage.update_budget(budget) for budget in renewed]
