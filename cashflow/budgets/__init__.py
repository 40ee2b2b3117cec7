"""Budget status and renewal."""

from cashflow.budgets.aggregator import BudgetAggregator, period_bounds

__all__ = ["BudgetAggregator", "period_bounds"]
