"""
Monthly Projection

Normalizes every active recurring definition to a monthly equivalent and
sums income, expense and passive income.

DESIGN DECISION: Arithmetic is done in Decimal and rounded half-up to
integer minor units only once, at the end. Rounding each definition
separately would let a long list of small weekly items drift.

Monthly factors (configurable):
    daily   x 30
    weekly  x 4.345
    monthly x 1
    yearly  / 12
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Mapping, Optional, Union
from uuid import UUID

import structlog

from cashflow.config import get_settings
from cashflow.models.finance import (
    Category,
    Frequency,
    MonthlyProjection,
    RecurringTransaction,
    RecurringType,
)


logger = structlog.get_logger(__name__)

YEARLY_FACTORS = {
    Frequency.DAILY: Decimal(365),
    Frequency.WEEKLY: Decimal(52),
    Frequency.MONTHLY: Decimal(12),
    Frequency.YEARLY: Decimal(1),
}

Rate = Union[Decimal, float, int, str]


def to_minor_units(value: Decimal) -> int:
    """Round half-up to a whole number of minor units."""
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))


class ProjectionCalculator:
    """
    Computes the monthly-equivalent cash flow of recurring definitions.

    Usage:
        calculator = ProjectionCalculator()
        projection = calculator.project(recurrings, categories, "VND")
    """

    def __init__(
        self,
        daily_multiplier: Optional[float] = None,
        weekly_multiplier: Optional[float] = None,
    ):
        settings = get_settings().app
        daily = settings.daily_multiplier if daily_multiplier is None else daily_multiplier
        weekly = settings.weekly_multiplier if weekly_multiplier is None else weekly_multiplier
        self._default_currency = settings.default_currency

        # (multiplier, divisor); str() keeps 4.345 exact
        self._monthly_factors = {
            Frequency.DAILY: (Decimal(str(daily)), Decimal(1)),
            Frequency.WEEKLY: (Decimal(str(weekly)), Decimal(1)),
            Frequency.MONTHLY: (Decimal(1), Decimal(1)),
            Frequency.YEARLY: (Decimal(1), Decimal(12)),
        }

    def _monthly_decimal(self, recurring: RecurringTransaction) -> Decimal:
        multiplier, divisor = self._monthly_factors[recurring.frequency]
        return Decimal(recurring.amount) * multiplier / divisor

    def monthly_amount(self, recurring: RecurringTransaction) -> int:
        """Monthly equivalent of one definition, in its own currency."""
        return to_minor_units(self._monthly_decimal(recurring))

    def yearly_amount(self, recurring: RecurringTransaction) -> int:
        """Yearly equivalent of one definition, in its own currency."""
        return to_minor_units(Decimal(recurring.amount) * YEARLY_FACTORS[recurring.frequency])

    def project(
        self,
        recurrings: Iterable[RecurringTransaction],
        categories: Union[Mapping[UUID, Category], Iterable[Category]],
        currency_code: Optional[str] = None,
        rates: Optional[Mapping[str, Rate]] = None,
    ) -> MonthlyProjection:
        """
        Sum active definitions into one monthly projection.

        Args:
            recurrings: Definitions to include; inactive ones are ignored
            categories: Categories by id (or a plain list), for the passive flag
            currency_code: Target currency, defaults to the configured one
            rates: Units of target currency per unit of each source currency.
                   A source currency without a rate is summed unconverted.
        """
        target = (currency_code or self._default_currency).upper()
        if not isinstance(categories, Mapping):
            categories = {category.id: category for category in categories}
        rates = {code.upper(): Decimal(str(rate)) for code, rate in (rates or {}).items()}

        income = Decimal(0)
        expense = Decimal(0)
        passive = Decimal(0)
        unconverted: list[str] = []

        for recurring in recurrings:
            if not recurring.is_active:
                continue

            amount = self._monthly_decimal(recurring)

            if recurring.currency_code != target:
                rate = rates.get(recurring.currency_code)
                if rate is None:
                    if recurring.currency_code not in unconverted:
                        unconverted.append(recurring.currency_code)
                        logger.warning(
                            "missing_exchange_rate",
                            source=recurring.currency_code,
                            target=target,
                        )
                else:
                    amount *= rate

            if recurring.transaction_type == RecurringType.INCOME:
                income += amount
                category = categories.get(recurring.category_id) if recurring.category_id else None
                if category is not None and category.is_passive:
                    passive += amount
            else:
                expense += amount

        monthly_income = to_minor_units(income)
        monthly_expense = to_minor_units(expense)

        return MonthlyProjection(
            currency_code=target,
            monthly_income=monthly_income,
            monthly_expense=monthly_expense,
            monthly_passive_income=to_minor_units(passive),
            monthly_net=monthly_income - monthly_expense,
            passive_coverage=to_minor_units(passive * 100 / expense) if expense > 0 else 0,
            unconverted_currencies=unconverted,
        )
