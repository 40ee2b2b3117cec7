"""
Core Data Models for Cashflow

These models define the strict schemas for all data flowing through the
scheduling and aggregation core. They are designed to:
1. Enforce type safety at runtime
2. Provide clear validation error messages
3. Be serializable for storage and logging
4. Keep amounts as integer minor units (no floating point money)

DESIGN DECISION: Direction of money is carried by the transaction type.
Stored amounts are never negative. Only derived values (remaining,
net) may go below zero.
"""

from datetime import date
from enum import Enum
from typing import Annotated, Any, Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    model_validator,
)


def _upper(value: Any) -> Any:
    return value.strip().upper() if isinstance(value, str) else value


CurrencyCode = Annotated[
    str,
    BeforeValidator(_upper),
    Field(pattern=r"^[A-Z]{3}$", description="ISO 4217 currency code"),
]


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class TransactionType(str, Enum):
    """Direction of a ledger transaction."""
    INCOME = "income"
    EXPENSE = "expense"
    TRANSFER = "transfer"


class RecurringType(str, Enum):
    """Recurring definitions only ever produce income or expense."""
    INCOME = "income"
    EXPENSE = "expense"


class Frequency(str, Enum):
    """How often a recurring definition repeats."""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class PeriodType(str, Enum):
    """Budget window length."""
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"
    CUSTOM = "custom"  # Never renewed automatically


class CategoryType(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"
    BOTH = "both"


class BudgetAlert(str, Enum):
    """Alert level raised by a budget's spending."""
    WARNING = "warning"
    CRITICAL = "critical"


class BudgetHealth(str, Enum):
    ON_TRACK = "on_track"
    WARNING = "warning"
    OVER_BUDGET = "over_budget"


class OutcomeStatus(str, Enum):
    """
    Result of ticking one recurring definition.

    Skipped is a normal outcome, not an error.
    """
    CREATED = "created"   # One or more transactions were materialized
    DUE = "due"           # Due, but waiting for the user to create it
    SKIPPED = "skipped"


class SkipReason(str, Enum):
    PAUSED = "paused"
    ENDED = "ended"
    NOT_DUE = "not_due"


# =============================================================================
# MONEY
# =============================================================================

class CurrencyMismatchError(ValueError):
    """Arithmetic between amounts in different currencies."""

    def __init__(self, left: str, right: str):
        self.left = left
        self.right = right
        super().__init__(f"Cannot combine {left} with {right}")


class Money(BaseModel):
    """
    An integer amount of minor units tagged with its currency.

    For VND the minor unit is the whole dong, for USD it is the cent.
    """
    model_config = ConfigDict(frozen=True)

    amount: int = Field(
        ...,
        description="Amount in minor units (may be negative for differences)"
    )
    currency_code: CurrencyCode

    @classmethod
    def zero(cls, currency_code: str) -> "Money":
        return cls(amount=0, currency_code=currency_code)

    def _check(self, other: "Money") -> None:
        if other.currency_code != self.currency_code:
            raise CurrencyMismatchError(self.currency_code, other.currency_code)

    def add(self, other: "Money") -> "Money":
        self._check(other)
        return Money(amount=self.amount + other.amount, currency_code=self.currency_code)

    def subtract(self, other: "Money") -> "Money":
        self._check(other)
        return Money(amount=self.amount - other.amount, currency_code=self.currency_code)

    @property
    def is_negative(self) -> bool:
        return self.amount < 0

    def format(self) -> str:
        """Render as e.g. '1,000,000 VND' or '-200,000 VND'."""
        return f"{self.amount:,} {self.currency_code}"


# =============================================================================
# LEDGER RECORDS
# =============================================================================

class Category(BaseModel):
    """
    Read-only view of a category.

    Only the fields the core needs: type filtering and the passive flag
    that drives the coverage ratio.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    name: str = Field(..., min_length=1, max_length=100)
    type: CategoryType = CategoryType.EXPENSE
    is_passive: bool = Field(
        default=False,
        description="Income that does not require ongoing active work"
    )
    is_active: bool = True


class RecurringTransactionDraft(BaseModel):
    """
    User input for a new recurring definition.

    Anchor fields are deliberately unconstrained here so that the
    validator can report every problem at once instead of failing on
    the first out-of-range value.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    account_id: UUID
    category_id: Optional[UUID] = None
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=500)
    transaction_type: RecurringType
    amount: int
    currency_code: CurrencyCode
    frequency: Frequency
    day_of_week: Optional[int] = None
    day_of_month: Optional[int] = None
    month_of_year: Optional[int] = None
    start_date: date
    end_date: Optional[date] = None
    is_active: bool = True
    auto_create: bool = True


class RecurringTransaction(BaseModel):
    """
    A persisted recurring income/expense definition.

    next_run_date is the date of the next occurrence that has not been
    materialized yet. It only moves forward when an occurrence is created
    or when the schedule is edited.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    # Identity
    id: UUID = Field(default_factory=uuid4)
    account_id: UUID
    category_id: Optional[UUID] = None

    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=500)
    transaction_type: RecurringType
    amount: int = Field(..., gt=0, description="Amount in minor units")
    currency_code: CurrencyCode

    # Schedule
    frequency: Frequency
    day_of_week: Optional[int] = Field(
        default=None, ge=0, le=6, description="0=Sunday .. 6=Saturday (weekly)"
    )
    day_of_month: Optional[int] = Field(
        default=None, ge=1, le=31, description="Clamped to short months"
    )
    month_of_year: Optional[int] = Field(default=None, ge=1, le=12)
    start_date: date
    end_date: Optional[date] = None
    next_run_date: date
    last_run_date: Optional[date] = None

    is_active: bool = True
    auto_create: bool = Field(
        default=True,
        description="Create transactions automatically, or only report them as due"
    )

    # Optimistic concurrency counter, bumped by storage on every update
    version: int = Field(default=0, ge=0)

    @model_validator(mode='after')
    def validate_dates(self) -> 'RecurringTransaction':
        if self.end_date and self.end_date < self.start_date:
            raise ValueError("End date cannot be before start date")
        if self.next_run_date < self.start_date:
            raise ValueError("Next run date cannot be before start date")
        return self

    def has_ended(self, on: date) -> bool:
        return self.end_date is not None and on > self.end_date


class Transaction(BaseModel):
    """A single ledger entry."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    account_id: UUID
    category_id: Optional[UUID] = None
    # Ownership link back to the definition that produced it
    recurring_transaction_id: Optional[UUID] = None

    type: TransactionType
    amount: int = Field(..., ge=0, description="Amount in minor units, never negative")
    currency_code: CurrencyCode
    transaction_date: date
    description: Optional[str] = Field(default=None, max_length=500)
    notes: Optional[str] = Field(default=None, max_length=1000)

    @property
    def money(self) -> Money:
        return Money(amount=self.amount, currency_code=self.currency_code)


class Budget(BaseModel):
    """A spending target over a date window."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    name: str = Field(..., min_length=1, max_length=200)
    amount: int = Field(..., ge=0, description="Target in minor units")
    currency_code: CurrencyCode
    period_type: PeriodType = PeriodType.MONTHLY
    start_date: date
    end_date: date
    category_id: Optional[UUID] = None
    rollover: bool = Field(
        default=False,
        description="Carry unspent amount into the next period on renewal"
    )
    is_active: bool = True

    @model_validator(mode='after')
    def validate_window(self) -> 'Budget':
        if self.end_date < self.start_date:
            raise ValueError("Budget end date cannot be before start date")
        return self

    def covers(self, on: date) -> bool:
        return self.start_date <= on <= self.end_date

    @property
    def allocated_money(self) -> Money:
        return Money(amount=self.amount, currency_code=self.currency_code)


# =============================================================================
# DERIVED VALUES
# =============================================================================

class BudgetStatus(BaseModel):
    """
    Spending position of one budget.

    percent is capped at 100 for display. spent is never capped, so
    over-budget detection always compares spent against the target.
    """

    budget_id: UUID
    currency_code: CurrencyCode
    amount: int
    spent: int = Field(..., ge=0)
    remaining: int
    percent: float = Field(..., ge=0.0, le=100.0)
    is_over_budget: bool
    alert: Optional[BudgetAlert] = None
    health: BudgetHealth = BudgetHealth.ON_TRACK

    @property
    def spent_money(self) -> Money:
        return Money(amount=self.spent, currency_code=self.currency_code)

    @property
    def remaining_money(self) -> Money:
        return Money(amount=self.remaining, currency_code=self.currency_code)


class MonthlyProjection(BaseModel):
    """Monthly-equivalent view of all active recurring definitions."""

    currency_code: CurrencyCode
    monthly_income: int = 0
    monthly_expense: int = 0
    monthly_passive_income: int = 0
    monthly_net: int = 0
    passive_coverage: int = Field(
        default=0,
        ge=0,
        description="Percent of monthly expense covered by passive income"
    )
    unconverted_currencies: list[str] = Field(
        default_factory=list,
        description="Currencies summed without a conversion rate"
    )


class SchedulerOutcome(BaseModel):
    """What happened when one recurring definition was ticked."""

    status: OutcomeStatus
    reason: Optional[SkipReason] = None
    recurring: RecurringTransaction = Field(
        ...,
        description="Definition state after the tick"
    )
    transactions: list[Transaction] = Field(default_factory=list)

    @classmethod
    def skipped(cls, recurring: RecurringTransaction, reason: SkipReason) -> "SchedulerOutcome":
        return cls(status=OutcomeStatus.SKIPPED, reason=reason, recurring=recurring)

    @classmethod
    def due(cls, recurring: RecurringTransaction) -> "SchedulerOutcome":
        return cls(status=OutcomeStatus.DUE, recurring=recurring)

    @classmethod
    def created(
        cls,
        recurring: RecurringTransaction,
        transactions: list[Transaction],
    ) -> "SchedulerOutcome":
        return cls(
            status=OutcomeStatus.CREATED,
            recurring=recurring,
            transactions=transactions,
        )

    @property
    def is_skipped(self) -> bool:
        return self.status == OutcomeStatus.SKIPPED


class RunSummary(BaseModel):
    """Result of one batch pass over all active recurring definitions."""

    correlation_id: UUID
    run_date: date
    processed: int = 0
    transactions_created: int = 0
    due: list[UUID] = Field(
        default_factory=list,
        description="Definitions waiting for manual creation"
    )
    skipped: int = 0
    errors: dict[str, str] = Field(
        default_factory=dict,
        description="Failure message by recurring definition id"
    )

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)
