"""
Data Models Package

This package contains all Pydantic models used in Cashflow.
All data flowing through the system must conform to these schemas.
"""

from cashflow.models.finance import (
    Budget,
    BudgetAlert,
    BudgetHealth,
    BudgetStatus,
    Category,
    CategoryType,
    CurrencyMismatchError,
    Frequency,
    Money,
    MonthlyProjection,
    OutcomeStatus,
    PeriodType,
    RecurringTransaction,
    RecurringTransactionDraft,
    RecurringType,
    RunSummary,
    SchedulerOutcome,
    SkipReason,
    Transaction,
    TransactionType,
)
from cashflow.models.validation import ValidationIssue, ValidationResult
from cashflow.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Finance models
    "Budget",
    "BudgetAlert",
    "BudgetHealth",
    "BudgetStatus",
    "Category",
    "CategoryType",
    "CurrencyMismatchError",
    "Frequency",
    "Money",
    "MonthlyProjection",
    "OutcomeStatus",
    "PeriodType",
    "RecurringTransaction",
    "RecurringTransactionDraft",
    "RecurringType",
    "RunSummary",
    "SchedulerOutcome",
    "SkipReason",
    "Transaction",
    "TransactionType",
    # Validation models
    "ValidationIssue",
    "ValidationResult",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
