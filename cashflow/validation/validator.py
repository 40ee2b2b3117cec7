"""
Recurring Definition Validation

DESIGN DECISION: Schedules are checked when a definition is created or
edited, never at tick time. A definition that reaches the scheduler is
already known to produce a sane series of dates, so a batch run can't
end up with a half-advanced schedule because of bad input.

Checks, in order:
- Amount and date window
- Anchor ranges (day_of_week 0-6, day_of_month 1-31, month_of_year 1-12)
- Anchors the frequency needs (error in strict mode, warning otherwise)
- Anchors the frequency ignores
- Day-of-month values that will be clamped in short months

IMPORTANT: Validation NEVER silently fixes issues.
It reports them for the caller to act on.
"""

from typing import Optional, Union

from cashflow.config import get_settings
from cashflow.models.finance import (
    Frequency,
    RecurringTransaction,
    RecurringTransactionDraft,
)
from cashflow.models.validation import ValidationIssue, ValidationResult
from cashflow.scheduling.recurrence import InvalidRecurrenceConfig, required_anchors


ANCHOR_RANGES = {
    "day_of_week": (0, 6),
    "day_of_month": (1, 31),
    "month_of_year": (1, 12),
}

FALLBACK_DESCRIPTIONS = {
    "day_of_week": "the schedule repeats every 7 days from the previous run",
    "day_of_month": "the day of the previous run is reused",
    "month_of_year": "the month of the previous run is reused",
}

Definition = Union[RecurringTransactionDraft, RecurringTransaction]


class RecurringValidator:
    """Validates recurring definitions before they are stored."""

    def __init__(self, strict: Optional[bool] = None):
        """
        Args:
            strict: Require every anchor the frequency uses.
                    Defaults to the strict_recurrence setting.
        """
        settings = get_settings().app
        self._strict = settings.strict_recurrence if strict is None else strict

    @property
    def strict(self) -> bool:
        return self._strict

    def _check_basics(self, definition: Definition) -> list[ValidationIssue]:
        issues = []

        if definition.amount <= 0:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message="Amount must be greater than zero",
                severity="error",
                suggested_fix="Enter the amount in minor units, e.g. 500000",
            ))

        if definition.end_date and definition.end_date < definition.start_date:
            issues.append(ValidationIssue(
                field="end_date",
                issue_type="inconsistent",
                message="End date is before start date",
                severity="error",
                suggested_fix="Clear the end date or move it after the start date",
            ))

        return issues

    def _check_anchors(self, definition: Definition) -> list[ValidationIssue]:
        issues = []
        frequency = Frequency(definition.frequency)
        needed = required_anchors(frequency)

        for name, (low, high) in ANCHOR_RANGES.items():
            value = getattr(definition, name)

            if value is not None and not low <= value <= high:
                issues.append(ValidationIssue(
                    field=name,
                    issue_type="out_of_range",
                    message=f"{name} must be between {low} and {high}, got {value}",
                    severity="error",
                ))
                continue

            if value is None and name in needed:
                issues.append(ValidationIssue(
                    field=name,
                    issue_type="missing",
                    message=(
                        f"{frequency.value} schedule has no {name}; "
                        f"{FALLBACK_DESCRIPTIONS[name]}"
                    ),
                    severity="error" if self._strict else "warning",
                    suggested_fix=f"Set {name} explicitly",
                ))

            if value is not None and name not in needed:
                issues.append(ValidationIssue(
                    field=name,
                    issue_type="ignored",
                    message=f"{name} is ignored for {frequency.value} schedules",
                    severity="warning",
                ))

        if (
            frequency in (Frequency.MONTHLY, Frequency.YEARLY)
            and definition.day_of_month is not None
            and 28 < definition.day_of_month <= 31
        ):
            issues.append(ValidationIssue(
                field="day_of_month",
                issue_type="clamped",
                message=(
                    f"Day {definition.day_of_month} falls on the last day "
                    "of shorter months"
                ),
                severity="info",
            ))

        return issues

    def validate(self, definition: Definition) -> ValidationResult:
        """
        Run all checks and collect every issue found.

        Returns:
            ValidationResult; is_valid is False when any error was found
        """
        issues = self._check_basics(definition) + self._check_anchors(definition)
        warnings = [issue.message for issue in issues if issue.severity == "warning"]

        return ValidationResult(
            is_valid=not any(issue.severity == "error" for issue in issues),
            issues=issues,
            warnings=warnings,
        )

    def ensure_valid(self, definition: Definition) -> ValidationResult:
        """
        Validate and raise on errors.

        Raises:
            InvalidRecurrenceConfig: carrying the error-level issues
        """
        result = self.validate(definition)
        if not result.is_valid:
            errors = [issue for issue in result.issues if issue.severity == "error"]
            raise InvalidRecurrenceConfig(
                "; ".join(issue.message for issue in errors),
                issues=errors,
            )
        return result

    def get_user_friendly_summary(self, result: ValidationResult) -> str:
        """One line per issue, errors first."""
        if not result.issues:
            return "All checks passed."

        order = {"error": 0, "warning": 1, "info": 2}
        lines = []
        for issue in sorted(result.issues, key=lambda i: order[i.severity]):
            line = f"[{issue.severity}] {issue.message}"
            if issue.suggested_fix:
                line += f" ({issue.suggested_fix})"
            lines.append(line)
        return "\n".join(lines)
