"""
Recurrence rules.

The scheduler lives in cashflow.scheduling.scheduler; it is not re-exported
here because it depends on the validation package, which depends on these
rules.
"""

from cashflow.scheduling.recurrence import (
    InvalidRecurrenceConfig,
    RecurrenceAnchors,
    initial_next_run,
    iter_occurrences,
    next_occurrence,
    preview,
)

__all__ = [
    "InvalidRecurrenceConfig",
    "RecurrenceAnchors",
    "initial_next_run",
    "iter_occurrences",
    "next_occurrence",
    "preview",
]
