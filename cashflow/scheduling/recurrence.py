"""
Recurrence Rules

Pure date arithmetic: given a frequency and its anchor fields, compute the
next occurrence after a reference date. Nothing here reads the clock or
touches storage.

Anchor conventions:
- day_of_week: 0=Sunday .. 6=Saturday (weekly)
- day_of_month: 1..31, clamped to the last day of short months
- month_of_year: 1..12 (yearly)

Missing anchors fall back to the reference date (or a flat 7 days for
weekly) unless strict mode is requested.
"""

import calendar
from datetime import date, timedelta
from itertools import islice
from typing import Iterator, Optional, Union

from pydantic import BaseModel, ConfigDict

from cashflow.models.finance import Frequency, RecurringTransaction


class InvalidRecurrenceConfig(ValueError):
    """
    Anchor fields don't fit the chosen frequency.

    Raised when a definition is created or edited, so a bad schedule is
    rejected before anything is materialized from it.
    """

    def __init__(self, message: str, issues: Optional[list] = None):
        super().__init__(message)
        self.issues = issues or []


class RecurrenceAnchors(BaseModel):
    """The schedule-shaping fields of a recurring definition."""
    model_config = ConfigDict(frozen=True)

    day_of_week: Optional[int] = None
    day_of_month: Optional[int] = None
    month_of_year: Optional[int] = None

    @classmethod
    def of(cls, recurring: RecurringTransaction) -> "RecurrenceAnchors":
        return cls(
            day_of_week=recurring.day_of_week,
            day_of_month=recurring.day_of_month,
            month_of_year=recurring.month_of_year,
        )


NO_ANCHORS = RecurrenceAnchors()


def clamp_day(year: int, month: int, day: int) -> date:
    """date(year, month, day), moved back to the month's last day if needed."""
    last = calendar.monthrange(year, month)[1]
    return date(year, month, min(day, last))


def _check_ranges(anchors: RecurrenceAnchors) -> None:
    if anchors.day_of_week is not None and not 0 <= anchors.day_of_week <= 6:
        raise InvalidRecurrenceConfig(f"day_of_week must be 0-6, got {anchors.day_of_week}")
    if anchors.day_of_month is not None and not 1 <= anchors.day_of_month <= 31:
        raise InvalidRecurrenceConfig(f"day_of_month must be 1-31, got {anchors.day_of_month}")
    if anchors.month_of_year is not None and not 1 <= anchors.month_of_year <= 12:
        raise InvalidRecurrenceConfig(f"month_of_year must be 1-12, got {anchors.month_of_year}")


def required_anchors(frequency: Frequency) -> tuple[str, ...]:
    """Anchor fields a frequency needs in strict mode."""
    return {
        Frequency.DAILY: (),
        Frequency.WEEKLY: ("day_of_week",),
        Frequency.MONTHLY: ("day_of_month",),
        Frequency.YEARLY: ("month_of_year", "day_of_month"),
    }[frequency]


def next_occurrence(
    frequency: Union[Frequency, str],
    anchors: RecurrenceAnchors,
    from_date: date,
    strict: bool = False,
) -> date:
    """
    Return the next occurrence strictly after from_date.

    Args:
        frequency: daily, weekly, monthly or yearly
        anchors: day_of_week / day_of_month / month_of_year
        from_date: the reference (usually the current next_run_date)
        strict: raise instead of falling back when an anchor is missing

    Raises:
        InvalidRecurrenceConfig: anchor out of range, or missing in strict mode
    """
    frequency = Frequency(frequency)
    _check_ranges(anchors)

    if strict:
        missing = [name for name in required_anchors(frequency) if getattr(anchors, name) is None]
        if missing:
            raise InvalidRecurrenceConfig(
                f"{frequency.value} schedule requires {', '.join(missing)}"
            )

    if frequency == Frequency.DAILY:
        return from_date + timedelta(days=1)

    if frequency == Frequency.WEEKLY:
        if anchors.day_of_week is None:
            return from_date + timedelta(days=7)
        # date.weekday() counts from Monday; anchors count from Sunday
        target = (anchors.day_of_week - 1) % 7
        candidate = from_date + timedelta(days=1)
        return candidate + timedelta(days=(target - candidate.weekday()) % 7)

    if frequency == Frequency.MONTHLY:
        year, month = from_date.year, from_date.month + 1
        if month > 12:
            year, month = year + 1, 1
        return clamp_day(year, month, anchors.day_of_month or from_date.day)

    # yearly
    return clamp_day(
        from_date.year + 1,
        anchors.month_of_year or from_date.month,
        anchors.day_of_month or from_date.day,
    )


def initial_next_run(
    frequency: Union[Frequency, str],
    anchors: RecurrenceAnchors,
    start_date: date,
    today: date,
) -> date:
    """
    First next_run_date for a new (or rescheduled) definition.

    A future start date is used as-is. Otherwise we step from the start
    date until we land strictly after today.
    """
    if start_date > today:
        return start_date

    next_run = start_date
    while next_run <= today:
        next_run = next_occurrence(frequency, anchors, next_run)
    return next_run


def iter_occurrences(
    frequency: Union[Frequency, str],
    anchors: RecurrenceAnchors,
    first: date,
    end_date: Optional[date] = None,
) -> Iterator[date]:
    """Yield first and every following occurrence, up to end_date inclusive."""
    current = first
    while end_date is None or current <= end_date:
        yield current
        current = next_occurrence(frequency, anchors, current)


def preview(recurring: RecurringTransaction, count: int = 12) -> list[date]:
    """Next `count` occurrence dates starting at next_run_date."""
    occurrences = iter_occurrences(
        recurring.frequency,
        RecurrenceAnchors.of(recurring),
        recurring.next_run_date,
        recurring.end_date,
    )
    return list(islice(occurrences, count))
