"""Tests for the pure recurrence date arithmetic."""

from datetime import date

import pytest

from cashflow.models.finance import Frequency
from cashflow.scheduling import (
    InvalidRecurrenceConfig,
    RecurrenceAnchors,
    initial_next_run,
    iter_occurrences,
    next_occurrence,
    preview,
)
from cashflow.scheduling.recurrence import NO_ANCHORS, clamp_day


MONDAY = 1  # 0=Sunday


class TestNextOccurrence:
    """Tests for next_occurrence()."""

    def test_daily_adds_one_day(self):
        """Daily schedules move to the following day, across month ends."""
        assert next_occurrence(Frequency.DAILY, NO_ANCHORS, date(2024, 1, 31)) == date(2024, 2, 1)
        assert next_occurrence(Frequency.DAILY, NO_ANCHORS, date(2024, 12, 31)) == date(2025, 1, 1)

    def test_weekly_moves_to_anchored_weekday(self):
        """A Monday anchor from a Monday lands on the next Monday."""
        anchors = RecurrenceAnchors(day_of_week=MONDAY)
        assert next_occurrence(Frequency.WEEKLY, anchors, date(2024, 1, 1)) == date(2024, 1, 8)

    def test_weekly_from_midweek(self):
        """From a Wednesday, a Monday anchor lands on the following Monday."""
        anchors = RecurrenceAnchors(day_of_week=MONDAY)
        assert next_occurrence(Frequency.WEEKLY, anchors, date(2024, 1, 3)) == date(2024, 1, 8)

    def test_weekly_sunday_anchor(self):
        """day_of_week 0 is Sunday."""
        anchors = RecurrenceAnchors(day_of_week=0)
        result = next_occurrence(Frequency.WEEKLY, anchors, date(2024, 1, 1))
        assert result == date(2024, 1, 7)
        assert result.weekday() == 6

    def test_weekly_without_anchor_adds_seven_days(self):
        """Lenient mode falls back to a flat seven days."""
        assert next_occurrence(Frequency.WEEKLY, NO_ANCHORS, date(2024, 1, 3)) == date(2024, 1, 10)

    def test_monthly_uses_day_of_month(self):
        """Monthly schedules jump to the anchored day of the next month."""
        anchors = RecurrenceAnchors(day_of_month=15)
        assert next_occurrence(Frequency.MONTHLY, anchors, date(2024, 1, 15)) == date(2024, 2, 15)

    def test_monthly_clamps_to_february_leap_year(self):
        """Day 31 from Jan 31 lands on Feb 29 in a leap year."""
        anchors = RecurrenceAnchors(day_of_month=31)
        assert next_occurrence(Frequency.MONTHLY, anchors, date(2024, 1, 31)) == date(2024, 2, 29)

    def test_monthly_clamps_to_february(self):
        """Day 31 from Jan 31 lands on Feb 28 in a common year."""
        anchors = RecurrenceAnchors(day_of_month=31)
        assert next_occurrence(Frequency.MONTHLY, anchors, date(2023, 1, 31)) == date(2023, 2, 28)

    def test_monthly_clamp_does_not_stick(self):
        """After a clamped month the anchor day is used again."""
        anchors = RecurrenceAnchors(day_of_month=31)
        assert next_occurrence(Frequency.MONTHLY, anchors, date(2024, 2, 29)) == date(2024, 3, 31)

    def test_monthly_rolls_over_year(self):
        """December moves to January of the next year."""
        anchors = RecurrenceAnchors(day_of_month=5)
        assert next_occurrence(Frequency.MONTHLY, anchors, date(2024, 12, 5)) == date(2025, 1, 5)

    def test_monthly_without_anchor_reuses_day(self):
        """Lenient monthly schedules keep the day of the reference date."""
        assert next_occurrence(Frequency.MONTHLY, NO_ANCHORS, date(2024, 3, 20)) == date(2024, 4, 20)

    def test_yearly_uses_month_and_day(self):
        """Yearly schedules land on the anchored month and day of the next year."""
        anchors = RecurrenceAnchors(month_of_year=6, day_of_month=30)
        assert next_occurrence(Frequency.YEARLY, anchors, date(2024, 6, 30)) == date(2025, 6, 30)

    def test_yearly_leap_day_clamps(self):
        """Feb 29 becomes Feb 28 in a common year."""
        anchors = RecurrenceAnchors(month_of_year=2, day_of_month=29)
        assert next_occurrence(Frequency.YEARLY, anchors, date(2024, 2, 29)) == date(2025, 2, 28)

    def test_accepts_string_frequency(self):
        """Frequency values are accepted as plain strings."""
        assert next_occurrence("daily", NO_ANCHORS, date(2024, 1, 1)) == date(2024, 1, 2)

    @pytest.mark.parametrize("frequency", list(Frequency))
    def test_strictly_after_reference(self, frequency):
        """Every frequency produces a date strictly after the reference."""
        anchors = RecurrenceAnchors(day_of_week=3, day_of_month=31, month_of_year=2)
        current = date(2023, 12, 31)
        for _ in range(40):
            following = next_occurrence(frequency, anchors, current)
            assert following > current
            current = following

    def test_out_of_range_anchor_rejected(self):
        """Anchors outside their range raise."""
        with pytest.raises(InvalidRecurrenceConfig):
            next_occurrence(Frequency.WEEKLY, RecurrenceAnchors(day_of_week=7), date(2024, 1, 1))
        with pytest.raises(InvalidRecurrenceConfig):
            next_occurrence(Frequency.MONTHLY, RecurrenceAnchors(day_of_month=0), date(2024, 1, 1))

    def test_strict_mode_requires_anchor(self):
        """Strict mode refuses to fall back when the anchor is missing."""
        with pytest.raises(InvalidRecurrenceConfig, match="day_of_week"):
            next_occurrence(Frequency.WEEKLY, NO_ANCHORS, date(2024, 1, 1), strict=True)

    def test_strict_mode_daily_needs_nothing(self):
        """Daily schedules have no anchors to require."""
        assert next_occurrence(Frequency.DAILY, NO_ANCHORS, date(2024, 1, 1), strict=True) == date(2024, 1, 2)


class TestClampDay:
    """Tests for clamp_day()."""

    def test_short_month(self):
        assert clamp_day(2024, 4, 31) == date(2024, 4, 30)

    def test_valid_day_unchanged(self):
        assert clamp_day(2024, 4, 12) == date(2024, 4, 12)


class TestInitialNextRun:
    """Tests for initial_next_run()."""

    def test_future_start_used_as_is(self):
        """A start date after today is the first run."""
        result = initial_next_run(
            Frequency.MONTHLY, RecurrenceAnchors(day_of_month=1), date(2024, 5, 1), date(2024, 3, 15)
        )
        assert result == date(2024, 5, 1)

    def test_past_start_steps_past_today(self):
        """A past start date is stepped until strictly after today."""
        result = initial_next_run(
            Frequency.MONTHLY, RecurrenceAnchors(day_of_month=1), date(2024, 1, 1), date(2024, 3, 15)
        )
        assert result == date(2024, 4, 1)

    def test_start_today_moves_to_next(self):
        """A start date of today is already in the past for scheduling."""
        result = initial_next_run(Frequency.DAILY, NO_ANCHORS, date(2024, 3, 15), date(2024, 3, 15))
        assert result == date(2024, 3, 16)


class TestIterOccurrences:
    """Tests for iter_occurrences() and preview()."""

    def test_stops_at_end_date(self):
        """end_date is inclusive."""
        dates = list(iter_occurrences(Frequency.WEEKLY, NO_ANCHORS, date(2024, 1, 1), date(2024, 1, 15)))
        assert dates == [date(2024, 1, 1), date(2024, 1, 8), date(2024, 1, 15)]

    def test_unbounded_is_lazy(self):
        """Without an end date the iterator is infinite but lazy."""
        iterator = iter_occurrences(Frequency.DAILY, NO_ANCHORS, date(2024, 1, 1))
        assert next(iterator) == date(2024, 1, 1)
        assert next(iterator) == date(2024, 1, 2)

    def test_preview_starts_at_next_run(self, make_recurring):
        """preview lists the next occurrences from next_run_date."""
        recurring = make_recurring(
            frequency=Frequency.MONTHLY,
            day_of_month=31,
            start_date=date(2024, 1, 1),
            next_run_date=date(2024, 1, 31),
        )
        assert preview(recurring, count=3) == [date(2024, 1, 31), date(2024, 2, 29), date(2024, 3, 31)]

    def test_preview_respects_end_date(self, make_recurring):
        """preview never lists dates after end_date."""
        recurring = make_recurring(
            frequency=Frequency.DAILY,
            day_of_month=None,
            start_date=date(2024, 1, 1),
            next_run_date=date(2024, 1, 1),
            end_date=date(2024, 1, 2),
        )
        assert preview(recurring, count=10) == [date(2024, 1, 1), date(2024, 1, 2)]
