"""Validation package."""

from cashflow.validation.validator import RecurringValidator

__all__ = ["RecurringValidator"]
