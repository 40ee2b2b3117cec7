"""Monthly cash-flow projection."""

from cashflow.projections.calculator import ProjectionCalculator, to_minor_units

__all__ = ["ProjectionCalculator", "to_minor_units"]
