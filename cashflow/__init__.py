"""
Cashflow - Source Package

The scheduling and aggregation core of a personal/family finance tracker:
recurring transactions, budget rollups and monthly projections.

DESIGN PRINCIPLES:
1. Pure decision functions, one persistence boundary
2. "Now" is always passed in, never read from the clock inside the core
3. Amounts are integer minor units; direction lives in the type
4. Every materialized occurrence is audited
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Cashflow Team"
