"""
FinTrack — personal finance and investment tracker.

Ledger, recurring charges, categories, and a portfolio valued against live
prices.
"""

__version__ = "0.1.0"
__all__ = ["FinTrack"]

from fintrack.tracker import FinTrack  # noqa: E402
