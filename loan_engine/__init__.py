"""
Loan financial calculation engine.

Pure, side-effect-free functions for interest accrual, payment calculation,
amortization schedules and payment waterfall allocation.
"""

__version__ = "0.1.0"
