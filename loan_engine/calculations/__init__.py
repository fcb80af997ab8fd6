"""
Loan Calculation Engine

Core calculation modules for installment loans: exact decimal arithmetic,
day counts, interest, payments, amortization schedules and payment
waterfalls. Every function is pure; nothing here keeps state between calls.
"""

from loan_engine.calculations import (
    amortization,
    day_count,
    decimal_utils,
    interest,
    payment,
    waterfall,
)

__all__ = ["amortization", "day_count", "decimal_utils", "interest", "payment", "waterfall"]
