"""
Day-Count Engine

Day counts and year denominators for the supported day-count conventions,
plus the payment-calendar helpers built on them.
"""

import calendar
import math
from datetime import date
from decimal import Decimal

from dateutil.relativedelta import relativedelta

from loan_engine.calculations.decimal_utils import divide
from loan_engine.exceptions import (
    InvalidDateRangeError,
    InvalidInputError,
    UnsupportedConventionError,
    UnsupportedFrequencyError,
)
from loan_engine.models import DayCountConvention, PaymentFrequency

ACTUAL_CONVENTIONS = (
    DayCountConvention.ACT_360,
    DayCountConvention.ACT_365,
    DayCountConvention.ACT_ACT,
)

# Average days per month used to turn a term into bi-weekly/weekly payments
DAYS_PER_MONTH = 365.25 / 12


def _convention(convention) -> DayCountConvention:
    try:
        return DayCountConvention(convention)
    except ValueError:
        raise UnsupportedConventionError(convention) from None


def _frequency(frequency) -> PaymentFrequency:
    try:
        return PaymentFrequency(frequency)
    except ValueError:
        raise UnsupportedFrequencyError(frequency) from None


def is_leap_year(year: int) -> bool:
    return calendar.isleap(year)


def _thirty_360_days(start: date, end: date) -> int:
    """
    US 30/360: every month has 30 days.

    A start on the 31st moves to the 30th; an end on the 31st moves to the
    30th only when the (adjusted) start is on the 30th or 31st.
    """
    d1 = start.day
    d2 = end.day

    if d1 == 31:
        d1 = 30
    if d2 == 31 and d1 >= 30:
        d2 = 30

    return (end.year - start.year) * 360 + (end.month - start.month) * 30 + (d2 - d1)


def day_count(start: date, end: date, convention) -> int:
    """
    Count days between two dates under a day-count convention.

    Args:
        start: First day of the accrual period
        end: Last day of the accrual period (exclusive for ACT conventions)
        convention: DayCountConvention or its string value

    Returns:
        Number of days

    Raises:
        InvalidDateRangeError: If end is before start
    """
    convention = _convention(convention)
    if end < start:
        raise InvalidDateRangeError(start, end)

    if convention == DayCountConvention.THIRTY_360:
        return _thirty_360_days(start, end)
    return (end - start).days


def year_denominator(convention, reference_year: int) -> int:
    """Days in the year used to annualize a rate."""
    convention = _convention(convention)

    if convention in (DayCountConvention.ACT_360, DayCountConvention.THIRTY_360):
        return 360
    return 366 if is_leap_year(reference_year) else 365


def year_fraction(start: date, end: date, convention) -> Decimal:
    """Accrual period length in years, using the start date's year."""
    return divide(day_count(start, end, convention), year_denominator(convention, start.year))


# =============================================================================
# PAYMENT CALENDAR
# =============================================================================


def number_of_payments(term_months: int, frequency) -> int:
    """
    Number of scheduled payments over a term.

    Bi-weekly and weekly schedules count whole periods in the term using an
    average month length; the other frequencies round partial periods up.
    """
    if term_months <= 0:
        raise InvalidInputError(
            "Term must be greater than zero months", {"term_months": term_months}
        )

    frequency = _frequency(frequency)

    if frequency == PaymentFrequency.MONTHLY:
        return term_months
    if frequency == PaymentFrequency.SEMI_MONTHLY:
        return term_months * 2
    if frequency == PaymentFrequency.BI_WEEKLY:
        return math.floor(term_months * DAYS_PER_MONTH / 14)
    if frequency == PaymentFrequency.WEEKLY:
        return math.floor(term_months * DAYS_PER_MONTH / 7)
    if frequency == PaymentFrequency.QUARTERLY:
        return math.ceil(term_months / 3)
    if frequency == PaymentFrequency.SEMI_ANNUALLY:
        return math.ceil(term_months / 6)
    return math.ceil(term_months / 12)


def _is_month_end(value: date) -> bool:
    return value.day == calendar.monthrange(value.year, value.month)[1]


def add_months(value: date, months: int) -> date:
    """Add months, keeping month-end dates on the month end."""
    result = value + relativedelta(months=months)
    if _is_month_end(value):
        result = result + relativedelta(day=31)
    return result


def next_payment_date(current: date, frequency) -> date:
    """
    Due date of the payment following ``current``.

    Semi-monthly schedules alternate between the 15th and the 1st of the
    following month.
    """
    frequency = _frequency(frequency)

    if frequency == PaymentFrequency.MONTHLY:
        return add_months(current, 1)
    if frequency == PaymentFrequency.SEMI_MONTHLY:
        if current.day < 15:
            return current.replace(day=15)
        return current + relativedelta(months=1, day=1)
    if frequency == PaymentFrequency.BI_WEEKLY:
        return current + relativedelta(days=14)
    if frequency == PaymentFrequency.WEEKLY:
        return current + relativedelta(days=7)
    if frequency == PaymentFrequency.QUARTERLY:
        return add_months(current, 3)
    if frequency == PaymentFrequency.SEMI_ANNUALLY:
        return add_months(current, 6)
    return add_months(current, 12)
