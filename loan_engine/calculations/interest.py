"""
Interest Calculations

Simple, compound and daily-accrual interest plus nominal/effective rate
conversion. Rates are annual percentage points (4.5 means 4.5%).
"""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional

from loan_engine.calculations.day_count import day_count, year_denominator
from loan_engine.calculations.decimal_utils import (
    HUNDRED,
    ONE,
    Number,
    compound_factor,
    maybe_round,
    minus,
    plus,
    power,
    safe_divide,
    times,
    to_decimal,
)
from loan_engine.exceptions import InvalidInputError
from loan_engine.models import RoundingConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InterestCalculation:
    """Result of a simple-interest calculation."""

    interest_amount: Decimal
    day_count: int
    daily_rate: Decimal


def _check_non_negative(**values):
    for name, value in values.items():
        if to_decimal(value) < 0:
            raise InvalidInputError(f"{name} cannot be negative", {name: str(value)})


def daily_rate(annual_rate: Number, denominator: int) -> Decimal:
    """Annual percentage rate to a per-day decimal rate."""
    return safe_divide(annual_rate, denominator * 100)


def period_rate(annual_rate: Number, periods_per_year: int) -> Decimal:
    """Annual percentage rate to a per-period decimal rate."""
    return safe_divide(annual_rate, periods_per_year * 100)


def simple_interest(
    principal: Number,
    annual_rate: Number,
    start: date,
    end: date,
    convention,
    rounding_config: Optional[RoundingConfig] = None,
) -> InterestCalculation:
    """
    Calculate simple interest between two dates.

    Interest = principal * annual_rate / (denominator * 100) * days, where the
    denominator comes from the convention and the start date's year.

    Args:
        principal: Balance the interest accrues on
        annual_rate: Annual rate in percentage points
        start: Start of the accrual period
        end: End of the accrual period
        convention: Day-count convention
        rounding_config: Round the interest immediately when given

    Returns:
        InterestCalculation with amount, day count and daily rate
    """
    _check_non_negative(principal=principal, annual_rate=annual_rate)

    days = day_count(start, end, convention)
    rate = daily_rate(annual_rate, year_denominator(convention, start.year))
    interest = times(times(principal, rate), days)

    return InterestCalculation(
        interest_amount=maybe_round(interest, rounding_config),
        day_count=days,
        daily_rate=rate,
    )


def compound_interest(
    principal: Number,
    annual_rate: Number,
    periods: Number,
    compounding_frequency: int = 12,
    rounding_config: Optional[RoundingConfig] = None,
) -> Decimal:
    """
    Calculate compound interest: principal * ((1 + r)^periods - 1).

    ``periods`` may be fractional; a partial compounding period is compounded
    at the matching fractional exponent.
    """
    _check_non_negative(principal=principal, annual_rate=annual_rate, periods=periods)

    rate = period_rate(annual_rate, compounding_frequency)
    factor = compound_factor(rate, periods)
    interest = times(principal, minus(factor, ONE))

    return maybe_round(interest, rounding_config)


def daily_accrual(
    balance: Number,
    annual_rate: Number,
    convention,
    on_date: date,
    rounding_config: Optional[RoundingConfig] = None,
) -> Decimal:
    """Interest for a single day, using the denominator for on_date's year."""
    _check_non_negative(balance=balance, annual_rate=annual_rate)

    rate = daily_rate(annual_rate, year_denominator(convention, on_date.year))
    return maybe_round(times(balance, rate), rounding_config)


def irregular_period_interest(
    principal: Number,
    annual_rate: Number,
    start: date,
    end: date,
    convention,
    rounding_config: Optional[RoundingConfig] = None,
) -> Decimal:
    """Interest for a short or long stub period (first or last payment)."""
    return simple_interest(
        principal, annual_rate, start, end, convention, rounding_config
    ).interest_amount


def accrued_interest(
    principal: Number,
    annual_rate: Number,
    start: date,
    end: date,
    convention,
    compounding_frequency: Optional[int] = None,
    rounding_config: Optional[RoundingConfig] = None,
) -> Decimal:
    """
    Calculate interest accrued between two dates.

    Without a compounding frequency this is simple interest. Otherwise the
    date range becomes day_count * frequency / denominator compounding
    periods, which is usually fractional.
    """
    if not compounding_frequency:
        return simple_interest(
            principal, annual_rate, start, end, convention, rounding_config
        ).interest_amount

    days = day_count(start, end, convention)
    denominator = year_denominator(convention, start.year)
    periods = safe_divide(days * compounding_frequency, denominator)

    logger.debug(
        f"Compounding {days} days as {periods} periods "
        f"(frequency={compounding_frequency}, denominator={denominator})"
    )

    return compound_interest(
        principal, annual_rate, periods, compounding_frequency, rounding_config
    )


def effective_rate(nominal_rate: Number, compounding_frequency: int) -> Decimal:
    """
    Convert a nominal annual rate to the effective annual rate.

    effective = ((1 + nominal / (100 * n)) ** n - 1) * 100
    """
    if compounding_frequency <= 0:
        raise InvalidInputError(
            "Compounding frequency must be positive",
            {"compounding_frequency": compounding_frequency},
        )

    rate = period_rate(nominal_rate, compounding_frequency)
    return times(minus(compound_factor(rate, compounding_frequency), ONE), HUNDRED)


def nominal_rate(effective_rate: Number, compounding_frequency: int) -> Decimal:
    """
    Convert an effective annual rate back to the nominal annual rate.

    nominal = n * ((1 + effective / 100) ** (1 / n) - 1) * 100
    """
    if compounding_frequency <= 0:
        raise InvalidInputError(
            "Compounding frequency must be positive",
            {"compounding_frequency": compounding_frequency},
        )

    growth = power(
        plus(ONE, safe_divide(effective_rate, HUNDRED)),
        safe_divide(ONE, compounding_frequency),
    )
    return times(times(compounding_frequency, minus(growth, ONE)), HUNDRED)
