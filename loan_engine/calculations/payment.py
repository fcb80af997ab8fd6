"""
Loan Payment Calculations

Level-payment amortization, interest-only and balloon payments, and the
Newton-Raphson solver that recovers the realized effective rate from a
payment stream.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from loan_engine.calculations.day_count import number_of_payments
from loan_engine.calculations.decimal_utils import (
    HUNDRED,
    ONE,
    ZERO,
    Number,
    compound_factor,
    divide,
    is_zero,
    maybe_round,
    minus,
    plus,
    safe_divide,
    times,
    to_decimal,
)
from loan_engine.calculations.interest import period_rate
from loan_engine.config import get_settings
from loan_engine.exceptions import InvalidInputError, UnsupportedFrequencyError
from loan_engine.models import InterestType, LoanTerms, PaymentFrequency, RoundingConfig
from loan_engine.validation import ensure_valid_loan_terms

logger = logging.getLogger(__name__)

PERIODS_PER_YEAR = {
    PaymentFrequency.MONTHLY: 12,
    PaymentFrequency.SEMI_MONTHLY: 24,
    PaymentFrequency.BI_WEEKLY: 26,
    PaymentFrequency.WEEKLY: 52,
    PaymentFrequency.QUARTERLY: 4,
    PaymentFrequency.SEMI_ANNUALLY: 2,
    PaymentFrequency.ANNUALLY: 1,
}

# Effective-rate solver (iteration cap comes from settings)
TOLERANCE = Decimal("1e-6")
DERIVATIVE_STEP = Decimal("0.0001")
RATE_FLOOR = Decimal("0.001")
DEFAULT_ANNUAL_GUESS = Decimal("0.05")

# APR bisection over annual rates 0..100%
APR_TOLERANCE = Decimal("0.00001")
APR_MAX_ITERATIONS = 100


@dataclass(frozen=True)
class RateSolution:
    """
    Outcome of the effective-rate solver.

    ``rate`` is an annual percentage. When ``converged`` is False the rate is
    the solver's last iterate and must be treated as approximate.
    """

    rate: Decimal
    iterations: int
    converged: bool


@dataclass(frozen=True)
class PaymentCalculationResult:
    """Payment summary for a set of loan terms."""

    monthly_payment: Decimal
    total_interest: Decimal
    total_payments: Decimal
    effective_interest_rate: Decimal
    number_of_payments: int
    effective_rate_converged: bool = True


def periods_per_year(frequency) -> int:
    """Number of payment periods in a year for a payment frequency."""
    try:
        return PERIODS_PER_YEAR[PaymentFrequency(frequency)]
    except ValueError:
        raise UnsupportedFrequencyError(frequency) from None


def _check_payment_inputs(principal: Decimal, annual_rate: Decimal, payments: int):
    if principal < 0:
        raise InvalidInputError("Principal cannot be negative", {"principal": str(principal)})
    if annual_rate < 0:
        raise InvalidInputError(
            "Annual interest rate cannot be negative", {"annual_rate": str(annual_rate)}
        )
    if payments <= 0:
        raise InvalidInputError(
            "Number of payments must be greater than zero",
            {"number_of_payments": payments},
        )


def amortizing_payment(
    principal: Number,
    annual_rate: Number,
    number_of_payments: int,
    frequency,
    rounding_config: Optional[RoundingConfig] = None,
) -> Decimal:
    """
    Calculate the level payment that fully amortizes a loan.

    Matches Excel's PMT() function: P * r * (1+r)^n / ((1+r)^n - 1).

    Args:
        principal: Loan principal amount
        annual_rate: Annual interest rate in percentage points
        number_of_payments: Total number of payments
        frequency: Payment frequency
        rounding_config: Round the payment when given

    Returns:
        Periodic payment amount
    """
    principal = to_decimal(principal)
    annual_rate = to_decimal(annual_rate)
    _check_payment_inputs(principal, annual_rate, number_of_payments)

    if is_zero(annual_rate):
        payment = divide(principal, number_of_payments)
        return maybe_round(payment, rounding_config)

    rate = period_rate(annual_rate, periods_per_year(frequency))
    factor = compound_factor(rate, number_of_payments)

    payment = divide(times(times(principal, rate), factor), minus(factor, ONE))
    return maybe_round(payment, rounding_config)


def interest_only_payment(
    principal: Number,
    annual_rate: Number,
    frequency,
    rounding_config: Optional[RoundingConfig] = None,
) -> Decimal:
    """Calculate the periodic interest-only payment."""
    principal = to_decimal(principal)
    annual_rate = to_decimal(annual_rate)
    _check_payment_inputs(principal, annual_rate, 1)

    rate = period_rate(annual_rate, periods_per_year(frequency))
    return maybe_round(times(principal, rate), rounding_config)


def payment_with_balloon(
    principal: Number,
    annual_rate: Number,
    number_of_payments: int,
    balloon_amount: Number,
    frequency,
    rounding_config: Optional[RoundingConfig] = None,
) -> Decimal:
    """
    Calculate the periodic payment when a balloon is due at maturity.

    The balloon is discounted to present value with the same (1+r)^n factor
    the amortization formula uses, and the rest of the principal is amortized.
    """
    principal = to_decimal(principal)
    annual_rate = to_decimal(annual_rate)
    balloon_amount = to_decimal(balloon_amount)
    _check_payment_inputs(principal, annual_rate, number_of_payments)
    if balloon_amount < 0:
        raise InvalidInputError(
            "Balloon payment cannot be negative", {"balloon": str(balloon_amount)}
        )

    if is_zero(annual_rate):
        payment = divide(minus(principal, balloon_amount), number_of_payments)
        return maybe_round(payment, rounding_config)

    rate = period_rate(annual_rate, periods_per_year(frequency))
    balloon_pv = safe_divide(balloon_amount, compound_factor(rate, number_of_payments))

    return amortizing_payment(
        minus(principal, balloon_pv),
        annual_rate,
        number_of_payments,
        frequency,
        rounding_config,
    )


def remaining_balance(
    principal: Number,
    annual_rate: Number,
    number_of_payments: int,
    frequency,
    payments_completed: int,
) -> Decimal:
    """Calculate the unrounded balance left after N level payments."""
    payment = amortizing_payment(principal, annual_rate, number_of_payments, frequency)
    annual_rate = to_decimal(annual_rate)

    if is_zero(annual_rate):
        balance = minus(principal, times(payment, payments_completed))
        return max(ZERO, balance)

    rate = period_rate(annual_rate, periods_per_year(frequency))
    growth = compound_factor(rate, payments_completed)
    balance = minus(
        times(principal, growth),
        times(payment, divide(minus(growth, ONE), rate)),
    )

    return max(ZERO, balance)


# =============================================================================
# EFFECTIVE RATE SOLVER
# =============================================================================


def present_value(
    payment: Number,
    period_rate: Number,
    number_of_payments: int,
    balloon: Optional[Number] = None,
) -> Decimal:
    """
    Present value of a level payment stream plus an optional balloon.

    A zero period rate is the plain undiscounted sum.
    """
    balloon = to_decimal(balloon or ZERO)

    if is_zero(period_rate):
        return plus(times(payment, number_of_payments), balloon)

    factor = compound_factor(period_rate, number_of_payments)
    annuity = times(payment, safe_divide(minus(factor, ONE), times(period_rate, factor)))

    balloon_pv = ZERO
    if balloon > 0:
        balloon_pv = safe_divide(balloon, factor)

    return plus(annuity, balloon_pv)


def solve_effective_rate(
    principal: Number,
    payment: Number,
    number_of_payments: int,
    frequency,
    balloon: Optional[Number] = None,
    max_iterations: Optional[int] = None,
) -> RateSolution:
    """
    Find the annual rate at which the payments are worth the principal.

    Newton-Raphson on the period rate with a finite-difference derivative.
    An update that would push the rate below zero restarts from RATE_FLOOR.
    After ``max_iterations`` without convergence the last iterate is returned
    with ``converged=False``.

    Args:
        principal: Amount advanced
        payment: Unrounded periodic payment
        number_of_payments: Number of periodic payments
        frequency: Payment frequency
        balloon: Lump sum due with the last payment
        max_iterations: Iteration cap (default from settings)

    Returns:
        RateSolution with the annual rate in percentage points
    """
    principal = to_decimal(principal)
    ppy = periods_per_year(frequency)
    if max_iterations is None:
        max_iterations = get_settings().solver_max_iterations

    def annualize(rate: Decimal) -> Decimal:
        return times(times(rate, ppy), HUNDRED)

    # Payments that sum to the principal carry no interest
    undiscounted = present_value(payment, ZERO, number_of_payments, balloon)
    if minus(undiscounted, principal).copy_abs() < TOLERANCE:
        return RateSolution(rate=ZERO, iterations=0, converged=True)

    rate = divide(DEFAULT_ANNUAL_GUESS, ppy)

    for iteration in range(1, max_iterations + 1):
        pv = present_value(payment, rate, number_of_payments, balloon)
        difference = minus(pv, principal)

        if difference.copy_abs() < TOLERANCE:
            logger.debug(f"Effective rate converged after {iteration} iterations")
            return RateSolution(rate=annualize(rate), iterations=iteration, converged=True)

        pv_step = present_value(payment, plus(rate, DERIVATIVE_STEP), number_of_payments, balloon)
        derivative = safe_divide(minus(pv_step, pv), DERIVATIVE_STEP)

        rate = minus(rate, safe_divide(difference, derivative))

        if rate < 0:
            rate = RATE_FLOOR

    logger.warning(
        f"Effective rate did not converge in {max_iterations} iterations; "
        f"returning approximate rate {annualize(rate)}"
    )
    return RateSolution(rate=annualize(rate), iterations=max_iterations, converged=False)


def calculate_apr(
    principal: Number,
    payment: Number,
    number_of_payments: int,
    upfront_fees: Number = ZERO,
    frequency=PaymentFrequency.MONTHLY,
) -> Decimal:
    """
    Annual percentage rate including upfront fees.

    Fees are deducted from the amount advanced, so the borrower repays the
    full payment stream on a smaller net amount. The annual rate that
    discounts the payments to that net amount is found by bisection.

    Args:
        principal: Loan amount
        payment: Periodic payment
        number_of_payments: Number of periodic payments
        upfront_fees: Fees paid at closing
        frequency: Payment frequency

    Returns:
        APR in percentage points; zero when nothing is actually advanced
    """
    principal = to_decimal(principal)
    payment = to_decimal(payment)
    upfront_fees = to_decimal(upfront_fees)
    if upfront_fees < 0:
        raise InvalidInputError("Upfront fees cannot be negative", {"fees": str(upfront_fees)})

    net_amount = minus(principal, upfront_fees)
    if payment <= 0 or net_amount <= 0:
        return ZERO

    ppy = periods_per_year(frequency)
    low, high = ZERO, ONE
    mid = divide(plus(low, high), 2)

    for _ in range(APR_MAX_ITERATIONS):
        mid = divide(plus(low, high), 2)
        difference = minus(present_value(payment, divide(mid, ppy), number_of_payments), net_amount)

        if difference.copy_abs() < APR_TOLERANCE:
            break

        # Payments worth more than the net amount means the rate is too low
        if difference > 0:
            low = mid
        else:
            high = mid

    return times(mid, HUNDRED)


# =============================================================================
# LOAN PAYMENT SUMMARY
# =============================================================================


def calculate_loan_payment(terms: LoanTerms) -> PaymentCalculationResult:
    """
    Calculate the payment summary for a loan.

    A positive balloon selects the balloon formula regardless of interest
    type; otherwise simple interest means interest-only with the principal
    repaid at maturity, and anything else is fully amortizing. Totals use
    the unrounded payment and are rounded only at the end.

    The effective rate cannot be resolved below the solver's annualized
    floor (RATE_FLOOR * periods per year, 1.2% for monthly payments). For
    such loans the solver gives up and the rate is returned as approximate,
    with ``effective_rate_converged=False``.

    Raises:
        InvalidLoanTermsError: If the terms fail validation
    """
    ensure_valid_loan_terms(terms)

    payments = number_of_payments(terms.term_months, terms.payment_frequency)
    balloon = terms.balloon_payment or ZERO

    if balloon > 0:
        logger.debug(f"Balloon payment path: {payments} payments, balloon {balloon}")
        payment = payment_with_balloon(
            terms.principal,
            terms.annual_interest_rate,
            payments,
            balloon,
            terms.payment_frequency,
        )
        final_lump_sum = balloon
    elif InterestType(terms.interest_type) == InterestType.SIMPLE:
        logger.debug(f"Interest-only path: {payments} payments")
        payment = interest_only_payment(
            terms.principal,
            terms.annual_interest_rate,
            terms.payment_frequency,
        )
        final_lump_sum = terms.principal
    else:
        logger.debug(f"Amortizing path: {payments} payments")
        payment = amortizing_payment(
            terms.principal,
            terms.annual_interest_rate,
            payments,
            terms.payment_frequency,
        )
        final_lump_sum = ZERO

    total_payments = plus(times(payment, payments), final_lump_sum)
    total_interest = minus(total_payments, terms.principal)

    solution = solve_effective_rate(
        terms.principal,
        payment,
        payments,
        terms.payment_frequency,
        final_lump_sum,
    )

    return PaymentCalculationResult(
        monthly_payment=maybe_round(payment, terms.rounding_config),
        total_interest=maybe_round(total_interest, terms.rounding_config),
        total_payments=maybe_round(total_payments, terms.rounding_config),
        effective_interest_rate=solution.rate,
        number_of_payments=payments,
        effective_rate_converged=solution.converged,
    )
