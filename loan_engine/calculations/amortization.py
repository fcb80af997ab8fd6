"""
Loan Amortization Schedules

Builds a dated, period-by-period schedule from loan terms. Every period's
interest and principal are rounded as they are booked, so the schedule's
columns add up to the cent. A schedule can be rebuilt after a prepayment,
generated for a slice of the term, and asked for a payoff amount.
"""

import logging
import math
from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from loan_engine.calculations.day_count import next_payment_date, number_of_payments
from loan_engine.calculations.decimal_utils import (
    HUNDRED,
    ZERO,
    Number,
    divide,
    is_zero,
    maximum,
    minimum,
    minus,
    plus,
    round_half_up,
    round_money,
    safe_divide,
    times,
    to_decimal,
)
from loan_engine.calculations.interest import (
    irregular_period_interest,
    period_rate,
    simple_interest,
)
from loan_engine.calculations.payment import (
    amortizing_payment,
    interest_only_payment,
    payment_with_balloon,
    periods_per_year,
)
from loan_engine.exceptions import (
    InvalidDateRangeError,
    InvalidInputError,
    InvalidPrepaymentError,
)
from loan_engine.models import InterestType, LoanTerms, RoundingConfig
from loan_engine.validation import ensure_valid_loan_terms, validate_prepayment

logger = logging.getLogger(__name__)


class RowKind(str, Enum):
    """What a schedule row represents."""

    REGULAR = "regular"
    BALLOON = "balloon"
    PREPAYMENT = "prepayment"


@dataclass(frozen=True)
class ScheduledPayment:
    """One row of an amortization schedule."""

    payment_number: int
    due_date: date
    beginning_balance: Decimal
    payment: Decimal
    interest: Decimal
    principal: Decimal
    ending_balance: Decimal
    cumulative_interest: Decimal
    cumulative_principal: Decimal
    kind: RowKind = RowKind.REGULAR


@dataclass(frozen=True)
class AmortizationSchedule:
    """Full schedule with totals and the terms it was built from."""

    payments: List[ScheduledPayment]
    regular_payment: Decimal
    total_interest: Decimal
    total_principal: Decimal
    total_payments: Decimal
    approximate_apr: Decimal
    last_payment_date: date
    terms: Optional[LoanTerms] = None


def _is_interest_only(terms: LoanTerms) -> bool:
    return not terms.balloon_payment and InterestType(terms.interest_type) == InterestType.SIMPLE


def _level_payment(
    terms: LoanTerms, balance: Decimal, periods: int, rounding: RoundingConfig
) -> Decimal:
    """Regular payment for ``balance`` over ``periods`` under the loan's structure."""
    balloon = terms.balloon_payment or ZERO

    if balloon > 0 and balance > balloon:
        return payment_with_balloon(
            balance, terms.annual_interest_rate, periods, balloon,
            terms.payment_frequency, rounding,
        )
    if balloon > 0 or _is_interest_only(terms):
        # Balance at or below the balloon only carries interest until maturity
        return interest_only_payment(
            balance, terms.annual_interest_rate, terms.payment_frequency, rounding
        )
    return amortizing_payment(
        balance, terms.annual_interest_rate, periods, terms.payment_frequency, rounding
    )


def _due_dates(first: date, frequency, count: int) -> List[date]:
    dates = [first]
    while len(dates) < count:
        dates.append(next_payment_date(dates[-1], frequency))
    return dates


def _book_rows(
    terms: LoanTerms,
    rounding: RoundingConfig,
    balance: Decimal,
    due_dates: List[date],
    previous_date: date,
    payment: Decimal,
    first_number: int = 1,
    cumulative_interest: Decimal = ZERO,
    cumulative_principal: Decimal = ZERO,
    stub_first: bool = False,
) -> List[ScheduledPayment]:
    """
    Book one row per due date until the balance is cleared.

    The row on the last due date pays the balance down to the balloon,
    which is then settled by its own row on the same date. Interest-only
    loans repay principal on the last due date.
    """
    balloon = terms.balloon_payment or ZERO
    interest_only = _is_interest_only(terms)
    rate = period_rate(terms.annual_interest_rate, periods_per_year(terms.payment_frequency))
    last = len(due_dates)

    rows = []
    number = first_number

    for index, due_date in enumerate(due_dates, start=1):
        # Interest for this period
        if index == 1 and stub_first:
            interest = irregular_period_interest(
                balance, terms.annual_interest_rate, previous_date, due_date,
                terms.day_count_convention, rounding,
            )
        else:
            interest = round_money(times(balance, rate), rounding)

        # Principal for this period
        if interest_only:
            principal_pmt = balance if index == last else ZERO
        elif index == last:
            principal_pmt = minus(balance, balloon)
        else:
            principal_pmt = minus(payment, interest)

        principal_pmt = round_money(maximum(ZERO, minimum(principal_pmt, balance)), rounding)
        ending_balance = minus(balance, principal_pmt)

        cumulative_interest = plus(cumulative_interest, interest)
        cumulative_principal = plus(cumulative_principal, principal_pmt)

        rows.append(
            ScheduledPayment(
                payment_number=number,
                due_date=due_date,
                beginning_balance=balance,
                payment=plus(interest, principal_pmt),
                interest=interest,
                principal=principal_pmt,
                ending_balance=ending_balance,
                cumulative_interest=cumulative_interest,
                cumulative_principal=cumulative_principal,
            )
        )

        number += 1
        balance = ending_balance
        if balance <= 0:
            break

    # Balloon settles whatever is left on the final due date
    if balloon > 0 and balance > 0 and rows:
        rows.append(
            ScheduledPayment(
                payment_number=number,
                due_date=rows[-1].due_date,
                beginning_balance=balance,
                payment=balance,
                interest=ZERO,
                principal=balance,
                ending_balance=ZERO,
                cumulative_interest=cumulative_interest,
                cumulative_principal=plus(cumulative_principal, balance),
                kind=RowKind.BALLOON,
            )
        )

    return rows


def _build_schedule(
    rows: List[ScheduledPayment], regular_payment: Decimal, terms: LoanTerms
) -> AmortizationSchedule:
    total_interest = sum((row.interest for row in rows), ZERO)
    regular_count = sum(1 for row in rows if row.kind == RowKind.REGULAR)

    return AmortizationSchedule(
        payments=rows,
        regular_payment=regular_payment,
        total_interest=total_interest,
        total_principal=sum((row.principal for row in rows), ZERO),
        total_payments=sum((row.payment for row in rows), ZERO),
        approximate_apr=approximate_apr(
            terms.principal, total_interest, regular_count,
            periods_per_year(terms.payment_frequency),
        ),
        last_payment_date=rows[-1].due_date,
        terms=terms,
    )


def generate_amortization_schedule(terms: LoanTerms) -> AmortizationSchedule:
    """
    Generate a full amortization schedule.

    The first period accrues simple interest over the actual stub when the
    first payment date is not the regular next due date. The last regular
    payment clears the balance, or pays it down to the balloon, which is
    then added as its own row. Interest-only loans repay principal in the
    last row.

    Args:
        terms: Loan terms; start_date is required

    Returns:
        AmortizationSchedule

    Raises:
        InvalidLoanTermsError: If the terms fail validation
        InvalidInputError: If start_date is missing
    """
    ensure_valid_loan_terms(terms)
    if terms.start_date is None:
        raise InvalidInputError("A start date is required to build a schedule")

    rounding = terms.rounding_config or RoundingConfig()
    total_periods = number_of_payments(terms.term_months, terms.payment_frequency)
    regular_payment = _level_payment(terms, terms.principal, total_periods, rounding)

    regular_first_date = next_payment_date(terms.start_date, terms.payment_frequency)
    due_dates = _due_dates(
        terms.first_payment_date or regular_first_date, terms.payment_frequency, total_periods
    )

    rows = _book_rows(
        terms, rounding, terms.principal, due_dates, terms.start_date, regular_payment,
        stub_first=due_dates[0] != regular_first_date,
    )

    logger.debug(
        f"Generated {len(rows)} scheduled payments, total interest {rows[-1].cumulative_interest}"
    )

    return _build_schedule(rows, regular_payment, terms)


def generate_partial_schedule(
    terms: LoanTerms,
    starting_balance: Number,
    starting_payment_number: int,
    payment_count: int,
    start_date: Optional[date] = None,
) -> List[ScheduledPayment]:
    """
    Amortize ``starting_balance`` over the next ``payment_count`` payments.

    Rows are numbered from ``starting_payment_number``. The slice starts at
    ``start_date`` when given (dropping any first payment date of the
    original terms), otherwise at the terms' own start date.

    Raises:
        InvalidInputError: If payment_count is not positive
    """
    if payment_count <= 0:
        raise InvalidInputError(
            "Payment count must be greater than zero", {"payment_count": payment_count}
        )

    update = {
        "principal": to_decimal(starting_balance),
        "term_months": math.ceil(payment_count * 12 / periods_per_year(terms.payment_frequency)),
    }
    if start_date is not None:
        update.update(start_date=start_date, first_payment_date=None)

    schedule = generate_amortization_schedule(terms.model_copy(update=update))
    offset = starting_payment_number - 1

    return [
        replace(row, payment_number=row.payment_number + offset)
        for row in schedule.payments[:payment_count]
    ]


def _require_terms(schedule: AmortizationSchedule) -> LoanTerms:
    if schedule.terms is None:
        raise InvalidInputError("Schedule does not carry the loan terms it was built from")
    return schedule.terms


def recalculate_with_prepayment(
    schedule: AmortizationSchedule,
    amount: Number,
    on_date: date,
    apply_to_principal: bool = True,
    reduce_term: bool = True,
) -> AmortizationSchedule:
    """
    Apply a one-off prepayment and rebuild the rest of the schedule.

    Rows due on or before ``on_date`` are kept. The prepayment is booked as
    its own row dated ``on_date`` and counts as received at the start of
    the period it falls in. Then either:

    - ``reduce_term=True`` (curtailment, ``reduces_term_not_payment`` on a
      waterfall result): the regular payment stays and the loan pays off
      early
    - ``reduce_term=False``: the lower balance is re-amortized over the
      remaining due dates, lowering the payment

    Interest-only loans keep their maturity in both cases. A prepayment not
    applied to principal, or dated after the last row, leaves the schedule
    unchanged.

    Args:
        schedule: Schedule from generate_amortization_schedule
        amount: Prepayment amount
        on_date: Date the prepayment is received
        apply_to_principal: Whether the amount reduces principal
        reduce_term: Curtail the term instead of lowering the payment

    Returns:
        New AmortizationSchedule

    Raises:
        InvalidPrepaymentError: If the amount or date fails validation
    """
    terms = _require_terms(schedule)
    amount = to_decimal(amount)
    rows = schedule.payments

    index = next((i for i, row in enumerate(rows) if row.due_date > on_date), None)
    if index is None:
        logger.debug(f"Prepayment on {on_date} is after the last scheduled payment")
        return schedule

    kept = rows[:index]
    balance = kept[-1].ending_balance if kept else rows[0].beginning_balance

    issues = validate_prepayment(amount, on_date, balance, terms.start_date)
    if issues:
        raise InvalidPrepaymentError(issues)

    if not apply_to_principal:
        return schedule

    rounding = terms.rounding_config or RoundingConfig()
    cumulative_interest = kept[-1].cumulative_interest if kept else ZERO
    cumulative_principal = plus(kept[-1].cumulative_principal if kept else ZERO, amount)
    remaining = minus(balance, amount)

    new_rows = kept + [
        ScheduledPayment(
            payment_number=len(kept) + 1,
            due_date=on_date,
            beginning_balance=balance,
            payment=amount,
            interest=ZERO,
            principal=amount,
            ending_balance=remaining,
            cumulative_interest=cumulative_interest,
            cumulative_principal=cumulative_principal,
            kind=RowKind.PREPAYMENT,
        )
    ]
    regular_payment = schedule.regular_payment

    if remaining > 0:
        due_dates = [row.due_date for row in rows[index:] if row.kind == RowKind.REGULAR]
        if not due_dates:
            raise InvalidInputError("No scheduled payments remain after the prepayment date")

        if not reduce_term:
            regular_payment = _level_payment(terms, remaining, len(due_dates), rounding)

        regular_first_date = next_payment_date(terms.start_date, terms.payment_frequency)
        new_rows += _book_rows(
            terms, rounding, remaining, due_dates,
            kept[-1].due_date if kept else terms.start_date,
            regular_payment,
            first_number=len(new_rows) + 1,
            cumulative_interest=cumulative_interest,
            cumulative_principal=cumulative_principal,
            stub_first=not kept and due_dates[0] != regular_first_date,
        )

    logger.debug(
        f"Prepayment of {amount} on {on_date}: {len(new_rows)} rows "
        f"({'curtailment' if reduce_term else 're-amortized'})"
    )

    return _build_schedule(new_rows, regular_payment, terms)


def payoff_amount(
    schedule: AmortizationSchedule, on_date: date, include_accrued: bool = True
) -> Decimal:
    """
    Amount that closes the loan on ``on_date``.

    The balance left after the last row due on or before ``on_date``, plus
    simple interest accrued since that row (or since the loan start) under
    the loan's day-count convention.

    Raises:
        InvalidDateRangeError: If on_date is before the loan start
    """
    terms = _require_terms(schedule)
    if on_date < terms.start_date:
        raise InvalidDateRangeError(terms.start_date, on_date)

    rounding = terms.rounding_config or RoundingConfig()

    paid = [row for row in schedule.payments if row.due_date <= on_date]
    if paid:
        balance, accrual_start = paid[-1].ending_balance, paid[-1].due_date
    else:
        balance, accrual_start = schedule.payments[0].beginning_balance, terms.start_date

    if include_accrued and balance > 0:
        accrued = simple_interest(
            balance, terms.annual_interest_rate, accrual_start, on_date,
            terms.day_count_convention, rounding,
        )
        balance = plus(balance, accrued.interest_amount)

    return round_money(balance, rounding)


def approximate_apr(
    principal: Decimal,
    total_interest: Decimal,
    payment_count: int,
    payments_per_year: int,
) -> Decimal:
    """
    Straight-line APR: total interest / principal, annualized over the term.

    Rounded to 3 decimal places. See payment.calculate_apr for the
    fee-aware rate.
    """
    if is_zero(total_interest):
        return ZERO

    term_months = divide(times(payment_count, 12), payments_per_year)
    apr = times(divide(times(safe_divide(total_interest, principal), 12), term_months), HUNDRED)
    return round_half_up(apr, 3)


def calculate_total_interest(schedule: AmortizationSchedule) -> Decimal:
    """Sum of the interest column across every row of the schedule."""
    return sum((row.interest for row in schedule.payments), ZERO)


def calculate_debt_service(
    schedule: AmortizationSchedule, start_period: int, end_period: int
) -> Decimal:
    """Amount paid by rows numbered start_period through end_period inclusive."""
    return sum(
        (
            row.payment
            for row in schedule.payments
            if start_period <= row.payment_number <= end_period
        ),
        ZERO,
    )
