"""
Payment Waterfall Allocation

Splits a single received payment across the outstanding obligation
categories. Two kinds of waterfall are supported:

1. Strict priority (named preset) - each category in order takes as much as
   it is owed until the payment runs out
2. Percentage split - each step takes a fixed share of the payment, capped at
   what the category is owed

Whatever is not allocated comes back as ``remaining_payment``; the caller
decides whether that surplus is a prepayment or a curtailment.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Callable, Dict, List, Optional, Sequence, Union

from loan_engine.calculations.decimal_utils import (
    ZERO,
    Number,
    minimum,
    minus,
    percentage_of,
    plus,
    round_down,
    to_decimal,
)
from loan_engine.exceptions import InvalidInputError, UnsupportedWaterfallError
from loan_engine.models import (
    NamedPreset,
    OutstandingAmounts,
    PaymentCategory,
    PercentageSplit,
    RoundingConfig,
    WaterfallConfig,
    WaterfallStep,
)

logger = logging.getLogger(__name__)

STANDARD = "standard"

WATERFALL_PRESETS = {
    STANDARD: (
        PaymentCategory.FEES,
        PaymentCategory.PENALTIES,
        PaymentCategory.INTEREST,
        PaymentCategory.PRINCIPAL,
        PaymentCategory.ESCROW,
    ),
    "interest_first": (
        PaymentCategory.INTEREST,
        PaymentCategory.PRINCIPAL,
        PaymentCategory.FEES,
        PaymentCategory.PENALTIES,
        PaymentCategory.ESCROW,
    ),
    "escrow_first": (
        PaymentCategory.ESCROW,
        PaymentCategory.FEES,
        PaymentCategory.PENALTIES,
        PaymentCategory.INTEREST,
        PaymentCategory.PRINCIPAL,
    ),
}

DEFAULT_WATERFALL = NamedPreset(name=STANDARD)

Allocations = Dict[PaymentCategory, Decimal]
AllocationStrategy = Callable[[Decimal, OutstandingAmounts], Allocations]


@dataclass(frozen=True)
class WaterfallResult:
    """Outcome of applying one payment through a waterfall."""

    fees_and_penalties_paid: Decimal
    interest_paid: Decimal
    principal_paid: Decimal
    escrow_paid: Decimal
    remaining_payment: Decimal
    unpaid_amounts: OutstandingAmounts
    allocations: Dict[PaymentCategory, Decimal] = field(default_factory=dict)
    is_prepayment: Optional[bool] = None
    is_curtailment: Optional[bool] = None
    reduces_term_not_payment: Optional[bool] = None

    @property
    def total_allocated(self) -> Decimal:
        return (
            self.fees_and_penalties_paid
            + self.interest_paid
            + self.principal_paid
            + self.escrow_paid
        )


def _empty_allocations() -> Allocations:
    return {category: ZERO for category in PaymentCategory}


def allocate_by_priority(
    payment: Decimal,
    outstanding: OutstandingAmounts,
    order: Sequence[PaymentCategory],
) -> Allocations:
    """Each category in order takes min(remaining payment, amount owed)."""
    allocations = _empty_allocations()
    remaining = payment

    for category in order:
        if remaining <= 0:
            break

        owed = minus(outstanding.amount_for(category), allocations[category])
        amount = minimum(remaining, owed)

        allocations[category] = plus(allocations[category], amount)
        remaining = minus(remaining, amount)

    return allocations


def allocate_by_percentage(
    payment: Decimal,
    outstanding: OutstandingAmounts,
    steps: Sequence[WaterfallStep],
    rounding_config: Optional[RoundingConfig] = None,
) -> Allocations:
    """
    Each step takes its percentage of the payment, capped at what is owed.

    Shares are truncated to the currency precision so the split can never
    add up to more than the payment.
    """
    decimal_places = (rounding_config or RoundingConfig()).decimal_places
    allocations = _empty_allocations()
    remaining = payment

    for step in steps:
        category = PaymentCategory(step.category)
        share = round_down(percentage_of(payment, step.percentage), decimal_places)
        owed = minus(outstanding.amount_for(category), allocations[category])
        amount = minimum(share, owed, remaining)

        allocations[category] = plus(allocations[category], amount)
        remaining = minus(remaining, amount)

    return allocations


def resolve_strategy(
    config: Union[WaterfallConfig, str, None],
    rounding_config: Optional[RoundingConfig] = None,
) -> AllocationStrategy:
    """
    Turn a waterfall configuration into an allocation function.

    A bare string is treated as a preset name.

    Raises:
        UnsupportedWaterfallError: If a preset name is unknown
    """
    if config is None:
        config = DEFAULT_WATERFALL
    elif isinstance(config, str):
        config = NamedPreset(name=config)

    if isinstance(config, NamedPreset):
        order = WATERFALL_PRESETS.get(config.name)
        if order is None:
            raise UnsupportedWaterfallError(config.name)
        return lambda payment, outstanding: allocate_by_priority(payment, outstanding, order)

    if isinstance(config, PercentageSplit):
        steps = config.steps
        return lambda payment, outstanding: allocate_by_percentage(
            payment, outstanding, steps, rounding_config
        )

    raise UnsupportedWaterfallError(type(config).__name__)


def apply_waterfall(
    payment: Number,
    outstanding: OutstandingAmounts,
    config: Union[WaterfallConfig, str, None] = None,
    is_prepayment: Optional[bool] = None,
    is_curtailment: Optional[bool] = None,
    rounding_config: Optional[RoundingConfig] = None,
) -> WaterfallResult:
    """
    Allocate a payment across outstanding obligations.

    The prepayment/curtailment flags do not change the arithmetic; they are
    carried through so the caller knows how to treat ``remaining_payment``.

    Args:
        payment: Amount received
        outstanding: Amounts owed per category
        config: NamedPreset, PercentageSplit or preset name (default standard)
        is_prepayment: Surplus reduces principal without re-amortizing
        is_curtailment: Surplus shortens the term instead of the payment
        rounding_config: Currency precision for percentage shares

    Returns:
        WaterfallResult whose paid amounts plus remaining_payment equal the payment

    Raises:
        InvalidInputError: If the payment is negative
    """
    payment = to_decimal(payment)
    if payment < 0:
        raise InvalidInputError("Payment cannot be negative", {"payment": str(payment)})

    strategy = resolve_strategy(config, rounding_config)
    allocations = strategy(payment, outstanding)

    fees_and_penalties = plus(
        allocations[PaymentCategory.FEES], allocations[PaymentCategory.PENALTIES]
    )
    allocated = plus(
        plus(fees_and_penalties, allocations[PaymentCategory.INTEREST]),
        plus(allocations[PaymentCategory.PRINCIPAL], allocations[PaymentCategory.ESCROW]),
    )
    remaining = minus(payment, allocated)

    unpaid = OutstandingAmounts(**{
        category.value: minus(outstanding.amount_for(category), allocations[category])
        for category in PaymentCategory
    })

    if remaining > 0:
        logger.debug(f"Payment {payment} leaves surplus {remaining} after waterfall")

    return WaterfallResult(
        fees_and_penalties_paid=fees_and_penalties,
        interest_paid=allocations[PaymentCategory.INTEREST],
        principal_paid=allocations[PaymentCategory.PRINCIPAL],
        escrow_paid=allocations[PaymentCategory.ESCROW],
        remaining_payment=remaining,
        unpaid_amounts=unpaid,
        allocations=allocations,
        is_prepayment=is_prepayment,
        is_curtailment=is_curtailment,
        reduces_term_not_payment=is_curtailment,
    )


def summarize_waterfall(results: List[WaterfallResult]) -> Dict[str, Decimal]:
    """Totals across a series of applied payments (e.g. for a statement)."""
    return {
        "total_fees_and_penalties": sum((r.fees_and_penalties_paid for r in results), ZERO),
        "total_interest": sum((r.interest_paid for r in results), ZERO),
        "total_principal": sum((r.principal_paid for r in results), ZERO),
        "total_escrow": sum((r.escrow_paid for r in results), ZERO),
        "total_remaining": sum((r.remaining_payment for r in results), ZERO),
    }
