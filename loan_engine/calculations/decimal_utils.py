"""
Decimal Arithmetic Core

Exact decimal arithmetic for money and rates. Every helper takes an explicit
``decimal.Context`` (``WORKING_CONTEXT`` by default) so results never depend
on the thread-local decimal context. Addition, subtraction and multiplication
are exact within the working precision; division and fractional powers are
truncated to it. Rounding to currency precision only happens when one of the
``round_*`` helpers is called.
"""

from decimal import (
    Context,
    Decimal,
    DivisionByZero,
    InvalidOperation,
    Overflow,
    ROUND_DOWN,
    ROUND_HALF_EVEN,
    ROUND_HALF_UP,
    ROUND_UP,
)
from typing import Optional, Union

from loan_engine.config import get_settings
from loan_engine.exceptions import EmptyArgumentError, InvalidInputError
from loan_engine.models import RoundingConfig, RoundingMode

Number = Union[Decimal, int, float, str]

ZERO = Decimal("0")
ONE = Decimal("1")
HUNDRED = Decimal("100")

# Tolerance for rate/ratio comparisons, never for currency amounts
ZERO_EPSILON = Decimal("1e-7")

ROUNDING_MODES = {
    RoundingMode.HALF_UP: ROUND_HALF_UP,
    RoundingMode.UP: ROUND_UP,
    RoundingMode.DOWN: ROUND_DOWN,
    RoundingMode.HALF_EVEN: ROUND_HALF_EVEN,
}


def working_context(precision: int) -> Context:
    """Build an arithmetic context that truncates at ``precision`` digits."""
    return Context(
        prec=precision,
        rounding=ROUND_DOWN,
        Emax=999999,
        Emin=-999999,
        # Shared across threads: flags are never read, traps fire regardless
        flags=[],
        traps=[InvalidOperation, DivisionByZero, Overflow],
    )


WORKING_CONTEXT = working_context(get_settings().working_precision)


def to_decimal(value: Number) -> Decimal:
    """
    Convert a numeric input to Decimal.

    Floats go through their shortest repr so 0.1 becomes Decimal("0.1")
    rather than its binary expansion.

    Raises:
        InvalidInputError: If the value is not a finite number
    """
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(repr(value)) if isinstance(value, float) else Decimal(value)
        except (InvalidOperation, TypeError, ValueError):
            raise InvalidInputError(f"Not a number: {value!r}", {"value": str(value)})

    if not result.is_finite():
        raise InvalidInputError(f"Not a finite number: {value!r}", {"value": str(value)})
    return result


def plus(a: Number, b: Number, context: Context = WORKING_CONTEXT) -> Decimal:
    return context.add(to_decimal(a), to_decimal(b))


def minus(a: Number, b: Number, context: Context = WORKING_CONTEXT) -> Decimal:
    return context.subtract(to_decimal(a), to_decimal(b))


def times(a: Number, b: Number, context: Context = WORKING_CONTEXT) -> Decimal:
    return context.multiply(to_decimal(a), to_decimal(b))


def divide(a: Number, b: Number, context: Context = WORKING_CONTEXT) -> Decimal:
    """Divide, truncating to the context precision. Raises on a zero divisor."""
    return context.divide(to_decimal(a), to_decimal(b))


def power(base: Number, exponent: Number, context: Context = WORKING_CONTEXT) -> Decimal:
    """Raise ``base`` to ``exponent``; fractional exponents need a positive base."""
    return context.power(to_decimal(base), to_decimal(exponent))


def safe_divide(
    numerator: Number,
    denominator: Number,
    default: Number = ZERO,
    context: Context = WORKING_CONTEXT,
) -> Decimal:
    """Divide, returning ``default`` when the denominator is exactly zero."""
    denominator = to_decimal(denominator)
    if denominator == 0:
        return to_decimal(default)
    return divide(numerator, denominator, context)


def compound_factor(rate: Number, periods: Number, context: Context = WORKING_CONTEXT) -> Decimal:
    """(1 + rate) ** periods"""
    return power(plus(ONE, rate, context), periods, context)


def percentage_of(
    value: Number,
    percent: Number,
    rounding_config: Optional[RoundingConfig] = None,
) -> Decimal:
    """``value * percent / 100``, rounded only when a config is supplied."""
    result = divide(times(value, percent), HUNDRED)
    if rounding_config is not None:
        return round_money(result, rounding_config)
    return result


# =============================================================================
# ROUNDING
# =============================================================================


def _quantize(value: Number, decimal_places: int, rounding: str) -> Decimal:
    if decimal_places < 0:
        raise ValueError("decimal_places must be >= 0")
    exponent = Decimal(1).scaleb(-decimal_places)
    return to_decimal(value).quantize(exponent, rounding=rounding, context=WORKING_CONTEXT)


def round_half_up(value: Number, decimal_places: int = 2) -> Decimal:
    return _quantize(value, decimal_places, ROUND_HALF_UP)


def round_up(value: Number, decimal_places: int = 2) -> Decimal:
    """Round away from zero."""
    return _quantize(value, decimal_places, ROUND_UP)


def round_down(value: Number, decimal_places: int = 2) -> Decimal:
    """Truncate toward zero."""
    return _quantize(value, decimal_places, ROUND_DOWN)


def round_half_even(value: Number, decimal_places: int = 2) -> Decimal:
    return _quantize(value, decimal_places, ROUND_HALF_EVEN)


def round_money(value: Number, rounding_config: Optional[RoundingConfig] = None) -> Decimal:
    """
    Round a monetary value per ``rounding_config``.

    Without a config the engine defaults apply (2 places, half-up unless
    overridden through settings).
    """
    if rounding_config is None:
        rounding_config = RoundingConfig()
    return _quantize(
        value,
        rounding_config.decimal_places,
        ROUNDING_MODES[RoundingMode(rounding_config.mode)],
    )


def maybe_round(value: Decimal, rounding_config: Optional[RoundingConfig]) -> Decimal:
    """Round only when the caller asked for it."""
    if rounding_config is None:
        return value
    return round_money(value, rounding_config)


# =============================================================================
# PREDICATES AND AGGREGATES
# =============================================================================


def is_zero(value: Number, epsilon: Number = ZERO_EPSILON) -> bool:
    """True when |value| < epsilon. Meant for rates and ratios."""
    return to_decimal(value).copy_abs() < to_decimal(epsilon)


def is_negative(value: Number) -> bool:
    return to_decimal(value) < 0


def is_positive(value: Number) -> bool:
    return to_decimal(value) > 0


def minimum(*values: Number) -> Decimal:
    if not values:
        raise EmptyArgumentError("minimum")
    return min(to_decimal(v) for v in values)


def maximum(*values: Number) -> Decimal:
    if not values:
        raise EmptyArgumentError("maximum")
    return max(to_decimal(v) for v in values)


# =============================================================================
# PRESENTATION
# =============================================================================


def format_currency(value: Number, symbol: str = "$", decimal_places: int = 2) -> str:
    """Format as currency with thousands separators, e.g. $1,266.71."""
    rounded = round_half_up(value, decimal_places)
    sign = "-" if rounded < 0 else ""
    return f"{sign}{symbol}{rounded.copy_abs():,.{decimal_places}f}"


def format_percentage(value: Number, decimal_places: int = 2) -> str:
    """Format a percentage-point value, e.g. 4.50%."""
    rounded = round_half_up(value, decimal_places)
    return f"{rounded:.{decimal_places}f}%"
