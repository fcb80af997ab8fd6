"""
Tests for the decimal arithmetic core.
"""

import pytest
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal, getcontext

from loan_engine.calculations import decimal_utils as du
from loan_engine.calculations.payment import amortizing_payment
from loan_engine.exceptions import EmptyArgumentError, InvalidInputError
from loan_engine.models import RoundingConfig, RoundingMode


class TestConstruction:
    """Test conversion of numeric inputs."""

    def test_float_uses_shortest_repr(self):
        """0.1 must not carry its binary expansion."""
        assert du.to_decimal(0.1) == Decimal("0.1")

    def test_string_round_trip(self):
        """Decimal strings survive a round trip exactly."""
        value = du.to_decimal("1266.7133249")
        assert str(value) == "1266.7133249"

    def test_int_and_decimal_inputs(self):
        assert du.to_decimal(12) == Decimal("12")
        value = Decimal("3.14")
        assert du.to_decimal(value) is value

    @pytest.mark.parametrize(
        "value", ["abc", "", "NaN", "Infinity", float("inf"), float("nan"), Decimal("NaN"), None]
    )
    def test_rejects_non_finite_and_unparsable(self, value):
        with pytest.raises(InvalidInputError):
            du.to_decimal(value)

    def test_rejection_reaches_calculators(self):
        with pytest.raises(InvalidInputError):
            amortizing_payment("NaN", Decimal("6"), 60, "monthly")
        with pytest.raises(InvalidInputError):
            du.plus("abc", 1)


class TestSharedContext:
    """Test the module-level working context."""

    def test_flags_start_clear(self):
        context = du.working_context(50)
        assert not any(context.flags.values())

    def test_concurrent_calculations_agree(self):
        """Threads sharing the working context get identical results."""
        def calculate(_):
            return amortizing_payment(Decimal("250000"), Decimal("4.5"), 360, "monthly")

        expected = calculate(None)
        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(calculate, range(64)))
        assert all(result == expected for result in results)


class TestArithmetic:
    """Test explicit-context arithmetic."""

    def test_addition_is_exact(self):
        """0.1 + 0.2 is exactly 0.3."""
        assert du.plus("0.1", "0.2") == Decimal("0.3")

    def test_multiplication_keeps_all_digits(self):
        """More digits than the default 28-digit context survive."""
        a = Decimal("1." + "0" * 21 + "1")
        result = du.times(a, a)
        assert result == Decimal("1." + "0" * 21 + "2" + "0" * 21 + "1")

    def test_division_truncates_to_working_precision(self):
        """1/3 is truncated, never rounded up."""
        result = du.divide(1, 3)
        assert str(result).startswith("0.3333333333")
        assert str(result)[-1] == "3"
        assert len(result.as_tuple().digits) == du.WORKING_CONTEXT.prec

    def test_global_context_untouched(self):
        """Calculations never modify the thread-local decimal context."""
        before = getcontext().prec
        du.divide(2, 7)
        du.power("1.005", 360)
        assert getcontext().prec == before

    def test_fractional_power(self):
        """Fractional exponents are supported for positive bases."""
        result = du.power(4, "0.5")
        assert abs(result - 2) < Decimal("1e-40")

    def test_compound_factor(self):
        assert du.compound_factor("0.01", 2) == Decimal("1.0201")

    def test_percentage_of(self, cents):
        assert du.percentage_of(200, "7.5") == Decimal("15")
        assert du.percentage_of("333.33", 10, cents) == Decimal("33.33")


class TestSafeDivide:
    """Test division with a zero guard."""

    def test_zero_denominator_returns_default(self):
        """Zero divisor is not an error."""
        assert du.safe_divide(100, 0) == 0

    def test_custom_default(self):
        assert du.safe_divide(100, 0, default=Decimal("-1")) == Decimal("-1")

    def test_regular_division(self):
        assert du.safe_divide(10, 4) == Decimal("2.5")


class TestRounding:
    """Test explicit rounding helpers."""

    def test_round_half_up(self):
        assert du.round_half_up("2.345", 2) == Decimal("2.35")
        assert du.round_half_up("2.344", 2) == Decimal("2.34")

    def test_round_up(self):
        assert du.round_up("2.341", 2) == Decimal("2.35")

    def test_round_down(self):
        assert du.round_down("2.349", 2) == Decimal("2.34")

    def test_round_half_even(self):
        assert du.round_half_even("2.345", 2) == Decimal("2.34")
        assert du.round_half_even("2.355", 2) == Decimal("2.36")

    def test_zero_places(self):
        assert du.round_half_up("10.5", 0) == Decimal("11")

    def test_negative_places_rejected(self):
        with pytest.raises(ValueError):
            du.round_half_up("1.5", -1)

    def test_round_money_uses_config(self):
        config = RoundingConfig(decimal_places=3, mode=RoundingMode.DOWN)
        assert du.round_money("1.23456", config) == Decimal("1.234")

    def test_round_money_default(self):
        """Without a config, money rounds to cents half-up."""
        assert du.round_money("833.3333") == Decimal("833.33")

    def test_maybe_round_without_config(self):
        value = Decimal("1.23456")
        assert du.maybe_round(value, None) is value


class TestPredicates:
    """Test comparison helpers."""

    def test_is_zero_epsilon(self):
        """Residual noise below 1e-7 counts as zero."""
        assert du.is_zero(Decimal("0.00000001"))
        assert du.is_zero(Decimal("-0.00000001"))
        assert not du.is_zero(Decimal("0.000001"))

    def test_sign_checks(self):
        assert du.is_negative("-0.01")
        assert not du.is_negative(0)
        assert du.is_positive("0.01")
        assert not du.is_positive(0)

    def test_minimum_and_maximum(self):
        assert du.minimum(3, "1.5", Decimal("2")) == Decimal("1.5")
        assert du.maximum(3, "1.5", Decimal("2")) == Decimal("3")

    def test_empty_minimum_raises(self):
        with pytest.raises(EmptyArgumentError):
            du.minimum()

    def test_empty_maximum_raises(self):
        with pytest.raises(EmptyArgumentError):
            du.maximum()


class TestFormatting:
    """Test presentation helpers."""

    def test_format_currency(self):
        assert du.format_currency(Decimal("1234567.891")) == "$1,234,567.89"

    def test_format_currency_custom_symbol_and_places(self):
        assert du.format_currency(Decimal("1234.5"), symbol="€", decimal_places=0) == "€1,235"

    def test_format_negative_currency(self):
        assert du.format_currency(Decimal("-12.5")) == "-$12.50"

    def test_format_percentage(self):
        assert du.format_percentage(Decimal("4.5")) == "4.50%"
        assert du.format_percentage(Decimal("4.56789"), 3) == "4.568%"
