"""
Tests for payment calculations and the effective-rate solver.
"""

import logging

import pytest
from decimal import Decimal

from loan_engine.calculations.payment import (
    RATE_FLOOR,
    amortizing_payment,
    calculate_apr,
    calculate_loan_payment,
    interest_only_payment,
    payment_with_balloon,
    periods_per_year,
    present_value,
    remaining_balance,
    solve_effective_rate,
)
from loan_engine.calculations.decimal_utils import round_half_up, times
from loan_engine.config import get_settings
from loan_engine.exceptions import (
    InvalidInputError,
    InvalidLoanTermsError,
    UnsupportedFrequencyError,
)
from loan_engine.models import InterestType, LoanTerms, PaymentFrequency


class TestPeriodsPerYear:
    """Test the frequency lookup table."""

    @pytest.mark.parametrize(
        "frequency,expected",
        [
            ("monthly", 12),
            ("semi-monthly", 24),
            ("bi-weekly", 26),
            ("weekly", 52),
            ("quarterly", 4),
            ("semi-annually", 2),
            ("annually", 1),
        ],
    )
    def test_lookup(self, frequency, expected):
        assert periods_per_year(frequency) == expected
        assert periods_per_year(PaymentFrequency(frequency)) == expected

    def test_unknown_frequency_is_configuration_error(self):
        with pytest.raises(UnsupportedFrequencyError):
            periods_per_year("daily")


class TestAmortizingPayment:
    """Test level-payment amortization."""

    def test_thirty_year_mortgage(self, cents):
        """Standard 30-year mortgage check: 250k at 4.5%."""
        payment = amortizing_payment(Decimal("250000"), Decimal("4.5"), 360, "monthly", cents)
        assert payment == Decimal("1266.71")

    def test_calculate_payment(self):
        """$1M loan at 5% for 30 years is around $5,368/month."""
        payment = amortizing_payment(Decimal("1000000"), Decimal("5"), 360, "monthly")
        assert 5300 < payment < 5500

    def test_zero_rate_divides_principal(self, cents):
        """A zero-rate loan repays principal in equal parts."""
        payment = amortizing_payment(Decimal("10000"), Decimal("0"), 12, "monthly", cents)
        assert payment == Decimal("833.33")

    def test_zero_rate_unrounded(self):
        payment = amortizing_payment(Decimal("1200"), Decimal("0"), 12, "monthly")
        assert payment == Decimal("100")

    def test_quarterly_payment(self, cents):
        payment = amortizing_payment(Decimal("100000"), Decimal("8"), 4, "quarterly", cents)
        assert payment == Decimal("26262.38")

    def test_invalid_inputs(self):
        with pytest.raises(InvalidInputError):
            amortizing_payment(Decimal("-1"), Decimal("5"), 12, "monthly")
        with pytest.raises(InvalidInputError):
            amortizing_payment(Decimal("1000"), Decimal("-5"), 12, "monthly")
        with pytest.raises(InvalidInputError):
            amortizing_payment(Decimal("1000"), Decimal("5"), 0, "monthly")


class TestOtherPaymentTypes:
    """Test interest-only and balloon payments."""

    def test_interest_only(self, cents):
        payment = interest_only_payment(Decimal("100000"), Decimal("6"), "monthly", cents)
        assert payment == Decimal("500.00")

    def test_balloon_lowers_payment(self):
        full = amortizing_payment(Decimal("100000"), Decimal("6"), 60, "monthly")
        with_balloon = payment_with_balloon(
            Decimal("100000"), Decimal("6"), 60, Decimal("20000"), "monthly"
        )
        assert with_balloon < full

    def test_balloon_payment_prices_to_principal(self):
        """Payments plus the discounted balloon are worth exactly the principal."""
        payment = payment_with_balloon(
            Decimal("100000"), Decimal("6"), 60, Decimal("20000"), "monthly"
        )
        pv = present_value(payment, Decimal("0.005"), 60, Decimal("20000"))
        assert abs(pv - Decimal("100000")) < Decimal("1e-20")

    def test_balloon_zero_rate(self):
        payment = payment_with_balloon(
            Decimal("10000"), Decimal("0"), 8, Decimal("2000"), "monthly"
        )
        assert payment == Decimal("1000")

    def test_negative_balloon_rejected(self):
        with pytest.raises(InvalidInputError):
            payment_with_balloon(Decimal("10000"), Decimal("5"), 8, Decimal("-1"), "monthly")


class TestRemainingBalance:
    """Test balance after N payments."""

    def test_no_payments(self):
        balance = remaining_balance(Decimal("250000"), Decimal("4.5"), 360, "monthly", 0)
        assert balance == Decimal("250000")

    def test_fully_paid(self):
        balance = remaining_balance(Decimal("250000"), Decimal("4.5"), 360, "monthly", 360)
        assert balance < Decimal("0.000001")

    def test_balance_declines(self):
        after_year = remaining_balance(Decimal("250000"), Decimal("4.5"), 360, "monthly", 12)
        after_two = remaining_balance(Decimal("250000"), Decimal("4.5"), 360, "monthly", 24)
        assert Decimal("240000") < after_year < Decimal("250000")
        assert after_two < after_year

    def test_zero_rate(self):
        balance = remaining_balance(Decimal("1200"), Decimal("0"), 12, "monthly", 6)
        assert balance == Decimal("600")


class TestEffectiveRateSolver:
    """Test the Newton-Raphson effective-rate solver."""

    def test_iteration_cap_default(self):
        assert get_settings().solver_max_iterations == 100

    def test_recovers_contract_rate(self):
        payment = amortizing_payment(Decimal("250000"), Decimal("4.5"), 360, "monthly")
        solution = solve_effective_rate(Decimal("250000"), payment, 360, "monthly")
        assert solution.converged
        assert solution.iterations <= get_settings().solver_max_iterations
        assert abs(solution.rate - Decimal("4.5")) < Decimal("0.0001")

    def test_recovers_rate_with_balloon(self):
        payment = payment_with_balloon(
            Decimal("100000"), Decimal("6"), 60, Decimal("20000"), "monthly"
        )
        solution = solve_effective_rate(
            Decimal("100000"), payment, 60, "monthly", Decimal("20000")
        )
        assert solution.converged
        assert abs(solution.rate - Decimal("6")) < Decimal("0.0001")

    def test_zero_interest_stream(self):
        """Payments that only return principal have a zero rate."""
        solution = solve_effective_rate(Decimal("1200"), Decimal("100"), 12, "monthly")
        assert solution.converged
        assert solution.rate == 0
        assert solution.iterations == 0

    def test_non_convergence_returns_approximation(self, caplog):
        """Hitting the cap returns the last iterate instead of failing."""
        payment = amortizing_payment(Decimal("250000"), Decimal("4.5"), 360, "monthly")
        with caplog.at_level(logging.WARNING, logger="loan_engine.calculations.payment"):
            solution = solve_effective_rate(
                Decimal("250000"), payment, 360, "monthly", max_iterations=1
            )
        assert not solution.converged
        assert solution.iterations == 1
        assert solution.rate > 0
        assert "did not converge" in caplog.text

    def test_rate_below_floor_is_approximate(self):
        """A 0.01% loan sits below the annualized floor and cannot converge."""
        payment = amortizing_payment(Decimal("100000"), Decimal("0.01"), 360, "monthly")
        solution = solve_effective_rate(Decimal("100000"), payment, 360, "monthly")
        assert solution.converged is False
        assert solution.rate == RATE_FLOOR * 12 * 100

    def test_present_value_zero_rate_is_linear(self):
        assert present_value(Decimal("100"), Decimal("0"), 12, Decimal("50")) == Decimal("1250")


class TestCalculateLoanPayment:
    """Test the payment summary orchestration."""

    def test_rate_below_floor_flagged(self):
        terms = LoanTerms(
            principal=Decimal("100000"), annual_interest_rate=Decimal("0.01"), term_months=360
        )
        result = calculate_loan_payment(terms)
        assert result.effective_rate_converged is False
        assert result.effective_interest_rate == Decimal("1.200")

    def test_mortgage_summary(self, mortgage_terms):
        result = calculate_loan_payment(mortgage_terms)
        assert result.monthly_payment == Decimal("1266.71")
        assert result.number_of_payments == 360
        assert result.total_interest == result.total_payments - Decimal("250000.00")
        assert Decimal("206000") < result.total_interest < Decimal("206100")
        assert result.effective_rate_converged
        assert abs(result.effective_interest_rate - Decimal("4.5")) < Decimal("0.0001")

    def test_totals_use_unrounded_payment(self, mortgage_terms):
        """Totals come from the unrounded payment, not 1266.71 * 360."""
        result = calculate_loan_payment(mortgage_terms)
        unrounded = amortizing_payment(Decimal("250000"), Decimal("4.5"), 360, "monthly")
        assert result.total_payments == round_half_up(times(unrounded, 360), 2)

    def test_zero_rate_loan(self, cents):
        terms = LoanTerms(
            principal=Decimal("10000.00"),
            annual_interest_rate=Decimal("0"),
            term_months=12,
            rounding_config=cents,
        )
        result = calculate_loan_payment(terms)
        assert result.monthly_payment == Decimal("833.33")
        assert result.total_payments == Decimal("10000.00")
        assert result.total_interest == 0
        assert result.effective_interest_rate == 0

    def test_interest_only_loan(self, cents):
        """Interest-only loans repay principal at maturity."""
        terms = LoanTerms(
            principal=Decimal("100000"),
            annual_interest_rate=Decimal("6"),
            term_months=12,
            interest_type=InterestType.SIMPLE,
            rounding_config=cents,
        )
        result = calculate_loan_payment(terms)
        assert result.monthly_payment == Decimal("500.00")
        assert result.total_payments == Decimal("106000.00")
        assert result.total_interest == Decimal("6000.00")
        assert abs(result.effective_interest_rate - Decimal("6")) < Decimal("0.0001")

    def test_balloon_takes_precedence(self, cents):
        """A balloon selects the balloon formula even for simple-interest terms."""
        terms = LoanTerms(
            principal=Decimal("100000"),
            annual_interest_rate=Decimal("6"),
            term_months=60,
            interest_type=InterestType.SIMPLE,
            balloon_payment=Decimal("20000"),
            rounding_config=cents,
        )
        result = calculate_loan_payment(terms)
        expected = payment_with_balloon(
            Decimal("100000"), Decimal("6"), 60, Decimal("20000"), "monthly", cents
        )
        assert result.monthly_payment == expected
        assert abs(result.effective_interest_rate - Decimal("6")) < Decimal("0.0001")

    def test_unrounded_without_config(self):
        terms = LoanTerms(
            principal=Decimal("250000"), annual_interest_rate=Decimal("4.5"), term_months=360
        )
        result = calculate_loan_payment(terms)
        assert result.monthly_payment != round_half_up(result.monthly_payment, 2)

    def test_bi_weekly_payment_count(self, cents):
        terms = LoanTerms(
            principal=Decimal("20000"),
            annual_interest_rate=Decimal("5"),
            term_months=12,
            payment_frequency=PaymentFrequency.BI_WEEKLY,
            rounding_config=cents,
        )
        result = calculate_loan_payment(terms)
        assert result.number_of_payments == 26

    @pytest.mark.parametrize(
        "overrides",
        [
            {"principal": Decimal("0")},
            {"principal": Decimal("-100")},
            {"annual_interest_rate": Decimal("-1")},
            {"term_months": 0},
            {"balloon_payment": Decimal("100000")},
        ],
    )
    def test_invalid_terms_fail_fast(self, overrides):
        values = {
            "principal": Decimal("100000"),
            "annual_interest_rate": Decimal("5"),
            "term_months": 60,
        }
        values.update(overrides)
        with pytest.raises(InvalidLoanTermsError):
            calculate_loan_payment(LoanTerms(**values))


class TestCalculateApr:
    """Test the fee-aware APR."""

    def test_no_fees_matches_note_rate(self):
        payment = amortizing_payment(Decimal("250000"), Decimal("4.5"), 360, "monthly")
        apr = calculate_apr(Decimal("250000"), payment, 360)
        assert abs(apr - Decimal("4.5")) < Decimal("0.0001")

    def test_fees_raise_apr(self):
        payment = amortizing_payment(Decimal("250000"), Decimal("4.5"), 360, "monthly")
        apr = calculate_apr(Decimal("250000"), payment, 360, upfront_fees=Decimal("5000"))
        assert Decimal("4.6") < apr < Decimal("4.8")

    def test_quarterly_frequency(self):
        payment = amortizing_payment(Decimal("100000"), Decimal("8"), 20, "quarterly")
        apr = calculate_apr(Decimal("100000"), payment, 20, frequency=PaymentFrequency.QUARTERLY)
        assert abs(apr - Decimal("8")) < Decimal("0.0001")

    def test_zero_interest_stream(self):
        apr = calculate_apr(Decimal("12000"), Decimal("1000"), 12)
        assert apr < Decimal("0.001")

    def test_fees_consume_principal(self):
        assert calculate_apr(Decimal("1000"), Decimal("100"), 12, upfront_fees=Decimal("1000")) == 0

    def test_no_payment(self):
        assert calculate_apr(Decimal("1000"), Decimal("0"), 12) == 0

    def test_negative_fees_rejected(self):
        with pytest.raises(InvalidInputError):
            calculate_apr(Decimal("1000"), Decimal("100"), 12, upfront_fees=Decimal("-1"))
