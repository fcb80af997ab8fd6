"""
Pytest configuration and shared fixtures.
"""

import pytest
import sys
import os
from decimal import Decimal

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from loan_engine.models import (
    LoanTerms,
    OutstandingAmounts,
    PaymentFrequency,
    RoundingConfig,
    RoundingMode,
)


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "slow: marks tests as slow")
    config.addinivalue_line("markers", "property: marks hypothesis property tests")


@pytest.fixture
def cents():
    """Two decimal places, half-up."""
    return RoundingConfig(decimal_places=2, mode=RoundingMode.HALF_UP)


@pytest.fixture
def mortgage_terms(cents):
    """$250k 30-year fixed mortgage at 4.5%."""
    return LoanTerms(
        principal=Decimal("250000.00"),
        annual_interest_rate=Decimal("4.5"),
        term_months=360,
        payment_frequency=PaymentFrequency.MONTHLY,
        rounding_config=cents,
    )


@pytest.fixture
def outstanding():
    """Typical monthly obligation ledger."""
    return OutstandingAmounts(
        fees=Decimal("50"),
        penalties=Decimal("0"),
        interest=Decimal("400"),
        principal=Decimal("1000"),
        escrow=Decimal("100"),
    )
