"""
Loan Engine Input Models

Enumerations and immutable input value objects shared by the calculators.
Results are produced by the calculator modules themselves.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from loan_engine.config import get_settings


class RoundingMode(str, Enum):
    """Rounding policy applied at explicit rounding points."""

    HALF_UP = "round-half-up"
    UP = "round-up"
    DOWN = "round-down"
    HALF_EVEN = "round-half-even"


class DayCountConvention(str, Enum):
    """Day-count conventions for accrual periods."""

    ACT_360 = "ACT/360"
    ACT_365 = "ACT/365"
    THIRTY_360 = "30/360"
    ACT_ACT = "ACT/ACT"


class PaymentFrequency(str, Enum):
    """Scheduled payment frequencies."""

    MONTHLY = "monthly"
    SEMI_MONTHLY = "semi-monthly"
    BI_WEEKLY = "bi-weekly"
    WEEKLY = "weekly"
    QUARTERLY = "quarterly"
    SEMI_ANNUALLY = "semi-annually"
    ANNUALLY = "annually"


class InterestType(str, Enum):
    """Loan structure: fully amortizing or interest-only (simple)."""

    AMORTIZING = "amortizing"
    SIMPLE = "simple"


class PaymentCategory(str, Enum):
    """Obligation categories a payment can be allocated to."""

    FEES = "fees"
    PENALTIES = "penalties"
    INTEREST = "interest"
    PRINCIPAL = "principal"
    ESCROW = "escrow"


def _default_decimal_places() -> int:
    return get_settings().default_decimal_places


def _default_rounding_mode() -> RoundingMode:
    return RoundingMode(get_settings().default_rounding_mode)


class RoundingConfig(BaseModel):
    """Decimal places and rounding mode for monetary outputs."""

    model_config = ConfigDict(frozen=True)

    decimal_places: int = Field(default_factory=_default_decimal_places, ge=0)
    mode: RoundingMode = Field(default_factory=_default_rounding_mode)


class LoanTerms(BaseModel):
    """
    Terms of an installment loan.

    Only the shape is enforced here; business rules (positive principal,
    balloon below principal, term limits) are checked by
    ``loan_engine.validation`` before any calculation runs.
    """

    model_config = ConfigDict(frozen=True)

    principal: Decimal
    annual_interest_rate: Decimal  # percentage points, e.g. 4.5 for 4.5%
    term_months: int
    payment_frequency: PaymentFrequency = PaymentFrequency.MONTHLY
    interest_type: InterestType = InterestType.AMORTIZING
    balloon_payment: Optional[Decimal] = None
    rounding_config: Optional[RoundingConfig] = None

    # Only used when generating a dated schedule
    start_date: Optional[date] = None
    first_payment_date: Optional[date] = None
    day_count_convention: DayCountConvention = DayCountConvention.THIRTY_360


class OutstandingAmounts(BaseModel):
    """Obligation ledger at the moment a payment is applied."""

    model_config = ConfigDict(frozen=True)

    fees: Decimal = Field(default=Decimal("0"), ge=0)
    penalties: Decimal = Field(default=Decimal("0"), ge=0)
    interest: Decimal = Field(default=Decimal("0"), ge=0)
    principal: Decimal = Field(default=Decimal("0"), ge=0)
    escrow: Decimal = Field(default=Decimal("0"), ge=0)

    def amount_for(self, category: PaymentCategory) -> Decimal:
        return getattr(self, PaymentCategory(category).value)

    def total(self) -> Decimal:
        return self.fees + self.penalties + self.interest + self.principal + self.escrow


class WaterfallStep(BaseModel):
    """One leg of a percentage-split waterfall."""

    model_config = ConfigDict(frozen=True)

    category: PaymentCategory
    percentage: Decimal = Field(ge=0, le=100)


class NamedPreset(BaseModel):
    """Strict-priority waterfall identified by preset name."""

    model_config = ConfigDict(frozen=True)

    name: str = "standard"


class PercentageSplit(BaseModel):
    """Waterfall that splits the payment by fixed percentages."""

    model_config = ConfigDict(frozen=True)

    steps: Tuple[WaterfallStep, ...]

    @field_validator("steps")
    @classmethod
    def check_total_percentage(cls, steps):
        if not steps:
            raise ValueError("A percentage split needs at least one step")
        total = sum((step.percentage for step in steps), Decimal("0"))
        if total > 100:
            raise ValueError(f"Waterfall percentages sum to {total}, above 100")
        return steps


WaterfallConfig = Union[NamedPreset, PercentageSplit]
