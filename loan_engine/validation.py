"""
Loan Terms Validation

Business-rule checks on loan terms. ``validate_loan_terms`` collects every
issue; ``ensure_valid_loan_terms`` raises on the first call that finds any.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import List

from dateutil.relativedelta import relativedelta

from loan_engine.exceptions import InvalidLoanTermsError
from loan_engine.models import LoanTerms

MAX_PRINCIPAL = Decimal("100000000")
MAX_ANNUAL_RATE = Decimal("100")
MAX_TERM_MONTHS = 600
MAX_FIRST_PAYMENT_DELAY_MONTHS = 3

REQUIRED_FIELD = "REQUIRED_FIELD"
INVALID_VALUE = "INVALID_VALUE"
MAX_VALUE_EXCEEDED = "MAX_VALUE_EXCEEDED"
INVALID_DATE_RANGE = "INVALID_DATE_RANGE"


@dataclass(frozen=True)
class ValidationIssue:
    """A single failed validation rule."""

    field: str
    message: str
    code: str


def validate_loan_terms(terms: LoanTerms) -> List[ValidationIssue]:
    """Check loan terms and return every issue found (empty when valid)."""
    issues = []

    if terms.principal <= 0:
        issues.append(ValidationIssue(
            "principal", "Principal amount must be greater than zero", INVALID_VALUE
        ))
    elif terms.principal > MAX_PRINCIPAL:
        issues.append(ValidationIssue(
            "principal", "Principal amount exceeds maximum allowed value", MAX_VALUE_EXCEEDED
        ))

    if terms.annual_interest_rate < 0:
        issues.append(ValidationIssue(
            "annual_interest_rate", "Annual interest rate cannot be negative", INVALID_VALUE
        ))
    elif terms.annual_interest_rate > MAX_ANNUAL_RATE:
        issues.append(ValidationIssue(
            "annual_interest_rate", "Annual interest rate cannot exceed 100%", MAX_VALUE_EXCEEDED
        ))

    if terms.term_months <= 0:
        issues.append(ValidationIssue(
            "term_months", "Term must be greater than zero months", INVALID_VALUE
        ))
    elif terms.term_months > MAX_TERM_MONTHS:
        issues.append(ValidationIssue(
            "term_months", "Term cannot exceed 600 months (50 years)", MAX_VALUE_EXCEEDED
        ))

    if terms.balloon_payment is not None:
        if terms.balloon_payment < 0:
            issues.append(ValidationIssue(
                "balloon_payment", "Balloon payment cannot be negative", INVALID_VALUE
            ))
        elif terms.balloon_payment >= terms.principal:
            issues.append(ValidationIssue(
                "balloon_payment", "Balloon payment must be less than principal", INVALID_VALUE
            ))

    if terms.first_payment_date is not None:
        if terms.start_date is None:
            issues.append(ValidationIssue(
                "start_date", "Start date is required with a first payment date", REQUIRED_FIELD
            ))
        elif terms.first_payment_date < terms.start_date:
            issues.append(ValidationIssue(
                "first_payment_date",
                "First payment date cannot be before start date",
                INVALID_DATE_RANGE,
            ))
        elif terms.first_payment_date > terms.start_date + relativedelta(
            months=MAX_FIRST_PAYMENT_DELAY_MONTHS
        ):
            issues.append(ValidationIssue(
                "first_payment_date",
                "First payment date cannot be more than 3 months after start date",
                INVALID_DATE_RANGE,
            ))

    return issues


def is_valid_loan_terms(terms: LoanTerms) -> bool:
    return not validate_loan_terms(terms)


def ensure_valid_loan_terms(terms: LoanTerms) -> None:
    """Raise InvalidLoanTermsError if the terms have any issue."""
    issues = validate_loan_terms(terms)
    if issues:
        raise InvalidLoanTermsError(issues)


def validate_prepayment(
    amount: Decimal,
    prepayment_date: date,
    current_balance: Decimal,
    loan_start_date: date,
) -> List[ValidationIssue]:
    """Check a prepayment against the current balance and loan start."""
    issues = []

    if amount <= 0:
        issues.append(ValidationIssue(
            "amount", "Prepayment amount must be greater than zero", INVALID_VALUE
        ))
    elif amount > current_balance:
        issues.append(ValidationIssue(
            "amount", "Prepayment amount cannot exceed current balance", MAX_VALUE_EXCEEDED
        ))

    if prepayment_date < loan_start_date:
        issues.append(ValidationIssue(
            "date", "Prepayment date cannot be before loan start date", INVALID_DATE_RANGE
        ))

    return issues


def format_validation_errors(issues: List[ValidationIssue]) -> str:
    """One ``field: message`` line per issue."""
    return "\n".join(f"{issue.field}: {issue.message}" for issue in issues)
