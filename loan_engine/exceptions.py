"""Exceptions raised by the loan calculation engine.

Everything derives from ValueError so callers that already guard
calculations with ``except ValueError`` keep working.
"""


class LoanEngineError(ValueError):
    """Base exception for all engine errors."""

    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self):
        if self.details:
            return f"{self.message} - {self.details}"
        return self.message


class InvalidInputError(LoanEngineError):
    """Raised when a caller passes a value outside the valid domain."""
    pass


class InvalidDateRangeError(InvalidInputError):
    """Raised when an end date precedes its start date."""

    def __init__(self, start, end):
        super().__init__(
            f"End date {end.isoformat()} is before start date {start.isoformat()}",
            {"start": start.isoformat(), "end": end.isoformat()},
        )


class EmptyArgumentError(InvalidInputError):
    """Raised when min/max are asked for with no values."""

    def __init__(self, operation: str):
        super().__init__(f"{operation}() requires at least one value")


class InvalidLoanTermsError(InvalidInputError):
    """Raised when loan terms fail validation."""

    def __init__(self, issues):
        self.issues = list(issues)
        message = "; ".join(f"{issue.field}: {issue.message}" for issue in self.issues)
        super().__init__(
            f"Invalid loan terms: {message}",
            {"codes": [issue.code for issue in self.issues]},
        )


class InvalidPrepaymentError(InvalidInputError):
    """Raised when a prepayment fails validation against the schedule."""

    def __init__(self, issues):
        self.issues = list(issues)
        message = "; ".join(f"{issue.field}: {issue.message}" for issue in self.issues)
        super().__init__(
            f"Invalid prepayment: {message}",
            {"codes": [issue.code for issue in self.issues]},
        )


class ConfigurationError(LoanEngineError):
    """Raised for programming errors such as an unknown enum value."""
    pass


class UnsupportedFrequencyError(ConfigurationError):
    """Raised when a payment frequency is not recognized."""

    def __init__(self, frequency):
        super().__init__(f"Unsupported payment frequency: {frequency}")


class UnsupportedConventionError(ConfigurationError):
    """Raised when a day-count convention is not recognized."""

    def __init__(self, convention):
        super().__init__(f"Unsupported day count convention: {convention}")


class UnsupportedWaterfallError(ConfigurationError):
    """Raised when a waterfall preset name is not recognized."""

    def __init__(self, name: str):
        super().__init__(f"Unsupported waterfall preset: {name}")
