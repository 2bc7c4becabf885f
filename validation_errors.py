"""
Exception hierarchy for the validation pipeline.

Every precondition violation raises a subclass of DomainError carrying the
metric name and the offending value, so a failed run can be diagnosed
without re-running it.
"""

from typing import Any, Optional


class DomainError(ValueError):
    """Base exception for all validation pipeline errors.

    Attributes:
        metric: Name of the metric being processed (if known).
        value: The offending value.
    """

    def __init__(self, message: str, *, metric: Optional[str] = None, value: Any = None):
        super().__init__(message)
        self.metric = metric
        self.value = value

    def __str__(self) -> str:
        message = super().__str__()
        if self.metric:
            return f"[{self.metric}] {message}"
        return message


class InvalidParameter(DomainError):
    """Raised when the sample generator receives an unusable parameter."""


class InsufficientData(DomainError):
    """Raised when a sample set holds fewer than two observations."""


class DegenerateDistribution(DomainError):
    """Raised when the pooled standard deviation of a comparison is zero."""


class ConfigurationError(DomainError):
    """Raised for an invalid scenario or formatter configuration.

    Covers confidence levels outside (0, 1), baseline/enhanced metric sets
    that do not match, and values that do not fit their report column.
    """
