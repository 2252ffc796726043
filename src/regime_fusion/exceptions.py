"""Regime Fusion Exceptions.

Every error carries an ``ErrorKind`` so callers can branch on the kind
rather than on the exception class or message text.
"""

from enum import Enum
from typing import Any, Optional


class ErrorKind(str, Enum):
    """Recoverable error conditions raised or surfaced by the engine."""
    INSUFFICIENT_DATA = "insufficient_data"
    INVALID_METRIC = "invalid_metric"
    ZERO_WEIGHT_MASS = "zero_weight_mass"
    INVALID_CONFIGURATION = "invalid_configuration"


class RegimeFusionError(Exception):
    """Base exception for the regime fusion engine.

    None of these are fatal: each one describes a single rejected input
    or configuration value.
    """

    def __init__(
        self,
        message: str,
        error_kind: ErrorKind,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_kind = error_kind
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.error_kind.value,
            "message": self.message,
            "details": self.details,
        }


class InvalidMetricError(RegimeFusionError, ValueError):
    """Raised when a regime metric is NaN or infinite."""

    def __init__(self, dimension: str, value: float):
        super().__init__(
            f"Non-finite metric for dimension '{dimension}': {value!r}",
            error_kind=ErrorKind.INVALID_METRIC,
            details={"dimension": dimension, "value": repr(value)},
        )
        self.dimension = dimension
        self.value = value


class InvalidConfigurationError(RegimeFusionError, ValueError):
    """Raised when a configuration value would make the engine ill-defined."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(
            message,
            error_kind=ErrorKind.INVALID_CONFIGURATION,
            details={"field": field} if field else {},
        )
        self.field = field
