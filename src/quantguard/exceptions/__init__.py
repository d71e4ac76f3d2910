"""Exception hierarchy for quantguard."""

from .analysis import (
    AnalysisError,
    FixError,
    FixUnavailableError,
    FixVerificationError,
    OverlapError,
    ParseError,
)
from .base import QuantGuardError
from .config import ConfigurationError
from .evaluation import (
    Cancelled,
    EvaluationError,
    InsufficientDataError,
    InvalidMetricsError,
)

__all__ = [
    "QuantGuardError",
    "AnalysisError",
    "ParseError",
    "FixError",
    "FixUnavailableError",
    "OverlapError",
    "FixVerificationError",
    "EvaluationError",
    "InsufficientDataError",
    "InvalidMetricsError",
    "Cancelled",
    "ConfigurationError",
]
