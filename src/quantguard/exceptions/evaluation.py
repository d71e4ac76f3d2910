"""Backtest-evaluation exceptions: data sufficiency, input validity, cancellation."""

from typing import Dict, Optional

from .base import QuantGuardError


class EvaluationError(QuantGuardError):
    """Base class for statistical evaluation errors."""

    pass


class InsufficientDataError(EvaluationError):
    """Raised when there's not enough data for the requested statistical method."""

    def __init__(
        self,
        reason: str,
        field: str = "returns",
        minimum_required: Optional[int] = None,
    ):
        details: Dict[str, str] = {"field": field, "reason": reason}
        if minimum_required is not None:
            details["minimum_required"] = str(minimum_required)

        super().__init__(f"Insufficient data for analysis: {reason}", details=details)
        self.reason = reason
        self.field = field
        self.minimum_required = minimum_required


class InvalidMetricsError(EvaluationError):
    """Raised when a BacktestMetrics field is out of range."""

    def __init__(self, field: str, reason: str):
        super().__init__(f"Invalid metric '{field}': {reason}", details={"field": field})
        self.field = field
        self.reason = reason


class Cancelled(QuantGuardError):
    """Raised when the caller cancels a long-running evaluation.

    Not a failure; no partial verdict is produced.
    """

    def __init__(self, operation: str, completed: int, total: int):
        super().__init__(
            f"{operation} cancelled",
            details={"completed": str(completed), "total": str(total)},
        )
        self.operation = operation
        self.completed = completed
        self.total = total
