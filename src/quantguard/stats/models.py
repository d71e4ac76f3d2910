"""Data models for backtest statistical validation."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Sequence

import numpy as np

from ..exceptions import InvalidMetricsError
from ..rules.models import Severity


def _finite(name: str, value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise InvalidMetricsError(name, f"expected a number, got {value!r}")
    if not math.isfinite(number):
        raise InvalidMetricsError(name, "must be finite")
    return number


@dataclass(frozen=True)
class BacktestMetrics:
    """Backtest results supplied by the caller. Read-only.

    Attributes:
        returns: Time-ordered per-period returns of the selected configuration
        sharpe: Annualized Sharpe ratio as reported by the backtest
        max_drawdown: Maximum drawdown (sign ignored, 0.25 == 25%)
        win_rate: Fraction of winning trades in [0, 1]
        trial_count: Number of strategies/hypotheses tried overall
        variant_count: Number of parameter variants the configuration was picked from
        variant_returns: Optional time-by-variant return matrix (rows aligned in
            time, one column per variant) used for PBO
        total_return: Optional total return; compounded from returns if omitted
    """

    returns: tuple[float, ...]
    sharpe: float
    max_drawdown: float
    win_rate: float
    trial_count: int = 1
    variant_count: int = 1
    variant_returns: Optional[tuple[tuple[float, ...], ...]] = field(default=None, repr=False)
    total_return: Optional[float] = None

    def __post_init__(self) -> None:
        returns = tuple(_finite(f"returns[{i}]", r) for i, r in enumerate(self.returns))
        object.__setattr__(self, "returns", returns)
        object.__setattr__(self, "sharpe", _finite("sharpe", self.sharpe))
        object.__setattr__(self, "max_drawdown", _finite("max_drawdown", self.max_drawdown))
        object.__setattr__(self, "win_rate", _finite("win_rate", self.win_rate))
        if self.total_return is not None:
            object.__setattr__(self, "total_return", _finite("total_return", self.total_return))

        for name in ("trial_count", "variant_count"):
            value = getattr(self, name)
            if (
                isinstance(value, bool)
                or not isinstance(value, (int, float))
                or not math.isfinite(value)
                or int(value) != value
            ):
                raise InvalidMetricsError(name, f"expected an integer, got {value!r}")
            if value < 1:
                raise InvalidMetricsError(name, "must be at least 1")
            object.__setattr__(self, name, int(value))

        if not 0.0 <= self.win_rate <= 1.0:
            raise InvalidMetricsError("win_rate", "must be between 0 and 1")

        if self.variant_returns is not None:
            rows = tuple(
                tuple(_finite(f"variant_returns[{t}][{j}]", v) for j, v in enumerate(row))
                for t, row in enumerate(self.variant_returns)
            )
            widths = {len(row) for row in rows}
            if len(widths) > 1:
                raise InvalidMetricsError("variant_returns", "rows must have equal length")
            if not rows or widths.pop() < 2:
                raise InvalidMetricsError("variant_returns", "needs at least 2 variant columns")
            object.__setattr__(self, "variant_returns", rows)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> BacktestMetrics:
        """Build metrics from a JSON-style mapping with the field names above."""
        missing = [k for k in ("returns", "sharpe", "max_drawdown", "win_rate") if k not in data]
        if missing:
            raise InvalidMetricsError(missing[0], "missing")
        unknown = set(data) - set(cls.__dataclass_fields__)
        if unknown:
            raise InvalidMetricsError(sorted(unknown)[0], "unknown field")
        returns = data["returns"]
        if isinstance(returns, (str, bytes)) or not isinstance(returns, Sequence):
            raise InvalidMetricsError("returns", "expected a list of numbers")
        return cls(**data)

    @property
    def returns_array(self) -> np.ndarray:
        return np.asarray(self.returns, dtype=float)

    @property
    def compounded_return(self) -> float:
        if self.total_return is not None:
            return self.total_return
        return float(np.prod(1.0 + self.returns_array) - 1.0)


@dataclass(frozen=True)
class RedFlag:
    code: str  # "SHARPE_TOO_HIGH", etc.
    rationale: str  # human-readable explanation
    value: float
    threshold: float
    severity: Severity = Severity.WARN

    def to_dict(self) -> dict[str, object]:
        return {
            "code": self.code,
            "rationale": self.rationale,
            "value": self.value,
            "threshold": self.threshold,
            "severity": self.severity.value,
        }


@dataclass(frozen=True)
class ValidationVerdict:
    required_tstat: float
    observed_tstat: float
    deflated_sharpe: float
    pbo: Optional[float]
    red_flags: tuple[RedFlag, ...] = ()
    passed: bool = False
    low_confidence: bool = False
    failures: tuple[str, ...] = ()  # gates that failed, in check order
    notes: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, object]:
        return {
            "required_tstat": self.required_tstat,
            "observed_tstat": self.observed_tstat,
            "deflated_sharpe": self.deflated_sharpe,
            "pbo": self.pbo,
            "red_flags": [flag.to_dict() for flag in self.red_flags],
            "passed": self.passed,
            "low_confidence": self.low_confidence,
            "failures": list(self.failures),
            "notes": list(self.notes),
        }
