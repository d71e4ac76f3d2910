"""Deflated Sharpe Ratio (Bailey & Lopez de Prado, 2014).

The observed per-period Sharpe is compared against the Sharpe the best of N
independent trials would reach by luck alone:

    SR0 = sqrt(V) * ((1 - g) * Z(1 - 1/N) + g * Z(1 - 1/(N e)))

with g the Euler-Mascheroni constant, Z the standard normal quantile and V
the cross-trial variance of Sharpe estimates. The probability that the true
Sharpe exceeds SR0 is

    DSR = Phi((SR - SR0) * sqrt(T - 1) / sqrt(1 - skew * SR + (kurt - 1) / 4 * SR^2))

Skewness and (Pearson) kurtosis need a reasonable sample; below the minimum
the normal values (0, 3) are used and the result is marked low confidence.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional

import numpy as np
from scipy import stats as sp_stats

from ..exceptions import InsufficientDataError

_MIN_RETURNS = 3
# Floor for the variance term when extreme skew drives it non-positive
_MIN_DENOMINATOR = 1e-12


@dataclass(frozen=True)
class DeflatedSharpe:
    probability: float  # P(true Sharpe > SR0), in [0, 1]
    sharpe: float  # per-period observed Sharpe
    expected_max_sharpe: float  # SR0
    skewness: float
    kurtosis: float
    observations: int
    low_confidence: bool = False


def expected_max_sharpe(n_trials: int, variance: float) -> float:
    """Expected maximum Sharpe of n_trials zero-skill trials."""
    if n_trials <= 1:
        return 0.0
    gamma = np.euler_gamma
    z1 = sp_stats.norm.ppf(1.0 - 1.0 / n_trials)
    z2 = sp_stats.norm.ppf(1.0 - 1.0 / (n_trials * math.e))
    return float(math.sqrt(variance) * ((1.0 - gamma) * z1 + gamma * z2))


def per_period_sharpe(returns: np.ndarray) -> float:
    std = float(np.std(returns, ddof=1))
    if std == 0:
        return 0.0
    return float(np.mean(returns)) / std


def deflated_sharpe_ratio(
    returns: np.ndarray,
    n_trials: int,
    min_observations: int = 20,
    sharpe_variance: Optional[float] = None,
) -> DeflatedSharpe:
    """Probability that the true Sharpe is positive after the selection correction.

    Args:
        returns: Time-ordered per-period returns
        n_trials: Independent trials the strategy was selected from
        min_observations: Sample size needed to estimate skew/kurtosis
        sharpe_variance: Cross-trial variance of Sharpe estimates; defaults
            to 1/(T-1), the variance of the estimator under the null

    Raises:
        InsufficientDataError: Fewer than 3 returns
    """
    returns = np.asarray(returns, dtype=float)
    n = len(returns)
    if n < _MIN_RETURNS:
        raise InsufficientDataError(
            f"deflated Sharpe needs at least {_MIN_RETURNS} returns, got {n}",
            field="returns",
            minimum_required=_MIN_RETURNS,
        )

    sharpe = per_period_sharpe(returns)

    low_confidence = n < min_observations or float(np.std(returns)) == 0.0
    if low_confidence:
        skewness, kurtosis = 0.0, 3.0
    else:
        skewness = float(sp_stats.skew(returns, bias=False))
        kurtosis = float(sp_stats.kurtosis(returns, fisher=False, bias=False))

    variance = sharpe_variance if sharpe_variance is not None else 1.0 / (n - 1)
    sr0 = expected_max_sharpe(n_trials, variance)

    denominator = 1.0 - skewness * sharpe + (kurtosis - 1.0) / 4.0 * sharpe**2
    denominator = max(denominator, _MIN_DENOMINATOR)
    z = (sharpe - sr0) * math.sqrt(n - 1) / math.sqrt(denominator)
    probability = float(sp_stats.norm.cdf(z))

    return DeflatedSharpe(
        probability=min(1.0, max(0.0, probability)),
        sharpe=sharpe,
        expected_max_sharpe=sr0,
        skewness=skewness,
        kurtosis=kurtosis,
        observations=n,
        low_confidence=low_confidence,
    )
