"""Multiple-testing thresholds: required t-statistic by number of trials.

Harvey, Liu & Zhu (2016): the more hypotheses tried, the higher the bar a
t-statistic has to clear. The mapping is a step function; the bracket for a
trial count is the highest key that does not exceed it.
"""

from __future__ import annotations

import math
from bisect import bisect_right
from typing import Mapping, Optional

import numpy as np

from ..config import DEFAULT_TSTAT_THRESHOLDS
from ..exceptions import InsufficientDataError, InvalidMetricsError


def required_tstat(trial_count: int, thresholds: Optional[Mapping[int, float]] = None) -> float:
    """Required t-statistic for trial_count trials. No interpolation between brackets."""
    if trial_count < 1:
        raise InvalidMetricsError("trial_count", "must be at least 1")
    table = dict(thresholds) if thresholds is not None else DEFAULT_TSTAT_THRESHOLDS
    keys = sorted(table)
    position = bisect_right(keys, trial_count)
    if position == 0:
        raise InvalidMetricsError("trial_count", f"below the smallest bracket {keys[0]}")
    return float(table[keys[position - 1]])


def t_statistic(returns: np.ndarray) -> float:
    """One-sample t-statistic of the mean return: mean / (std / sqrt(T)).

    Zero-variance series return 0.0.
    """
    n = len(returns)
    if n < 2:
        raise InsufficientDataError("t-statistic needs at least 2 returns", minimum_required=2)
    std = float(np.std(returns, ddof=1))
    if std == 0:
        return 0.0
    return float(np.mean(returns)) / (std / math.sqrt(n))
