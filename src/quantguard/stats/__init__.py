"""Statistical validity checks for backtest results."""

from .deflated import DeflatedSharpe, deflated_sharpe_ratio, expected_max_sharpe
from .evaluator import evaluate_metrics, red_flags
from .models import BacktestMetrics, RedFlag, ValidationVerdict
from .pbo import PBOResult, probability_of_backtest_overfitting
from .thresholds import required_tstat, t_statistic

__all__ = [
    "DeflatedSharpe",
    "deflated_sharpe_ratio",
    "expected_max_sharpe",
    "evaluate_metrics",
    "red_flags",
    "BacktestMetrics",
    "RedFlag",
    "ValidationVerdict",
    "PBOResult",
    "probability_of_backtest_overfitting",
    "required_tstat",
    "t_statistic",
]
