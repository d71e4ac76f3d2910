"""Statistical Validity Evaluator: BacktestMetrics -> ValidationVerdict.

A verdict passes when

  * the observed t-statistic clears the trial-count bracket,
  * the Deflated Sharpe Ratio reaches its threshold (only for Sharpe above
    the trigger),
  * PBO stays below its threshold (only when several variants were tried and
    per-variant returns were supplied),
  * no STOP red flag fired.

Every verdict is computed fresh; nothing is cached between calls.
"""

from __future__ import annotations

from typing import Optional

from ..config import QuantGuardConfig, StatisticsConfig
from ..exceptions import InsufficientDataError
from ..logging_config import get_logger
from ..rules.models import Severity
from .deflated import deflated_sharpe_ratio
from .models import BacktestMetrics, RedFlag, ValidationVerdict
from .pbo import CancelToken, probability_of_backtest_overfitting
from .thresholds import required_tstat, t_statistic

logger = get_logger(__name__)


def red_flags(metrics: BacktestMetrics, config: Optional[StatisticsConfig] = None) -> list[RedFlag]:
    """Deterministic too-good-to-be-true checks, in discovery order.

    Flags are independent; one never suppresses another.
    """
    config = config or StatisticsConfig()
    flags: list[RedFlag] = []

    if metrics.sharpe > config.red_flag_sharpe:
        flags.append(
            RedFlag(
                code="SHARPE_TOO_HIGH",
                rationale=f"Sharpe > {config.red_flag_sharpe:.1f} ({metrics.sharpe:.2f}) is rare "
                "for a live strategy; check for lookahead bias and costs",
                value=metrics.sharpe,
                threshold=config.red_flag_sharpe,
            )
        )

    total = metrics.compounded_return
    drawdown = abs(metrics.max_drawdown)
    if total > config.red_flag_total_return and drawdown < config.red_flag_drawdown:
        flags.append(
            RedFlag(
                code="RETURN_DRAWDOWN_IMPLAUSIBLE",
                rationale=f"total return {total:.1%} with max drawdown {drawdown:.1%}: "
                "returns this high rarely come without drawdowns of 10% or more",
                value=total,
                threshold=config.red_flag_total_return,
                severity=Severity.STOP,
            )
        )

    if metrics.win_rate > config.red_flag_win_rate:
        flags.append(
            RedFlag(
                code="WIN_RATE_TOO_HIGH",
                rationale=f"win rate {metrics.win_rate:.0%} > {config.red_flag_win_rate:.0%} "
                "often signals leaked labels or missing costs",
                value=metrics.win_rate,
                threshold=config.red_flag_win_rate,
            )
        )

    return flags


def evaluate_metrics(
    metrics: BacktestMetrics,
    config: Optional[QuantGuardConfig] = None,
    cancel: Optional[CancelToken] = None,
) -> ValidationVerdict:
    """Produce a verdict for one set of backtest metrics.

    Raises:
        InsufficientDataError: Too few returns, or variant returns that do not
            split into the configured number of blocks
        Cancelled: The cancel token was set during PBO enumeration
    """
    config = config or QuantGuardConfig()
    stats = config.statistics
    returns = metrics.returns_array

    if len(returns) < 3:
        raise InsufficientDataError(
            f"got {len(returns)} returns", field="returns", minimum_required=3
        )

    notes: list[str] = []
    failures: list[str] = []

    required = required_tstat(metrics.trial_count, stats.tstat_thresholds)
    observed = t_statistic(returns)
    if observed < required:
        failures.append(
            f"t-stat {observed:.2f} < {required:.2f} required for {metrics.trial_count} trial(s)"
        )

    dsr = deflated_sharpe_ratio(
        returns,
        metrics.variant_count,
        min_observations=stats.dsr_min_observations,
        sharpe_variance=stats.sharpe_variance,
    )
    if dsr.low_confidence:
        notes.append(
            f"skewness/kurtosis not estimated from {dsr.observations} returns "
            f"(minimum {stats.dsr_min_observations}); normal distribution assumed"
        )
    if metrics.sharpe > stats.dsr_sharpe_trigger and dsr.probability < stats.dsr_pass_threshold:
        failures.append(
            f"deflated Sharpe {dsr.probability:.3f} < {stats.dsr_pass_threshold:.2f} "
            f"after selection from {metrics.variant_count} variant(s)"
        )

    pbo: Optional[float] = None
    if metrics.variant_returns is not None:
        result = probability_of_backtest_overfitting(
            metrics.variant_returns,
            n_blocks=stats.pbo_blocks,
            max_exact_blocks=stats.pbo_max_exact_blocks,
            max_sampled=stats.pbo_max_sampled_combinations,
            seed=stats.pbo_seed,
            batch_size=stats.pbo_batch_size,
            workers=config.workers,
            cancel=cancel,
        )
        pbo = result.pbo
        if not result.exhaustive:
            notes.append(
                f"PBO estimated from {result.combinations} sampled splits (seed {stats.pbo_seed})"
            )
        if len(metrics.variant_returns[0]) != metrics.variant_count:
            notes.append(
                f"variant_returns has {len(metrics.variant_returns[0])} columns but "
                f"variant_count is {metrics.variant_count}"
            )
    elif metrics.variant_count > 1:
        notes.append("PBO not computed: no per-variant returns supplied")

    if metrics.variant_count > 1:
        if pbo is None:
            failures.append(
                f"PBO not computed for {metrics.variant_count} variants; "
                "supply variant_returns to check for overfitting"
            )
        elif pbo >= stats.pbo_pass_threshold:
            failures.append(f"PBO {pbo:.3f} >= {stats.pbo_pass_threshold:.2f}")

    flags = red_flags(metrics, stats)
    for flag in flags:
        if flag.severity is Severity.STOP:
            failures.append(f"red flag {flag.code}")

    verdict = ValidationVerdict(
        required_tstat=required,
        observed_tstat=observed,
        deflated_sharpe=dsr.probability,
        pbo=pbo,
        red_flags=tuple(flags),
        passed=not failures,
        low_confidence=dsr.low_confidence,
        failures=tuple(failures),
        notes=tuple(notes),
    )
    logger.debug(
        f"verdict: passed={verdict.passed} t={observed:.2f}/{required:.2f} "
        f"dsr={dsr.probability:.3f} pbo={pbo}"
    )
    return verdict
