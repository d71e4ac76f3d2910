"""Configuration loading and management for quantguard.

Configuration sources are merged in priority order:
    1. Defaults (defined in QuantGuardConfig)
    2. Global config (~/.quantguard.toml)
    3. Project config (./quantguard.toml)
    4. Explicit config file
    5. Environment variables (QUANTGUARD_* prefix)
    6. Overrides (passed as kwargs, typically from the CLI)

Example:
    >>> config = load_config(workers=4)
    >>> config.workers
    4
    >>> config.statistics.pbo_blocks
    16
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional, get_type_hints

from .exceptions import ConfigurationError


# Required t-statistic by number of trials (Harvey, Liu & Zhu 2016).
DEFAULT_TSTAT_THRESHOLDS: dict[int, float] = {1: 2.0, 10: 2.5, 100: 3.0, 1000: 3.78}


def _as_tuple(values: Any) -> tuple[str, ...]:
    if isinstance(values, str):
        return (values,)
    return tuple(str(v) for v in values)


@dataclass(frozen=True)
class PatternConfig:
    """Name-pattern heuristics used by the lookahead and leakage rules.

    Patterns are case-insensitive globs matched against column names. This is
    a heuristic: a position column named ``qty`` is not recognized unless it
    is added here, so false negatives are possible for unconventional naming.

    Attributes:
        position_patterns: Columns that hold tradable positions or orders
        signal_patterns: Columns that hold signals or model predictions
        credential_patterns: Names that should never hold string literals
        full_range_aliases: Dataset aliases known to span both the training
            and the evaluation range
    """

    position_patterns: tuple[str, ...] = (
        "position",
        "positions",
        "pos",
        "*_position",
        "*_positions",
        "position_*",
        "target_pos*",
        "weight",
        "weights",
        "*_weight",
        "*_weights",
        "holding*",
        "exposure*",
        "allocation*",
        "order",
        "orders",
        "trade",
        "trades",
    )
    signal_patterns: tuple[str, ...] = (
        "signal",
        "signals",
        "sig",
        "*_signal",
        "*_signals",
        "signal_*",
        "pred",
        "preds",
        "prediction*",
        "*_pred",
        "forecast*",
        "*_forecast",
        "score",
        "*_score",
        "alpha",
        "*_alpha",
        "entry*",
        "exit*",
    )
    credential_patterns: tuple[str, ...] = (
        "*api_key*",
        "*apikey*",
        "*secret*",
        "*password*",
        "*passwd*",
        "*token*",
        "*private_key*",
    )
    full_range_aliases: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        for name in (
            "position_patterns",
            "signal_patterns",
            "credential_patterns",
            "full_range_aliases",
        ):
            object.__setattr__(self, name, _as_tuple(getattr(self, name)))
        if not self.position_patterns:
            raise ConfigurationError("position_patterns must not be empty")
        if not self.signal_patterns:
            raise ConfigurationError("signal_patterns must not be empty")


@dataclass(frozen=True)
class StatisticsConfig:
    """Thresholds and tuning for the statistical validity evaluator.

    The Deflated Sharpe and PBO constants follow the commonly published
    definitions (Bailey & Lopez de Prado); they are choices, so every one of
    them is exposed here rather than fixed in code.

    Attributes:
        Multiple testing:
            tstat_thresholds: trial_count bracket -> required t-stat
        Deflated Sharpe:
            dsr_min_observations: Minimum returns to estimate skew/kurtosis
            dsr_pass_threshold: DSR required when sharpe > dsr_sharpe_trigger
            dsr_sharpe_trigger: Sharpe above which the DSR gate applies
            sharpe_variance: Cross-trial variance of Sharpe estimates
                (None = 1/(T-1), the null-hypothesis estimator variance)
        PBO:
            pbo_blocks: Number of contiguous blocks S (even)
            pbo_max_exact_blocks: Largest S evaluated exhaustively
            pbo_max_sampled_combinations: Combination budget above that
            pbo_seed: Seed for sampled combinations
            pbo_batch_size: Combinations per worker batch
            pbo_pass_threshold: Maximum PBO for a passing verdict
        Red flags:
            red_flag_sharpe: Sharpe above this is flagged
            red_flag_total_return: Total return above this ...
            red_flag_drawdown: ... with |max drawdown| below this is flagged
            red_flag_win_rate: Win rate above this is flagged
    """

    tstat_thresholds: Mapping[int, float] = field(
        default_factory=lambda: dict(DEFAULT_TSTAT_THRESHOLDS)
    )

    dsr_min_observations: int = 20
    dsr_pass_threshold: float = 0.95
    dsr_sharpe_trigger: float = 1.5
    sharpe_variance: Optional[float] = None

    pbo_blocks: int = 16
    pbo_max_exact_blocks: int = 20
    pbo_max_sampled_combinations: int = 2000
    pbo_seed: int = 42
    pbo_batch_size: int = 256
    pbo_pass_threshold: float = 0.05

    red_flag_sharpe: float = 2.0
    red_flag_total_return: float = 0.50
    red_flag_drawdown: float = 0.10
    red_flag_win_rate: float = 0.70

    def __post_init__(self) -> None:
        # TOML keys arrive as strings
        try:
            thresholds = {int(k): float(v) for k, v in dict(self.tstat_thresholds).items()}
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"tstat_thresholds must map integers to floats: {e}")
        if 1 not in thresholds:
            raise ConfigurationError("tstat_thresholds must define the bracket for 1 trial")
        ordered = sorted(thresholds.items())
        for (_, lower), (_, upper) in zip(ordered, ordered[1:]):
            if upper < lower:
                raise ConfigurationError("tstat_thresholds must be non-decreasing in trial count")
        object.__setattr__(self, "tstat_thresholds", dict(ordered))

        if self.dsr_min_observations < 3:
            raise ConfigurationError("dsr_min_observations must be at least 3")
        if not 0.0 <= self.dsr_pass_threshold <= 1.0:
            raise ConfigurationError("dsr_pass_threshold must be between 0.0 and 1.0")
        if self.sharpe_variance is not None and self.sharpe_variance <= 0:
            raise ConfigurationError("sharpe_variance must be positive")
        if self.pbo_blocks < 2 or self.pbo_blocks % 2:
            raise ConfigurationError("pbo_blocks must be an even number >= 2")
        if self.pbo_max_sampled_combinations < 1:
            raise ConfigurationError("pbo_max_sampled_combinations must be at least 1")
        if self.pbo_batch_size < 1:
            raise ConfigurationError("pbo_batch_size must be at least 1")
        if not 0.0 <= self.pbo_pass_threshold <= 1.0:
            raise ConfigurationError("pbo_pass_threshold must be between 0.0 and 1.0")


@dataclass(frozen=True)
class QuantGuardConfig:
    """Configuration for a quantguard run.

    Attributes:
        workers: Thread pool size for multi-unit analysis and PBO (None = auto)
        disabled_rules: Rule ids excluded from evaluation
        patterns: Column-name heuristics
        statistics: Evaluator thresholds
    """

    workers: Optional[int] = None
    disabled_rules: tuple[str, ...] = ()

    patterns: PatternConfig = field(default_factory=PatternConfig)
    statistics: StatisticsConfig = field(default_factory=StatisticsConfig)

    def __post_init__(self) -> None:
        object.__setattr__(self, "disabled_rules", _as_tuple(self.disabled_rules))
        if self.workers is not None and self.workers < 1:
            raise ConfigurationError("workers must be at least 1")

    @property
    def effective_workers(self) -> int:
        """Worker count, auto-detected from CPU cores when unset."""
        if self.workers is not None:
            return self.workers
        return min(32, (os.cpu_count() or 1) + 4)


def load_config(config_file: Optional[Path] = None, **overrides) -> QuantGuardConfig:
    """Load configuration with auto-discovery and merging.

    Args:
        config_file: Optional explicit config file path
        **overrides: Direct overrides (typically from CLI flags)

    Returns:
        Validated QuantGuardConfig instance

    Raises:
        ConfigurationError: If a config file is invalid or missing
    """
    merged: dict = {}

    global_config = Path.home() / ".quantguard.toml"
    if global_config.exists():
        _merge(merged, _load_toml_file(global_config))

    project_config = Path.cwd() / "quantguard.toml"
    if project_config.exists():
        _merge(merged, _load_toml_file(project_config))

    if config_file is not None:
        if not config_file.exists():
            raise ConfigurationError("config file not found", source=config_file)
        _merge(merged, _load_toml_file(config_file))

    _merge(merged, _load_env_vars())

    _merge(merged, overrides)

    patterns = merged.pop("patterns", None)
    statistics = merged.pop("statistics", None)
    try:
        if isinstance(patterns, dict):
            merged["patterns"] = PatternConfig(**patterns)
        elif isinstance(patterns, PatternConfig):
            merged["patterns"] = patterns
        if isinstance(statistics, dict):
            merged["statistics"] = StatisticsConfig(**statistics)
        elif isinstance(statistics, StatisticsConfig):
            merged["statistics"] = statistics
        return QuantGuardConfig(**merged)
    except TypeError as e:
        # Unknown field in config
        raise ConfigurationError(str(e))


def _merge(target: dict, source: dict) -> None:
    """Merge one config layer into another, one level deep for sections."""
    for key, value in source.items():
        if isinstance(value, dict) and isinstance(target.get(key), dict):
            target[key] = {**target[key], **value}
        else:
            target[key] = value


def _load_env_vars() -> dict[str, Any]:
    """Load configuration from QUANTGUARD_* environment variables.

    Top-level fields use ``QUANTGUARD_<FIELD>``; statistics fields use
    ``QUANTGUARD_STATISTICS_<FIELD>``, e.g. ``QUANTGUARD_STATISTICS_PBO_SEED=7``.
    """
    result: dict[str, Any] = {}

    for prefix, cls, section in (
        ("QUANTGUARD_", QuantGuardConfig, None),
        ("QUANTGUARD_STATISTICS_", StatisticsConfig, "statistics"),
    ):
        type_hints = get_type_hints(cls)
        for field_name in cls.__dataclass_fields__:
            env_key = f"{prefix}{field_name.upper()}"
            env_value = os.environ.get(env_key)
            if env_value is None:
                continue
            type_hint = type_hints.get(field_name)
            try:
                parsed = _parse_env_value(env_value, type_hint)
            except ValueError as e:
                raise ConfigurationError(f"invalid {env_key}: {e}")
            if parsed is None:
                continue
            if section is None:
                result[field_name] = parsed
            else:
                result.setdefault(section, {})[field_name] = parsed

    return result


def _parse_env_value(value: str, type_hint: Any) -> Any:
    """Parse environment variable string to the correct type.

    Returns None for types that are too complex for an env var.
    """
    origin = getattr(type_hint, "__origin__", None)
    args = getattr(type_hint, "__args__", ())
    if type(None) in args:
        non_none_types = [t for t in args if t is not type(None)]
        if non_none_types:
            type_hint = non_none_types[0]
            origin = getattr(type_hint, "__origin__", None)

    if type_hint is bool:
        lower = value.lower()
        if lower in ("true", "1", "yes", "on"):
            return True
        elif lower in ("false", "0", "no", "off"):
            return False
        raise ValueError(f"expected true/false, got '{value}'")

    if type_hint is int:
        return int(value)

    if type_hint is float:
        return float(value)

    if origin is tuple:
        return tuple(part.strip() for part in value.split(",") if part.strip())

    if type_hint is str:
        return value

    return None


def _load_toml_file(path: Path) -> dict:
    """Load TOML file and return parsed dict."""
    try:
        import tomllib
    except ModuleNotFoundError:
        try:
            import tomli as tomllib  # type: ignore
        except ImportError:
            raise ConfigurationError(
                "TOML support requires Python 3.11+ or 'tomli' package", source=path
            )

    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ConfigurationError(str(e), source=path)
