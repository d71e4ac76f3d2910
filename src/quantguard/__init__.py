"""
quantguard - Temporal-Bias Detector and Backtest Validator for Quant Code

Finds lookahead bias and data leakage in strategy source through data-flow
analysis over assignments, and checks backtest results against
multiple-testing corrected thresholds (t-stat, Deflated Sharpe, PBO).
"""

__version__ = "0.1.0"

from .autofix import FixResult, apply_fix, apply_fixes
from .config import QuantGuardConfig, load_config
from .flow import SourceUnit, build_graph
from .report import AuditSession, Report, assemble
from .rules import Finding, Severity, analyze_source, analyze_units, evaluate
from .stats import BacktestMetrics, ValidationVerdict, evaluate_metrics

__all__ = [
    "analyze_source",  # Main entry point for code analysis
    "evaluate_metrics",  # Main entry point for backtest validation
    "assemble",
    "apply_fix",
    "apply_fixes",
    "analyze_units",
    "build_graph",
    "evaluate",
    "load_config",
    "AuditSession",
    "BacktestMetrics",
    "Finding",
    "FixResult",
    "QuantGuardConfig",
    "Report",
    "Severity",
    "SourceUnit",
    "ValidationVerdict",
]
