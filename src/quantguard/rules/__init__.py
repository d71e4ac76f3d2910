"""Rule catalog and engine for temporal-bias detection."""

from .catalog import ALL_RULES, active_rules, get_rule
from .engine import UnitResult, analyze_source, analyze_unit, analyze_units, blocking, evaluate
from .models import Category, Finding, Match, Rule, RuleContext, Severity, TextEdit
from .patterns import DEFAULT_PATTERNS, ColumnPatterns

__all__ = [
    "ALL_RULES",
    "active_rules",
    "get_rule",
    "UnitResult",
    "analyze_source",
    "analyze_unit",
    "analyze_units",
    "blocking",
    "evaluate",
    "Category",
    "Finding",
    "Match",
    "Rule",
    "RuleContext",
    "Severity",
    "TextEdit",
    "DEFAULT_PATTERNS",
    "ColumnPatterns",
]
