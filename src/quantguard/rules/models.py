"""Data models for the rule engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Iterable, Optional

from ..flow.models import Location, Span

if TYPE_CHECKING:
    from ..flow.models import DependencyGraph
    from .patterns import ColumnPatterns


class Category(str, Enum):
    LOOKAHEAD_BIAS = "lookahead_bias"
    DATA_LEAKAGE = "data_leakage"
    CODE_QUALITY = "code_quality"
    SECURITY = "security"


class Severity(str, Enum):
    """Fixed severity classes.

    STOP: correctness defect a caller should refuse to proceed past.
    WARN: advisory.
    AUTO_FIX: mechanical cleanup that always carries a rewrite.
    """

    STOP = "STOP"
    WARN = "WARN"
    AUTO_FIX = "AUTO_FIX"


@dataclass(frozen=True)
class TextEdit:
    """Replace the bytes in span with replacement."""

    span: Span
    replacement: str


@dataclass(frozen=True)
class Match:
    """What a rule matcher reports; the engine turns it into a Finding."""

    location: Location
    message: str
    subject: Any = None


@dataclass(frozen=True)
class RuleContext:
    """Per-evaluation inputs shared by all matchers."""

    patterns: ColumnPatterns
    spanning_aliases: frozenset[str] = frozenset()


Matcher = Callable[["DependencyGraph", RuleContext], Iterable[Match]]
Fixer = Callable[["DependencyGraph", Match], tuple[TextEdit, ...]]


@dataclass(frozen=True)
class Rule:
    id: str
    category: Category
    severity: Severity
    title: str
    matcher: Matcher = field(compare=False, repr=False)
    fixer: Optional[Fixer] = field(default=None, compare=False, repr=False)
    description: str = ""


@dataclass(frozen=True)
class Finding:
    rule_id: str  # "LB001", "DL001", etc.
    category: Category
    severity: Severity
    location: Location  # (line_start, line_end)
    snippet: str  # offending source line
    message: str  # "position reads signal with no lag before use"
    fix_available: bool = False
    edits: tuple[TextEdit, ...] = field(default=(), compare=False, repr=False)

    @property
    def key(self) -> tuple[str, Location]:
        return (self.rule_id, self.location)

    @property
    def is_blocking(self) -> bool:
        return self.severity is Severity.STOP

    def to_dict(self) -> dict[str, object]:
        return {
            "rule_id": self.rule_id,
            "category": self.category.value,
            "severity": self.severity.value,
            "line_start": self.location[0],
            "line_end": self.location[1],
            "snippet": self.snippet,
            "message": self.message,
            "fix_available": self.fix_available,
        }
