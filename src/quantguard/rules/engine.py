"""Rule Engine: evaluate catalog rules against a dependency graph.

Evaluation is a pure function of (graph, rules, config). Every rule runs
independently over the full graph; findings are ordered by
(line_start, rule_id).
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence, Union

from ..config import QuantGuardConfig
from ..exceptions import QuantGuardError
from ..flow.analyzer import build_graph
from ..flow.models import DependencyGraph, SourceUnit
from ..logging_config import get_logger
from .catalog import active_rules
from .models import Finding, Rule, RuleContext, Severity
from .patterns import ColumnPatterns

logger = get_logger(__name__)


def evaluate(
    graph: DependencyGraph,
    rules: Optional[Iterable[Rule]] = None,
    config: Optional[QuantGuardConfig] = None,
) -> list[Finding]:
    """Run every rule against the graph and return ordered findings."""
    config = config or QuantGuardConfig()
    if rules is None:
        rules = active_rules(config.disabled_rules)

    ctx = RuleContext(
        patterns=ColumnPatterns.from_config(config.patterns),
        spanning_aliases=graph.spanning_aliases(config.patterns.full_range_aliases),
    )

    findings: list[Finding] = []
    seen: set[tuple[str, tuple[int, int], str]] = set()
    for rule in sorted(rules, key=lambda r: r.id):
        count = 0
        for match in rule.matcher(graph, ctx):
            snippet = graph.unit.snippet(match.location)
            key = (rule.id, match.location, snippet)
            if key in seen:
                continue
            seen.add(key)

            edits = rule.fixer(graph, match) if rule.fixer is not None else ()
            severity = rule.severity
            # AUTO_FIX always carries a fix; the rest are advisory
            if severity is Severity.AUTO_FIX and not edits:
                severity = Severity.WARN
            findings.append(
                Finding(
                    rule_id=rule.id,
                    category=rule.category,
                    severity=severity,
                    location=match.location,
                    snippet=snippet,
                    message=match.message,
                    fix_available=bool(edits),
                    edits=tuple(edits),
                )
            )
            count += 1
        if count:
            logger.debug(f"{graph.unit.name}: {rule.id} matched {count} time(s)")

    findings.sort(key=lambda f: (f.location[0], f.rule_id))
    return findings


def analyze_unit(unit: SourceUnit, config: Optional[QuantGuardConfig] = None) -> list[Finding]:
    """Build the graph for a parsed unit and evaluate the active rules."""
    return evaluate(build_graph(unit), config=config)


def analyze_source(
    text: str, name: str = "<unit>", config: Optional[QuantGuardConfig] = None
) -> list[Finding]:
    """Parse, build the graph and evaluate. Raises ParseError on malformed text."""
    return analyze_unit(SourceUnit.parse(text, name), config=config)


def blocking(findings: Iterable[Finding]) -> list[Finding]:
    """STOP-severity findings, the ones a policy gate acts on."""
    return [f for f in findings if f.is_blocking]


@dataclass(frozen=True)
class UnitResult:
    """Outcome of analyzing one unit in a batch: findings or the unit's own error."""

    name: str
    findings: tuple[Finding, ...] = ()
    error: Optional[QuantGuardError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def analyze_units(
    units: Sequence[Union[SourceUnit, tuple[str, str]]],
    config: Optional[QuantGuardConfig] = None,
    workers: Optional[int] = None,
) -> list[UnitResult]:
    """Analyze independent units concurrently.

    Units are SourceUnits or (name, text) pairs. Results keep input order. An
    error in one unit is reported in its own result and never affects the
    others.
    """
    config = config or QuantGuardConfig()
    max_workers = workers or config.effective_workers

    def _run(item: Union[SourceUnit, tuple[str, str]]) -> UnitResult:
        if isinstance(item, SourceUnit):
            name = item.name
        else:
            name = item[0]
        try:
            unit = item if isinstance(item, SourceUnit) else SourceUnit.parse(item[1], item[0])
            return UnitResult(name=name, findings=tuple(analyze_unit(unit, config)))
        except QuantGuardError as e:
            logger.debug(f"{name}: {e}")
            return UnitResult(name=name, error=e)

    if len(units) < 2 or max_workers == 1:
        return [_run(u) for u in units]

    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        return list(executor.map(_run, units))
