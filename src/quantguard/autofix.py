"""Autofix Transformer: apply finding rewrites and verify they hold.

A fix is one textual rewrite pass over disjoint spans followed by a fresh
analysis of the rewritten unit. If any fixed (rule_id, location) pair is
reported again the fix is rejected with FixVerificationError; the
transformer never loops to try again.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from .config import QuantGuardConfig
from .exceptions import (
    FixUnavailableError,
    FixVerificationError,
    OverlapError,
    ParseError,
)
from .flow.models import SourceUnit
from .logging_config import get_logger
from .rules.engine import analyze_unit
from .rules.models import Finding, TextEdit

logger = get_logger(__name__)


@dataclass(frozen=True)
class FixResult:
    unit: SourceUnit
    applied: tuple[Finding, ...]
    remaining: tuple[Finding, ...]


def apply_fix(
    unit: SourceUnit, finding: Finding, config: Optional[QuantGuardConfig] = None
) -> SourceUnit:
    """Rewrite unit to resolve a single finding."""
    return apply_fixes(unit, [finding], config).unit


def apply_fixes(
    unit: SourceUnit,
    findings: Iterable[Finding],
    config: Optional[QuantGuardConfig] = None,
) -> FixResult:
    """Apply the rewrites of several findings in one pass.

    Raises:
        FixUnavailableError: A finding carries no rewrite
        OverlapError: Two rewrites touch the same bytes
        FixVerificationError: The rewrite is not valid Python, or a fixed
            finding is reported again
    """
    targets = list(findings)
    tagged: list[tuple[str, TextEdit]] = []
    for finding in targets:
        if not finding.fix_available or not finding.edits:
            raise FixUnavailableError(finding.rule_id, finding.location)
        if unit.snippet(finding.location) != finding.snippet:
            raise FixVerificationError(
                finding.rule_id, finding.location, reason="finding does not match this unit"
            )
        tagged.extend((finding.rule_id, edit) for edit in finding.edits)

    text = splice(unit, tagged)
    try:
        rewritten = SourceUnit.parse(text, unit.name)
    except ParseError as e:
        raise FixVerificationError(
            targets[0].rule_id, targets[0].location, reason=f"rewrite does not parse: {e.reason}"
        ) from e

    remaining = analyze_unit(rewritten, config)
    fixed = {f.key for f in targets}
    for finding in remaining:
        if finding.key in fixed:
            raise FixVerificationError(finding.rule_id, finding.location)

    logger.debug(f"{unit.name}: applied {len(tagged)} edit(s) for {len(targets)} finding(s)")
    return FixResult(unit=rewritten, applied=tuple(targets), remaining=tuple(remaining))


def splice(unit: SourceUnit, tagged: list[tuple[str, TextEdit]]) -> str:
    """Apply tagged edits to the unit text. Spans must be disjoint."""
    ordered = sorted(tagged, key=lambda item: (item[1].span.start, item[1].span.end))
    for (first_id, first), (second_id, second) in zip(ordered, ordered[1:]):
        if first.span.overlaps(second.span) or first.span == second.span:
            raise OverlapError(first_id, second_id, (second.span.start, first.span.end))

    data = unit.encoded
    # Back to front so earlier offsets stay valid
    for _, edit in reversed(ordered):
        data = data[: edit.span.start] + edit.replacement.encode("utf-8") + data[edit.span.end :]
    return data.decode("utf-8")


def disjoint_fixes(findings: Iterable[Finding]) -> tuple[list[Finding], list[Finding]]:
    """Split fixable findings into a batch safe for one pass and the rest.

    Findings are taken in order; one whose edits collide with an already
    selected edit is deferred to a later pass.
    """
    selected: list[Finding] = []
    deferred: list[Finding] = []
    taken: list[TextEdit] = []
    for finding in findings:
        if not finding.fix_available:
            continue
        clashes = any(
            edit.span.overlaps(other.span) or edit.span == other.span
            for edit in finding.edits
            for other in taken
        )
        if clashes:
            deferred.append(finding)
            continue
        selected.append(finding)
        taken.extend(finding.edits)
    return selected, deferred
