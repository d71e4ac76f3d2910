"""Report Assembler: combine findings and a verdict for a Policy Gate.

The core never decides. A Report exposes what a gate reads (STOP findings,
failed verdict) and serializes to flat, stable records. AuditSession is an
immutable, caller-owned collection of named reports.

Example:
    >>> from quantguard import analyze_source, assemble
    >>> report = assemble(analyze_source("position = signal"))
    >>> report.has_blocking
    True
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from .rules.models import Finding, Severity
from .stats.models import ValidationVerdict


@dataclass(frozen=True)
class Report:
    findings: tuple[Finding, ...] = ()
    verdict: Optional[ValidationVerdict] = None

    @property
    def stop_findings(self) -> tuple[Finding, ...]:
        return tuple(f for f in self.findings if f.is_blocking)

    @property
    def has_blocking(self) -> bool:
        """True when any STOP finding or STOP red flag is present."""
        if self.stop_findings:
            return True
        if self.verdict is None:
            return False
        return any(flag.severity is Severity.STOP for flag in self.verdict.red_flags)

    @property
    def passed(self) -> bool:
        """No blocking issue and, if a verdict is attached, the verdict passed."""
        if self.has_blocking:
            return False
        return self.verdict is None or self.verdict.passed

    def to_dict(self) -> dict[str, object]:
        return {
            "findings": [f.to_dict() for f in self.findings],
            "verdict": self.verdict.to_dict() if self.verdict is not None else None,
            "summary": {
                "total": len(self.findings),
                "stop": len(self.stop_findings),
                "warn": sum(1 for f in self.findings if f.severity is Severity.WARN),
                "auto_fix": sum(1 for f in self.findings if f.severity is Severity.AUTO_FIX),
                "has_blocking": self.has_blocking,
                "passed": self.passed,
            },
        }


def assemble(
    findings: Iterable[Finding] = (), verdict: Optional[ValidationVerdict] = None
) -> Report:
    """Build a Report with findings ordered by (line_start, rule_id)."""
    ordered = sorted(findings, key=lambda f: (f.location[0], f.rule_id))
    return Report(findings=tuple(ordered), verdict=verdict)


@dataclass(frozen=True)
class AuditSession:
    """Named reports accumulated by the caller across units and runs.

    Sessions are values: add() returns a new session and leaves this one
    untouched, so nothing is shared between callers.
    """

    reports: tuple[tuple[str, Report], ...] = ()

    def add(self, name: str, report: Report) -> AuditSession:
        return AuditSession(reports=self.reports + ((name, report),))

    def get(self, name: str) -> Optional[Report]:
        """Most recent report recorded under name."""
        for recorded, report in reversed(self.reports):
            if recorded == name:
                return report
        return None

    @property
    def has_blocking(self) -> bool:
        return any(report.has_blocking for _, report in self.reports)

    def __len__(self) -> int:
        return len(self.reports)

    def to_dict(self) -> dict[str, object]:
        return {
            "reports": [{"name": name, **report.to_dict()} for name, report in self.reports],
            "has_blocking": self.has_blocking,
        }
