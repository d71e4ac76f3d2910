"""Source-analysis exceptions: parsing and autofix."""

from typing import Optional, Tuple

from .base import QuantGuardError


class AnalysisError(QuantGuardError):
    """Base class for code analysis errors."""

    pass


class ParseError(AnalysisError):
    """Raised when a source unit cannot be parsed.

    No partial graph is ever produced for a unit that raises this.
    """

    def __init__(self, name: str, location: Tuple[int, int], reason: str):
        line, col = location
        super().__init__(
            f"Failed to parse {name} at line {line}, column {col}",
            details={"unit": name, "line": str(line), "column": str(col), "reason": reason},
        )
        self.name = name
        self.location = location
        self.reason = reason


class FixError(AnalysisError):
    """Base class for autofix failures. Never retried."""

    pass


class FixUnavailableError(FixError):
    """Raised when a finding without a rewrite is passed to the transformer."""

    def __init__(self, rule_id: str, location: Tuple[int, int]):
        super().__init__(
            f"No automatic fix for {rule_id}",
            details={"rule_id": rule_id, "line": str(location[0])},
        )
        self.rule_id = rule_id
        self.location = location


class OverlapError(FixError):
    """Raised when two requested rewrites touch overlapping spans."""

    def __init__(self, first: str, second: str, span: Tuple[int, int]):
        super().__init__(
            f"Rewrites for {first} and {second} overlap",
            details={"first": first, "second": second, "span": f"{span[0]}-{span[1]}"},
        )
        self.first = first
        self.second = second
        self.span = span


class FixVerificationError(FixError):
    """Raised when a rewrite does not clear the finding it targeted."""

    def __init__(self, rule_id: str, location: Tuple[int, int], reason: Optional[str] = None):
        details = {"rule_id": rule_id, "line": str(location[0])}
        if reason:
            details["reason"] = reason
        super().__init__(f"Fix for {rule_id} did not resolve the finding", details=details)
        self.rule_id = rule_id
        self.location = location
