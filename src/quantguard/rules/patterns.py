"""Column-name heuristics for position-like, signal-like and credential names.

Membership is a glob match on the lowercased column name. This is a
heuristic, not a proof: a position column called ``qty`` is invisible to the
rules unless the pattern set is extended through configuration.
"""

from __future__ import annotations

from dataclasses import dataclass
from fnmatch import fnmatchcase

from ..config import PatternConfig


def _matches(name: str, patterns: tuple[str, ...]) -> bool:
    lowered = name.lower()
    return any(fnmatchcase(lowered, p.lower()) for p in patterns)


@dataclass(frozen=True)
class ColumnPatterns:
    position: tuple[str, ...]
    signal: tuple[str, ...]
    credential: tuple[str, ...]

    @classmethod
    def from_config(cls, config: PatternConfig) -> ColumnPatterns:
        return cls(
            position=config.position_patterns,
            signal=config.signal_patterns,
            credential=config.credential_patterns,
        )

    def is_position(self, name: str) -> bool:
        return _matches(name, self.position)

    def is_signal(self, name: str) -> bool:
        # A name matching both sets (e.g. "signal_position") is a position
        return _matches(name, self.signal) and not self.is_position(name)

    def is_credential(self, name: str) -> bool:
        return _matches(name, self.credential)


DEFAULT_PATTERNS = ColumnPatterns.from_config(PatternConfig())
