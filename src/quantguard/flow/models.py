"""Data models for the code flow analysis.

Levels:
  Level 1: SourceUnit (text + parsed statements), owned by the caller
  Level 2: Assignments and the column reads inside them
  Level 3: DependencyGraph (edges from reads to the assignments producing them)
  Level 4: Call sites, forward indexes, frame derivations (syntactic facts
           that rules consume next to the graph)
"""

from __future__ import annotations

import ast
import re
from collections import defaultdict
from dataclasses import dataclass, field
from functools import cached_property
from typing import Any, Iterable, Mapping, Optional

from ..exceptions import ParseError

Location = tuple[int, int]  # (line_start, line_end), 1-based inclusive

# Synthetic producer for reads that no assignment in the unit defines
EXTERNAL = -1

# Line breaks as the tokenizer counts them; form feeds and unicode separators are not
LINE_BREAK = re.compile(r"\r\n|\r|\n")
_LINE_BREAK_BYTES = re.compile(rb"\r\n|\r|\n")


@dataclass(frozen=True)
class Span:
    """Half-open byte range into the UTF-8 encoded source text."""

    start: int
    end: int

    def overlaps(self, other: Span) -> bool:
        return self.start < other.end and other.start < self.end


@dataclass(frozen=True)
class SourceUnit:
    """Immutable source text plus its parsed statement sequence."""

    text: str
    name: str = "<unit>"
    statements: tuple[ast.stmt, ...] = field(default=(), compare=False, repr=False)

    @classmethod
    def parse(cls, text: str, name: str = "<unit>") -> SourceUnit:
        """Parse text into a unit. Raises ParseError with the offending location."""
        try:
            module = ast.parse(text, filename=name)
        except SyntaxError as e:
            raise ParseError(name, (e.lineno or 0, e.offset or 0), e.msg or "invalid syntax")
        except ValueError as e:
            # e.g. source containing null bytes
            raise ParseError(name, (0, 0), str(e))
        except (RecursionError, MemoryError):
            raise ParseError(name, (0, 0), "expression nesting too deep")
        return cls(text=text, name=name, statements=tuple(module.body))

    @cached_property
    def encoded(self) -> bytes:
        return self.text.encode("utf-8")

    @cached_property
    def line_starts(self) -> tuple[int, ...]:
        return (0,) + tuple(m.end() for m in _LINE_BREAK_BYTES.finditer(self.encoded))

    @cached_property
    def lines(self) -> tuple[str, ...]:
        """Source lines without their terminators, numbered the way ast numbers them."""
        lines = LINE_BREAK.split(self.text)
        if lines and lines[-1] == "":
            lines.pop()
        return tuple(lines)

    @property
    def line_count(self) -> int:
        return len(self.lines)

    def offset(self, lineno: int, col_offset: int) -> int:
        """Byte offset of an ast (lineno, col_offset) position."""
        return self.line_starts[lineno - 1] + col_offset

    def span_of(self, node: ast.AST) -> Span:
        return Span(
            self.offset(node.lineno, node.col_offset),
            self.offset(node.end_lineno, node.end_col_offset),
        )

    def segment(self, span: Span) -> str:
        return self.encoded[span.start : span.end].decode("utf-8")

    def line_text(self, lineno: int) -> str:
        if 1 <= lineno <= len(self.lines):
            return self.lines[lineno - 1]
        return ""

    def snippet(self, location: Location, limit: int = 120) -> str:
        text = self.line_text(location[0]).strip()
        if location[1] > location[0]:
            text += " ..."
        return text if len(text) <= limit else text[: limit - 3] + "..."


@dataclass(frozen=True)
class ColumnRef:
    """A column of a dataset, or a bare variable when dataset_alias is empty."""

    dataset_alias: str
    column_name: str

    @property
    def frame(self) -> str:
        """Dataset this ref belongs to; a bare variable is its own dataset."""
        return self.dataset_alias or self.column_name

    def __str__(self) -> str:
        if self.dataset_alias:
            return f'{self.dataset_alias}["{self.column_name}"]'
        return self.column_name


@dataclass(frozen=True)
class Read:
    """One column read inside an expression.

    shifted_by is the net shift along the whole chain up to this read: the
    lag carried by the producing assignment plus the shift applied in the
    reading expression. Positive is a lag (past data), negative pulls future
    data, None means no information.
    """

    ref: ColumnRef
    shifted_by: Optional[int]
    source: int
    shift_applied: Optional[int]
    span: Span
    location: Location
    source_is_constant: bool = False

    @property
    def external(self) -> bool:
        return self.source == EXTERNAL


@dataclass(frozen=True)
class Assignment:
    index: int
    target: ColumnRef
    expression: ast.expr = field(compare=False, repr=False)
    location: Location = (0, 0)
    reads: tuple[Read, ...] = ()
    lag: Optional[int] = None
    is_constant: bool = False


@dataclass(frozen=True)
class CallSite:
    """A call expression with its constant arguments resolved.

    keywords holds literal keyword values only; keyword_spans covers every
    keyword value so rules can rewrite it. arguments lists every argument in
    source order as (keyword or None, span of the whole argument); ``*args``
    has no keyword and ``**kwargs`` is keyed "**".
    """

    method: str
    location: Location
    span: Span
    keywords: Mapping[str, Any] = field(default_factory=dict)
    keyword_spans: Mapping[str, Span] = field(default_factory=dict)
    positional: tuple[Any, ...] = ()
    receiver_reads: tuple[ColumnRef, ...] = ()
    arg_reads: tuple[ColumnRef, ...] = ()
    receiver_chain: tuple[str, ...] = ()
    is_function: bool = False
    name_span: Optional[Span] = None  # method name of a call on a receiver
    arguments: tuple[tuple[Optional[str], Span], ...] = ()
    assignment: Optional[int] = None

    @property
    def data_reads(self) -> tuple[ColumnRef, ...]:
        """Reads of the data the call operates on."""
        return self.arg_reads if self.is_function else self.receiver_reads


@dataclass(frozen=True)
class ForwardIndex:
    """Subscript that offsets a position forward, e.g. ``close[i + 1]``."""

    location: Location
    span: Span
    step: int
    assignment: Optional[int] = None


@dataclass(frozen=True)
class FrameDerivation:
    """Dataset alias derived from another: a head/tail slice or a column selection."""

    target: str
    source: str
    kind: str  # "head" | "tail" | "select"
    location: Location


@dataclass(frozen=True)
class DependencyGraph:
    """Data-dependency graph over one unit's assignments.

    Edges are directed: (reader, producer) means the expression of assignment
    `reader` reads a column produced by assignment `producer` (or EXTERNAL).
    Producers always precede readers, so the graph is acyclic.
    """

    unit: SourceUnit
    assignments: tuple[Assignment, ...] = ()
    edges: tuple[tuple[int, int], ...] = ()
    calls: tuple[CallSite, ...] = ()
    forward_indexes: tuple[ForwardIndex, ...] = ()
    derivations: tuple[FrameDerivation, ...] = ()

    def producers_of(self, index: int) -> list[int]:
        return [p for r, p in self.edges if r == index]

    def readers_of(self, index: int) -> list[int]:
        return [r for r, p in self.edges if p == index]

    def external_reads(self) -> list[Read]:
        return [read for a in self.assignments for read in a.reads if read.external]

    def spanning_aliases(self, configured: Iterable[str] = ()) -> frozenset[str]:
        """Aliases known to cover both the training and the evaluation range.

        An alias spans when configured as such, when it is sliced into both a
        head and a tail, when it is handed to train_test_split, or when it is
        a column selection of a spanning alias.
        """
        spanning = set(configured)

        kinds: dict[str, set[str]] = defaultdict(set)
        for d in self.derivations:
            if d.kind in ("head", "tail"):
                kinds[d.source].add(d.kind)
        spanning.update(alias for alias, k in kinds.items() if {"head", "tail"} <= k)

        for call in self.calls:
            if call.method == "train_test_split":
                spanning.update(ref.frame for ref in call.arg_reads)

        changed = True
        while changed:
            changed = False
            for d in self.derivations:
                if d.kind == "select" and d.source in spanning and d.target not in spanning:
                    spanning.add(d.target)
                    changed = True

        return frozenset(spanning)
