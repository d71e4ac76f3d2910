"""Code flow analysis: build a DependencyGraph from a SourceUnit.

Assignments are processed in file order, nested bodies included. For every
assignment the expression is scanned for column reads; each read is resolved
against the live producer of that column (last write wins) and annotated
with the net shift along the chain. Reads of columns no assignment produced
resolve to the EXTERNAL node and carry no lag information.

Shift convention is pandas': ``x.shift(k)`` with ``k > 0`` lags (uses past
values), ``k < 0`` pulls future values forward.
"""

from __future__ import annotations

import ast
from typing import Any, Iterable, Iterator, Optional, Union

from ..exceptions import ParseError
from ..logging_config import get_logger
from .models import (
    EXTERNAL,
    Assignment,
    CallSite,
    ColumnRef,
    DependencyGraph,
    ForwardIndex,
    FrameDerivation,
    Read,
    SourceUnit,
    Span,
)

logger = get_logger(__name__)

# Frame accessors: `df.loc[...]` indexes rows/columns of `df` itself.
_INDEXERS = frozenset({"loc", "iloc", "at", "iat"})

# Whole-frame attributes that are not columns.
_FRAME_ATTRS = frozenset({"index", "columns", "values", "shape", "dtypes", "T", "empty", "size"})

# Derivations that keep the alias' full time range.
_SELECT_METHODS = frozenset({"copy", "dropna", "drop", "filter", "astype", "fillna", "ffill"})

_NOT_CONSTANT = object()


class _Unknown:
    """Marker for an in-expression shift whose amount is not a literal."""

    def __repr__(self) -> str:
        return "UNKNOWN"


UNKNOWN = _Unknown()

Shift = Union[int, _Unknown]


def build_graph(unit: SourceUnit) -> DependencyGraph:
    """Build the dependency graph for a parsed unit.

    Either the whole graph is built or an exception propagates; no partial
    graph escapes. Expressions nested past the interpreter's recursion limit
    raise ParseError like any other unanalyzable source.
    """
    builder = _GraphBuilder(unit)
    try:
        graph = builder.build()
    except RecursionError:
        raise ParseError(unit.name, (0, 0), "expression nesting too deep")
    logger.debug(
        f"{unit.name}: {len(graph.assignments)} assignments, {len(graph.edges)} edges, "
        f"{len(graph.calls)} calls"
    )
    return graph


def combine_lags(lags: Iterable[Optional[int]]) -> Optional[int]:
    """Lag of a value computed from reads with the given annotations.

    The least-lagged input bounds availability: any negative (future) read
    dominates, then unknown, then the minimum lag.
    """
    values = list(lags)
    negatives = [v for v in values if v is not None and v < 0]
    if negatives:
        return min(negatives)
    if not values or any(v is None for v in values):
        return None
    return min(v for v in values if v is not None)


def literal(node: Optional[ast.AST]) -> Any:
    """Literal value of a constant node (including negative numbers)."""
    if node is None:
        return _NOT_CONSTANT
    try:
        return ast.literal_eval(node)
    except (ValueError, TypeError, SyntaxError, MemoryError, RecursionError):
        return _NOT_CONSTANT


def is_literal(value: Any) -> bool:
    return value is not _NOT_CONSTANT


def alias_name(node: ast.AST) -> Optional[str]:
    """Dotted name of a dataset expression (`df`, `self.data`), else None."""
    if isinstance(node, ast.Name):
        return node.id
    if isinstance(node, ast.Attribute):
        base = alias_name(node.value)
        return f"{base}.{node.attr}" if base else None
    return None


def _column_key(node: ast.AST) -> Optional[str]:
    if isinstance(node, ast.Constant) and isinstance(node.value, str):
        return node.value
    return None


def _shift_amount(call: ast.Call) -> Shift:
    arg: Optional[ast.AST] = call.args[0] if call.args else None
    for kw in call.keywords:
        if kw.arg == "periods":
            arg = kw.value
    if arg is None:
        return 1
    value = literal(arg)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return UNKNOWN


def _forward_step(index: ast.AST) -> Optional[int]:
    """Positive step of `i + k` / `k + i` / `i - (-k)` index expressions."""
    if isinstance(index, ast.Tuple) and index.elts:
        index = index.elts[0]
    if not isinstance(index, ast.BinOp):
        return None
    left, right = literal(index.left), literal(index.right)
    if isinstance(index.op, ast.Add):
        for const, other in ((right, left), (left, right)):
            if (
                isinstance(const, int)
                and not isinstance(const, bool)
                and const > 0
                and not is_literal(other)
            ):
                return const
    if isinstance(index.op, ast.Sub):
        if (
            isinstance(right, int)
            and not isinstance(right, bool)
            and right < 0
            and not is_literal(left)
        ):
            return -right
    return None


def _receiver_chain(node: ast.AST) -> tuple[str, ...]:
    """Method names called on the way down a receiver expression."""
    chain: list[str] = []
    while True:
        if isinstance(node, ast.Call):
            if isinstance(node.func, ast.Attribute):
                chain.append(node.func.attr)
                node = node.func.value
                continue
            break
        if isinstance(node, (ast.Attribute, ast.Subscript)):
            node = node.value
            continue
        break
    return tuple(reversed(chain))


def _call_name(func: ast.AST) -> str:
    if isinstance(func, ast.Attribute):
        return func.attr
    if isinstance(func, ast.Name):
        return func.id
    return ""


def _imported_names(statements: Iterable[ast.stmt]) -> frozenset[str]:
    names: set[str] = set()
    for stmt in statements:
        for node in ast.walk(stmt):
            if isinstance(node, ast.Import):
                for a in node.names:
                    names.add((a.asname or a.name).split(".")[0])
            elif isinstance(node, ast.ImportFrom):
                for a in node.names:
                    names.add(a.asname or a.name)
            elif isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)):
                names.add(node.name)
    return frozenset(names)


class _ExprScanner:
    """Collect reads, call sites and forward indexes from one expression."""

    def __init__(self, builder: _GraphBuilder, assignment: Optional[int]):
        self.builder = builder
        self.assignment = assignment
        self.reads: list[Read] = []
        self.refs: list[ColumnRef] = []

    def scan(self, node: ast.AST, shift: Shift = 0) -> None:
        if isinstance(node, ast.Name):
            if isinstance(node.ctx, ast.Load) and node.id not in self.builder.imported:
                self._read(ColumnRef("", node.id), node, shift)
            return

        if isinstance(node, ast.Attribute):
            self._scan_attribute(node, shift)
            return

        if isinstance(node, ast.Subscript):
            self._scan_subscript(node, shift)
            return

        if isinstance(node, ast.Call):
            self._scan_call(node, shift)
            return

        for child in ast.iter_child_nodes(node):
            self.scan(child, shift)

    def _scan_attribute(self, node: ast.Attribute, shift: Shift) -> None:
        if isinstance(node.value, ast.Name):
            base = node.value.id
            if base in self.builder.imported:
                return
            if node.attr in _INDEXERS or node.attr in _FRAME_ATTRS:
                self._read(ColumnRef("", base), node.value, shift)
            else:
                self._read(ColumnRef(base, node.attr), node, shift)
            return
        self.scan(node.value, shift)

    def _scan_subscript(self, node: ast.Subscript, shift: Shift) -> None:
        step = _forward_step(node.slice)
        if step is not None:
            self.builder.forward_indexes.append(
                ForwardIndex(
                    location=(node.lineno, node.end_lineno or node.lineno),
                    span=self.builder.unit.span_of(node),
                    step=step,
                    assignment=self.assignment,
                )
            )

        ref = self.builder.column_of(node)
        if ref is not None:
            self._read(ref, node, shift)
            if (
                isinstance(node.value, ast.Attribute)
                and node.value.attr in _INDEXERS
                and isinstance(node.slice, ast.Tuple)
            ):
                for elt in node.slice.elts[:-1]:
                    self.scan(elt, 0)
            return

        if isinstance(node.slice, (ast.List, ast.Tuple)) and not isinstance(
            node.value, ast.Attribute
        ):
            keys = [_column_key(elt) for elt in node.slice.elts]
            base = alias_name(node.value)
            if base is not None and keys and all(k is not None for k in keys):
                for key, elt in zip(keys, node.slice.elts):
                    self._read(ColumnRef(base, key), elt, shift)
                return

        self.scan(node.value, shift)
        self.scan(node.slice, 0)

    def _scan_call(self, node: ast.Call, shift: Shift) -> None:
        func = node.func
        method = _call_name(func)
        receiver: Optional[ast.AST] = func.value if isinstance(func, ast.Attribute) else None
        is_function = receiver is None or (
            isinstance(receiver, ast.Name) and receiver.id in self.builder.imported
        )

        inner_shift = shift
        if method == "shift" and receiver is not None and not is_function:
            amount = _shift_amount(node)
            if isinstance(shift, _Unknown) or isinstance(amount, _Unknown):
                inner_shift = UNKNOWN
            else:
                inner_shift = shift + amount

        receiver_scanner = _ExprScanner(self.builder, self.assignment)
        if receiver is not None:
            receiver_scanner.scan(receiver, inner_shift)
        elif not isinstance(func, ast.Name):
            receiver_scanner.scan(func, inner_shift)
        self._absorb(receiver_scanner)

        arg_scanner = _ExprScanner(self.builder, self.assignment)
        arg_shift = 0 if method == "shift" else shift
        for arg in node.args:
            arg_scanner.scan(arg, arg_shift)
        for kw in node.keywords:
            arg_scanner.scan(kw.value, arg_shift)
        self._absorb(arg_scanner)

        self.builder.add_call(
            node,
            method=method,
            receiver=receiver,
            receiver_reads=tuple(receiver_scanner.refs),
            arg_reads=tuple(arg_scanner.refs),
            is_function=is_function,
            assignment=self.assignment,
        )

    def _absorb(self, other: _ExprScanner) -> None:
        self.reads.extend(other.reads)
        self.refs.extend(other.refs)

    def _read(self, ref: ColumnRef, node: ast.AST, shift: Shift) -> None:
        self.refs.append(ref)
        self.reads.append(self.builder.resolve(ref, node, shift))


class _GraphBuilder:
    def __init__(self, unit: SourceUnit):
        self.unit = unit
        self.imported = _imported_names(unit.statements)
        self.live: dict[ColumnRef, int] = {}
        self.assignments: list[Assignment] = []
        self.edges: list[tuple[int, int]] = []
        self._edge_set: set[tuple[int, int]] = set()
        self.calls: list[CallSite] = []
        self.forward_indexes: list[ForwardIndex] = []
        self.derivations: list[FrameDerivation] = []

    def build(self) -> DependencyGraph:
        for stmt in self.unit.statements:
            self._visit(stmt)
        return DependencyGraph(
            unit=self.unit,
            assignments=tuple(self.assignments),
            edges=tuple(self.edges),
            calls=tuple(self.calls),
            forward_indexes=tuple(self.forward_indexes),
            derivations=tuple(self.derivations),
        )

    # -- statements --------------------------------------------------------

    def _visit(self, stmt: ast.stmt) -> None:
        if isinstance(stmt, ast.Assign):
            self._assign(stmt, stmt.targets, stmt.value)
        elif isinstance(stmt, ast.AnnAssign):
            if stmt.value is not None:
                self._assign(stmt, [stmt.target], stmt.value)
        elif isinstance(stmt, ast.AugAssign):
            self._augassign(stmt)
        elif isinstance(stmt, ast.Expr):
            _ExprScanner(self, None).scan(stmt.value)
        else:
            self._visit_compound(stmt)

    def _visit_compound(self, node: ast.AST) -> None:
        for child in ast.iter_child_nodes(node):
            if isinstance(child, ast.stmt):
                self._visit(child)
            elif isinstance(child, ast.expr):
                _ExprScanner(self, None).scan(child)
            elif isinstance(child, (ast.excepthandler, ast.match_case, ast.withitem)):
                self._visit_compound(child)

    def _assign(self, stmt: ast.stmt, targets: list[ast.expr], value: ast.expr) -> None:
        location = (stmt.lineno, stmt.end_lineno or stmt.lineno)

        pairs: list[tuple[ast.expr, ast.expr]] = []
        for target in targets:
            if (
                isinstance(target, (ast.Tuple, ast.List))
                and isinstance(value, (ast.Tuple, ast.List))
                and len(target.elts) == len(value.elts)
            ):
                pairs.extend(zip(target.elts, value.elts))
            else:
                pairs.append((target, value))

        # All right-hand sides resolve against the state before the statement
        scanned: dict[int, tuple[list[Read], ast.expr]] = {}
        for _, expr in pairs:
            if id(expr) not in scanned:
                scanner = _ExprScanner(self, len(self.assignments))
                scanner.scan(expr)
                scanned[id(expr)] = (scanner.reads, expr)

        for target, expr in pairs:
            reads, _ = scanned[id(expr)]
            for ref in self._target_refs(target):
                self._record(ref, expr, location, reads)
            self._record_derivation(target, expr, location)

    def _augassign(self, stmt: ast.AugAssign) -> None:
        location = (stmt.lineno, stmt.end_lineno or stmt.lineno)
        scanner = _ExprScanner(self, len(self.assignments))
        scanner.scan(stmt.value)
        reads = list(scanner.reads)
        for ref in self._target_refs(stmt.target):
            reads.append(self.resolve(ref, stmt.target, 0))
            self._record(ref, stmt.value, location, reads)

    def _record(
        self,
        target: ColumnRef,
        expression: ast.expr,
        location: tuple[int, int],
        reads: list[Read],
    ) -> None:
        index = len(self.assignments)
        informative = [r for r in reads if not r.source_is_constant]
        assignment = Assignment(
            index=index,
            target=target,
            expression=expression,
            location=location,
            reads=tuple(reads),
            lag=combine_lags(r.shifted_by for r in informative) if informative else 0,
            is_constant=not informative,
        )
        self.assignments.append(assignment)
        for read in reads:
            edge = (index, read.source)
            if edge not in self._edge_set:
                self._edge_set.add(edge)
                self.edges.append(edge)
        self.live[target] = index

    def _target_refs(self, target: ast.expr) -> list[ColumnRef]:
        if isinstance(target, (ast.Tuple, ast.List)):
            refs: list[ColumnRef] = []
            for elt in target.elts:
                refs.extend(self._target_refs(elt))
            return refs
        if isinstance(target, ast.Starred):
            return self._target_refs(target.value)
        if isinstance(target, ast.Name):
            return [ColumnRef("", target.id)]
        if isinstance(target, ast.Attribute):
            base = alias_name(target.value)
            if base is not None:
                return [ColumnRef(base, target.attr)]
            return []
        if isinstance(target, ast.Subscript):
            ref = self.column_of(target)
            return [ref] if ref is not None else []
        return []

    def _record_derivation(self, target: ast.expr, expr: ast.expr, location) -> None:
        if not isinstance(target, ast.Name):
            return
        source, kind = _derivation(expr)
        if source is not None and kind is not None and source != target.id:
            self.derivations.append(FrameDerivation(target.id, source, kind, location))

    # -- reads and calls ---------------------------------------------------

    def column_of(self, node: ast.Subscript) -> Optional[ColumnRef]:
        """ColumnRef for `df["c"]`, `df.loc[..., "c"]`; None for anything else."""
        container = node.value
        key_node: ast.AST = node.slice
        if isinstance(container, ast.Attribute) and container.attr in _INDEXERS:
            container = container.value
            if isinstance(key_node, ast.Tuple) and key_node.elts:
                key_node = key_node.elts[-1]
            else:
                return None
        key = _column_key(key_node)
        base = alias_name(container)
        if key is None or base is None or base.split(".")[0] in self.imported:
            return None
        return ColumnRef(base, key)

    def resolve(self, ref: ColumnRef, node: ast.AST, shift: Shift) -> Read:
        source = self.live.get(ref, EXTERNAL)
        upstream: Optional[int] = None
        constant = False
        if source != EXTERNAL:
            producer = self.assignments[source]
            upstream = producer.lag
            constant = producer.is_constant

        applied: Optional[int] = None if isinstance(shift, _Unknown) else shift
        if applied is None:
            shifted_by = None
        elif upstream is None:
            shifted_by = applied if applied != 0 else None
        else:
            shifted_by = upstream + applied

        return Read(
            ref=ref,
            shifted_by=shifted_by,
            source=source,
            shift_applied=applied,
            span=self.unit.span_of(node),
            location=(node.lineno, node.end_lineno or node.lineno),
            source_is_constant=constant,
        )

    def add_call(
        self,
        node: ast.Call,
        method: str,
        receiver: Optional[ast.AST],
        receiver_reads: tuple[ColumnRef, ...],
        arg_reads: tuple[ColumnRef, ...],
        is_function: bool,
        assignment: Optional[int],
    ) -> None:
        keywords: dict[str, Any] = {}
        keyword_spans = {}
        for kw in node.keywords:
            if kw.arg is None:
                continue
            keyword_spans[kw.arg] = self.unit.span_of(kw.value)
            value = literal(kw.value)
            if is_literal(value):
                keywords[kw.arg] = value

        span = self.unit.span_of(node)
        name_span = None
        if receiver is not None and not is_function:
            func_end = self.unit.span_of(node.func).end
            name_span = Span(func_end - len(method.encode("utf-8")), func_end)

        arguments = [(None, self.unit.span_of(a)) for a in node.args]
        arguments.extend((kw.arg or "**", self.unit.span_of(kw)) for kw in node.keywords)
        arguments.sort(key=lambda item: item[1].start)

        self.calls.append(
            CallSite(
                method=method,
                location=(node.lineno, node.end_lineno or node.lineno),
                span=span,
                keywords=keywords,
                keyword_spans=keyword_spans,
                positional=tuple(literal(a) for a in node.args),
                receiver_reads=receiver_reads,
                arg_reads=arg_reads,
                receiver_chain=_receiver_chain(receiver) if receiver is not None else (),
                is_function=is_function,
                name_span=name_span,
                arguments=tuple(arguments),
                assignment=assignment,
            )
        )


def _derivation(expr: ast.expr) -> tuple[Optional[str], Optional[str]]:
    """(source alias, kind) when expr derives a frame from another alias."""
    if isinstance(expr, ast.Subscript):
        container = expr.value
        if isinstance(container, ast.Attribute) and container.attr in ("iloc", "loc"):
            container = container.value
        source = alias_name(container)
        if source is None:
            return None, None
        index = expr.slice
        if isinstance(index, ast.Tuple) and index.elts:
            index = index.elts[0]
        if isinstance(index, ast.Slice) and index.step is None:
            if index.lower is None and index.upper is not None:
                return source, "head"
            if index.lower is not None and index.upper is None:
                return source, "tail"
            return None, None
        if isinstance(index, (ast.Name, ast.List)) or _column_key(index) is not None:
            return source, "select"
        return None, None

    if isinstance(expr, ast.Call) and isinstance(expr.func, ast.Attribute):
        source = alias_name(expr.func.value)
        if source is None:
            return None, None
        method = expr.func.attr
        if method == "head":
            return source, "head"
        if method == "tail":
            return source, "tail"
        if method in _SELECT_METHODS:
            return source, "select"
    return None, None


def iter_reads(graph: DependencyGraph) -> Iterator[tuple[Assignment, Read]]:
    for assignment in graph.assignments:
        for read in assignment.reads:
            yield assignment, read
