"""Pattern Catalog: declarative rule definitions.

Every rule pairs a matcher (graph -> matches) with an optional fixer
(graph, match -> text edits). Rules never see each other's output. The
catalog is built once at import and ordered by id.
"""

from __future__ import annotations

from typing import Iterator

from ..flow.analyzer import iter_reads
from ..flow.models import LINE_BREAK, Assignment, CallSite, DependencyGraph, Read, Span
from .models import Category, Match, Rule, RuleContext, Severity, TextEdit

# Aggregations that leak when computed over the whole sample.
_GLOBAL_STATS = frozenset(
    {"mean", "std", "var", "min", "max", "median", "quantile", "zscore", "nanmean", "nanstd"}
)
_FIT_METHODS = frozenset({"fit", "fit_transform", "partial_fit"})
# Methods that make the aggregation causal or per-bucket.
_WINDOWED = frozenset({"rolling", "expanding", "ewm", "resample", "groupby"})
_BACKFILL = frozenset({"bfill", "backfill"})
_FORWARD_FILL = frozenset({"ffill", "pad"})


def _quoted(original: str, value: str) -> str:
    """Replacement literal using the quote style of the original."""
    quote = '"' if original.startswith('"') else "'"
    return f"{quote}{value}{quote}"


def _reads_of(call: CallSite) -> set[str]:
    return {ref.frame for ref in call.data_reads}


# ==============================================================================
# Lookahead bias
# ==============================================================================


def _unshifted_signal_reads(assignment: Assignment, ctx: RuleContext) -> list[Read]:
    return [
        read
        for read in assignment.reads
        if ctx.patterns.is_signal(read.ref.column_name)
        and not read.source_is_constant
        and (read.shifted_by is None or read.shifted_by <= 0)
    ]


def _unshifted_signal_match(graph: DependencyGraph, ctx: RuleContext) -> Iterator[Match]:
    """Position-like target fed by a signal that was not lagged before use."""
    for assignment in graph.assignments:
        if not ctx.patterns.is_position(assignment.target.column_name):
            continue
        offending = _unshifted_signal_reads(assignment, ctx)
        if not offending:
            continue
        names = ", ".join(sorted({str(r.ref) for r in offending}))
        yield Match(
            location=assignment.location,
            message=f"{assignment.target} uses {names} on the bar it is computed; "
            f"lag it with .shift(1) before trading on it",
            subject=tuple(offending),
        )


def _unshifted_signal_fix(graph: DependencyGraph, match: Match) -> tuple[TextEdit, ...]:
    reads: tuple[Read, ...] = match.subject
    # Only reads whose lag comes out to exactly one bar after wrapping
    if any(r.shift_applied != 0 or r.shifted_by not in (None, 0) for r in reads):
        return ()
    edits = {}
    for read in reads:
        edits[read.span] = TextEdit(read.span, graph.unit.segment(read.span) + ".shift(1)")
    return tuple(edits[s] for s in sorted(edits, key=lambda s: s.start))


def _resample_label_match(graph: DependencyGraph, ctx: RuleContext) -> Iterator[Match]:
    """Bars labelled with their opening timestamp."""
    for call in graph.calls:
        if call.method in ("resample", "Grouper") and call.keywords.get("label") == "left":
            yield Match(
                location=call.location,
                message="label='left' stamps each bar's aggregate with its opening time, "
                "before the data in it was available",
                subject=call,
            )


def _resample_label_fix(graph: DependencyGraph, match: Match) -> tuple[TextEdit, ...]:
    call: CallSite = match.subject
    span = call.keyword_spans["label"]
    return (TextEdit(span, _quoted(graph.unit.segment(span), "right")),)


def _forward_reference_match(graph: DependencyGraph, ctx: RuleContext) -> Iterator[Match]:
    """Reads of future values: negative shifts and forward positional indexing."""
    for assignment, read in iter_reads(graph):
        if read.shifted_by is not None and read.shifted_by < 0:
            yield Match(
                location=read.location,
                message=f"{read.ref} is shifted by {read.shifted_by}: "
                f"it reads {-read.shifted_by} bar(s) into the future",
                subject=read,
            )
    for index in graph.forward_indexes:
        yield Match(
            location=index.location,
            message=f"positional index reaches {index.step} step(s) ahead of the current bar",
            subject=index,
        )


def _centered_window_match(graph: DependencyGraph, ctx: RuleContext) -> Iterator[Match]:
    for call in graph.calls:
        if call.method == "rolling" and call.keywords.get("center") is True:
            yield Match(
                location=call.location,
                message="center=True makes each window include future observations",
                subject=call,
            )


def _centered_window_fix(graph: DependencyGraph, match: Match) -> tuple[TextEdit, ...]:
    call: CallSite = match.subject
    return (TextEdit(call.keyword_spans["center"], "False"),)


def _backfill_match(graph: DependencyGraph, ctx: RuleContext) -> Iterator[Match]:
    for call in graph.calls:
        if call.is_function:
            continue
        if call.method in _BACKFILL or (
            call.method == "fillna" and call.keywords.get("method") in _BACKFILL
        ):
            yield Match(
                location=call.location,
                message="backward fill copies later values into earlier gaps",
                subject=call,
            )


# ==============================================================================
# Data leakage
# ==============================================================================


def _global_statistic_match(graph: DependencyGraph, ctx: RuleContext) -> Iterator[Match]:
    """Whole-sample statistics over data that spans training and evaluation."""
    if not ctx.spanning_aliases:
        return
    for call in graph.calls:
        if call.method not in _GLOBAL_STATS:
            continue
        if _WINDOWED.intersection(call.receiver_chain):
            continue
        leaked = sorted(_reads_of(call) & ctx.spanning_aliases)
        if leaked:
            yield Match(
                location=call.location,
                message=f"{call.method}() over {', '.join(leaked)} mixes the training "
                "and evaluation ranges; compute it on the training slice only",
                subject=call,
            )


def _fit_on_full_range_match(graph: DependencyGraph, ctx: RuleContext) -> Iterator[Match]:
    if not ctx.spanning_aliases:
        return
    for call in graph.calls:
        if call.method not in _FIT_METHODS or call.is_function:
            continue
        leaked = sorted({ref.frame for ref in call.arg_reads} & ctx.spanning_aliases)
        if leaked:
            yield Match(
                location=call.location,
                message=f"{call.method}() sees {', '.join(leaked)}, which covers the "
                "evaluation range; fit on the training split",
                subject=call,
            )


# ==============================================================================
# Code quality
# ==============================================================================


def _deprecated_fill_match(graph: DependencyGraph, ctx: RuleContext) -> Iterator[Match]:
    for call in graph.calls:
        if (
            call.method == "fillna"
            and not call.is_function
            and call.keywords.get("method") in _FORWARD_FILL
        ):
            yield Match(
                location=call.location,
                message="fillna(method=...) is deprecated; use .ffill()",
                subject=call,
            )


def _line_structure(segment: str) -> str:
    """Line breaks of a removed segment plus the indentation that follows the last one."""
    pieces = LINE_BREAK.split(segment)
    if len(pieces) == 1:
        return ""
    indent = pieces[-1] if pieces[-1].isspace() else ""
    return "".join(LINE_BREAK.findall(segment)) + indent


def _deprecated_fill_fix(graph: DependencyGraph, match: Match) -> tuple[TextEdit, ...]:
    """Rename to ffill and drop the method argument, keeping every other keyword."""
    call: CallSite = match.subject
    names = [name for name, _ in call.arguments]
    # value and method together raise in pandas; no equivalent ffill call
    if call.name_span is None or None in names or "value" in names:
        return ()

    index = names.index("method")
    _, own = call.arguments[index]
    if index + 1 < len(call.arguments):
        removed = Span(own.start, call.arguments[index + 1][1].start)
    elif index > 0:
        removed = Span(call.arguments[index - 1][1].end, own.end)
    else:
        # Sole argument: up to the closing parenthesis, dropping a trailing comma
        removed = Span(own.start, call.span.end - 1)

    segment = graph.unit.segment(removed)
    if LINE_BREAK.search(segment):
        # Take the argument's own indentation with it
        data = graph.unit.encoded
        start = removed.start
        while data[start - 1 : start] in (b" ", b"\t"):
            start -= 1
        removed = Span(start, removed.end)

    return (
        TextEdit(call.name_span, "ffill"),
        TextEdit(removed, _line_structure(graph.unit.segment(removed))),
    )


# ==============================================================================
# Security
# ==============================================================================


def _dynamic_exec_match(graph: DependencyGraph, ctx: RuleContext) -> Iterator[Match]:
    for call in graph.calls:
        if call.is_function and call.method in ("eval", "exec") and not call.receiver_chain:
            yield Match(
                location=call.location,
                message=f"{call.method}() executes arbitrary code",
                subject=call,
            )


def _hardcoded_credential_match(graph: DependencyGraph, ctx: RuleContext) -> Iterator[Match]:
    for assignment in graph.assignments:
        if not ctx.patterns.is_credential(assignment.target.column_name):
            continue
        value = getattr(assignment.expression, "value", None)
        if assignment.is_constant and isinstance(value, str) and value:
            yield Match(
                location=assignment.location,
                message=f"{assignment.target} holds a literal credential; "
                "read it from the environment",
                subject=assignment,
            )


# ==============================================================================
# Registry
# ==============================================================================


UNSHIFTED_SIGNAL = Rule(
    id="LB001",
    category=Category.LOOKAHEAD_BIAS,
    severity=Severity.STOP,
    title="Unshifted signal used as position",
    matcher=_unshifted_signal_match,
    fixer=_unshifted_signal_fix,
    description="A position-like column reads a signal-like column that carries no "
    "lag. Column roles are inferred from names and can miss unconventional naming.",
)

MISALIGNED_RESAMPLE = Rule(
    id="LB002",
    category=Category.LOOKAHEAD_BIAS,
    severity=Severity.STOP,
    title="Resample labelled with interval start",
    matcher=_resample_label_match,
    fixer=_resample_label_fix,
    description="resample/Grouper with label='left' attributes a bar to its open time.",
)

FORWARD_REFERENCE = Rule(
    id="LB003",
    category=Category.LOOKAHEAD_BIAS,
    severity=Severity.STOP,
    title="Forward reference",
    matcher=_forward_reference_match,
    description="Negative shift or positional index beyond the current bar.",
)

CENTERED_WINDOW = Rule(
    id="LB004",
    category=Category.LOOKAHEAD_BIAS,
    severity=Severity.STOP,
    title="Centered rolling window",
    matcher=_centered_window_match,
    fixer=_centered_window_fix,
    description="rolling(center=True) averages over observations after the bar.",
)

BACKFILL = Rule(
    id="LB005",
    category=Category.LOOKAHEAD_BIAS,
    severity=Severity.WARN,
    title="Backward fill",
    matcher=_backfill_match,
    description="bfill propagates later observations into earlier rows.",
)

GLOBAL_STATISTIC = Rule(
    id="DL001",
    category=Category.DATA_LEAKAGE,
    severity=Severity.STOP,
    title="Global statistic over train and test",
    matcher=_global_statistic_match,
    description="mean/std/min/max over a dataset spanning both training and evaluation.",
)

FIT_ON_FULL_RANGE = Rule(
    id="DL002",
    category=Category.DATA_LEAKAGE,
    severity=Severity.STOP,
    title="Model or scaler fit on full range",
    matcher=_fit_on_full_range_match,
    description="fit/fit_transform on data that includes the evaluation range.",
)

DEPRECATED_FILL = Rule(
    id="CQ001",
    category=Category.CODE_QUALITY,
    severity=Severity.AUTO_FIX,
    title="Deprecated fillna(method=...)",
    matcher=_deprecated_fill_match,
    fixer=_deprecated_fill_fix,
    description="fillna(method='ffill') is deprecated in pandas 2.x.",
)

DYNAMIC_EXEC = Rule(
    id="SEC001",
    category=Category.SECURITY,
    severity=Severity.WARN,
    title="eval/exec",
    matcher=_dynamic_exec_match,
    description="Dynamic code execution.",
)

HARDCODED_CREDENTIAL = Rule(
    id="SEC002",
    category=Category.SECURITY,
    severity=Severity.WARN,
    title="Hardcoded credential",
    matcher=_hardcoded_credential_match,
    description="API keys, tokens or passwords assigned as string literals.",
)


ALL_RULES: tuple[Rule, ...] = tuple(
    sorted(
        [
            UNSHIFTED_SIGNAL,
            MISALIGNED_RESAMPLE,
            FORWARD_REFERENCE,
            CENTERED_WINDOW,
            BACKFILL,
            GLOBAL_STATISTIC,
            FIT_ON_FULL_RANGE,
            DEPRECATED_FILL,
            DYNAMIC_EXEC,
            HARDCODED_CREDENTIAL,
        ],
        key=lambda r: r.id,
    )
)


def get_rule(rule_id: str) -> Rule:
    for rule in ALL_RULES:
        if rule.id == rule_id:
            return rule
    raise KeyError(rule_id)


def active_rules(disabled: tuple[str, ...] = ()) -> tuple[Rule, ...]:
    return tuple(r for r in ALL_RULES if r.id not in disabled)
