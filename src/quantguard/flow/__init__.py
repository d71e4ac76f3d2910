"""Code flow analysis: parse a source unit and build its dependency graph."""

from .analyzer import build_graph, combine_lags
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

__all__ = [
    "build_graph",
    "combine_lags",
    "EXTERNAL",
    "Assignment",
    "CallSite",
    "ColumnRef",
    "DependencyGraph",
    "ForwardIndex",
    "FrameDerivation",
    "Read",
    "SourceUnit",
    "Span",
]
