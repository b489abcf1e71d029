"""Trace tools: span normalization, hierarchy reconstruction and span queries."""

from .hierarchy import TraceHierarchyBuilder, TraceTree, build_trace_tree
from .normalize import normalize_span
from .queries import (
    aggregate_spans,
    compare_span_periods,
    get_span_errors,
    get_spans_by_trace_id,
    get_trace_hierarchy,
    list_span_services,
    search_spans,
)

__all__ = [
    "TraceHierarchyBuilder",
    "TraceTree",
    "aggregate_spans",
    "build_trace_tree",
    "compare_span_periods",
    "get_span_errors",
    "get_spans_by_trace_id",
    "get_trace_hierarchy",
    "list_span_services",
    "normalize_span",
    "search_spans",
]
