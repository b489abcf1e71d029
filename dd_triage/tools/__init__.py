"""Triage tools - query normalization and correlation over observability backends.

Time Ranges (tools.time_range):
    - Relative ("15m", "2h", "7d") and absolute (ISO-8601) expressions
    - Logged fallback to "now" for malformed input

Log Tools (tools.logs):
    - Record normalization with trace id / host resolution
    - Search, lookup by id, facet aggregation, error summaries
    - Template extraction and clustering of messages
    - Context windows around an instant
    - Live tail

Trace Tools (tools.trace):
    - Span normalization (duration, error status, operation name)
    - Trace hierarchy reconstruction with cycle breaking
    - Span search, aggregation and error summaries

Metrics Tools (tools.metrics):
    - Timeseries queries with normalized series

Aggregation (tools.aggregation):
    - Bucket normalization
    - Period-over-period comparison

Export (tools.export):
    - Tagged result serialization and parsing
"""

from .aggregation import build_buckets, compare_periods, compute_change
from .backend import (
    AggregatePage,
    EntryPage,
    MetricsBackend,
    QueryBackend,
    SyncBackendAdapter,
)
from .export import parse_result, to_dict, to_json, write_to_file
from .tail import LiveTailEngine, TailState
from .time_range import parse_relative_time, parse_time_range

__all__ = [
    "AggregatePage",
    "EntryPage",
    "LiveTailEngine",
    "MetricsBackend",
    "QueryBackend",
    "SyncBackendAdapter",
    "TailState",
    "build_buckets",
    "compare_periods",
    "compute_change",
    "parse_relative_time",
    "parse_result",
    "parse_time_range",
    "to_dict",
    "to_json",
    "write_to_file",
]
