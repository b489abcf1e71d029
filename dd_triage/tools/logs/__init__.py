"""Log tools: normalization, pattern extraction and log queries."""

from .normalize import normalize_log
from .patterns import PatternExtractor, extract_pattern, extract_patterns
from .queries import (
    aggregate_logs,
    compare_log_periods,
    get_log_by_id,
    get_log_context,
    get_log_errors,
    get_log_patterns,
    list_log_services,
    search_logs,
    tail_logs,
)

__all__ = [
    "PatternExtractor",
    "aggregate_logs",
    "compare_log_periods",
    "extract_pattern",
    "extract_patterns",
    "get_log_by_id",
    "get_log_context",
    "get_log_errors",
    "get_log_patterns",
    "list_log_services",
    "normalize_log",
    "search_logs",
    "tail_logs",
]
