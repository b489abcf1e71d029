"""Metrics tools: timeseries queries."""

from .queries import normalize_series, query_metrics

__all__ = ["normalize_series", "query_metrics"]
