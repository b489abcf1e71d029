"""Metrics timeseries queries over a MetricsBackend."""

import logging
from typing import Any

from ...config import get_config
from ...errors import ValidationError
from ...schema import MetricPoint, MetricSeries, MetricsMeta, MetricsResult, UnixTimeRange
from ..backend import MetricsBackend
from ..common import instrumented
from ..logs.normalize import as_dict, opt_str
from ..time_range import parse_time_range

logger = logging.getLogger(__name__)


def _point(raw: Any) -> MetricPoint | None:
    """Read a ``[timestamp, value]`` pair (or ``{timestamp, value}`` dict)."""
    if isinstance(raw, dict):
        ts, value = raw.get("timestamp"), raw.get("value")
    elif isinstance(raw, list | tuple) and raw:
        ts = raw[0]
        value = raw[1] if len(raw) > 1 else None
    else:
        return None
    return MetricPoint(timestamp=ts if ts is not None else 0, value=value)


def normalize_series(raw: dict[str, Any]) -> MetricSeries:
    """Map one raw timeseries to a MetricSeries; malformed points are skipped."""
    raw = as_dict(raw)
    points = [p for p in map(_point, raw.get("pointlist") or []) if p is not None]
    tags = raw.get("tag_set", raw.get("tagSet"))
    return MetricSeries(
        metric=opt_str(raw.get("metric")) or "",
        scope=opt_str(raw.get("scope")) or "",
        pointlist=points,
        tags=[str(t) for t in tags] if isinstance(tags, list) else None,
    )


@instrumented
async def query_metrics(
    backend: MetricsBackend,
    query: str,
    from_: str | None = None,
    to: str | None = None,
) -> MetricsResult:
    """
    Query timeseries metrics.

    Args:
        backend: Metrics backend.
        query: Metrics query, e.g. ``"avg:system.cpu.user{service:api}"``.
        from_: Start time (relative or ISO, default 15m ago).
        to: End time (default now).

    Returns:
        MetricsResult whose time range is expressed in unix seconds.
    """
    if not query:
        raise ValidationError("query is required for metrics")
    time_range = parse_time_range(
        from_, to, default_lookback=get_config().default_lookback
    )
    from_seconds, to_seconds = time_range.to_unix()

    response = await backend.query_timeseries(query, from_seconds, to_seconds)
    series = [normalize_series(s) for s in as_dict(response).get("series") or []]

    return MetricsResult(
        series=series,
        meta=MetricsMeta(
            query=query,
            time_range=UnixTimeRange(from_=from_seconds, to=to_seconds),
        ),
    )
