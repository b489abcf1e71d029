"""Span and trace query operations over a QueryBackend."""

import asyncio
import logging

from ...config import get_config
from ...errors import ValidationError
from ...schema import (
    AggregateResult,
    CompareResult,
    RangeMeta,
    ResourceCount,
    SearchMeta,
    ServiceCount,
    ServiceListResult,
    SpanErrorSummaryResult,
    SpanSearchResult,
    TraceHierarchyResult,
    TraceMeta,
)
from ..aggregation import build_buckets, compare_periods
from ..backend import QueryBackend, SortOrder
from ..common import instrumented
from ..common.telemetry import get_tracer, set_span_attribute
from ..logs.queries import AGGREGATE_LIMIT, SERVICE_LIST_LIMIT, clamp_limit
from ..time_range import parse_duration_to_ns, parse_time_range
from .hierarchy import build_trace_tree
from .normalize import normalize_span

logger = logging.getLogger(__name__)
tracer = get_tracer(__name__)

ERROR_QUERY = "status:error"
ERROR_GROUP_LIMIT = 20
RECENT_ERRORS_LIMIT = 20
TRACE_SPAN_LIMIT = 1000


def with_min_duration(query: str, min_duration: str | None) -> str:
    """Append a ``@duration:>=<ns>`` filter when ``min_duration`` parses."""
    if not min_duration:
        return query
    duration_ns = parse_duration_to_ns(min_duration)
    if duration_ns <= 0:
        logger.warning(f"Ignoring unparseable min_duration {min_duration!r}")
        return query
    return f"{query} @duration:>={duration_ns}"


@instrumented
async def search_spans(
    backend: QueryBackend,
    query: str = "*",
    from_: str | None = None,
    to: str | None = None,
    limit: int | None = None,
    sort: SortOrder = "-timestamp",
    min_duration: str | None = None,
    cursor: str | None = None,
) -> SpanSearchResult:
    """
    Search spans matching a query.

    Args:
        backend: Spans query backend.
        query: Span search query.
        from_: Start time (relative or ISO, default 15m ago).
        to: End time (default now).
        limit: Maximum spans to return (default 100, max 1000).
        sort: ``"timestamp"`` or ``"-timestamp"``.
        min_duration: Only spans at least this long (``"250ms"``, ``"1.5s"``).
        cursor: Pagination cursor from a previous result.
    """
    config = get_config()
    time_range = parse_time_range(from_, to, default_lookback=config.default_lookback)
    sort = "timestamp" if sort == "timestamp" else "-timestamp"

    page = await backend.list_entries(
        with_min_duration(query or "*", min_duration),
        time_range,
        sort,
        clamp_limit(limit, config.search_limit),
        cursor,
    )
    spans = [normalize_span(raw) for raw in page.records]
    set_span_attribute("dd_triage.result_count", len(spans))

    return SpanSearchResult(
        spans=spans,
        meta=SearchMeta(total=len(spans), cursor=page.next_cursor, time_range=time_range),
    )


@instrumented
async def aggregate_spans(
    backend: QueryBackend,
    query: str = "*",
    facet: str | None = None,
    from_: str | None = None,
    to: str | None = None,
) -> AggregateResult:
    """Count spans grouped by ``facet``, largest groups first."""
    if not facet:
        raise ValidationError("facet is required for aggregation")
    time_range = parse_time_range(
        from_, to, default_lookback=get_config().default_lookback
    )

    page = await backend.aggregate(query or "*", time_range, facet, AGGREGATE_LIMIT)
    return AggregateResult(
        buckets=build_buckets(page.buckets, facet),
        meta=RangeMeta(time_range=time_range),
    )


@instrumented
async def list_span_services(
    backend: QueryBackend, from_: str | None = None, to: str | None = None
) -> ServiceListResult:
    """List services that reported spans in the window (default last 24h)."""
    time_range = parse_time_range(
        from_, to, default_lookback=get_config().trace_lookback
    )
    page = await backend.aggregate("*", time_range, "service", SERVICE_LIST_LIMIT)
    return ServiceListResult(
        services=[b.key for b in build_buckets(page.buckets, "service")],
        meta=RangeMeta(time_range=time_range),
    )


@instrumented
async def get_span_errors(
    backend: QueryBackend,
    from_: str | None = None,
    to: str | None = None,
    service: str | None = None,
) -> SpanErrorSummaryResult:
    """
    Summarize error spans by service and resource, with the most recent errors.

    Both aggregations and the recent-errors listing run concurrently.
    ``total`` is the sum of the per-service counts.
    """
    time_range = parse_time_range(
        from_, to, default_lookback=get_config().default_lookback
    )
    query = f"{ERROR_QUERY} service:{service}" if service else ERROR_QUERY

    with tracer.start_as_current_span("get_span_errors.fetch"):
        by_service_page, by_resource_page, recent_page = await asyncio.gather(
            backend.aggregate(query, time_range, "service", ERROR_GROUP_LIMIT),
            backend.aggregate(query, time_range, "resource_name", ERROR_GROUP_LIMIT),
            backend.list_entries(query, time_range, "-timestamp", RECENT_ERRORS_LIMIT),
        )

    by_service = [
        ServiceCount(service=b.key, count=b.count)
        for b in build_buckets(by_service_page.buckets, "service")
    ]
    by_resource = [
        ResourceCount(resource=b.key, count=b.count)
        for b in build_buckets(by_resource_page.buckets, "resource_name")
    ]

    return SpanErrorSummaryResult(
        total=sum(s.count for s in by_service),
        by_service=by_service,
        by_resource=by_resource,
        recent_errors=[normalize_span(raw) for raw in recent_page.records],
        meta=RangeMeta(time_range=time_range),
    )


@instrumented
async def get_spans_by_trace_id(
    backend: QueryBackend,
    trace_id: str,
    from_: str | None = None,
    to: str | None = None,
) -> SpanSearchResult:
    """All spans of one trace, oldest first (window defaults to the last 24h)."""
    if not trace_id:
        raise ValidationError("trace id is required")
    time_range = parse_time_range(
        from_, to, default_lookback=get_config().trace_lookback
    )

    page = await backend.list_entries(
        f"trace_id:{trace_id}", time_range, "timestamp", TRACE_SPAN_LIMIT
    )
    spans = [normalize_span(raw) for raw in page.records]
    return SpanSearchResult(
        spans=spans,
        meta=SearchMeta(total=len(spans), time_range=time_range),
    )


@instrumented
async def get_trace_hierarchy(
    backend: QueryBackend,
    trace_id: str,
    from_: str | None = None,
    to: str | None = None,
) -> TraceHierarchyResult:
    """
    Fetch a trace and reconstruct its span tree.

    Returns:
        TraceHierarchyResult with the flat span list, the root nodes of the
        tree and metadata. ``meta.total_duration`` is the longest root span
        (nanoseconds); ``meta.detached_span_ids`` lists spans promoted to
        roots to break parent-link cycles.
    """
    if not trace_id:
        raise ValidationError("trace id is required")
    time_range = parse_time_range(
        from_, to, default_lookback=get_config().trace_lookback
    )

    page = await backend.list_entries(
        f"trace_id:{trace_id}", time_range, "timestamp", TRACE_SPAN_LIMIT
    )
    spans = [normalize_span(raw) for raw in page.records]

    with tracer.start_as_current_span("build_trace_tree") as span:
        tree = build_trace_tree(spans)
        span.set_attribute("dd_triage.total_spans", len(spans))
        span.set_attribute("dd_triage.root_count", len(tree.roots))
        span.set_attribute("dd_triage.max_depth", tree.max_depth)

    return TraceHierarchyResult(
        spans=spans,
        tree=tree.roots,
        meta=TraceMeta(
            trace_id=trace_id,
            total_spans=len(spans),
            total_duration=tree.total_duration,
            time_range=time_range,
            detached_span_ids=tree.detached_span_ids,
        ),
    )


async def compare_span_periods(
    backend: QueryBackend, query: str = "*", period: str = "1h"
) -> CompareResult:
    """Compare span volume for ``query`` between this period and the previous one."""
    return await compare_periods(backend, query, period)
