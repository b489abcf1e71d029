"""Log query operations over a QueryBackend.

Every operation resolves its time window first, validates required
parameters before touching the backend, normalizes raw records and returns
a tagged result model. Backend exceptions propagate to the caller.
"""

import asyncio
import logging

from ...config import get_config
from ...errors import ValidationError
from ...schema import (
    AggregateResult,
    CompareResult,
    ContextMeta,
    LogContextResult,
    LogEntryResult,
    LogErrorSummaryResult,
    LogSearchResult,
    MessageCount,
    PatternMeta,
    PatternResult,
    RangeMeta,
    SearchMeta,
    ServiceCount,
    ServiceListResult,
    StatusCount,
    TimeRange,
    format_instant,
    parse_instant,
)
from ..aggregation import build_buckets, compare_periods
from ..backend import EntryPage, QueryBackend, SortOrder
from ..common import instrumented
from ..common.telemetry import get_tracer, set_span_attribute
from ..tail import ErrorCallback, LiveTailEngine, RecordCallback
from ..time_range import parse_duration, parse_time_range
from .normalize import normalize_log
from .patterns import extract_patterns

logger = logging.getLogger(__name__)
tracer = get_tracer(__name__)

MAX_SEARCH_LIMIT = 1000
ERROR_QUERY = "status:error"
ERROR_GROUP_LIMIT = 20
SERVICE_LIST_LIMIT = 500
AGGREGATE_LIMIT = 100


def clamp_limit(limit: int | None, default: int) -> int:
    """Apply the default and the 1..1000 page-size bounds."""
    value = default if limit is None else limit
    return max(1, min(value, MAX_SEARCH_LIMIT))


@instrumented
async def search_logs(
    backend: QueryBackend,
    query: str = "*",
    from_: str | None = None,
    to: str | None = None,
    limit: int | None = None,
    sort: SortOrder = "-timestamp",
    cursor: str | None = None,
) -> LogSearchResult:
    """
    Search logs matching a query.

    Args:
        backend: Logs query backend.
        query: Log search query (default ``"*"``).
        from_: Start time (``"1h"``, ``"30m"``, ``"7d"`` or ISO timestamp).
        to: End time (default now).
        limit: Maximum logs to return (default 100, max 1000).
        sort: ``"timestamp"`` (oldest first) or ``"-timestamp"`` (newest first).
        cursor: Pagination cursor from a previous result's ``meta.cursor``.
    """
    config = get_config()
    time_range = parse_time_range(from_, to, default_lookback=config.default_lookback)
    sort = "timestamp" if sort == "timestamp" else "-timestamp"

    page = await backend.list_entries(
        query or "*",
        time_range,
        sort,
        clamp_limit(limit, config.search_limit),
        cursor,
    )
    logs = [normalize_log(raw) for raw in page.records]
    set_span_attribute("dd_triage.result_count", len(logs))

    return LogSearchResult(
        logs=logs,
        meta=SearchMeta(total=len(logs), cursor=page.next_cursor, time_range=time_range),
    )


@instrumented
async def get_log_by_id(backend: QueryBackend, log_id: str) -> LogEntryResult | None:
    """Fetch a single log by id, or None when it does not exist."""
    if not log_id:
        raise ValidationError("log id is required")

    page = await backend.list_entries(f"@id:{log_id}", None, "-timestamp", 1)
    if not page.records:
        return None
    return LogEntryResult(log=normalize_log(page.records[0]))


@instrumented
async def aggregate_logs(
    backend: QueryBackend,
    query: str = "*",
    facet: str | None = None,
    from_: str | None = None,
    to: str | None = None,
) -> AggregateResult:
    """Count logs grouped by ``facet``, largest groups first."""
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
async def get_log_errors(
    backend: QueryBackend,
    from_: str | None = None,
    to: str | None = None,
    service: str | None = None,
) -> LogErrorSummaryResult:
    """
    Summarize error logs by service, by status and by most frequent message.

    The three aggregations run concurrently. ``total`` is the sum of the
    per-service counts; no matching logs yields ``total=0`` and empty lists.
    """
    time_range = parse_time_range(
        from_, to, default_lookback=get_config().default_lookback
    )
    query = f"{ERROR_QUERY} service:{service}" if service else ERROR_QUERY

    with tracer.start_as_current_span("get_log_errors.fetch"):
        by_service_page, by_status_page, by_message_page = await asyncio.gather(
            backend.aggregate(query, time_range, "service", ERROR_GROUP_LIMIT),
            backend.aggregate(query, time_range, "status", ERROR_GROUP_LIMIT),
            backend.aggregate(query, time_range, "message", ERROR_GROUP_LIMIT),
        )

    by_service = [
        ServiceCount(service=b.key, count=b.count)
        for b in build_buckets(by_service_page.buckets, "service")
    ]
    by_status = [
        StatusCount(status=b.key, count=b.count)
        for b in build_buckets(by_status_page.buckets, "status")
    ]
    top_messages = [
        MessageCount(message=b.key, count=b.count)
        for b in build_buckets(by_message_page.buckets, "message")
    ]

    return LogErrorSummaryResult(
        total=sum(s.count for s in by_service),
        by_service=by_service,
        by_status=by_status,
        top_messages=top_messages,
        meta=RangeMeta(time_range=time_range),
    )


@instrumented
async def list_log_services(
    backend: QueryBackend, from_: str | None = None, to: str | None = None
) -> ServiceListResult:
    """List services that emitted logs in the window (default last 24h)."""
    time_range = parse_time_range(
        from_, to, default_lookback=get_config().trace_lookback
    )
    page = await backend.aggregate("*", time_range, "service", SERVICE_LIST_LIMIT)
    return ServiceListResult(
        services=[b.key for b in build_buckets(page.buckets, "service")],
        meta=RangeMeta(time_range=time_range),
    )


@instrumented
async def get_log_patterns(
    backend: QueryBackend,
    query: str = "*",
    from_: str | None = None,
    to: str | None = None,
    sample_size: int = MAX_SEARCH_LIMIT,
    limit: int | None = None,
) -> PatternResult:
    """
    Cluster recent log messages into templates.

    Args:
        sample_size: Number of logs to fetch and analyze (max 1000).
        limit: Maximum patterns to return (default from config, 50).
    """
    config = get_config()
    time_range = parse_time_range(from_, to, default_lookback=config.default_lookback)

    page = await backend.list_entries(
        query or "*",
        time_range,
        "-timestamp",
        clamp_limit(sample_size, MAX_SEARCH_LIMIT),
    )
    logs = [normalize_log(raw) for raw in page.records]
    patterns = extract_patterns(
        (log.message for log in logs),
        limit=config.pattern_limit if limit is None else limit,
    )
    set_span_attribute("dd_triage.pattern_count", len(patterns))

    return PatternResult(
        patterns=patterns,
        meta=PatternMeta(time_range=time_range, total_logs=len(logs)),
    )


@instrumented
async def get_log_context(
    backend: QueryBackend,
    timestamp: str,
    query: str = "*",
    before: int = 10,
    after: int = 10,
    window: str = "5m",
) -> LogContextResult:
    """
    Fetch the logs immediately before and after an instant.

    The ``before`` and ``after`` windows are fetched concurrently. ``before``
    is returned oldest-first so the two lists read as one timeline. A count
    of 0 skips that side entirely.

    Raises:
        ValidationError: if ``timestamp`` is missing or not an ISO date-time,
            or ``window`` is malformed.
    """
    target = parse_instant(timestamp)
    if target is None:
        raise ValidationError(f"A valid ISO timestamp is required, got {timestamp!r}")
    length = parse_duration(window)

    before_range = TimeRange(from_=target - length, to=target)
    after_range = TimeRange(from_=target, to=target + length)

    async def fetch(
        time_range: TimeRange, sort: SortOrder, count: int | None
    ) -> EntryPage:
        if count is not None and count <= 0:
            return EntryPage(records=[])
        return await backend.list_entries(
            query or "*", time_range, sort, clamp_limit(count, 10)
        )

    with tracer.start_as_current_span("get_log_context.fetch"):
        before_page, after_page = await asyncio.gather(
            fetch(before_range, "-timestamp", before),
            fetch(after_range, "timestamp", after),
        )

    before_logs = [normalize_log(raw) for raw in before_page.records]
    before_logs.reverse()
    after_logs = [normalize_log(raw) for raw in after_page.records]

    return LogContextResult(
        before=before_logs,
        after=after_logs,
        meta=ContextMeta(
            timestamp=format_instant(target),
            time_range=TimeRange(from_=before_range.from_, to=after_range.to),
        ),
    )


async def compare_log_periods(
    backend: QueryBackend, query: str = "*", period: str = "1h"
) -> CompareResult:
    """Compare log volume for ``query`` between this period and the previous one."""
    return await compare_periods(backend, query, period)


def tail_logs(
    backend: QueryBackend,
    query: str,
    on_record: RecordCallback,
    on_error: ErrorCallback | None = None,
    interval_ms: int | None = None,
    since: str | None = None,
) -> LiveTailEngine:
    """
    Start a live tail over logs matching ``query``.

    Must be called from inside a running event loop. Returns the started
    engine; call ``engine.stop()`` to end the session.
    """
    if not query:
        raise ValidationError("query is required for tailing")
    engine = LiveTailEngine(
        backend,
        query,
        on_record,
        on_error,
        interval_ms=interval_ms,
        since=since,
        normalizer=normalize_log,
    )
    engine.start()
    return engine


__all__ = [
    "aggregate_logs",
    "compare_log_periods",
    "get_log_by_id",
    "get_log_context",
    "get_log_errors",
    "get_log_patterns",
    "list_log_services",
    "search_logs",
    "tail_logs",
]
