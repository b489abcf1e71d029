"""Synthetic raw records and in-memory backends for dd_triage tests."""

import asyncio
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any

from dd_triage.schema import NormalizedSpan, TimeRange
from dd_triage.tools.backend import AggregatePage, EntryPage

# ============================================================================
# Helper Functions
# ============================================================================

NOW = datetime(2024, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


def iso(dt: datetime) -> str:
    """Render a datetime the way the backend does (``Z`` suffix)."""
    return dt.isoformat().replace("+00:00", "Z")


def make_raw_log(
    log_id: str,
    message: str = "request handled",
    offset_seconds: int = 0,
    service: str = "checkout",
    status: str = "info",
    custom: dict[str, Any] | None = None,
    tags: list[str] | None = None,
    host: str | None = None,
) -> dict[str, Any]:
    """Build a raw log record in the backend's native layout."""
    attributes: dict[str, Any] = {
        "timestamp": iso(NOW + timedelta(seconds=offset_seconds)),
        "service": service,
        "status": status,
        "message": message,
        "tags": tags or [],
        "attributes": custom or {},
    }
    if host is not None:
        attributes["host"] = host
    return {"id": log_id, "type": "log", "attributes": attributes}


def make_raw_span(
    span_id: str,
    trace_id: str = "trace-1",
    parent_id: str | None = None,
    offset_ms: int = 0,
    duration_ms: int = 10,
    service: str = "checkout",
    resource_name: str = "GET /cart",
    extra: dict[str, Any] | None = None,
    custom: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Build a raw span record in the backend's native layout."""
    start = NOW + timedelta(milliseconds=offset_ms)
    end = start + timedelta(milliseconds=duration_ms)
    attributes: dict[str, Any] = {
        "span_id": span_id,
        "trace_id": trace_id,
        "start_timestamp": iso(start),
        "end_timestamp": iso(end),
        "service": service,
        "resource_name": resource_name,
        "type": "web",
        "env": "prod",
        "additional_properties": extra or {},
        "custom": custom or {},
    }
    if parent_id is not None:
        attributes["parent_id"] = parent_id
    return {"id": f"raw-{span_id}", "type": "span", "attributes": attributes}


def make_span(
    span_id: str,
    parent_id: str | None = None,
    offset_ms: int = 0,
    duration: int | None = None,
) -> NormalizedSpan:
    """Build a NormalizedSpan directly (for tree tests)."""
    return NormalizedSpan(
        span_id=span_id,
        trace_id="trace-1",
        parent_id=parent_id,
        timestamp=iso(NOW + timedelta(milliseconds=offset_ms)),
        duration=duration,
    )


# ============================================================================
# Fake Backends
# ============================================================================


class FakeBackend:
    """In-memory QueryBackend that records every call.

    ``list_entries`` answers, in order of precedence, from the queued
    ``entry_pages`` (exceptions in the queue are raised), then from
    ``entry_responder``, then from ``records``. ``aggregate`` answers from
    ``aggregate_responder`` or from ``buckets`` keyed by ``group_by``.

    When ``rendezvous`` is set to n, every call blocks until n calls are in
    flight at once, so an operation that issues its sub-queries one after
    another never completes.
    """

    def __init__(
        self,
        records: list[dict[str, Any]] | None = None,
        buckets: dict[str | None, list[dict[str, Any]]] | None = None,
    ):
        self.records = list(records or [])
        self.buckets = buckets or {}
        self.entry_pages: list[EntryPage | Exception] = []
        self.entry_responder: Callable[..., EntryPage] | None = None
        self.aggregate_responder: Callable[..., list[dict[str, Any]]] | None = None
        self.aggregate_error: Exception | None = None
        self.list_calls: list[dict[str, Any]] = []
        self.aggregate_calls: list[dict[str, Any]] = []
        self.rendezvous: int | None = None
        self._arrived = 0
        self._all_arrived = asyncio.Event()

    async def _arrive(self) -> None:
        if self.rendezvous is None:
            return
        self._arrived += 1
        if self._arrived >= self.rendezvous:
            self._all_arrived.set()
        await self._all_arrived.wait()

    async def list_entries(
        self,
        query: str,
        time_range: TimeRange | None,
        sort: str,
        limit: int,
        cursor: str | None = None,
    ) -> EntryPage:
        self.list_calls.append(
            {
                "query": query,
                "time_range": time_range,
                "sort": sort,
                "limit": limit,
                "cursor": cursor,
            }
        )
        await self._arrive()
        if self.entry_pages:
            page = self.entry_pages.pop(0)
            if isinstance(page, Exception):
                raise page
            return page
        if self.entry_responder is not None:
            return self.entry_responder(query, time_range, sort, limit)
        return EntryPage(records=self.records[:limit])

    async def aggregate(
        self,
        query: str,
        time_range: TimeRange,
        group_by: str | None,
        limit: int,
    ) -> AggregatePage:
        self.aggregate_calls.append(
            {
                "query": query,
                "time_range": time_range,
                "group_by": group_by,
                "limit": limit,
            }
        )
        await self._arrive()
        if self.aggregate_error is not None:
            raise self.aggregate_error
        if self.aggregate_responder is not None:
            return AggregatePage(buckets=self.aggregate_responder(query, time_range))
        return AggregatePage(buckets=list(self.buckets.get(group_by, [])))


class FakeMetricsBackend:
    """In-memory MetricsBackend returning a fixed response."""

    def __init__(self, response: dict[str, Any] | None = None):
        self.response = response if response is not None else {"series": []}
        self.calls: list[tuple[str, int, int]] = []

    async def query_timeseries(
        self, query: str, from_seconds: int, to_seconds: int
    ) -> dict[str, Any]:
        self.calls.append((query, from_seconds, to_seconds))
        return self.response
