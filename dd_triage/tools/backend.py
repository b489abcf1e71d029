"""Query backend capability consumed by the triage layer.

The core never talks to the network itself. Each observability domain (logs,
spans, metrics) is exposed through a backend object implementing the
protocols below; transport, authentication and retries are the backend's
responsibility.

Backends may be written as async classes directly, or as plain blocking
classes wrapped in :class:`SyncBackendAdapter`, which runs each call in a
worker thread so that fan-out queries still execute concurrently.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Literal, Protocol, runtime_checkable

from fastapi.concurrency import run_in_threadpool

from ..schema import TimeRange

logger = logging.getLogger(__name__)

SortOrder = Literal["timestamp", "-timestamp"]


@dataclass
class EntryPage:
    """One page of raw records returned by ``list_entries``."""

    records: list[dict[str, Any]] = field(default_factory=list)
    next_cursor: str | None = None


@dataclass
class AggregatePage:
    """Raw buckets returned by ``aggregate``.

    Each bucket is either ``{"key": ..., "count": ...}`` or the backend-native
    ``{"by": {facet: value}, "computes": {"c0": count}}`` shape.
    """

    buckets: list[dict[str, Any]] = field(default_factory=list)


@runtime_checkable
class QueryBackend(Protocol):
    """Async query capability for one observability domain."""

    async def list_entries(
        self,
        query: str,
        time_range: TimeRange | None,
        sort: SortOrder,
        limit: int,
        cursor: str | None = None,
    ) -> EntryPage:
        """List raw records. ``time_range=None`` lets the backend pick its default window."""
        ...

    async def aggregate(
        self,
        query: str,
        time_range: TimeRange,
        group_by: str | None,
        limit: int,
    ) -> AggregatePage:
        """Count records grouped by a facet; ``group_by=None`` returns one total bucket."""
        ...


@runtime_checkable
class MetricsBackend(Protocol):
    """Async timeseries query capability."""

    async def query_timeseries(
        self, query: str, from_seconds: int, to_seconds: int
    ) -> dict[str, Any]:
        """Return the raw response, with a ``series`` list."""
        ...


class SyncBackendAdapter:
    """
    Expose a blocking backend through the async QueryBackend protocol.

    The wrapped object must provide ``list_entries`` and ``aggregate`` (and
    optionally ``query_timeseries``) with the same signatures as the async
    protocols. Calls run in the thread pool, so ``asyncio.gather`` over
    several adapter calls overlaps their I/O.

    Example:
        >>> backend = SyncBackendAdapter(MyHttpLogsBackend(site="datadoghq.eu"))
        >>> result = await search_logs(backend, query="status:error")
    """

    def __init__(self, backend: Any):
        self._backend = backend

    async def list_entries(
        self,
        query: str,
        time_range: TimeRange | None,
        sort: SortOrder,
        limit: int,
        cursor: str | None = None,
    ) -> EntryPage:
        return await run_in_threadpool(
            self._backend.list_entries, query, time_range, sort, limit, cursor
        )

    async def aggregate(
        self,
        query: str,
        time_range: TimeRange,
        group_by: str | None,
        limit: int,
    ) -> AggregatePage:
        return await run_in_threadpool(
            self._backend.aggregate, query, time_range, group_by, limit
        )

    async def query_timeseries(
        self, query: str, from_seconds: int, to_seconds: int
    ) -> dict[str, Any]:
        return await run_in_threadpool(
            self._backend.query_timeseries, query, from_seconds, to_seconds
        )
