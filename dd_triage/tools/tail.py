"""Live tail: continuous polling with bounded deduplication.

A :class:`LiveTailEngine` moves through ``IDLE -> RUNNING -> STOPPED``.
``STOPPED`` is terminal for that engine. Each poll cycle asks the backend
for records in ``[watermark, now]`` (ascending, at most one page), delivers
the ones not seen before and advances the watermark to the newest delivered
timestamp. Poll failures are routed to the error callback and never end the
loop.

Cancellation is cooperative: ``stop()`` sets the stop event, which wakes the
inter-poll wait and prevents the next poll, but a poll already awaiting the
backend completes normally.
"""

import asyncio
import contextlib
import enum
import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from ..config import get_config
from ..errors import TailStateError
from ..schema import TimeRange, format_instant, parse_instant
from .backend import QueryBackend
from .common.dedup import DEFAULT_MAX_SIZE, DEFAULT_RETAIN, BoundedIdSet
from .common.telemetry import get_meter, get_tracer
from .time_range import parse_relative_time, utc_now

logger = logging.getLogger(__name__)
tracer = get_tracer(__name__)
meter = get_meter(__name__)

records_delivered = meter.create_counter(
    name="dd_triage.tail.records_delivered",
    description="Records delivered by live tail sessions",
    unit="1",
)
poll_failures = meter.create_counter(
    name="dd_triage.tail.poll_failures",
    description="Live tail poll cycles that failed",
    unit="1",
)

TAIL_PAGE_SIZE = 100

RecordCallback = Callable[[Any], Awaitable[None] | None]
ErrorCallback = Callable[[Exception], Awaitable[None] | None]


class TailState(str, enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"


@dataclass
class TailSession:
    """Mutable state of one tail session, owned by its engine's poll loop."""

    last_timestamp: datetime
    seen_ids: BoundedIdSet = field(default_factory=BoundedIdSet)
    state: TailState = TailState.IDLE
    polls: int = 0


def _record_id(record: Any) -> str:
    return getattr(record, "id", None) or getattr(record, "span_id", "") or ""


async def _maybe_await(result: Any) -> None:
    if inspect.isawaitable(result):
        await result


class LiveTailEngine:
    """
    Polls a query backend and streams new records to a callback.

    Args:
        backend: Query backend for the tailed domain.
        query: Filter query.
        on_record: Called once per new record (sync or async).
        on_error: Called with the exception when a poll fails (sync or async).
            Failures are logged when it is omitted.
        interval_ms: Delay between polls; defaults to the configured
            ``tail_interval_ms`` (2000).
        since: Optional start expression (``"5m"`` or ISO time) for the
            initial watermark; defaults to the moment the engine is created.
        normalizer: Maps raw records to canonical ones (e.g. ``normalize_log``).
        clock: Returns the current UTC time; injectable for tests.
        page_size: Records requested per poll.
        max_seen / retain_seen: Dedup set bounds.
    """

    def __init__(
        self,
        backend: QueryBackend,
        query: str,
        on_record: RecordCallback,
        on_error: ErrorCallback | None = None,
        *,
        interval_ms: int | None = None,
        since: str | None = None,
        normalizer: Callable[[dict[str, Any]], Any],
        clock: Callable[[], datetime] = utc_now,
        page_size: int = TAIL_PAGE_SIZE,
        max_seen: int = DEFAULT_MAX_SIZE,
        retain_seen: int = DEFAULT_RETAIN,
    ):
        self.backend = backend
        self.query = query
        self.on_record = on_record
        self.on_error = on_error
        self.interval_ms = (
            interval_ms if interval_ms is not None else get_config().tail_interval_ms
        )
        self.normalizer = normalizer
        self.clock = clock
        self.page_size = page_size

        now = clock()
        start = parse_relative_time(since, now) if since else now
        self.session = TailSession(
            last_timestamp=start,
            seen_ids=BoundedIdSet(max_size=max_seen, retain=retain_seen),
        )
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task | None = None

    @property
    def state(self) -> TailState:
        return self.session.state

    @property
    def running(self) -> bool:
        return self.session.state is TailState.RUNNING

    def start(self) -> asyncio.Task:
        """Enter RUNNING and schedule the poll loop; the first poll runs immediately.

        Must be called from inside a running event loop.
        """
        if self.session.state is not TailState.IDLE:
            raise TailStateError(
                f"Cannot start a tail session in state '{self.session.state.value}'"
            )
        self.session.state = TailState.RUNNING
        logger.info(
            f"▶️  Tail started: query={self.query!r} from {format_instant(self.session.last_timestamp)} "
            f"every {self.interval_ms}ms"
        )
        self._task = asyncio.create_task(self._run(), name=f"tail:{self.query}")
        return self._task

    def stop(self) -> None:
        """Request the loop to stop. Idempotent; STOPPED is terminal."""
        if self.session.state is TailState.STOPPED:
            return
        self.session.state = TailState.STOPPED
        self._stop_event.set()
        logger.info(
            f"⏹️  Tail stopped: query={self.query!r} after {self.session.polls} polls"
        )

    async def wait(self) -> None:
        """Wait for the poll loop to finish after ``stop()``."""
        if self._task is not None:
            await self._task

    async def _run(self) -> None:
        while self.running:
            try:
                await self.poll_once()
            except Exception as e:
                await self._handle_error(e)

            if not self.running:
                break
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(
                    self._stop_event.wait(), timeout=self.interval_ms / 1000
                )

    async def _handle_error(self, error: Exception) -> None:
        poll_failures.add(1, {"query": self.query})
        if self.on_error is None:
            logger.warning(f"Tail poll failed for query {self.query!r}: {error}")
            return
        try:
            await _maybe_await(self.on_error(error))
        except Exception:
            logger.exception("Tail error callback raised")

    async def poll_once(self) -> int:
        """
        Run one poll cycle.

        Returns:
            Number of records delivered.
        """
        session = self.session
        now = self.clock()
        window = TimeRange(
            from_=session.last_timestamp, to=max(now, session.last_timestamp)
        )

        with tracer.start_as_current_span("tail.poll") as span:
            span.set_attribute("dd_triage.tail.query", self.query)
            session.polls += 1
            page = await self.backend.list_entries(
                self.query, window, "timestamp", self.page_size
            )

            delivered = 0
            for raw in page.records:
                record = self.normalizer(raw)
                record_id = _record_id(record)
                if not session.seen_ids.add(record_id):
                    continue

                await _maybe_await(self.on_record(record))
                delivered += 1

                ts = parse_instant(getattr(record, "timestamp", None))
                if ts is not None and ts > session.last_timestamp:
                    session.last_timestamp = ts

            span.set_attribute("dd_triage.tail.delivered", delivered)
            span.set_attribute("dd_triage.tail.seen_ids", len(session.seen_ids))

        if delivered:
            records_delivered.add(delivered, {"query": self.query})
            logger.debug(
                f"Tail delivered {delivered} records, watermark {format_instant(session.last_timestamp)}"
            )
        return delivered
