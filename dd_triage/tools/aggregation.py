"""Bucketed aggregation and period-over-period comparison."""

import asyncio
import logging
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from ..errors import ValidationError
from ..schema import Bucket, Change, CompareResult, PeriodCount, TimeRange
from .backend import QueryBackend
from .common import instrumented
from .common.telemetry import get_tracer
from .time_range import parse_duration, utc_now

logger = logging.getLogger(__name__)
tracer = get_tracer(__name__)

COUNT_KEY = "c0"


def _bucket_key_count(raw: dict[str, Any], facet: str | None) -> tuple[Any, Any]:
    """Read (key, count) from either the flat or the backend-native bucket shape."""
    if "key" in raw or "count" in raw:
        key = raw.get("key")
        if key is None and facet is None:
            key = "*"
        return key, raw.get("count")

    body = raw.get("attributes") if isinstance(raw.get("attributes"), dict) else raw
    by = body.get("by") if isinstance(body.get("by"), dict) else {}
    computes = body.get("computes")
    if not isinstance(computes, dict):
        computes = body.get("compute") if isinstance(body.get("compute"), dict) else {}

    key = by.get(facet) if facet else "*"
    return key, computes.get(COUNT_KEY)


def build_buckets(raw_buckets: list[dict[str, Any]], facet: str | None) -> list[Bucket]:
    """
    Normalize raw aggregation buckets.

    Buckets without a key are dropped, keys are stringified whatever their
    underlying type, missing counts become 0, and the result is sorted by
    descending count (stable, so backend order breaks ties).
    """
    buckets = []
    for raw in raw_buckets or []:
        if not isinstance(raw, dict):
            continue
        key, count = _bucket_key_count(raw, facet)
        if key is None:
            continue
        try:
            count_int = int(count) if count is not None else 0
        except (TypeError, ValueError):
            logger.warning(f"Non-numeric count {count!r} for bucket {key!r}, using 0")
            count_int = 0
        buckets.append(Bucket(key=str(key), count=count_int))

    buckets.sort(key=lambda b: b.count, reverse=True)
    return buckets


def round_half_away(value: float, places: int = 1) -> float:
    """Round to ``places`` decimals, halves away from zero."""
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(repr(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def compute_change(current: int, previous: int) -> Change:
    """
    Absolute and percentage change between two counts.

    The percentage is ``absolute / previous * 100`` when previous > 0,
    otherwise 100 if current > 0, otherwise 0; rounded to one decimal.
    """
    absolute = current - previous
    if previous > 0:
        percentage = (absolute / previous) * 100
    elif current > 0:
        percentage = 100.0
    else:
        percentage = 0.0
    return Change(absolute=absolute, percentage=round_half_away(percentage, 1))


async def count_matching(
    backend: QueryBackend, query: str, time_range: TimeRange
) -> int:
    """Total number of records matching ``query`` in ``time_range``."""
    page = await backend.aggregate(query, time_range, None, 1)
    return sum(b.count for b in build_buckets(page.buckets, None))


@instrumented
async def compare_periods(
    backend: QueryBackend,
    query: str = "*",
    period: str = "1h",
    now: datetime | None = None,
) -> CompareResult:
    """
    Compare record counts between the current period and the one before it.

    Args:
        backend: Query backend for the domain being compared.
        query: Filter query.
        period: Window length such as ``"1h"`` or ``"30m"``.
        now: Fixed reference instant (defaults to the current UTC time).

    Returns:
        CompareResult for ``[now-period, now]`` vs ``[now-2*period, now-period]``.

    Raises:
        ValidationError: if ``period`` is malformed.
    """
    if not query:
        raise ValidationError("query is required")
    length = parse_duration(period)
    if now is None:
        now = utc_now()

    current_range = TimeRange(from_=now - length, to=now)
    previous_range = TimeRange(from_=now - 2 * length, to=now - length)

    with tracer.start_as_current_span("compare_periods.fetch") as span:
        current, previous = await asyncio.gather(
            count_matching(backend, query, current_range),
            count_matching(backend, query, previous_range),
        )
        span.set_attribute("dd_triage.current_count", current)
        span.set_attribute("dd_triage.previous_count", previous)

    return CompareResult(
        current=PeriodCount(count=current, time_range=current_range),
        previous=PeriodCount(count=previous, time_range=previous_range),
        change=compute_change(current, previous),
    )
