"""Time range resolution for backend queries.

Accepts relative expressions (``"30s"``, ``"15m"``, ``"2h"``, ``"7d"``) and
absolute ISO-8601 date-times. Malformed input never raises: it falls back to
"now" through an explicit, logged branch that also increments the
``dd_triage.time.parse_fallbacks`` counter.
"""

import logging
import re
from datetime import datetime, timedelta, timezone

from ..errors import ValidationError
from ..schema import TimeRange, format_instant, parse_instant
from .common.telemetry import get_meter

logger = logging.getLogger(__name__)
meter = get_meter(__name__)

parse_fallbacks = meter.create_counter(
    name="dd_triage.time.parse_fallbacks",
    description="Time expressions that could not be parsed and fell back to now",
    unit="1",
)

RELATIVE_TIME_RE = re.compile(r"^(\d+)([smhd])$")
DURATION_NS_RE = re.compile(r"^(\d+(?:\.\d+)?)(us|µs|ms|s|m)$")

UNIT_SECONDS = {
    "s": 1,
    "m": 60,
    "h": 60 * 60,
    "d": 24 * 60 * 60,
}

NS_PER_UNIT = {
    "us": 1_000,
    "µs": 1_000,
    "ms": 1_000_000,
    "s": 1_000_000_000,
    "m": 60 * 1_000_000_000,
}

DEFAULT_LOOKBACK = "15m"


def utc_now() -> datetime:
    """Returns the current UTC time."""
    return datetime.now(timezone.utc)


def parse_relative_time(value: str, now: datetime) -> datetime:
    """
    Resolve one time expression against ``now``.

    Args:
        value: ``"<N><unit>"`` with unit in s/m/h/d, or an ISO-8601 date-time.
        now: The reference instant.

    Returns:
        ``now - N*unit`` for relative input, the parsed instant for absolute
        input, or ``now`` when neither form matches.
    """
    match = RELATIVE_TIME_RE.match(value.strip())
    if match:
        amount, unit = match.groups()
        return now - timedelta(seconds=int(amount) * UNIT_SECONDS[unit])

    parsed = parse_instant(value)
    if parsed is not None:
        return parsed

    logger.warning(
        f"Could not parse time expression {value!r}, falling back to now ({format_instant(now)})"
    )
    parse_fallbacks.add(1)
    return now


def parse_time_range(
    from_: str | None = None,
    to: str | None = None,
    *,
    now: datetime | None = None,
    default_lookback: str = DEFAULT_LOOKBACK,
) -> TimeRange:
    """
    Resolve optional ``from``/``to`` expressions into a concrete TimeRange.

    Args:
        from_: Start expression; defaults to ``now - default_lookback``.
        to: End expression; defaults to ``now``.
        now: Fixed reference instant (defaults to the current UTC time).
        default_lookback: Relative expression used when ``from_`` is absent.

    Raises:
        ValidationError: if the resolved start is after the resolved end.
    """
    if now is None:
        now = utc_now()
    elif now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    to_dt = parse_relative_time(to, now) if to else now
    from_dt = parse_relative_time(from_ or default_lookback, now)

    if from_dt > to_dt:
        raise ValidationError(
            f"Start of time range ({format_instant(from_dt)}) is after its end ({format_instant(to_dt)})"
        )
    return TimeRange(from_=from_dt, to=to_dt)


def parse_duration(value: str) -> timedelta:
    """Parse a period such as ``"1h"`` into a timedelta.

    Raises:
        ValidationError: if the value is not ``"<N><unit>"`` or is zero.
    """
    match = RELATIVE_TIME_RE.match((value or "").strip())
    if not match:
        raise ValidationError(
            f"Invalid period {value!r}: expected <number><s|m|h|d>, e.g. '1h'"
        )
    amount, unit = match.groups()
    seconds = int(amount) * UNIT_SECONDS[unit]
    if seconds == 0:
        raise ValidationError(f"Invalid period {value!r}: must be greater than zero")
    return timedelta(seconds=seconds)


def parse_duration_to_ns(value: str) -> int:
    """Convert ``"250ms"``, ``"1.5s"``, ``"500us"`` etc. to nanoseconds (0 if malformed)."""
    match = DURATION_NS_RE.match((value or "").strip())
    if not match:
        return 0
    amount, unit = match.groups()
    return int(float(amount) * NS_PER_UNIT[unit])
