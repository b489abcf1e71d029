"""Span record normalization from backend-native shapes."""

import logging
import math
from datetime import timedelta
from typing import Any

from ...schema import NormalizedSpan, parse_instant
from ..logs.normalize import as_dict, first_present, opt_str, timestamp_str

logger = logging.getLogger(__name__)


def _field(attrs: dict[str, Any], snake: str, camel: str) -> Any:
    """Read a backend-native field that may be spelled snake_case or camelCase."""
    value = attrs.get(snake)
    if value is None:
        value = attrs.get(camel)
    return value


def _error_flag(value: Any) -> bool:
    """Whether an ``error`` attribute signals a failure."""
    if value is None or isinstance(value, bool):
        return bool(value)
    if isinstance(value, (int, float)):
        return value != 0 and not math.isnan(value)
    if isinstance(value, str):
        return value != ""
    return True


def span_duration_ns(start: Any, end: Any) -> int | None:
    """Duration between two raw timestamps in nanoseconds, or None if either is missing."""
    start_dt = parse_instant(start)
    end_dt = parse_instant(end)
    if start_dt is None or end_dt is None:
        return None
    return (end_dt - start_dt) // timedelta(microseconds=1) * 1_000


def normalize_span(raw: dict[str, Any]) -> NormalizedSpan:
    """
    Map a raw span record to a NormalizedSpan.

    Side-channel attributes live in two places: ``attributes.custom`` and
    ``attributes.additional_properties``. They are merged with custom values
    winning on duplicate keys.

    A span is ``"error"`` when any one of these holds:
    - ``additional_properties.status == "error"``
    - ``additional_properties.error`` is truthy
    - ``custom.error`` is truthy

    A flag of ``None``, ``False``, ``0`` or ``""`` marks a healthy span; any
    error object, even an empty one, marks a failed span.

    Never raises on missing optional fields.
    """
    raw = as_dict(raw)
    attrs = as_dict(raw.get("attributes"))
    extra = as_dict(_field(attrs, "additional_properties", "additionalProperties"))
    custom = as_dict(attrs.get("custom"))

    start = _field(attrs, "start_timestamp", "startTimestamp")
    end = _field(attrs, "end_timestamp", "endTimestamp")

    is_error = (
        extra.get("status") == "error"
        or _error_flag(extra.get("error"))
        or _error_flag(custom.get("error"))
    )

    span_type = opt_str(attrs.get("type"))
    operation_name = first_present(
        extra.get("operation_name"),
        custom.get("operation.name"),
        span_type,
    )

    return NormalizedSpan(
        span_id=first_present(_field(attrs, "span_id", "spanId"), raw.get("id")) or "",
        trace_id=opt_str(_field(attrs, "trace_id", "traceId")) or "",
        parent_id=opt_str(_field(attrs, "parent_id", "parentId")),
        timestamp=timestamp_str(start),
        service=opt_str(attrs.get("service")),
        resource_name=opt_str(_field(attrs, "resource_name", "resourceName")),
        operation_name=operation_name,
        duration=span_duration_ns(start, end),
        status="error" if is_error else "ok",
        env=opt_str(attrs.get("env")),
        host=opt_str(attrs.get("host")),
        span_type=span_type,
        attributes={**extra, **custom},
    )
