"""Log record normalization from backend-native shapes.

Raw log records arrive in the backend's JSON:API layout::

    {
        "id": "AQAAAZ...",
        "attributes": {
            "timestamp": "2024-01-15T12:00:00Z",
            "service": "checkout",
            "status": "error",
            "message": "payment declined",
            "host": "web-1",
            "tags": ["env:prod", "trace_id:abc123"],
            "attributes": {"trace_id": "abc123", "http": {...}},
        },
    }

The nested ``attributes.attributes`` bag is free-form, so correlation fields
(trace id, host) are resolved through an ordered list of candidate
locations. The first non-empty candidate wins.
"""

import logging
from datetime import datetime
from typing import Any

from ...schema import NormalizedLog, format_instant

logger = logging.getLogger(__name__)


def as_dict(value: Any) -> dict[str, Any]:
    """Return ``value`` if it is a dict, else an empty dict."""
    return value if isinstance(value, dict) else {}


def opt_str(value: Any) -> str | None:
    """Stringify a scalar field, mapping None/empty to None."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return format_instant(value)
    return str(value)


def timestamp_str(value: Any) -> str:
    """Render a raw timestamp (datetime or string) as an ISO string, ``""`` if absent."""
    if isinstance(value, datetime):
        return format_instant(value)
    if value is None:
        return ""
    return str(value)


def tag_value(tags: Any, name: str) -> str | None:
    """Find ``name:<value>`` in a tag list and return the value."""
    if not isinstance(tags, list | tuple):
        return None
    prefix = f"{name}:"
    for tag in tags:
        if isinstance(tag, str) and tag.startswith(prefix):
            value = tag[len(prefix):]
            if value:
                return value
    return None


def first_present(*candidates: Any) -> str | None:
    """Return the first candidate that stringifies to something non-empty."""
    for candidate in candidates:
        value = opt_str(candidate)
        if value is not None:
            return value
    return None


def normalize_log(raw: dict[str, Any]) -> NormalizedLog:
    """
    Map a raw log record to a NormalizedLog.

    Resolution order:
    - trace_id: ``attributes.attributes.trace_id``, then
      ``attributes.attributes.dd.trace_id``, then tag ``trace_id:<v>``
    - host: ``attributes.host``, then ``attributes.attributes.host``, then
      tag ``host:<v>``

    Never raises on missing optional fields.
    """
    raw = as_dict(raw)
    outer = as_dict(raw.get("attributes"))
    custom = as_dict(outer.get("attributes"))
    tags = outer.get("tags")

    trace_id = first_present(
        custom.get("trace_id"),
        as_dict(custom.get("dd")).get("trace_id"),
        tag_value(tags, "trace_id"),
    )
    host = first_present(
        outer.get("host"),
        custom.get("host"),
        tag_value(tags, "host"),
    )

    return NormalizedLog(
        id=opt_str(raw.get("id")) or "",
        timestamp=timestamp_str(outer.get("timestamp")),
        service=opt_str(outer.get("service")),
        status=opt_str(outer.get("status")),
        message=opt_str(outer.get("message")),
        trace_id=trace_id,
        host=host,
        attributes=custom,
    )
