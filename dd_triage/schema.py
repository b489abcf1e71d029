"""Pydantic schemas for normalized records and triage results.

This module defines Pydantic schemas for:
- Time ranges (immutable, ``from <= to``)
- Normalized log and span records
- Trace tree nodes and pattern buckets
- Tagged query results, each carrying an explicit ``kind`` discriminant

Python attributes are snake_case; serialized output uses camelCase aliases
(``traceId``, ``timeRange``, ``from``/``to``) so exported JSON keeps the
backend-facing field names.
"""

import re
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_serializer,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel


def format_instant(value: datetime) -> str:
    """Format a datetime as ISO-8601 UTC with a ``Z`` suffix.

    Sub-second precision is emitted (as milliseconds) only when present.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    timespec = "milliseconds" if value.microsecond else "seconds"
    return value.isoformat(timespec=timespec).replace("+00:00", "Z")


_FRACTION = re.compile(r"([Tt ]\d{2}:\d{2}:\d{2})\.(\d+)")


def _six_digit_fraction(match: re.Match) -> str:
    return f"{match.group(1)}.{match.group(2)[:6].ljust(6, '0')}"


def parse_instant(value: Any) -> datetime | None:
    """Parse an ISO-8601 string (or pass through a datetime) as tz-aware UTC.

    Fractional seconds of any precision are accepted; digits past
    microseconds are truncated. Returns None for empty or unparseable input.
    """
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str) and value.strip():
        try:
            text = _FRACTION.sub(_six_digit_fraction, value.strip(), count=1)
            dt = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


class _Model(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TimeRange(_Model):
    """A concrete, immutable time window."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )

    from_: datetime = Field(alias="from", description="Window start (inclusive)")
    to: datetime = Field(description="Window end")

    @field_validator("from_", "to")
    @classmethod
    def _as_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    @model_validator(mode="after")
    def _check_order(self) -> "TimeRange":
        if self.from_ > self.to:
            raise ValueError("time range 'from' must not be after 'to'")
        return self

    @field_serializer("from_", "to")
    def _serialize_instant(self, value: datetime) -> str:
        return format_instant(value)

    @property
    def duration_seconds(self) -> float:
        return (self.to - self.from_).total_seconds()

    def to_unix(self) -> tuple[int, int]:
        """Return ``(from, to)`` as whole unix seconds."""
        return int(self.from_.timestamp()), int(self.to.timestamp())


class NormalizedLog(_Model):
    """A log record in canonical shape."""

    id: str = ""
    timestamp: str = ""
    service: str | None = None
    status: str | None = None
    message: str | None = None
    trace_id: str | None = None
    host: str | None = None
    attributes: dict[str, Any] = Field(default_factory=dict)


class NormalizedSpan(_Model):
    """A trace span in canonical shape. ``duration`` is in nanoseconds."""

    span_id: str = ""
    trace_id: str = ""
    parent_id: str | None = None
    timestamp: str = ""
    service: str | None = None
    resource_name: str | None = None
    operation_name: str | None = None
    duration: int | None = None
    status: Literal["ok", "error"] = "ok"
    env: str | None = None
    host: str | None = None
    span_type: str | None = None
    attributes: dict[str, Any] = Field(default_factory=dict)


class TraceNode(_Model):
    """One span in a reconstructed trace tree."""

    span: NormalizedSpan
    children: list["TraceNode"] = Field(default_factory=list)
    depth: int = Field(default=0, ge=0)


TraceNode.model_rebuild()


class Bucket(_Model):
    """One group's key and count from an aggregation."""

    key: str
    count: int = 0


class PatternBucket(_Model):
    """A cluster of messages sharing one masked template."""

    pattern: str = Field(description="Masked message template (cluster key)")
    count: int = Field(ge=1)
    sample: str = Field(description="First message seen for this template")


class ServiceCount(_Model):
    service: str
    count: int


class StatusCount(_Model):
    status: str
    count: int


class ResourceCount(_Model):
    resource: str
    count: int


class MessageCount(_Model):
    message: str
    count: int


# ----------------------------------------------------------------------------
# Result metadata
# ----------------------------------------------------------------------------


class RangeMeta(_Model):
    time_range: TimeRange


class SearchMeta(RangeMeta):
    total: int
    cursor: str | None = None


class TraceMeta(RangeMeta):
    trace_id: str
    total_spans: int
    total_duration: int | None = None
    detached_span_ids: list[str] = Field(
        default_factory=list,
        description="Spans promoted to roots to break parent-link cycles",
    )


class PatternMeta(RangeMeta):
    total_logs: int


class ContextMeta(RangeMeta):
    timestamp: str


class UnixTimeRange(_Model):
    from_: int = Field(alias="from")
    to: int


class MetricsMeta(_Model):
    query: str
    time_range: UnixTimeRange


# ----------------------------------------------------------------------------
# Tagged results
# ----------------------------------------------------------------------------


class LogSearchResult(_Model):
    kind: Literal["log_search"] = "log_search"
    logs: list[NormalizedLog]
    meta: SearchMeta


class LogEntryResult(_Model):
    kind: Literal["log_entry"] = "log_entry"
    log: NormalizedLog


class SpanSearchResult(_Model):
    kind: Literal["span_search"] = "span_search"
    spans: list[NormalizedSpan]
    meta: SearchMeta


class AggregateResult(_Model):
    kind: Literal["aggregate"] = "aggregate"
    buckets: list[Bucket]
    meta: RangeMeta


class LogErrorSummaryResult(_Model):
    kind: Literal["log_error_summary"] = "log_error_summary"
    total: int
    by_service: list[ServiceCount] = Field(default_factory=list)
    by_status: list[StatusCount] = Field(default_factory=list)
    top_messages: list[MessageCount] = Field(default_factory=list)
    meta: RangeMeta


class SpanErrorSummaryResult(_Model):
    kind: Literal["span_error_summary"] = "span_error_summary"
    total: int
    by_service: list[ServiceCount] = Field(default_factory=list)
    by_resource: list[ResourceCount] = Field(default_factory=list)
    recent_errors: list[NormalizedSpan] = Field(default_factory=list)
    meta: RangeMeta


class TraceHierarchyResult(_Model):
    kind: Literal["trace_hierarchy"] = "trace_hierarchy"
    spans: list[NormalizedSpan]
    tree: list[TraceNode]
    meta: TraceMeta


class PatternResult(_Model):
    kind: Literal["patterns"] = "patterns"
    patterns: list[PatternBucket]
    meta: PatternMeta


class PeriodCount(_Model):
    count: int
    time_range: TimeRange


class Change(_Model):
    absolute: int
    percentage: float


class CompareResult(_Model):
    kind: Literal["comparison"] = "comparison"
    current: PeriodCount
    previous: PeriodCount
    change: Change


class ServiceListResult(_Model):
    kind: Literal["services"] = "services"
    services: list[str]
    meta: RangeMeta


class LogContextResult(_Model):
    kind: Literal["log_context"] = "log_context"
    before: list[NormalizedLog]
    after: list[NormalizedLog]
    meta: ContextMeta


class MetricPoint(_Model):
    timestamp: float
    value: float | None = None


class MetricSeries(_Model):
    metric: str = ""
    scope: str = ""
    pointlist: list[MetricPoint] = Field(default_factory=list)
    tags: list[str] | None = None


class MetricsResult(_Model):
    kind: Literal["metrics"] = "metrics"
    series: list[MetricSeries]
    meta: MetricsMeta
