"""Tests for the pydantic record and result schemas."""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError as PydanticValidationError

from dd_triage.schema import (
    NormalizedSpan,
    PatternBucket,
    TimeRange,
    TraceNode,
    format_instant,
    parse_instant,
)


class TestInstants:
    def test_format_whole_seconds(self):
        dt = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)
        assert format_instant(dt) == "2024-01-15T12:00:00Z"

    def test_format_milliseconds(self):
        dt = datetime(2024, 1, 15, 12, 0, 0, 250000, tzinfo=timezone.utc)
        assert format_instant(dt) == "2024-01-15T12:00:00.250Z"

    def test_format_converts_offsets(self):
        dt = datetime(2024, 1, 15, 14, 0, tzinfo=timezone(timedelta(hours=2)))
        assert format_instant(dt) == "2024-01-15T12:00:00Z"

    @pytest.mark.parametrize("value", [None, "", "   ", "not a date", 42])
    def test_parse_invalid_returns_none(self, value):
        assert parse_instant(value) is None

    @pytest.mark.parametrize(
        "value,microsecond",
        [
            ("2024-01-15T12:00:00.5Z", 500000),
            ("2024-01-15T12:00:00.12Z", 120000),
            ("2024-01-15T12:00:00.1234Z", 123400),
            ("2024-01-15T12:00:00.123456789Z", 123456),
            ("2024-01-15T12:00:00.123456789+00:00", 123456),
        ],
    )
    def test_parse_any_fraction_precision(self, value, microsecond):
        assert parse_instant(value) == datetime(
            2024, 1, 15, 12, 0, 0, microsecond, tzinfo=timezone.utc
        )

    def test_parse_naive_is_utc(self):
        assert parse_instant("2024-01-15T12:00:00") == datetime(
            2024, 1, 15, 12, 0, tzinfo=timezone.utc
        )


class TestTimeRange:
    def test_rejects_inverted_range(self):
        now = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)
        with pytest.raises(PydanticValidationError):
            TimeRange(from_=now, to=now - timedelta(seconds=1))

    def test_is_frozen(self):
        now = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)
        time_range = TimeRange(from_=now, to=now)
        with pytest.raises(PydanticValidationError):
            time_range.to = now + timedelta(hours=1)

    def test_serializes_with_from_alias(self):
        now = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)
        time_range = TimeRange(from_=now - timedelta(hours=1), to=now)
        assert time_range.model_dump(by_alias=True) == {
            "from": "2024-01-15T11:00:00Z",
            "to": "2024-01-15T12:00:00Z",
        }

    def test_accepts_alias_on_input(self):
        time_range = TimeRange.model_validate(
            {"from": "2024-01-15T11:00:00Z", "to": "2024-01-15T12:00:00Z"}
        )
        assert time_range.duration_seconds == 3600

    def test_to_unix(self):
        time_range = TimeRange(
            from_=datetime(1970, 1, 1, 0, 1, tzinfo=timezone.utc),
            to=datetime(1970, 1, 1, 0, 2, 0, 900000, tzinfo=timezone.utc),
        )
        assert time_range.to_unix() == (60, 120)


class TestModels:
    def test_span_status_is_restricted(self):
        with pytest.raises(PydanticValidationError):
            NormalizedSpan(span_id="a", status="warning")

    def test_pattern_bucket_count_is_positive(self):
        with pytest.raises(PydanticValidationError):
            PatternBucket(pattern="x", count=0, sample="x")

    def test_camel_case_aliases(self):
        span = NormalizedSpan(span_id="a", trace_id="t", resource_name="GET /")
        dumped = span.model_dump(by_alias=True)
        assert dumped["spanId"] == "a"
        assert dumped["traceId"] == "t"
        assert dumped["resourceName"] == "GET /"

    def test_trace_node_is_recursive(self):
        child = TraceNode(span=NormalizedSpan(span_id="child"), depth=1)
        root = TraceNode(span=NormalizedSpan(span_id="root"), children=[child])
        assert root.children[0].span.span_id == "child"
        assert root.depth == 0
