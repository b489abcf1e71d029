"""Shared test fixtures for dd_triage tests."""

from datetime import datetime
from typing import Any

import pytest

from dd_triage.config import reset_config
from tests.fixtures.synthetic_records import (
    NOW,
    FakeBackend,
    make_raw_log,
    make_raw_span,
)

# ============================================================================
# Fixtures
# ============================================================================

TRIAGE_ENV_VARS = [
    "DD_SITE",
    "TRIAGE_DEFAULT_LOOKBACK",
    "TRIAGE_TRACE_LOOKBACK",
    "TRIAGE_TAIL_INTERVAL_MS",
    "TRIAGE_SEARCH_LIMIT",
    "TRIAGE_PATTERN_LIMIT",
]


@pytest.fixture(autouse=True)
def clean_config(monkeypatch):
    """Run every test against default configuration."""
    for name in TRIAGE_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    reset_config()
    yield
    reset_config()


@pytest.fixture
def now() -> datetime:
    """Fixed reference instant: 2024-01-15T12:00:00Z."""
    return NOW


@pytest.fixture
def fake_backend() -> FakeBackend:
    """Empty in-memory query backend."""
    return FakeBackend()


@pytest.fixture
def sample_raw_logs() -> list[dict[str, Any]]:
    """Raw logs covering the trace id and host resolution paths."""
    return [
        make_raw_log(
            "log-1",
            message="User 42 logged in",
            offset_seconds=-30,
            custom={"trace_id": "abc123", "http": {"status_code": 200}},
            host="web-1",
        ),
        make_raw_log(
            "log-2",
            message="User 77 logged in",
            offset_seconds=-20,
            custom={"dd": {"trace_id": "def456"}, "host": "web-2"},
        ),
        make_raw_log(
            "log-3",
            message="Connection refused to 10.0.0.5",
            offset_seconds=-10,
            status="error",
            tags=["env:prod", "trace_id:ghi789", "host:web-3"],
        ),
    ]


@pytest.fixture
def sample_raw_spans() -> list[dict[str, Any]]:
    """Raw spans of one trace: root -> (db, cache), db -> query."""
    return [
        make_raw_span("root", duration_ms=120),
        make_raw_span("db", parent_id="root", offset_ms=20, duration_ms=60),
        make_raw_span("cache", parent_id="root", offset_ms=5, duration_ms=3),
        make_raw_span(
            "query",
            parent_id="db",
            offset_ms=25,
            duration_ms=40,
            extra={"status": "error"},
        ),
    ]
