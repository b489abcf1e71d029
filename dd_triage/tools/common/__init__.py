"""Common utilities for triage query tools."""

from .decorators import instrumented
from .dedup import BoundedIdSet
from .telemetry import get_meter, get_tracer, setup_telemetry

__all__ = [
    "BoundedIdSet",
    "get_meter",
    "get_tracer",
    "instrumented",
    "setup_telemetry",
]
