"""dd_triage - query normalization and correlation for incident triage.

Turns loosely-typed log, span and metric records from an observability
backend into canonical, analyzable result objects.
"""

from .config import TriageConfig, get_config
from .errors import BackendError, TailStateError, TriageError, ValidationError
from .schema import (
    NormalizedLog,
    NormalizedSpan,
    PatternBucket,
    TimeRange,
    TraceNode,
)

__all__ = [
    "BackendError",
    "NormalizedLog",
    "NormalizedSpan",
    "PatternBucket",
    "TailStateError",
    "TimeRange",
    "TraceNode",
    "TriageConfig",
    "TriageError",
    "ValidationError",
    "get_config",
]
