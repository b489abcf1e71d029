"""Configuration management for the triage query layer.

Values come from environment variables, optionally loaded from a ``.env``
file in the working directory. Every query operation also accepts explicit
arguments, which take precedence over the configured defaults.
"""

import logging
import os
from dataclasses import dataclass

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

_config: "TriageConfig | None" = None


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Ignoring non-integer {name}={raw!r}, using {default}")
        return default


@dataclass
class TriageConfig:
    """Runtime defaults for queries, tailing and pattern extraction."""

    # Backend site (e.g. datadoghq.eu); passed through to backend factories
    site: str | None = None

    # Time windows
    default_lookback: str = "15m"
    trace_lookback: str = "24h"

    # Live tail
    tail_interval_ms: int = 2000

    # Result sizes
    search_limit: int = 100
    pattern_limit: int = 50

    @classmethod
    def from_env(cls) -> "TriageConfig":
        """Build a config from the environment (after loading ``.env``)."""
        load_dotenv()
        defaults = cls()
        return cls(
            site=os.environ.get("DD_SITE") or defaults.site,
            default_lookback=os.environ.get(
                "TRIAGE_DEFAULT_LOOKBACK", defaults.default_lookback
            ),
            trace_lookback=os.environ.get(
                "TRIAGE_TRACE_LOOKBACK", defaults.trace_lookback
            ),
            tail_interval_ms=_env_int(
                "TRIAGE_TAIL_INTERVAL_MS", defaults.tail_interval_ms
            ),
            search_limit=_env_int("TRIAGE_SEARCH_LIMIT", defaults.search_limit),
            pattern_limit=_env_int("TRIAGE_PATTERN_LIMIT", defaults.pattern_limit),
        )


def get_config() -> TriageConfig:
    """Get the process-wide configuration, loading it on first use."""
    global _config
    if _config is None:
        _config = TriageConfig.from_env()
        logger.debug(f"Loaded triage config: {_config}")
    return _config


def reset_config() -> None:
    """Drop the cached configuration so the next ``get_config`` reloads it."""
    global _config
    _config = None
