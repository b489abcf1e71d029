"""Serialization of tagged results for formatting and export collaborators.

Results are dispatched on their ``kind`` discriminant, never by probing
which fields happen to be present.
"""

import json
import logging
from pathlib import Path
from typing import Annotated, Any

from pydantic import Field, TypeAdapter

from ..schema import (
    AggregateResult,
    CompareResult,
    LogContextResult,
    LogEntryResult,
    LogErrorSummaryResult,
    LogSearchResult,
    MetricsResult,
    PatternResult,
    ServiceListResult,
    SpanErrorSummaryResult,
    SpanSearchResult,
    TraceHierarchyResult,
)

logger = logging.getLogger(__name__)

TriageResult = Annotated[
    LogSearchResult
    | LogEntryResult
    | SpanSearchResult
    | AggregateResult
    | LogErrorSummaryResult
    | SpanErrorSummaryResult
    | TraceHierarchyResult
    | PatternResult
    | CompareResult
    | ServiceListResult
    | LogContextResult
    | MetricsResult,
    Field(discriminator="kind"),
]

_result_adapter: TypeAdapter[Any] = TypeAdapter(TriageResult)


def to_dict(result: Any) -> dict[str, Any]:
    """Dump a result with camelCase keys, omitting absent optional fields."""
    return result.model_dump(mode="json", by_alias=True, exclude_none=True)


def to_json(result: Any, pretty: bool = False) -> str:
    """Render a result as compact (default) or indented JSON."""
    return json.dumps(to_dict(result), indent=2 if pretty else None, ensure_ascii=False)


def parse_result(data: dict[str, Any] | str) -> Any:
    """Validate a dumped result (dict or JSON string) back into its model by ``kind``."""
    if isinstance(data, str):
        return _result_adapter.validate_json(data)
    return _result_adapter.validate_python(data)


def write_to_file(result: Any, path: str | Path) -> Path:
    """Write a result as indented JSON and return the path written."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(to_json(result, pretty=True), encoding="utf-8")
    logger.info(f"💾 Wrote {result.kind} result to {target}")
    return target
