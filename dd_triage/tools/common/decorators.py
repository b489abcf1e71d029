"""Decorators for triage query operations with OpenTelemetry instrumentation."""

import functools
import inspect
import logging
import time
from collections.abc import Callable
from typing import Any

from opentelemetry import metrics, trace
from opentelemetry.trace import Status, StatusCode

logger = logging.getLogger(__name__)

tracer = trace.get_tracer("dd_triage.tools")
meter = metrics.get_meter("dd_triage.tools")

query_execution_duration = meter.create_histogram(
    name="dd_triage.query.execution_duration",
    description="Duration of query operations",
    unit="ms",
)
query_execution_count = meter.create_counter(
    name="dd_triage.query.execution_count",
    description="Total number of query operations",
    unit="1",
)


def _describe_call(
    func: Callable[..., Any], span: trace.Span, args: tuple, kwargs: dict
) -> str:
    """Bind the call arguments, record them on the span and return a log string."""
    try:
        bound = inspect.signature(func).bind(*args, **kwargs)
        bound.apply_defaults()
    except TypeError:
        return f"args={args}, kwargs={kwargs}"

    for k, v in bound.arguments.items():
        # Truncate long strings to avoid span attribute limits
        val_str = str(v)
        if len(val_str) > 1000:
            val_str = val_str[:1000] + "...(truncated)"
        span.set_attribute(f"arg.{k}", val_str)

    logger.debug(
        f"Query '{func.__name__}' FULL ARGS: "
        + ", ".join(f"{k}={v!r}" for k, v in bound.arguments.items())
    )
    return ", ".join(f"{k}={repr(v)[:200]}" for k, v in bound.arguments.items())


def _log_result(name: str, start_time: float, result: Any) -> None:
    duration_ms = (time.time() - start_time) * 1000
    logger.info(f"✅ Query Success: '{name}' | Duration: {duration_ms:.2f}ms")
    result_str = repr(result)
    if len(result_str) > 1000:
        result_str = result_str[:1000] + "... (truncated)"
    logger.debug(f"Query '{name}' RESULT: {result_str}")


def _log_failure(name: str, start_time: float, span: trace.Span, e: Exception) -> None:
    duration_ms = (time.time() - start_time) * 1000
    logger.error(
        f"❌ Query Failed: '{name}' | Duration: {duration_ms:.2f}ms | Error: {e}",
        exc_info=True,
    )
    span.record_exception(e)
    span.set_status(Status(StatusCode.ERROR, str(e)))


def _record_metrics(name: str, start_time: float, success: bool) -> None:
    duration_ms = (time.time() - start_time) * 1000
    attributes = {"query.name": name, "success": str(success)}
    query_execution_duration.record(duration_ms, attributes)
    query_execution_count.add(1, attributes)


def instrumented(func: Callable[..., Any]) -> Callable[..., Any]:
    """Decorator to instrument a query operation.

    This decorator provides:
    - OTel Spans for every execution
    - OTel Metrics (count and duration)
    - Standardized Logging of args and results/errors
    - Errors are logged and recorded on the span, then re-raised unchanged

    Example:
        @instrumented
        async def search_logs(backend, query: str) -> LogSearchResult:
            ...
    """

    @functools.wraps(func)
    async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
        name = func.__name__
        start_time = time.time()
        success = True

        with tracer.start_as_current_span(name) as span:
            span.set_attribute("query.name", name)
            span.set_attribute("code.function", name)
            arg_str = _describe_call(func, span, args, kwargs)
            logger.info(f"🔎 Query Call: '{name}' | Args: {arg_str}")

            try:
                result = await func(*args, **kwargs)
                _log_result(name, start_time, result)
                return result
            except Exception as e:
                success = False
                _log_failure(name, start_time, span, e)
                raise
            finally:
                _record_metrics(name, start_time, success)

    @functools.wraps(func)
    def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
        name = func.__name__
        start_time = time.time()
        success = True

        with tracer.start_as_current_span(name) as span:
            span.set_attribute("query.name", name)
            span.set_attribute("code.function", name)
            arg_str = _describe_call(func, span, args, kwargs)
            logger.info(f"🔎 Query Call: '{name}' | Args: {arg_str}")

            try:
                result = func(*args, **kwargs)
                _log_result(name, start_time, result)
                return result
            except Exception as e:
                success = False
                _log_failure(name, start_time, span, e)
                raise
            finally:
                _record_metrics(name, start_time, success)

    if inspect.iscoroutinefunction(func):
        return async_wrapper
    return sync_wrapper
