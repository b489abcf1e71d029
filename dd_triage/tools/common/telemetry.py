"""Telemetry setup for the triage query layer using OpenTelemetry."""

import json
import logging
import os
import sys
from typing import Any

from opentelemetry import metrics, trace
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.semconv.resource import ResourceAttributes

SERVICE_NAME = "dd-triage"


def get_tracer(name: str) -> trace.Tracer:
    """Returns a tracer for the given module name."""
    return trace.get_tracer(name)


def get_meter(name: str) -> metrics.Meter:
    """Returns a meter for the given module name."""
    return metrics.get_meter(name)


def setup_telemetry(level: int = logging.INFO) -> None:
    """Configures Telemetry (Trace, Metrics, Logs) for the triage layer.

    Configures:
    - Traces: OTLP gRPC when OTEL_EXPORTER_OTLP_ENDPOINT is set
    - Metrics: OTLP gRPC when OTEL_EXPORTER_OTLP_ENDPOINT is set
    - Logs: TEXT (with trace correlation ids) or JSON to stdout

    Args:
        level: The logging level to use (default: INFO)
    """
    # Override level from env if set
    env_level = os.environ.get("LOG_LEVEL", "").upper()
    if env_level in ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]:
        level = getattr(logging, env_level)

    from opentelemetry.instrumentation.logging import LoggingInstrumentor

    # Initialize Trace-Log correlation
    LoggingInstrumentor().instrument(set_logging_format=False)

    otlp_endpoint = os.environ.get("OTEL_EXPORTER_OTLP_ENDPOINT")
    resource = Resource.create(
        {
            ResourceAttributes.SERVICE_NAME: os.environ.get(
                "OTEL_SERVICE_NAME", SERVICE_NAME
            ),
            "service.namespace": "triage",
        }
    )

    if otlp_endpoint:
        from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import (
            OTLPMetricExporter,
        )
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (
            OTLPSpanExporter,
        )

        insecure = os.environ.get("OTEL_EXPORTER_OTLP_INSECURE", "").lower() == "true"

        # -- TRACES --
        if os.environ.get("OTEL_TRACES_EXPORTER", "").lower() != "none":
            span_processor = BatchSpanProcessor(
                OTLPSpanExporter(endpoint=otlp_endpoint, insecure=insecure)
            )
            current_tracer_provider = trace.get_tracer_provider()
            if hasattr(current_tracer_provider, "add_span_processor"):
                # Provider already configured by the host process, attach to it
                current_tracer_provider.add_span_processor(span_processor)
            else:
                tracer_provider = TracerProvider(resource=resource)
                tracer_provider.add_span_processor(span_processor)
                trace.set_tracer_provider(tracer_provider)

        # -- METRICS --
        if os.environ.get("OTEL_METRICS_EXPORTER", "").lower() != "none":
            reader = PeriodicExportingMetricReader(
                OTLPMetricExporter(endpoint=otlp_endpoint, insecure=insecure),
                export_interval_millis=60000,
            )
            metrics.set_meter_provider(
                MeterProvider(resource=resource, metric_readers=[reader])
            )
    else:
        # Local use: plain SDK providers without exporters
        if not isinstance(trace.get_tracer_provider(), TracerProvider):
            trace.set_tracer_provider(TracerProvider(resource=resource))
        if not isinstance(metrics.get_meter_provider(), MeterProvider):
            metrics.set_meter_provider(MeterProvider(resource=resource))

    _configure_logging_handlers(level)


class JsonFormatter(logging.Formatter):
    """Basic JSON log formatter with OTel correlation."""

    def format(self, record: logging.LogRecord) -> str:
        log_obj = {
            "timestamp": self.formatTime(record, self.datefmt),
            "severity": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "func": record.funcName,
        }

        span_context = trace.get_current_span().get_span_context()
        if span_context.is_valid:
            log_obj["trace_id"] = format(span_context.trace_id, "032x")
            log_obj["span_id"] = format(span_context.span_id, "016x")

        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_obj)


def _configure_logging_handlers(level: int) -> None:
    """Internal helper to configure logging handlers."""
    log_format = os.environ.get("LOG_FORMAT", "TEXT").upper()

    if log_format == "JSON":
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JsonFormatter())
        logging.getLogger().handlers = [handler]
        logging.getLogger().setLevel(level)
    else:
        logging.basicConfig(
            level=level,
            format="%(asctime)s [%(levelname)s] %(name)s [trace_id=%(otelTraceID)s span_id=%(otelSpanID)s]: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
            force=True,
        )
        logging.getLogger().setLevel(level)


def set_span_attribute(key: str, value: Any) -> None:
    """Sets an attribute on the current OTel span. Safe to call if no span active."""
    span = trace.get_current_span()
    if span.is_recording():
        span.set_attribute(key, value)
