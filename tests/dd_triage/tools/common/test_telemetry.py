import json
import logging
from unittest import mock

from dd_triage.tools.common.telemetry import (
    JsonFormatter,
    get_meter,
    get_tracer,
    set_span_attribute,
    setup_telemetry,
)


def test_get_tracer():
    with mock.patch(
        "dd_triage.tools.common.telemetry.trace.get_tracer_provider"
    ) as mock_get_provider:
        mock_tracer = mock.Mock()
        mock_get_provider.return_value = mock_tracer

        tracer = get_tracer("test_module")

        mock_get_provider.assert_called_once()
        assert tracer == mock_tracer.get_tracer.return_value


def test_get_meter():
    with mock.patch(
        "dd_triage.tools.common.telemetry.metrics.get_meter"
    ) as mock_get_meter:
        mock_meter = mock.Mock()
        mock_get_meter.return_value = mock_meter

        meter = get_meter("test_module")

        mock_get_meter.assert_called_with("test_module")
        assert meter == mock_meter


def test_json_formatter():
    record = logging.LogRecord(
        name="dd_triage.test",
        level=logging.WARNING,
        pathname="path",
        lineno=1,
        msg="poll failed for %s",
        args=("status:error",),
        exc_info=None,
    )
    payload = json.loads(JsonFormatter().format(record))

    assert payload["severity"] == "WARNING"
    assert payload["logger"] == "dd_triage.test"
    assert payload["message"] == "poll failed for status:error"
    assert "trace_id" not in payload


def test_set_span_attribute_without_active_span():
    set_span_attribute("dd_triage.result_count", 3)


def test_setup_telemetry_local(monkeypatch):
    monkeypatch.delenv("OTEL_EXPORTER_OTLP_ENDPOINT", raising=False)
    monkeypatch.setenv("LOG_LEVEL", "debug")

    with (
        mock.patch(
            "opentelemetry.instrumentation.logging.LoggingInstrumentor"
        ) as mock_instrumentor,
        mock.patch(
            "dd_triage.tools.common.telemetry._configure_logging_handlers"
        ) as mock_handlers,
        mock.patch("dd_triage.tools.common.telemetry.trace.set_tracer_provider"),
        mock.patch("dd_triage.tools.common.telemetry.metrics.set_meter_provider"),
    ):
        setup_telemetry()

    mock_instrumentor.return_value.instrument.assert_called_once_with(
        set_logging_format=False
    )
    mock_handlers.assert_called_once_with(logging.DEBUG)


def test_setup_telemetry_otlp(monkeypatch):
    monkeypatch.setenv("OTEL_EXPORTER_OTLP_ENDPOINT", "localhost:4317")
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    for name in ("OTEL_TRACES_EXPORTER", "OTEL_METRICS_EXPORTER", "OTEL_EXPORTER_OTLP_INSECURE"):
        monkeypatch.delenv(name, raising=False)

    with (
        mock.patch("opentelemetry.instrumentation.logging.LoggingInstrumentor"),
        mock.patch("dd_triage.tools.common.telemetry._configure_logging_handlers"),
        mock.patch(
            "opentelemetry.exporter.otlp.proto.grpc.trace_exporter.OTLPSpanExporter"
        ) as mock_span_exporter,
        mock.patch(
            "opentelemetry.exporter.otlp.proto.grpc.metric_exporter.OTLPMetricExporter"
        ) as mock_metric_exporter,
        mock.patch("dd_triage.tools.common.telemetry.BatchSpanProcessor"),
        mock.patch("dd_triage.tools.common.telemetry.PeriodicExportingMetricReader"),
        mock.patch("dd_triage.tools.common.telemetry.TracerProvider"),
        mock.patch("dd_triage.tools.common.telemetry.MeterProvider"),
        mock.patch("dd_triage.tools.common.telemetry.trace.set_tracer_provider"),
        mock.patch("dd_triage.tools.common.telemetry.metrics.set_meter_provider"),
    ):
        setup_telemetry()

    mock_span_exporter.assert_called_once_with(endpoint="localhost:4317", insecure=False)
    mock_metric_exporter.assert_called_once_with(
        endpoint="localhost:4317", insecure=False
    )
