"""Shared fixtures: a telemetry handle backed by in-memory exporters."""

from __future__ import annotations

import io
import logging
from collections.abc import Iterator
from typing import Any

import pytest
from opentelemetry.sdk._logs.export import InMemoryLogRecordExporter
from opentelemetry.sdk.metrics.export import ConsoleMetricExporter, InMemoryMetricReader
from opentelemetry.sdk.trace import ReadableSpan
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from obsdemo._bootstrap import TelemetryHandle, initialize
from obsdemo._config import ExporterConfigs, ServiceSettings
from obsdemo._exporters import ExporterSet
from obsdemo._resource import ResourceDescriptor


class Telemetry:
    """A handle plus the in-memory sinks behind it."""

    def __init__(
        self,
        handle: TelemetryHandle,
        spans: InMemorySpanExporter,
        reader: InMemoryMetricReader,
        logs: InMemoryLogRecordExporter,
    ) -> None:
        self.handle = handle
        self.span_exporter = spans
        self.reader = reader
        self.log_exporter = logs

    def finished_spans(self) -> list[ReadableSpan]:
        self.handle.tracer_provider.force_flush()
        return list(self.span_exporter.get_finished_spans())

    def span(self, name: str) -> ReadableSpan:
        matches = [s for s in self.finished_spans() if s.name == name]
        assert len(matches) == 1, f"expected one {name!r} span, got {len(matches)}"
        return matches[0]

    def points(self, metric_name: str) -> list[Any]:
        return _metric_points(self.reader, metric_name)

    def counter_value(self, metric_name: str, **attributes: str) -> int:
        return sum(
            p.value for p in self.points(metric_name) if dict(p.attributes) == attributes
        )

    def log_bodies(self) -> list[str]:
        self.handle.logger_provider.force_flush()
        bodies = []
        for item in self.log_exporter.get_finished_logs():
            record = getattr(item, "log_record", item)
            bodies.append(str(record.body))
        return bodies


def _metric_points(reader: InMemoryMetricReader, metric_name: str) -> list[Any]:
    data = reader.get_metrics_data()
    if data is None:
        return []
    points: list[Any] = []
    for resource_metrics in data.resource_metrics:
        for scope_metrics in resource_metrics.scope_metrics:
            for metric in scope_metrics.metrics:
                if metric.name == metric_name:
                    points.extend(metric.data.data_points)
    return points


def _make_exporter_set(
    spans: InMemorySpanExporter,
    logs: InMemoryLogRecordExporter,
) -> ExporterSet:
    return ExporterSet(
        span_exporter=spans,
        metric_exporter=ConsoleMetricExporter(out=io.StringIO()),
        log_exporter=logs,
        configs=ExporterConfigs.for_endpoint("http://localhost:4317"),
    )


def _make_resource(**overrides: Any) -> ResourceDescriptor:
    defaults: dict[str, Any] = {
        "service_name": "test-svc",
        "service_version": "0.1.0",
        "environment": "test",
    }
    defaults.update(overrides)
    return ResourceDescriptor(**defaults)


@pytest.fixture
def telemetry() -> Iterator[Telemetry]:
    spans = InMemorySpanExporter()
    logs = InMemoryLogRecordExporter()
    reader = InMemoryMetricReader()
    pkg_logger = logging.getLogger("obsdemo")
    previous_level = pkg_logger.level
    pkg_logger.setLevel(logging.DEBUG)

    handle = initialize(
        _make_resource(),
        _make_exporter_set(spans, logs),
        metric_readers=[reader],
        install_global=False,
        log_bridge_logger="obsdemo",
    )
    try:
        yield Telemetry(handle, spans, reader, logs)
    finally:
        handle.shutdown(timeout_ms=1_000)
        pkg_logger.setLevel(previous_level)


@pytest.fixture
def settings() -> ServiceSettings:
    return ServiceSettings(
        service_name="test-svc",
        environment="test",
        slow_delay_s=0.05,
        user_lookup_delay_s=0.0,
    )
