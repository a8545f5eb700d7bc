"""OTLP gRPC exporters: one per signal, built from ExporterConfig."""

from __future__ import annotations

import logging
import threading
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import grpc
from opentelemetry.exporter.otlp.proto.grpc._log_exporter import OTLPLogExporter
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.trace.export import SpanExporter, SpanExportResult

from obsdemo._errors import TelemetryStartupError
from obsdemo._types import Signal

if TYPE_CHECKING:
    from opentelemetry.sdk._logs.export import LogRecordExporter
    from opentelemetry.sdk.metrics.export import MetricExporter
    from opentelemetry.sdk.trace import ReadableSpan

    from obsdemo._config import ExporterConfig, ExporterConfigs

logger = logging.getLogger("obsdemo.exporters")

_COMPRESSION_MAP: dict[str, grpc.Compression] = {
    "gzip": grpc.Compression.Gzip,
    "deflate": grpc.Compression.Deflate,
}


def _compression(config: ExporterConfig) -> grpc.Compression | None:
    if config.compression is None:
        return None
    return _COMPRESSION_MAP[config.compression]


class CountingSpanExporter(SpanExporter):
    """Wraps a span exporter and counts what it managed to ship.

    Lets shutdown compare exported spans against closed spans, so telemetry
    loss is reported instead of silently dropped.
    """

    def __init__(self, delegate: SpanExporter) -> None:
        self._delegate = delegate
        self._lock = threading.Lock()
        self._exported = 0
        self._failed = 0

    def export(self, spans: Sequence[ReadableSpan]) -> SpanExportResult:
        try:
            result = self._delegate.export(spans)
        except Exception:
            logger.warning("Span export raised; dropping %d spans", len(spans), exc_info=True)
            result = SpanExportResult.FAILURE
        with self._lock:
            if result is SpanExportResult.SUCCESS:
                self._exported += len(spans)
            else:
                self._failed += len(spans)
        if result is not SpanExportResult.SUCCESS:
            logger.warning("Failed to export %d spans", len(spans))
        return result

    def shutdown(self) -> None:
        self._delegate.shutdown()

    def force_flush(self, timeout_millis: int = 30_000) -> bool:
        return self._delegate.force_flush(timeout_millis)

    @property
    def exported_count(self) -> int:
        with self._lock:
            return self._exported

    @property
    def failed_count(self) -> int:
        with self._lock:
            return self._failed


@dataclass(frozen=True)
class ExporterSet:
    """One exporter per telemetry signal, plus the configs they were built from."""

    span_exporter: SpanExporter
    metric_exporter: MetricExporter
    log_exporter: LogRecordExporter
    configs: ExporterConfigs


def build_exporter_set(configs: ExporterConfigs) -> ExporterSet:
    """Build OTLP/gRPC exporters for traces, metrics and logs.

    Raises TelemetryStartupError when any exporter cannot be constructed;
    the caller must not serve traffic with a partial pipeline.
    """
    span_exporter = _build(Signal.TRACES, configs.traces, OTLPSpanExporter)
    metric_exporter = _build(Signal.METRICS, configs.metrics, OTLPMetricExporter)
    log_exporter = _build(Signal.LOGS, configs.logs, OTLPLogExporter)
    logger.info(
        "OTLP exporters ready: traces=%s metrics=%s logs=%s",
        configs.traces.endpoint,
        configs.metrics.endpoint,
        configs.logs.endpoint,
    )
    return ExporterSet(
        span_exporter=span_exporter,
        metric_exporter=metric_exporter,
        log_exporter=log_exporter,
        configs=configs,
    )


def _build(signal: Signal, config: ExporterConfig, factory: type) -> Any:
    try:
        return factory(
            endpoint=config.endpoint,
            insecure=config.insecure,
            timeout=config.timeout_s,
            compression=_compression(config),
        )
    except Exception as exc:
        raise TelemetryStartupError(
            f"failed to build {signal.value} exporter for {config.endpoint}: {exc}"
        ) from exc
