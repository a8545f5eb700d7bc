"""Telemetry bootstrap: builds providers once and owns their shutdown."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING

from opentelemetry import metrics, trace
from opentelemetry._logs import set_logger_provider
from opentelemetry.baggage.propagation import W3CBaggagePropagator
from opentelemetry.propagate import set_global_textmap
from opentelemetry.propagators.composite import CompositePropagator
from opentelemetry.sdk._logs import LoggerProvider, LoggingHandler
from opentelemetry.sdk._logs.export import BatchLogRecordProcessor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.trace import SpanProcessor, TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.trace.sampling import ALWAYS_ON
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator

from obsdemo._errors import TelemetryStartupError
from obsdemo._exporters import CountingSpanExporter
from obsdemo._metrics import MetricsRegistry, metric_views
from obsdemo._types import Signal

if TYPE_CHECKING:
    from opentelemetry.context import Context
    from opentelemetry.propagators.textmap import TextMapPropagator
    from opentelemetry.sdk.metrics.export import MetricReader
    from opentelemetry.sdk.trace import ReadableSpan, Span

    from obsdemo._exporters import ExporterSet
    from obsdemo._resource import ResourceDescriptor

logger = logging.getLogger("obsdemo.bootstrap")

INSTRUMENTATION_NAME = "obsdemo"
DEFAULT_METRIC_INTERVAL_MS = 10_000

_global_installed = False
_global_lock = threading.Lock()


class ClosedSpanCounter(SpanProcessor):
    """Counts ended spans so shutdown can detect export loss."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._count = 0

    def on_start(self, span: Span, parent_context: Context | None = None) -> None:
        pass

    def on_end(self, span: ReadableSpan) -> None:
        with self._lock:
            self._count += 1

    def shutdown(self) -> None:
        pass

    def force_flush(self, timeout_millis: int = 30_000) -> bool:
        return True

    @property
    def count(self) -> int:
        with self._lock:
            return self._count


class _DropSdkRecords(logging.Filter):
    """Keep the SDK's own log records out of the OTLP log pipeline."""

    def filter(self, record: logging.LogRecord) -> bool:
        return not record.name.startswith("opentelemetry")


class TelemetryHandle:
    """Explicit handle on the installed providers.

    Created once by :func:`initialize` and passed to the HTTP layer instead
    of relying on ambient global lookup.
    """

    def __init__(
        self,
        *,
        resource: ResourceDescriptor,
        tracer_provider: TracerProvider,
        meter_provider: MeterProvider,
        logger_provider: LoggerProvider,
        log_handler: LoggingHandler,
        bridge_logger: logging.Logger,
        span_exporter: CountingSpanExporter,
        span_counter: ClosedSpanCounter,
        propagator: TextMapPropagator,
    ) -> None:
        self.resource = resource
        self.tracer_provider = tracer_provider
        self.meter_provider = meter_provider
        self.logger_provider = logger_provider
        self.propagator = propagator
        self.tracer = tracer_provider.get_tracer(INSTRUMENTATION_NAME, resource.service_version)
        self.meter = meter_provider.get_meter(INSTRUMENTATION_NAME, resource.service_version)
        self.metrics = MetricsRegistry(self.meter)
        self._log_handler = log_handler
        self._bridge_logger = bridge_logger
        self._span_exporter = span_exporter
        self._span_counter = span_counter
        self._shutdown_lock = threading.Lock()
        self._is_shutdown = False

    @property
    def closed_spans(self) -> int:
        return self._span_counter.count

    @property
    def exported_spans(self) -> int:
        return self._span_exporter.exported_count

    @property
    def is_shutdown(self) -> bool:
        return self._is_shutdown

    def shutdown(self, timeout_ms: int = 5_000) -> bool:
        """Flush and close every provider. Returns True if all flushes succeeded.

        Failures are logged as warnings and never raised. Must run after the
        listener has stopped; later calls are no-ops.
        """
        with self._shutdown_lock:
            if self._is_shutdown:
                logger.debug("Telemetry already shut down")
                return True
            self._is_shutdown = True

        clean = _step(Signal.TRACES, "flush", lambda: self.tracer_provider.force_flush(timeout_ms))
        clean &= _step(Signal.TRACES, "shutdown", self.tracer_provider.shutdown)

        closed, exported = self.closed_spans, self.exported_spans
        if exported < closed:
            logger.warning("%d of %d closed spans were not exported", closed - exported, closed)
            clean = False

        clean &= _step(Signal.METRICS, "flush", lambda: self.meter_provider.force_flush(timeout_ms))
        clean &= _step(
            Signal.METRICS, "shutdown", lambda: self.meter_provider.shutdown(timeout_millis=timeout_ms)
        )

        clean &= _step(Signal.LOGS, "flush", lambda: self.logger_provider.force_flush(timeout_ms))
        self._bridge_logger.removeHandler(self._log_handler)
        clean &= _step(Signal.LOGS, "shutdown", self.logger_provider.shutdown)

        logger.info("Telemetry shut down (spans closed=%d exported=%d)", closed, exported)
        return clean


def _step(signal: Signal, action: str, fn: Callable[[], object]) -> bool:
    try:
        result = fn()
    except Exception:
        logger.warning("%s %s failed", signal.value, action, exc_info=True)
        return False
    if result is False:
        logger.warning("%s %s did not complete before the timeout", signal.value, action)
        return False
    return True


def initialize(
    resource: ResourceDescriptor,
    exporters: ExporterSet,
    *,
    metric_readers: Sequence[MetricReader] = (),
    install_global: bool = True,
    log_bridge_logger: str = "",
    propagator: TextMapPropagator | None = None,
) -> TelemetryHandle:
    """Build trace, metric and log providers and return their handle.

    Traces are always sampled and exported in batches; metrics are pushed on
    a fixed interval; stdlib log records are bridged to the log exporter.
    Any failure raises TelemetryStartupError after releasing what was built.
    """
    global _global_installed  # noqa: PLW0603

    if install_global:
        with _global_lock:
            if _global_installed:
                raise TelemetryStartupError("telemetry providers are already installed")
            _global_installed = True

    sdk_resource = resource.resource
    built: list[Callable[[], object]] = []
    try:
        counting = CountingSpanExporter(exporters.span_exporter)
        span_counter = ClosedSpanCounter()
        tracer_provider = TracerProvider(
            resource=sdk_resource,
            sampler=ALWAYS_ON,
            shutdown_on_exit=False,
        )
        built.append(tracer_provider.shutdown)
        tracer_provider.add_span_processor(span_counter)
        tracer_provider.add_span_processor(BatchSpanProcessor(counting))

        interval = exporters.configs.metrics.export_interval_ms or DEFAULT_METRIC_INTERVAL_MS
        periodic = PeriodicExportingMetricReader(
            exporters.metric_exporter,
            export_interval_millis=interval,
            export_timeout_millis=exporters.configs.metrics.timeout_s * 1000,
        )
        meter_provider = MeterProvider(
            resource=sdk_resource,
            metric_readers=[periodic, *metric_readers],
            views=metric_views(),
            shutdown_on_exit=False,
        )
        built.append(meter_provider.shutdown)

        logger_provider = LoggerProvider(resource=sdk_resource, shutdown_on_exit=False)
        built.append(logger_provider.shutdown)
        logger_provider.add_log_record_processor(BatchLogRecordProcessor(exporters.log_exporter))
        log_handler = LoggingHandler(level=logging.NOTSET, logger_provider=logger_provider)
        log_handler.addFilter(_DropSdkRecords())
    except Exception as exc:
        for release in reversed(built):
            try:
                release()
            except Exception:
                logger.debug("Cleanup after failed bootstrap raised", exc_info=True)
        if install_global:
            with _global_lock:
                _global_installed = False
        raise TelemetryStartupError(f"failed to build telemetry providers: {exc}") from exc

    propagator = propagator or CompositePropagator(
        [TraceContextTextMapPropagator(), W3CBaggagePropagator()]
    )
    bridge_logger = logging.getLogger(log_bridge_logger)
    bridge_logger.addHandler(log_handler)

    handle = TelemetryHandle(
        resource=resource,
        tracer_provider=tracer_provider,
        meter_provider=meter_provider,
        logger_provider=logger_provider,
        log_handler=log_handler,
        bridge_logger=bridge_logger,
        span_exporter=counting,
        span_counter=span_counter,
        propagator=propagator,
    )

    if install_global:
        with _global_lock:
            trace.set_tracer_provider(tracer_provider)
            metrics.set_meter_provider(meter_provider)
            set_logger_provider(logger_provider)
            set_global_textmap(propagator)

    logger.info(
        "Telemetry initialized for %s %s (%s)",
        resource.service_name,
        resource.service_version,
        resource.environment,
    )
    return handle
