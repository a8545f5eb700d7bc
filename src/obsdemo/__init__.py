"""obsdemo: an HTTP service wired to a full OpenTelemetry and Pyroscope pipeline."""

from __future__ import annotations

from obsdemo._bootstrap import ClosedSpanCounter, TelemetryHandle, initialize
from obsdemo._cancellation import CancellationToken, cancellable_sleep
from obsdemo._config import ExporterConfig, ExporterConfigs, ProfilingConfig, ServiceSettings
from obsdemo._context import current_operation
from obsdemo._errors import (
    ArithmeticOverflowError,
    BusinessError,
    ConfigurationError,
    DivisionByZeroError,
    InvalidInputError,
    ObsDemoError,
    ProfilingError,
    RequestCancelled,
    SimulatedFailure,
    TelemetryStartupError,
)
from obsdemo._exporters import CountingSpanExporter, ExporterSet, build_exporter_set
from obsdemo._instrument import Instrumentation, OperationScope
from obsdemo._logging import CorrelationJsonFormatter, configure_logging, parse_log_filter
from obsdemo._metrics import MetricsRegistry
from obsdemo._profiling import ProfilingAgent, StoppedProfiler
from obsdemo._propagation import TraceContextMiddleware
from obsdemo._resource import ResourceDescriptor
from obsdemo._server import run
from obsdemo._types import ErrorType, ProfilerState, Signal
from obsdemo.app import create_app

__version__ = "0.1.0"

__all__ = [
    "ArithmeticOverflowError",
    "BusinessError",
    "CancellationToken",
    "ClosedSpanCounter",
    "ConfigurationError",
    "CorrelationJsonFormatter",
    "CountingSpanExporter",
    "DivisionByZeroError",
    "ErrorType",
    "ExporterConfig",
    "ExporterConfigs",
    "ExporterSet",
    "Instrumentation",
    "InvalidInputError",
    "MetricsRegistry",
    "ObsDemoError",
    "OperationScope",
    "ProfilerState",
    "ProfilingAgent",
    "ProfilingConfig",
    "ProfilingError",
    "RequestCancelled",
    "ResourceDescriptor",
    "ServiceSettings",
    "Signal",
    "SimulatedFailure",
    "StoppedProfiler",
    "TelemetryHandle",
    "TelemetryStartupError",
    "TraceContextMiddleware",
    "__version__",
    "build_exporter_set",
    "cancellable_sleep",
    "configure_logging",
    "create_app",
    "current_operation",
    "initialize",
    "parse_log_filter",
    "run",
]
