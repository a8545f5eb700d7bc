"""Core types: enums shared by telemetry, profiling and the HTTP layer."""

from __future__ import annotations

import enum


class Signal(enum.Enum):
    """Telemetry signal exported over OTLP."""

    TRACES = "traces"
    METRICS = "metrics"
    LOGS = "logs"


class ErrorType(enum.Enum):
    """Value of the ``error_type`` dimension on ``errors_total``."""

    DIVISION_BY_ZERO = "division_by_zero"
    SIMULATED = "simulated"
    INVALID_INPUT = "invalid_input"
    OVERFLOW = "overflow"
    CANCELLED = "cancelled"
    INTERNAL = "internal"


class ProfilerState(enum.Enum):
    """Lifecycle of the profiling agent. TERMINATED is final."""

    STOPPED = "stopped"
    RUNNING = "running"
    TERMINATED = "terminated"
