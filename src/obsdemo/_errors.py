"""Exception hierarchy: fatal startup errors and recoverable request errors."""

from __future__ import annotations

from obsdemo._types import ErrorType


class ObsDemoError(Exception):
    """Base class for every error raised by this package."""


class ConfigurationError(ObsDemoError):
    """Invalid configuration value (endpoint, timeout, log filter...)."""


class TelemetryStartupError(ObsDemoError):
    """Telemetry providers could not be built. The service must not start."""


class ProfilingError(ObsDemoError):
    """The profiling agent could not start, or was driven out of order."""


class BusinessError(ObsDemoError):
    """A request failed for a client-visible reason.

    Raised inside an instrumented operation; the instrumentation records it
    on the span and in ``errors_total`` before the HTTP layer turns it into a
    response. It never escapes as a process-level fault.
    """

    error_type: ErrorType = ErrorType.INVALID_INPUT
    status_code: int = 400

    def __init__(
        self,
        message: str,
        *,
        error_type: ErrorType | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if error_type is not None:
            self.error_type = error_type
        if status_code is not None:
            self.status_code = status_code


class InvalidInputError(BusinessError):
    """Request body or path parameter could not be interpreted."""

    error_type = ErrorType.INVALID_INPUT
    status_code = 422


class DivisionByZeroError(BusinessError):
    error_type = ErrorType.DIVISION_BY_ZERO
    status_code = 400


class ArithmeticOverflowError(BusinessError):
    error_type = ErrorType.OVERFLOW
    status_code = 422


class SimulatedFailure(BusinessError):
    """Deliberate server-side failure used to exercise error telemetry."""

    error_type = ErrorType.SIMULATED
    status_code = 500


class RequestCancelled(BusinessError):
    """The client disconnected before the operation finished."""

    error_type = ErrorType.CANCELLED
    status_code = 499
