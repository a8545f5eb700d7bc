"""Request metrics: counters and the duration histogram shared by all handlers."""

from __future__ import annotations

from typing import TYPE_CHECKING

from opentelemetry.sdk.metrics.view import ExplicitBucketHistogramAggregation, View

from obsdemo._types import ErrorType

if TYPE_CHECKING:
    from opentelemetry.metrics import Meter

REQUESTS_TOTAL = "http_requests_total"
REQUEST_DURATION = "http_request_duration_seconds"
ERRORS_TOTAL = "errors_total"

# Seconds. The SDK default boundaries assume milliseconds.
DURATION_BUCKETS: tuple[float, ...] = (
    0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0,
)


def metric_views() -> list[View]:
    """Views applied to the meter provider for this registry's instruments."""
    return [
        View(
            instrument_name=REQUEST_DURATION,
            aggregation=ExplicitBucketHistogramAggregation(boundaries=DURATION_BUCKETS),
        ),
    ]


class MetricsRegistry:
    """The three request instruments, created once against a meter.

    Aggregation is done by the SDK and is safe under concurrent updates;
    callers never lock.
    """

    def __init__(self, meter: Meter) -> None:
        self.request_counter = meter.create_counter(
            REQUESTS_TOTAL,
            unit="1",
            description="Total number of HTTP requests",
        )
        self.request_duration = meter.create_histogram(
            REQUEST_DURATION,
            unit="s",
            description="HTTP request duration in seconds",
        )
        self.error_counter = meter.create_counter(
            ERRORS_TOTAL,
            unit="1",
            description="Total number of errors",
        )

    def record_request(self, endpoint: str, method: str) -> None:
        self.request_counter.add(1, {"endpoint": endpoint, "method": method})

    def record_duration(self, endpoint: str, seconds: float) -> None:
        """Record one duration. Zero is valid; a negative clock delta is clamped."""
        self.request_duration.record(max(seconds, 0.0), {"endpoint": endpoint})

    def record_error(self, error_type: ErrorType | str) -> None:
        value = error_type.value if isinstance(error_type, ErrorType) else error_type
        self.error_counter.add(1, {"error_type": value})
