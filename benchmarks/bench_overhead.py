#!/usr/bin/env python3
"""Request-path instrumentation overhead benchmark.

Measures the per-request cost of:
  1. metrics only       (request counter + duration histogram)
  2. bare SDK span      (start + end, the floor for any tracing)
  3. operation success  (span + attributes + context + metrics)
  4. operation failure  (the above plus error attributes and errors_total)

Exporters are in memory so only the in-process cost is measured.

Usage:
    python benchmarks/bench_overhead.py
"""

from __future__ import annotations

import io
import logging
import time

from opentelemetry.sdk._logs.export import InMemoryLogRecordExporter
from opentelemetry.sdk.metrics.export import ConsoleMetricExporter
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from obsdemo._bootstrap import TelemetryHandle, initialize
from obsdemo._config import ExporterConfigs
from obsdemo._errors import DivisionByZeroError
from obsdemo._exporters import ExporterSet
from obsdemo._instrument import Instrumentation
from obsdemo._resource import ResourceDescriptor


def _make_handle() -> tuple[TelemetryHandle, InMemorySpanExporter]:
    spans = InMemorySpanExporter()
    exporters = ExporterSet(
        span_exporter=spans,
        metric_exporter=ConsoleMetricExporter(out=io.StringIO()),
        log_exporter=InMemoryLogRecordExporter(),
        configs=ExporterConfigs.for_endpoint(metric_interval_ms=60_000),
    )
    handle = initialize(
        ResourceDescriptor(service_name="bench", environment="bench"),
        exporters,
        install_global=False,
        log_bridge_logger="obsdemo.bench",
    )
    return handle, spans


def bench_metrics_only(handle: TelemetryHandle, iterations: int = 200_000) -> float:
    """Benchmark: the two metric updates every request makes."""
    registry = handle.metrics

    for _ in range(5000):
        registry.record_request("/health", "GET")
        registry.record_duration("/health", 0.001)

    start = time.perf_counter_ns()
    for _ in range(iterations):
        registry.record_request("/health", "GET")
        registry.record_duration("/health", 0.001)
    elapsed = time.perf_counter_ns() - start

    return elapsed / iterations


def bench_bare_span(
    handle: TelemetryHandle, spans: InMemorySpanExporter, iterations: int = 50_000
) -> float:
    """Benchmark: SDK span start/end with no instrumentation wrapper."""
    tracer = handle.tracer

    for _ in range(1000):
        tracer.start_span("bench").end()
    spans.clear()

    start = time.perf_counter_ns()
    for _ in range(iterations):
        tracer.start_span("bench").end()
    elapsed = time.perf_counter_ns() - start

    spans.clear()
    return elapsed / iterations


def bench_operation(
    handle: TelemetryHandle, spans: InMemorySpanExporter, iterations: int = 50_000
) -> float:
    """Benchmark: one successful instrumented operation."""
    inst = Instrumentation(handle)

    for _ in range(1000):
        with inst.operation("bench", endpoint="/calculate/add", method="POST") as scope:
            scope.set_result(1.0)
    spans.clear()

    start = time.perf_counter_ns()
    for _ in range(iterations):
        with inst.operation("bench", endpoint="/calculate/add", method="POST") as scope:
            scope.set_attributes({"input.a": 1.0, "input.b": 2.0})
            scope.set_result(3.0)
    elapsed = time.perf_counter_ns() - start

    spans.clear()
    return elapsed / iterations


def bench_operation_error(
    handle: TelemetryHandle, spans: InMemorySpanExporter, iterations: int = 20_000
) -> float:
    """Benchmark: an instrumented operation failing with a business error."""
    inst = Instrumentation(handle)
    err = DivisionByZeroError("Cannot divide by zero")

    start = time.perf_counter_ns()
    for _ in range(iterations):
        try:
            with inst.operation("bench", endpoint="/calculate/divide", method="POST"):
                raise err
        except DivisionByZeroError:
            pass
    elapsed = time.perf_counter_ns() - start

    spans.clear()
    return elapsed / iterations


def main() -> None:
    print("=" * 60)
    print("observability-demo Instrumentation Overhead Benchmark")
    print("=" * 60)

    logging.getLogger("obsdemo").setLevel(logging.ERROR)
    handle, spans = _make_handle()
    results: list[tuple[str, float, str]] = []

    try:
        ns = bench_metrics_only(handle)
        status = "PASS" if ns < 5000 else "WARN" if ns < 10000 else "FAIL"
        results.append(("Metrics (count + duration)", ns, f"{status} (target < 5μs)"))

        baseline = bench_bare_span(handle, spans)
        results.append(("Bare SDK span", baseline, "baseline"))

        ns = bench_operation(handle, spans)
        status = "PASS" if ns < 50_000 else "WARN" if ns < 100_000 else "FAIL"
        results.append(("Operation (success)", ns, f"{status} (target < 50μs)"))

        ns = bench_operation_error(handle, spans)
        status = "PASS" if ns < 100_000 else "WARN" if ns < 200_000 else "FAIL"
        results.append(("Operation (business error)", ns, f"{status} (target < 100μs)"))
    finally:
        handle.shutdown(timeout_ms=2_000)

    print()
    for name, ns_val, note in results:
        if ns_val >= 1000:
            display = f"{ns_val / 1000:.2f}μs"
        else:
            display = f"{ns_val:.0f}ns"
        print(f"  {name:40s}  {display:>10s}   {note}")

    print()
    all_pass = all("FAIL" not in r[2] for r in results)
    if all_pass:
        print("All benchmarks within acceptable range.")
    else:
        print("WARNING: Some benchmarks exceeded target. Review above.")


if __name__ == "__main__":
    main()
