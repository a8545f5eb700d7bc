"""Tests for the per-request instrumentation contract."""

from __future__ import annotations

import asyncio
import inspect
from typing import TYPE_CHECKING

import pytest
from opentelemetry import context as otel_context
from opentelemetry.trace import SpanKind, StatusCode

from obsdemo._context import current_operation
from obsdemo._errors import DivisionByZeroError, RequestCancelled
from obsdemo._instrument import Instrumentation, OperationScope

if TYPE_CHECKING:
    from conftest import Telemetry


class TestOperation:
    def test_success(self, telemetry: Telemetry) -> None:
        inst = Instrumentation(telemetry.handle)
        with inst.operation("health_check", endpoint="/health", method="GET") as scope:
            assert isinstance(scope, OperationScope)
            assert current_operation() is scope

        span = telemetry.span("health_check")
        assert span.kind is SpanKind.SERVER
        assert span.status.status_code is StatusCode.OK
        assert span.attributes["http.route"] == "/health"
        assert span.attributes["http.request.method"] == "GET"
        assert span.end_time is not None
        assert telemetry.counter_value(
            "http_requests_total", endpoint="/health", method="GET"
        ) == 1
        (duration,) = telemetry.points("http_request_duration_seconds")
        assert duration.count == 1
        assert telemetry.points("errors_total") == []

    def test_scope_cleared_after_exit(self, telemetry: Telemetry) -> None:
        inst = Instrumentation(telemetry.handle)
        with inst.operation("op", endpoint="/", method="GET"):
            pass
        assert current_operation() is None

    def test_static_and_result_attributes(self, telemetry: Telemetry) -> None:
        inst = Instrumentation(telemetry.handle)
        with inst.operation(
            "calculate_add",
            endpoint="/calculate/add",
            method="POST",
            attributes={"operation": "add"},
        ) as scope:
            scope.set_attributes({"input.a": 2.0, "input.b": 3.0})
            scope.set_result(5.0)

        span = telemetry.span("calculate_add")
        assert span.attributes["operation"] == "add"
        assert span.attributes["input.a"] == 2.0
        assert span.attributes["result"] == 5.0

    def test_business_error(self, telemetry: Telemetry) -> None:
        inst = Instrumentation(telemetry.handle)
        with pytest.raises(DivisionByZeroError):
            with inst.operation("calculate_divide", endpoint="/calculate/divide", method="POST"):
                raise DivisionByZeroError("Cannot divide by zero")

        span = telemetry.span("calculate_divide")
        assert span.status.status_code is StatusCode.ERROR
        assert span.attributes["error"] is True
        assert span.attributes["error.type"] == "division_by_zero"
        assert span.attributes["error.message"] == "Cannot divide by zero"
        assert telemetry.counter_value("errors_total", error_type="division_by_zero") == 1
        assert telemetry.counter_value(
            "http_requests_total", endpoint="/calculate/divide", method="POST"
        ) == 1

    def test_unexpected_error(self, telemetry: Telemetry) -> None:
        inst = Instrumentation(telemetry.handle)
        with pytest.raises(KeyError):
            with inst.operation("broken", endpoint="/broken", method="GET"):
                raise KeyError("missing")

        span = telemetry.span("broken")
        assert span.status.status_code is StatusCode.ERROR
        assert span.attributes["error.type"] == "internal"
        assert any(event.name == "exception" for event in span.events)
        assert telemetry.counter_value("errors_total", error_type="internal") == 1

    def test_cancelled(self, telemetry: Telemetry) -> None:
        inst = Instrumentation(telemetry.handle)
        with pytest.raises(asyncio.CancelledError):
            with inst.operation("slow_operation", endpoint="/simulate/slow", method="GET"):
                raise asyncio.CancelledError

        span = telemetry.span("slow_operation")
        assert span.status.status_code is StatusCode.ERROR
        assert span.status.description == "request cancelled"
        assert telemetry.counter_value("errors_total", error_type="cancelled") == 1
        (duration,) = telemetry.points("http_request_duration_seconds")
        assert duration.count == 1

    def test_request_cancelled_is_business_error(self, telemetry: Telemetry) -> None:
        inst = Instrumentation(telemetry.handle)
        with pytest.raises(RequestCancelled):
            with inst.operation("get_user", endpoint="/user/:id", method="GET"):
                raise RequestCancelled("client disconnected")

        assert telemetry.span("get_user").attributes["error.type"] == "cancelled"

    def test_parent_from_incoming_context(self, telemetry: Telemetry) -> None:
        carrier = {"traceparent": "00-0af7651916cd43dd8448eb211c80319c-b7ad6b7169203331-01"}
        token = otel_context.attach(telemetry.handle.propagator.extract(carrier))
        try:
            with Instrumentation(telemetry.handle).operation("child", endpoint="/", method="GET"):
                pass
        finally:
            otel_context.detach(token)

        span = telemetry.span("child")
        assert span.context.trace_id == 0x0AF7651916CD43DD8448EB211C80319C
        assert span.parent is not None
        assert span.parent.span_id == 0xB7AD6B7169203331

    def test_new_root_without_context(self, telemetry: Telemetry) -> None:
        with Instrumentation(telemetry.handle).operation("root", endpoint="/", method="GET"):
            pass
        assert telemetry.span("root").parent is None

    def test_nested_operation_is_child(self, telemetry: Telemetry) -> None:
        inst = Instrumentation(telemetry.handle)
        with inst.operation("outer", endpoint="/", method="GET"):
            with inst.operation("inner", endpoint="/", method="GET"):
                pass
        outer, inner = telemetry.span("outer"), telemetry.span("inner")
        assert inner.parent is not None
        assert inner.parent.span_id == outer.context.span_id


class TestInstrumentDecorator:
    def test_sync_function(self, telemetry: Telemetry) -> None:
        inst = Instrumentation(telemetry.handle)

        @inst.instrument(endpoint="/compute")
        def compute(x: int) -> int:
            scope = current_operation()
            assert scope is not None
            scope.set_result(x * 2)
            return x * 2

        assert compute(21) == 42
        assert compute.__name__ == "compute"
        span = telemetry.span("compute")
        assert span.attributes["result"] == 42
        assert span.attributes["http.request.method"] == "GET"

    def test_async_function(self, telemetry: Telemetry) -> None:
        inst = Instrumentation(telemetry.handle)

        @inst.instrument("async_op", endpoint="/async", method="POST")
        async def handler() -> str:
            await asyncio.sleep(0)
            return "done"

        assert asyncio.run(handler()) == "done"
        span = telemetry.span("async_op")
        assert span.status.status_code is StatusCode.OK
        assert telemetry.counter_value(
            "http_requests_total", endpoint="/async", method="POST"
        ) == 1

    def test_async_task_cancellation(self, telemetry: Telemetry) -> None:
        inst = Instrumentation(telemetry.handle)

        @inst.instrument("waits", endpoint="/wait")
        async def waits() -> None:
            await asyncio.sleep(10)

        async def main() -> None:
            task = asyncio.create_task(waits())
            await asyncio.sleep(0.01)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        asyncio.run(main())
        span = telemetry.span("waits")
        assert span.status.status_code is StatusCode.ERROR
        assert span.end_time is not None

    def test_preserves_signature(self, telemetry: Telemetry) -> None:
        inst = Instrumentation(telemetry.handle)

        @inst.instrument(endpoint="/user/:id")
        async def get_user(user_id: str) -> dict[str, str]:
            return {"id": user_id}

        assert list(inspect.signature(get_user).parameters) == ["user_id"]
