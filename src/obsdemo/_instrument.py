"""Per-request instrumentation: one span, one count and one duration per operation."""

from __future__ import annotations

import asyncio
import functools
import inspect
import logging
import time
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, TypeVar

from opentelemetry import context as otel_context
from opentelemetry import trace
from opentelemetry.trace import SpanKind, Status, StatusCode

from obsdemo._context import reset_current_operation, set_current_operation
from obsdemo._errors import BusinessError
from obsdemo._types import ErrorType

if TYPE_CHECKING:
    from opentelemetry.util.types import AttributeValue

    from obsdemo._bootstrap import TelemetryHandle

logger = logging.getLogger("obsdemo.instrument")

F = TypeVar("F", bound=Callable[..., Any])


class OperationScope:
    """The span and clock of one instrumented operation.

    Owned by the request that created it; handlers reach it through
    :func:`obsdemo.current_operation`.
    """

    def __init__(self, span: trace.Span, *, name: str, started: float) -> None:
        self.span = span
        self.name = name
        self._started = started

    def set_attribute(self, key: str, value: AttributeValue) -> None:
        self.span.set_attribute(key, value)

    def set_attributes(self, attributes: Mapping[str, AttributeValue]) -> None:
        self.span.set_attributes(attributes)

    def set_result(self, value: AttributeValue) -> None:
        self.span.set_attribute("result", value)

    def elapsed(self) -> float:
        """Seconds since the operation started."""
        return time.perf_counter() - self._started

    def fail(self, error_type: ErrorType, message: str) -> None:
        self.span.set_attributes({
            "error": True,
            "error.type": error_type.value,
            "error.message": message,
        })
        self.span.set_status(Status(StatusCode.ERROR, message))


class Instrumentation:
    """Applies the request contract uniformly to every handler.

    Usage::

        instrumentation = Instrumentation(telemetry)

        @router.get("/health")
        @instrumentation.instrument("health_check", endpoint="/health", method="GET")
        async def health() -> dict[str, str]: ...
    """

    def __init__(self, telemetry: TelemetryHandle) -> None:
        self._tracer = telemetry.tracer
        self._metrics = telemetry.metrics

    @contextmanager
    def operation(
        self,
        name: str,
        *,
        endpoint: str,
        method: str,
        attributes: Mapping[str, AttributeValue] | None = None,
    ) -> Iterator[OperationScope]:
        """Run a block as one operation.

        The span is a SERVER child of the current context (a new root when
        there is none) and is ended exactly once on every exit path.
        """
        started = time.perf_counter()
        span = self._tracer.start_span(
            name,
            kind=SpanKind.SERVER,
            attributes={"http.route": endpoint, "http.request.method": method},
        )
        if attributes:
            span.set_attributes(attributes)
        scope = OperationScope(span, name=name, started=started)
        ctx_token = otel_context.attach(trace.set_span_in_context(span))
        op_token = set_current_operation(scope)
        try:
            yield scope
        except BusinessError as exc:
            scope.fail(exc.error_type, exc.message)
            self._metrics.record_error(exc.error_type)
            logger.warning("%s failed: %s", name, exc.message, extra={"error_type": exc.error_type.value})
            raise
        except asyncio.CancelledError:
            scope.fail(ErrorType.CANCELLED, "request cancelled")
            self._metrics.record_error(ErrorType.CANCELLED)
            logger.info("%s cancelled", name)
            raise
        except Exception as exc:
            span.record_exception(exc)
            scope.fail(ErrorType.INTERNAL, str(exc) or type(exc).__name__)
            self._metrics.record_error(ErrorType.INTERNAL)
            logger.exception("%s raised an unexpected error", name)
            raise
        else:
            span.set_status(Status(StatusCode.OK))
        finally:
            self._metrics.record_request(endpoint, method)
            self._metrics.record_duration(endpoint, scope.elapsed())
            reset_current_operation(op_token)
            otel_context.detach(ctx_token)
            span.end()

    def instrument(
        self,
        name: str | None = None,
        *,
        endpoint: str,
        method: str = "GET",
        attributes: Mapping[str, AttributeValue] | None = None,
    ) -> Callable[[F], F]:
        """Decorator wrapping a sync or async handler in :meth:`operation`.

        The wrapped signature is preserved so frameworks that inspect it
        (FastAPI dependency injection) keep working.
        """

        def decorator(fn: F) -> F:
            op_name = name or fn.__name__

            if inspect.iscoroutinefunction(fn):

                @functools.wraps(fn)
                async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                    with self.operation(
                        op_name, endpoint=endpoint, method=method, attributes=attributes
                    ):
                        return await fn(*args, **kwargs)

                return async_wrapper  # type: ignore[return-value]

            @functools.wraps(fn)
            def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
                with self.operation(
                    op_name, endpoint=endpoint, method=method, attributes=attributes
                ):
                    return fn(*args, **kwargs)

            return sync_wrapper  # type: ignore[return-value]

        return decorator
