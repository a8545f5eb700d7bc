"""W3C trace-context extraction for inbound HTTP requests."""

from __future__ import annotations

from typing import TYPE_CHECKING

from opentelemetry import context as otel_context

if TYPE_CHECKING:
    from opentelemetry.propagators.textmap import TextMapPropagator
    from starlette.types import ASGIApp, Receive, Scope, Send


def _carrier(scope: Scope) -> dict[str, str]:
    return {
        key.decode("latin-1"): value.decode("latin-1")
        for key, value in scope.get("headers", [])
    }


class TraceContextMiddleware:
    """Pure ASGI middleware attaching the caller's trace context.

    Handler spans started while the request runs become children of the
    incoming ``traceparent``; without one they start a new trace.
    """

    def __init__(self, app: ASGIApp, propagator: TextMapPropagator) -> None:
        self.app = app
        self._propagator = propagator

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        token = otel_context.attach(self._propagator.extract(carrier=_carrier(scope)))
        try:
            await self.app(scope, receive, send)
        finally:
            otel_context.detach(token)
