"""FastAPI application: demo routes wrapped in the request instrumentation."""

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse, JSONResponse

from obsdemo import _handlers as handlers
from obsdemo._bootstrap import TelemetryHandle
from obsdemo._cancellation import cancellable_sleep
from obsdemo._config import ServiceSettings
from obsdemo._context import current_operation
from obsdemo._errors import BusinessError, SimulatedFailure
from obsdemo._instrument import Instrumentation, OperationScope
from obsdemo._propagation import TraceContextMiddleware

logger = logging.getLogger("obsdemo.app")

INDEX_HTML = """
<h1>Observability Demo</h1>
<p>This application demonstrates integration with an OpenTelemetry observability stack:</p>
<ul>
    <li><strong>Metrics</strong>: pushed over OTLP every 10 seconds</li>
    <li><strong>Logs</strong>: structured JSON on stdout and OTLP</li>
    <li><strong>Traces</strong>: one span per request, exported over OTLP</li>
    <li><strong>Profiles</strong>: continuous CPU profiling sent to Pyroscope</li>
</ul>
<h2>Available Endpoints:</h2>
<ul>
    <li>GET /health - Health check</li>
    <li>POST /calculate/add - Add two numbers</li>
    <li>POST /calculate/divide - Divide two numbers (can error)</li>
    <li>GET /simulate/slow - Simulate slow request</li>
    <li>GET /simulate/error - Simulate error</li>
    <li>GET /user/{id} - Get user by ID</li>
</ul>
"""


def _operation() -> OperationScope:
    scope = current_operation()
    if scope is None:
        raise RuntimeError("handler called outside an instrumented operation")
    return scope


async def _business_error_handler(request: Request, exc: BusinessError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.error_type.value, "message": exc.message},
    )


def create_app(telemetry: TelemetryHandle, settings: ServiceSettings | None = None) -> FastAPI:
    """Build the HTTP application around an initialized telemetry handle."""
    settings = settings or ServiceSettings()
    instrumentation = Instrumentation(telemetry)

    app = FastAPI(title="Observability Demo", version=telemetry.resource.service_version)
    app.state.telemetry = telemetry
    app.state.settings = settings
    app.add_middleware(TraceContextMiddleware, propagator=telemetry.propagator)
    app.add_exception_handler(BusinessError, _business_error_handler)

    @app.get("/", response_class=HTMLResponse)
    @instrumentation.instrument("root", endpoint="/", method="GET")
    async def root() -> HTMLResponse:
        logger.info("Root endpoint accessed")
        return HTMLResponse(INDEX_HTML)

    @app.get("/health", response_model=handlers.HealthResponse)
    @instrumentation.instrument("health_check", endpoint="/health", method="GET")
    async def health() -> handlers.HealthResponse:
        logger.info("Health check requested")
        return handlers.HealthResponse(status="healthy", service=settings.service_name)

    @app.post("/calculate/add", response_model=handlers.CalculateResponse)
    @instrumentation.instrument("calculate_add", endpoint="/calculate/add", method="POST")
    async def calculate_add(request: Request) -> handlers.CalculateResponse:
        scope = _operation()
        scope.set_attribute("operation", "add")
        payload = handlers.parse_calculation(await request.body())
        scope.set_attributes({"input.a": payload.a, "input.b": payload.b})
        logger.info("Adding two numbers", extra={"a": payload.a, "b": payload.b})

        result = handlers.add(payload.a, payload.b)
        scope.set_result(result)
        return handlers.CalculateResponse(result=result, operation="addition")

    @app.post("/calculate/divide", response_model=handlers.CalculateResponse)
    @instrumentation.instrument("calculate_divide", endpoint="/calculate/divide", method="POST")
    async def calculate_divide(request: Request) -> handlers.CalculateResponse:
        scope = _operation()
        scope.set_attribute("operation", "divide")
        payload = handlers.parse_calculation(await request.body())
        scope.set_attributes({"input.a": payload.a, "input.b": payload.b})
        logger.info("Dividing two numbers", extra={"a": payload.a, "b": payload.b})

        result = handlers.divide(payload.a, payload.b)
        scope.set_result(result)
        return handlers.CalculateResponse(result=result, operation="division")

    @app.get("/simulate/slow")
    @instrumentation.instrument("slow_operation", endpoint="/simulate/slow", method="GET")
    async def simulate_slow(request: Request) -> dict[str, Any]:
        scope = _operation()
        scope.set_attribute("delay_seconds", settings.slow_delay_s)
        logger.warning("Simulating slow request")

        await cancellable_sleep(request, settings.slow_delay_s)
        return {"message": "Slow operation completed", "duration_seconds": scope.elapsed()}

    @app.get("/simulate/error")
    @instrumentation.instrument("error_operation", endpoint="/simulate/error", method="GET")
    async def simulate_error() -> None:
        logger.error("Simulating error condition")
        raise SimulatedFailure("Simulated error occurred")

    @app.get("/user/{user_id}", response_model=handlers.UserRecord)
    @instrumentation.instrument("get_user", endpoint="/user/:id", method="GET")
    async def get_user(user_id: str, request: Request) -> handlers.UserRecord:
        scope = _operation()
        uid = handlers.parse_user_id(user_id)
        scope.set_attribute("user.id", uid)
        logger.info("Fetching user information", extra={"user_id": uid})

        # Stands in for a database round trip.
        await cancellable_sleep(request, settings.user_lookup_delay_s)
        return handlers.lookup_user(uid)

    return app
