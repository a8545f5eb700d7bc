"""Process lifecycle: bootstrap telemetry and profiling, serve, then shut down in order."""

from __future__ import annotations

import logging
import math
import signal
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from types import FrameType

import uvicorn

from obsdemo._bootstrap import TelemetryHandle, initialize
from obsdemo._config import ServiceSettings
from obsdemo._errors import ConfigurationError, ProfilingError, TelemetryStartupError
from obsdemo._exporters import build_exporter_set
from obsdemo._logging import configure_logging
from obsdemo._profiling import ProfilingAgent
from obsdemo._resource import ResourceDescriptor
from obsdemo.app import create_app

logger = logging.getLogger("obsdemo.server")

DEFAULT_HOST = "0.0.0.0"  # noqa: S104
DEFAULT_PORT = 8080


def _bootstrap_telemetry(settings: ServiceSettings) -> TelemetryHandle:
    resource = ResourceDescriptor.from_settings(settings)
    exporters = build_exporter_set(settings.exporter_configs())
    return initialize(resource, exporters)


def _raise_exit(signum: int, frame: FrameType | None) -> None:
    raise SystemExit(0)


@contextmanager
def _exit_on_sigterm() -> Iterator[None]:
    """Turn SIGTERM into SystemExit(0) while serving.

    uvicorn drains, restores this handler and re-raises the signal, so the
    shutdown in ``run`` still executes.
    """
    if threading.current_thread() is not threading.main_thread():
        yield
        return
    previous = signal.signal(signal.SIGTERM, _raise_exit)
    try:
        yield
    finally:
        signal.signal(signal.SIGTERM, previous)


def run(
    settings: ServiceSettings | None = None,
    host: str = DEFAULT_HOST,
    port: int = DEFAULT_PORT,
) -> int:
    """Run the service until the listener stops. Returns the exit code.

    Shutdown order is fixed: the listener drains first, then the profiler
    stops and flushes, then telemetry flushes and closes.
    """
    try:
        settings = settings or ServiceSettings.from_env()
        configure_logging(settings.log_filter)
    except ConfigurationError as exc:
        logger.critical("Invalid configuration: %s", exc)
        return 1

    logger.info("Starting %s", settings.service_name)

    try:
        telemetry = _bootstrap_telemetry(settings)
    except (ConfigurationError, TelemetryStartupError) as exc:
        logger.critical("Failed to initialize telemetry: %s", exc)
        return 1

    try:
        agent = ProfilingAgent(settings.profiling_config(telemetry.resource.profiling_tags()))
        agent.start()
    except (ConfigurationError, ProfilingError) as exc:
        logger.critical("Failed to start profiler: %s", exc)
        telemetry.shutdown(int(settings.shutdown_timeout_s * 1000))
        return 1

    app = create_app(telemetry, settings)
    server = uvicorn.Server(
        uvicorn.Config(
            app,
            host=host,
            port=port,
            log_config=None,
            timeout_graceful_shutdown=math.ceil(settings.shutdown_timeout_s),
        )
    )

    logger.info("Server listening on %s:%d", host, port)
    exit_code = 0
    with _exit_on_sigterm():
        try:
            server.run()
            if not server.started:
                exit_code = 1
        except SystemExit as exc:
            exit_code = exc.code if isinstance(exc.code, int) else 1
        except KeyboardInterrupt:
            logger.info("Interrupted")
        finally:
            logger.info("Shutting down gracefully...")
            agent.stop().shutdown()
            telemetry.shutdown(int(settings.shutdown_timeout_s * 1000))
            logger.info("Shutdown complete")

    return exit_code
