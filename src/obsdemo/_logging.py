"""Structured JSON logging with trace correlation and an env-filter style level filter."""

from __future__ import annotations

import logging
import sys
from typing import IO, Any

from opentelemetry import trace
from pythonjsonlogger.json import JsonFormatter

from obsdemo._errors import ConfigurationError

_LEVELS: dict[str, int] = {
    "trace": logging.DEBUG,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
    "off": logging.CRITICAL + 10,
}

_HANDLER_NAME = "obsdemo.stdout"


def _level(name: str, log_filter: str) -> int:
    try:
        return _LEVELS[name.strip().lower()]
    except KeyError:
        raise ConfigurationError(f"unknown log level {name!r} in {log_filter!r}") from None


def parse_log_filter(log_filter: str) -> tuple[int, dict[str, int]]:
    """Parse ``"info,obsdemo=debug,uvicorn.access=warn"``.

    Returns the default level and per-logger overrides. A bare level sets
    the default; ``name=level`` sets one logger. ``::`` path
    separators are accepted as dots.
    """
    default = logging.INFO
    overrides: dict[str, int] = {}
    for directive in log_filter.split(","):
        directive = directive.strip()
        if not directive:
            continue
        if "=" in directive:
            name, _, level = directive.partition("=")
            name = name.strip().replace("::", ".")
            if not name:
                raise ConfigurationError(f"empty logger name in {log_filter!r}")
            overrides[name] = _level(level, log_filter)
        else:
            default = _level(directive, log_filter)
    return default, overrides


class CorrelationJsonFormatter(JsonFormatter):
    """JSON formatter that stamps ``trace_id``/``span_id`` from the active span."""

    def add_fields(
        self,
        log_data: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_data, record, message_dict)
        ctx = trace.get_current_span().get_span_context()
        if ctx.is_valid:
            log_data["trace_id"] = format(ctx.trace_id, "032x")
            log_data["span_id"] = format(ctx.span_id, "016x")


def configure_logging(log_filter: str, *, stream: IO[str] | None = None) -> None:
    """Install the stdout JSON handler and apply the level filter.

    Safe to call again: the previous handler from this function is replaced.
    """
    default, overrides = parse_log_filter(log_filter)

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(
        CorrelationJsonFormatter(
            "%(asctime)s %(levelname)s %(name)s %(message)s",
            rename_fields={
                "asctime": "timestamp",
                "levelname": "level",
                "name": "logger",
                "message": "msg",
            },
        )
    )

    root = logging.getLogger()
    for existing in list(root.handlers):
        if existing.get_name() == _HANDLER_NAME:
            root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(default)

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    for name, level in overrides.items():
        logging.getLogger(name).setLevel(level)
