"""Service configuration: exporter, profiler and process settings."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from urllib.parse import urlparse

from obsdemo._errors import ConfigurationError

DEFAULT_OTLP_ENDPOINT = "http://localhost:4317"
DEFAULT_PYROSCOPE_URL = "http://localhost:4040"
DEFAULT_LOG_FILTER = "info,obsdemo=debug"
DEFAULT_SERVICE_NAME = "observability-demo"
DEFAULT_SERVICE_VERSION = "0.1.0"
DEFAULT_ENVIRONMENT = "development"

_COMPRESSIONS = frozenset({"gzip", "deflate"})


def _validate_url(value: str, what: str) -> None:
    if not value or not value.strip():
        raise ConfigurationError(f"{what} must not be empty")
    parsed = urlparse(value)
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        raise ConfigurationError(f"{what} is not a valid http(s) URL: {value!r}")
    try:
        parsed.port  # noqa: B018
    except ValueError as exc:
        raise ConfigurationError(f"{what} has an invalid port: {value!r}") from exc


@dataclass(frozen=True)
class ExporterConfig:
    """Immutable OTLP exporter configuration for one signal."""

    endpoint: str = DEFAULT_OTLP_ENDPOINT
    timeout_s: float = 3.0
    export_interval_ms: int | None = None
    insecure: bool = True
    compression: str | None = None

    def __post_init__(self) -> None:
        _validate_url(self.endpoint, "exporter endpoint")
        if self.timeout_s <= 0:
            raise ConfigurationError(f"exporter timeout must be > 0, got {self.timeout_s}")
        if self.export_interval_ms is not None and self.export_interval_ms <= 0:
            raise ConfigurationError(
                f"export interval must be > 0 ms, got {self.export_interval_ms}"
            )
        if self.compression is not None and self.compression not in _COMPRESSIONS:
            raise ConfigurationError(f"unsupported compression: {self.compression!r}")


@dataclass(frozen=True)
class ExporterConfigs:
    """One exporter configuration per telemetry signal."""

    traces: ExporterConfig
    metrics: ExporterConfig
    logs: ExporterConfig

    @classmethod
    def for_endpoint(
        cls,
        endpoint: str = DEFAULT_OTLP_ENDPOINT,
        *,
        timeout_s: float = 3.0,
        metric_interval_ms: int = 10_000,
        compression: str | None = None,
    ) -> ExporterConfigs:
        """Share one collector endpoint and transport timeout across all signals."""
        return cls(
            traces=ExporterConfig(endpoint, timeout_s, compression=compression),
            metrics=ExporterConfig(
                endpoint,
                timeout_s,
                export_interval_ms=metric_interval_ms,
                compression=compression,
            ),
            logs=ExporterConfig(endpoint, timeout_s, compression=compression),
        )


@dataclass(frozen=True)
class ProfilingConfig:
    """Immutable continuous-profiling configuration."""

    server_address: str = DEFAULT_PYROSCOPE_URL
    application_name: str = DEFAULT_SERVICE_NAME
    sample_rate: int = 100
    tags: Mapping[str, str] = field(default_factory=dict)
    probe_timeout_s: float = 2.0

    def __post_init__(self) -> None:
        _validate_url(self.server_address, "profiling server address")
        if not self.application_name:
            raise ConfigurationError("profiling application name must not be empty")
        if self.sample_rate <= 0:
            raise ConfigurationError(f"sample rate must be > 0 Hz, got {self.sample_rate}")
        if self.probe_timeout_s <= 0:
            raise ConfigurationError("probe timeout must be > 0")


def _env_float(environ: Mapping[str, str], name: str, default: float) -> float:
    raw = environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from exc


def _env_int(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from exc


def _env_str(environ: Mapping[str, str], name: str, default: str) -> str:
    raw = environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip()


@dataclass(frozen=True)
class ServiceSettings:
    """Process-level settings, overridable from the environment."""

    service_name: str = DEFAULT_SERVICE_NAME
    service_version: str = DEFAULT_SERVICE_VERSION
    environment: str = DEFAULT_ENVIRONMENT
    otlp_endpoint: str = DEFAULT_OTLP_ENDPOINT
    otlp_timeout_s: float = 3.0
    metric_export_interval_ms: int = 10_000
    pyroscope_url: str = DEFAULT_PYROSCOPE_URL
    profiling_sample_rate: int = 100
    log_filter: str = DEFAULT_LOG_FILTER
    shutdown_timeout_s: float = 10.0
    slow_delay_s: float = 2.0
    user_lookup_delay_s: float = 0.1

    def __post_init__(self) -> None:
        if self.slow_delay_s < 0 or self.user_lookup_delay_s < 0:
            raise ConfigurationError("simulated delays must be >= 0")
        if self.shutdown_timeout_s <= 0:
            raise ConfigurationError("shutdown timeout must be > 0")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> ServiceSettings:
        """Read settings from the environment. Absent variables use defaults."""
        env = os.environ if environ is None else environ
        return cls(
            service_name=_env_str(env, "SERVICE_NAME", DEFAULT_SERVICE_NAME),
            environment=_env_str(env, "DEPLOYMENT_ENVIRONMENT", DEFAULT_ENVIRONMENT),
            otlp_endpoint=_env_str(env, "OTLP_ENDPOINT", DEFAULT_OTLP_ENDPOINT),
            otlp_timeout_s=_env_float(env, "OTLP_TIMEOUT_SECONDS", 3.0),
            metric_export_interval_ms=_env_int(env, "METRIC_EXPORT_INTERVAL_MS", 10_000),
            pyroscope_url=_env_str(env, "PYROSCOPE_URL", DEFAULT_PYROSCOPE_URL),
            profiling_sample_rate=_env_int(env, "PROFILING_SAMPLE_RATE", 100),
            log_filter=_env_str(env, "LOG_LEVEL", DEFAULT_LOG_FILTER),
            shutdown_timeout_s=_env_float(env, "SHUTDOWN_TIMEOUT_SECONDS", 10.0),
            slow_delay_s=_env_float(env, "SLOW_DELAY_SECONDS", 2.0),
            user_lookup_delay_s=_env_float(env, "USER_LOOKUP_DELAY_SECONDS", 0.1),
        )

    def exporter_configs(self) -> ExporterConfigs:
        return ExporterConfigs.for_endpoint(
            self.otlp_endpoint,
            timeout_s=self.otlp_timeout_s,
            metric_interval_ms=self.metric_export_interval_ms,
        )

    def profiling_config(self, tags: Mapping[str, str] | None = None) -> ProfilingConfig:
        return ProfilingConfig(
            server_address=self.pyroscope_url,
            application_name=self.service_name,
            sample_rate=self.profiling_sample_rate,
            tags=dict(tags or {}),
        )
