"""Resource identity attached to every span, metric point and log record."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from functools import cached_property

from opentelemetry.sdk.resources import (
    DEPLOYMENT_ENVIRONMENT,
    SERVICE_NAME,
    SERVICE_VERSION,
    Resource,
)

from obsdemo._config import (
    DEFAULT_ENVIRONMENT,
    DEFAULT_SERVICE_NAME,
    DEFAULT_SERVICE_VERSION,
    ServiceSettings,
)


@dataclass(frozen=True)
class ResourceDescriptor:
    """Immutable service identity, created once at bootstrap."""

    service_name: str = DEFAULT_SERVICE_NAME
    service_version: str = DEFAULT_SERVICE_VERSION
    environment: str = DEFAULT_ENVIRONMENT
    extra_attributes: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def from_settings(cls, settings: ServiceSettings) -> ResourceDescriptor:
        return cls(
            service_name=settings.service_name,
            service_version=settings.service_version,
            environment=settings.environment,
        )

    def attributes(self) -> dict[str, str]:
        """Identity keys always win over extra attributes."""
        attrs = dict(self.extra_attributes)
        attrs.update({
            SERVICE_NAME: self.service_name,
            SERVICE_VERSION: self.service_version,
            DEPLOYMENT_ENVIRONMENT: self.environment,
        })
        return attrs

    @cached_property
    def resource(self) -> Resource:
        """The SDK Resource shared by reference across all providers."""
        return Resource.create(self.attributes())

    def profiling_tags(self) -> dict[str, str]:
        return {"service": self.service_name, "environment": self.environment}
