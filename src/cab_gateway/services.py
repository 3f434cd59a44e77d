"""
Service Table

Static configuration of the platform's backend services and construction of
the service registry from it. The table comes from a YAML file when one is
configured, otherwise the built-in table below is used.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import structlog
import yaml
from pydantic import BaseModel, Field, ValidationError

from cab_gateway.config import GatewaySettings
from cab_gateway.exceptions import ConfigurationError
from cab_gateway.routing.models import Instance, ServiceConfig
from cab_gateway.routing.registry import ServiceRegistry

logger = structlog.get_logger()


class InstanceDefinition(BaseModel):
    """Configured backend instance."""

    address: str = Field(..., description="Instance base URL")
    weight: int = Field(default=1, ge=1, description="Relative weight")


class ServiceDefinition(BaseModel):
    """Configured logical service."""

    instances: list[InstanceDefinition] = Field(..., min_length=1)
    health_check_path: str = Field(default="/health")
    request_timeout: float = Field(default=30.0, gt=0, description="Seconds")
    max_retries: int = Field(default=3, ge=0)
    breaker_threshold: int = Field(default=5, ge=1)
    recovery_timeout: float = Field(default=60.0, gt=0, description="Seconds")
    route_prefix: str | None = Field(default=None, description="Inbound path prefix")

    def to_config(self, service_name: str) -> ServiceConfig:
        return ServiceConfig(
            service_name=service_name,
            instances=[Instance(address=i.address, weight=i.weight) for i in self.instances],
            health_check_path=self.health_check_path,
            request_timeout=self.request_timeout,
            max_retries=self.max_retries,
            breaker_threshold=self.breaker_threshold,
            recovery_timeout=self.recovery_timeout,
            route_prefix=self.route_prefix,
        )


class ServiceTable(BaseModel):
    """Top-level layout of a services file."""

    services: dict[str, ServiceDefinition]


def _default_service(address: str, prefix: str) -> ServiceDefinition:
    return ServiceDefinition(
        instances=[InstanceDefinition(address=address)],
        health_check_path=f"{prefix}/health",
        route_prefix=prefix,
    )


DEFAULT_SERVICES: dict[str, ServiceDefinition] = {
    "auth-service": _default_service("http://auth-service:3001", "/auth"),
    "user-service": _default_service("http://user-service:3010", "/api/users"),
    "driver-service": _default_service("http://driver-service:3004", "/api/drivers"),
    "booking-service": _default_service("http://booking-service:3003", "/api/bookings"),
    "ride-service": _default_service("http://ride-service:3005", "/api/rides"),
    "payment-service": _default_service("http://payment-service:3006", "/api/payments"),
    "pricing-service": _default_service("http://pricing-service:3008", "/api/pricing"),
    "review-service": _default_service("http://review-service:3009", "/api/reviews"),
    "notification-service": _default_service(
        "http://notification-service:3007", "/api/notifications"
    ),
}


def parse_service_table(data: Any) -> dict[str, ServiceDefinition]:
    """
    Validate a raw service table.

    Args:
        data: Parsed mapping with a top-level ``services`` key

    Raises:
        ConfigurationError: If the table is malformed
    """
    try:
        return ServiceTable.model_validate(data).services
    except ValidationError as e:
        raise ConfigurationError(
            "Invalid service table",
            details={"errors": e.errors(include_url=False)},
        ) from e


def load_service_definitions(path: str | Path | None = None) -> dict[str, ServiceDefinition]:
    """
    Load the service table.

    Args:
        path: YAML services file; the built-in table is used if None

    Raises:
        ConfigurationError: If the file cannot be read or parsed
    """
    if path is None:
        return dict(DEFAULT_SERVICES)

    try:
        raw = yaml.safe_load(Path(path).read_text())
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(
            f"Cannot load services file '{path}'",
            details={"path": str(path), "error": str(e)},
        ) from e

    definitions = parse_service_table(raw)
    logger.info("Service table loaded", path=str(path), services=list(definitions))
    return definitions


def build_registry(
    definitions: dict[str, ServiceDefinition],
    settings: GatewaySettings,
) -> ServiceRegistry:
    """Create a registry holding every configured service."""
    registry = ServiceRegistry(algorithm=settings.LOAD_BALANCING_ALGORITHM)

    for name, definition in definitions.items():
        registry.register_service(definition.to_config(name))

    return registry
