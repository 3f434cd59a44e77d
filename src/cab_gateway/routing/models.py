"""
Routing Models

Backend instances, per-service configuration and the classified outcome of a
single forwarding attempt.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from cab_gateway.exceptions import ConfigurationError


@dataclass
class Instance:
    """One network endpoint of a logical backend service."""

    address: str
    weight: int = 1
    healthy: bool = True
    consecutive_failures: int = 0

    def mark_healthy(self) -> None:
        """Mark instance as healthy."""
        self.healthy = True
        self.consecutive_failures = 0

    def mark_unhealthy(self) -> None:
        """Mark instance as unhealthy."""
        self.healthy = False
        self.consecutive_failures += 1


@dataclass
class ServiceConfig:
    """Static configuration and instance set of a logical service."""

    service_name: str
    instances: list[Instance]
    health_check_path: str = "/health"
    request_timeout: float = 30.0
    """Per-attempt timeout in seconds"""

    max_retries: int = 3
    """Retries after the first failed attempt"""

    breaker_threshold: int = 5
    """Consecutive failures before the circuit opens"""

    recovery_timeout: float = 60.0
    """Seconds the circuit stays open before admitting a trial"""

    route_prefix: str | None = None
    """Inbound path prefix served by this service"""

    def __post_init__(self) -> None:
        if not self.instances:
            raise ConfigurationError(
                f"Service '{self.service_name}' needs at least one instance",
                details={"service": self.service_name},
            )

        addresses = [i.address for i in self.instances]
        if len(set(addresses)) != len(addresses):
            raise ConfigurationError(
                f"Service '{self.service_name}' has duplicate instance addresses",
                details={"service": self.service_name, "addresses": addresses},
            )

        if any(i.weight < 1 for i in self.instances):
            raise ConfigurationError(
                f"Service '{self.service_name}' has an instance with weight < 1",
                details={"service": self.service_name},
            )

        if self.breaker_threshold < 1 or self.max_retries < 0:
            raise ConfigurationError(
                f"Service '{self.service_name}' has invalid retry/breaker settings",
                details={
                    "breaker_threshold": self.breaker_threshold,
                    "max_retries": self.max_retries,
                },
            )

    def find_instance(self, address: str) -> Instance | None:
        """Get instance by address."""
        return next((i for i in self.instances if i.address == address), None)


@dataclass
class ForwardRequest:
    """Inbound request as handed to the transport."""

    method: str
    path: str
    query: str = ""
    headers: list[tuple[str, str]] = field(default_factory=list)
    body: bytes = b""
    client_ip: str | None = None
    request_id: str | None = None


@dataclass
class UpstreamResponse:
    """Response received from a backend instance."""

    status_code: int
    headers: list[tuple[str, str]] = field(default_factory=list)
    content: bytes = b""


class OutcomeKind(str, Enum):
    """Classification of a forwarding attempt."""

    SUCCESS = "success"
    TRANSPORT_FAILURE = "transport_failure"
    TIMEOUT = "timeout"


@dataclass
class RoutingOutcome:
    """Result of one forwarding attempt. Never carries a raw exception."""

    kind: OutcomeKind
    response: UpstreamResponse | None = None
    error: str | None = None

    @property
    def is_success(self) -> bool:
        return self.kind == OutcomeKind.SUCCESS

    @classmethod
    def success(cls, response: UpstreamResponse) -> RoutingOutcome:
        return cls(OutcomeKind.SUCCESS, response=response)

    @classmethod
    def transport_failure(cls, error: str) -> RoutingOutcome:
        return cls(OutcomeKind.TRANSPORT_FAILURE, error=error)

    @classmethod
    def timeout(cls, error: str = "request timed out") -> RoutingOutcome:
        return cls(OutcomeKind.TIMEOUT, error=error)
