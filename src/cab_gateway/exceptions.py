"""Gateway exceptions.

Typed errors raised by the routing layer. Every transport or probe failure is
funnelled into one of these (or into a classified routing outcome) before it
reaches shared state or a caller.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class GatewayError(Exception):
    """Base exception for gateway errors.

    Attributes:
        message: Human-readable error message
        details: Additional error context
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize gateway error.

        Args:
            message: Error message
            details: Optional error details
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(GatewayError):
    """Raised on invalid or conflicting service configuration.

    Fatal to the offending call only, never to the process.

    Example:
        >>> raise ConfigurationError("Service 'ride-service' already registered")
    """

    pass


class NotFoundError(ConfigurationError):
    """Raised when a service name is not registered."""

    def __init__(self, service_name: str) -> None:
        super().__init__(
            f"Service '{service_name}' not configured",
            details={"service": service_name},
        )
        self.service_name = service_name


class UnavailableReason(str, Enum):
    """Machine-readable reason codes for unavailable responses."""

    CIRCUIT_OPEN = "circuit_open"
    NO_HEALTHY_INSTANCES = "no_healthy_instances"
    RETRIES_EXHAUSTED = "retries_exhausted"


class ServiceUnavailableError(GatewayError):
    """Raised when a request cannot be served by a backend service.

    Surfaced to the caller as a 503-class response; the router never retries
    it itself.
    """

    def __init__(
        self,
        service_name: str,
        reason: UnavailableReason,
        retry_after: float | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize service unavailable error.

        Args:
            service_name: Logical service name
            reason: Reason code
            retry_after: Seconds until the circuit admits a trial, if known
            details: Optional error details
        """
        self.service_name = service_name
        self.reason = reason
        self.retry_after = retry_after
        super().__init__(
            f"Service '{service_name}' unavailable: {reason.value}",
            details=details,
        )


class HealthProbeError(GatewayError):
    """Raised by a failed health probe. Never leaves the health checker."""

    def __init__(self, address: str, reason: str) -> None:
        super().__init__(
            f"Health probe failed for {address}: {reason}",
            details={"address": address, "reason": reason},
        )
        self.address = address
        self.reason = reason
