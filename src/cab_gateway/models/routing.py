"""
Routing Models

Pydantic models for the status, metrics and administrative endpoints.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class InstanceStatus(BaseModel):
    """Health of one backend instance."""

    address: str = Field(..., description="Instance base URL")
    healthy: bool = Field(..., description="Whether the instance is selectable")
    weight: int = Field(..., description="Relative weight")
    consecutive_failures: int = Field(..., description="Failures since last success")


class ServiceStatus(BaseModel):
    """Routing status of one logical service."""

    instances: list[InstanceStatus]
    breaker_state: str = Field(..., description="closed, open or half_open")
    failure_count: int = Field(..., description="Consecutive failures seen by the breaker")
    healthy_instances: int
    total_instances: int


class GatewayMetrics(BaseModel):
    """Status snapshot with timestamp and uptime."""

    services: dict[str, ServiceStatus]
    timestamp: str = Field(..., description="Snapshot time in ISO format")
    uptime_seconds: float


class AddInstanceRequest(BaseModel):
    """Body of an add-instance call."""

    address: str = Field(..., min_length=1, description="Instance base URL")
    weight: int = Field(default=1, ge=1, description="Relative weight")


class InstanceResponse(BaseModel):
    """Instance after an administrative change."""

    service: str
    address: str
    weight: int
    healthy: bool


class BreakerResetResponse(BaseModel):
    """Circuit breaker after a manual reset."""

    service: str
    state: str


class UnavailableResponse(BaseModel):
    """503 body returned when a backend cannot be reached."""

    error: str = "Service temporarily unavailable"
    service: str
    code: str = "SERVICE_UNAVAILABLE"
    reason: str = Field(..., description="circuit_open, no_healthy_instances or retries_exhausted")
