"""
Status and Administrative Endpoints

Routing status snapshot for monitoring, and operations that change the
instance set or force a circuit breaker closed.
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import APIRouter, Query, Request, Response, status

from cab_gateway.models.routing import (
    AddInstanceRequest,
    BreakerResetResponse,
    GatewayMetrics,
    InstanceResponse,
    ServiceStatus,
)
from cab_gateway.routing.registry import ServiceRegistry

status_router = APIRouter(prefix="/gateway")
admin_router = APIRouter(prefix="/admin/services")
logger = structlog.get_logger()


def _registry(request: Request) -> ServiceRegistry:
    return request.app.state.registry


@status_router.get("/status", response_model=dict[str, ServiceStatus])
async def gateway_status(request: Request) -> dict[str, Any]:
    """Per-service instance health and circuit breaker state."""
    return _registry(request).get_status()


@status_router.get("/metrics", response_model=GatewayMetrics)
async def gateway_metrics(request: Request) -> dict[str, Any]:
    """Status snapshot with timestamp and gateway uptime."""
    return _registry(request).get_metrics()


@admin_router.post(
    "/{service_name}/instances",
    response_model=InstanceResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_instance(
    service_name: str, body: AddInstanceRequest, request: Request
) -> InstanceResponse:
    """Add an instance to a service. Adding a present address is a no-op."""
    instance = _registry(request).add_instance(service_name, body.address, body.weight)
    logger.info("Admin added instance", service=service_name, address=body.address)

    return InstanceResponse(
        service=service_name,
        address=instance.address,
        weight=instance.weight,
        healthy=instance.healthy,
    )


@admin_router.delete("/{service_name}/instances", status_code=status.HTTP_204_NO_CONTENT)
async def remove_instance(
    service_name: str,
    request: Request,
    address: str = Query(..., description="Instance base URL"),
) -> Response:
    """Remove an instance from a service."""
    removed = _registry(request).remove_instance(service_name, address)
    if not removed:
        return Response(status_code=status.HTTP_404_NOT_FOUND)

    logger.info("Admin removed instance", service=service_name, address=address)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@admin_router.post("/{service_name}/circuit-breaker/reset", response_model=BreakerResetResponse)
async def reset_circuit_breaker(service_name: str, request: Request) -> BreakerResetResponse:
    """Force a service's circuit breaker closed."""
    registry = _registry(request)
    registry.reset_circuit_breaker(service_name)

    return BreakerResetResponse(
        service=service_name,
        state=registry.get_breaker(service_name).get_state().value,
    )
