"""
Health Check Endpoints

Gateway health derived from backend routing state, and a liveness probe.
"""

from __future__ import annotations

from datetime import UTC, datetime

import structlog
from fastapi import APIRouter, Request

from cab_gateway.models.health import HealthCheckDetail, HealthResponse, LivenessResponse

router = APIRouter()
logger = structlog.get_logger()


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Gateway health check",
    description="""
Report gateway health from the routing state of every backend service.

**Health Status:**
- `healthy`: Every service has a healthy instance and a closed circuit
- `degraded`: At least one service has no healthy instance or a tripped circuit

Always answers 200 while the gateway process itself is serving.
    """,
)
async def health_check(request: Request) -> HealthResponse:
    """Gateway health with one check per backend service."""
    gateway_settings = request.app.state.settings
    status = request.app.state.registry.get_status()

    checks: dict[str, HealthCheckDetail] = {}
    for name, service in status.items():
        available = service["healthy_instances"] > 0 and service["breaker_state"] == "closed"
        checks[name] = HealthCheckDetail(
            status="healthy" if available else "unhealthy",
            details=(
                f"{service['healthy_instances']}/{service['total_instances']} instances healthy, "
                f"circuit {service['breaker_state']}"
            ),
        )

    overall = "healthy" if all(c.status == "healthy" for c in checks.values()) else "degraded"
    if overall != "healthy":
        logger.debug("Gateway degraded", unhealthy=[n for n, c in checks.items() if c.status != "healthy"])

    return HealthResponse(
        status=overall,
        version=gateway_settings.GATEWAY_VERSION,
        timestamp=datetime.now(UTC).isoformat(),
        checks=checks,
    )


@router.get("/live", response_model=LivenessResponse, summary="Service liveness check")
async def liveness_check() -> LivenessResponse:
    """
    Liveness check endpoint.

    Returns 200 OK whenever the process is able to serve requests.
    """
    return LivenessResponse(status="alive")
