"""
Health Check Models

Pydantic models for health and liveness endpoints.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class HealthCheckDetail(BaseModel):
    """Individual health check detail."""

    status: str = Field(..., description="Health check status")
    details: str = Field(..., description="Additional details")


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str = Field(..., description="Overall health status")
    version: str = Field(..., description="Gateway version")
    timestamp: str = Field(..., description="Check timestamp in ISO format")
    checks: dict[str, HealthCheckDetail] = Field(
        ..., description="Per-service checks"
    )


class LivenessResponse(BaseModel):
    """Liveness check response model."""

    status: str = Field(..., description="Liveness status")
