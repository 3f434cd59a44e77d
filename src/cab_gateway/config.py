"""
Gateway Configuration

Environment-based configuration management for the API gateway.
"""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings

from cab_gateway.routing.load_balancer import LoadBalancingAlgorithm


class GatewaySettings(BaseSettings):
    """Gateway configuration loaded from environment variables."""

    # Application
    DEBUG: bool = Field(default=False, description="Enable debug mode")
    HOST: str = Field(default="0.0.0.0", description="Server host")
    PORT: int = Field(default=3000, description="Server port")
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")

    # Gateway
    GATEWAY_NAME: str = Field(default="Cab Booking Gateway", description="Gateway service name")
    GATEWAY_VERSION: str = Field(default="0.1.0", description="Gateway version")

    # Backend services
    SERVICES_FILE: str | None = Field(
        default=None,
        description="YAML file with the service table; built-in table if unset",
    )
    LOAD_BALANCING_ALGORITHM: LoadBalancingAlgorithm = Field(
        default=LoadBalancingAlgorithm.ROUND_ROBIN,
        description="Instance selection algorithm (round_robin, weighted_round_robin)",
    )

    # Health checking
    HEALTH_CHECK_ENABLED: bool = Field(default=True, description="Run periodic health probes")
    HEALTH_CHECK_INTERVAL: float = Field(default=30.0, description="Seconds between health ticks")
    HEALTH_CHECK_TIMEOUT: float = Field(default=5.0, description="Health probe timeout in seconds")

    # Surfaces
    ENABLE_METRICS: bool = Field(default=True, description="Expose Prometheus metrics")
    ADMIN_ENABLED: bool = Field(default=True, description="Expose administrative endpoints")

    model_config = {
        "env_file": ".env",
        "env_prefix": "GATEWAY_",
        "case_sensitive": True,
        "extra": "ignore",
    }


# Global settings instance
settings = GatewaySettings()
