"""
Backend Service Routing

Health-aware routing to backend service instances with per-service circuit
breaking.
"""

from __future__ import annotations

from .circuit_breaker import (
    BreakerPermit,
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitState,
)
from .health_checker import HealthChecker
from .load_balancer import (
    InstanceSelector,
    LoadBalancingAlgorithm,
    RoundRobinSelector,
    WeightedRoundRobinSelector,
    create_selector,
)
from .models import (
    ForwardRequest,
    Instance,
    OutcomeKind,
    RoutingOutcome,
    ServiceConfig,
    UpstreamResponse,
)
from .registry import ServiceRegistry
from .router import RequestRouter
from .transport import HttpxTransport, Transport

__all__ = [
    "BreakerPermit",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitState",
    "ForwardRequest",
    "HealthChecker",
    "HttpxTransport",
    "Instance",
    "InstanceSelector",
    "LoadBalancingAlgorithm",
    "OutcomeKind",
    "RequestRouter",
    "RoundRobinSelector",
    "RoutingOutcome",
    "ServiceConfig",
    "ServiceRegistry",
    "Transport",
    "UpstreamResponse",
    "WeightedRoundRobinSelector",
    "create_selector",
]
