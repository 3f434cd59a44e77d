"""
Gateway Monitoring

Prometheus metrics for routing decisions, circuit breakers and instance health.
"""

from __future__ import annotations

from .metrics import CIRCUIT_STATE, INSTANCE_HEALTH, REJECTED_REQUESTS, ROUTING_ATTEMPTS

__all__ = [
    "CIRCUIT_STATE",
    "INSTANCE_HEALTH",
    "REJECTED_REQUESTS",
    "ROUTING_ATTEMPTS",
]
