"""
Prometheus Metrics

Routing and resilience metrics for the gateway:
- Forwarding attempts by service and outcome
- Requests rejected before reaching a backend
- Circuit breaker state per service
- Instance health per service and address
"""

from __future__ import annotations

from typing import Any

from prometheus_client import REGISTRY, Counter, Gauge

_metrics_cache: dict[str, Any] = {}


def _find_registered(name: str) -> Any:
    # Counters are stored without their _total suffix
    wanted = {name, name.removesuffix("_total")}
    for collector in REGISTRY._collector_to_names.keys():
        if getattr(collector, "_name", None) in wanted:
            return collector
    return None


def _get_or_create_counter(name: str, documentation: str, labelnames: list[str]) -> Counter:
    """Get existing Counter metric or create new one, handling duplicates."""
    if name in _metrics_cache:
        return _metrics_cache[name]

    try:
        metric = Counter(name, documentation, labelnames)
    except ValueError:
        # Already registered by an earlier import of this module
        metric = _find_registered(name)
        if metric is None:
            raise

    _metrics_cache[name] = metric
    return metric


def _get_or_create_gauge(name: str, documentation: str, labelnames: list[str]) -> Gauge:
    """Get existing Gauge metric or create new one, handling duplicates."""
    if name in _metrics_cache:
        return _metrics_cache[name]

    try:
        metric = Gauge(name, documentation, labelnames)
    except ValueError:
        metric = _find_registered(name)
        if metric is None:
            raise

    _metrics_cache[name] = metric
    return metric


ROUTING_ATTEMPTS = _get_or_create_counter(
    "gateway_routing_attempts_total",
    "Forwarding attempts to backend instances",
    ["service", "outcome"],
)

REJECTED_REQUESTS = _get_or_create_counter(
    "gateway_rejected_requests_total",
    "Requests answered with 503 by the gateway",
    ["service", "reason"],
)

CIRCUIT_STATE = _get_or_create_gauge(
    "gateway_circuit_breaker_state",
    "Circuit breaker state (0=closed, 1=half_open, 2=open)",
    ["service"],
)

INSTANCE_HEALTH = _get_or_create_gauge(
    "gateway_instance_health_status",
    "Backend instance health (1=healthy, 0=unhealthy)",
    ["service", "address"],
)
