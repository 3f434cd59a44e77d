"""Tests for Prometheus metric registration."""

from __future__ import annotations

import pytest

from cab_gateway.monitoring import metrics
from cab_gateway.monitoring.metrics import (
    CIRCUIT_STATE,
    ROUTING_ATTEMPTS,
    _get_or_create_counter,
    _get_or_create_gauge,
)


def test_counter_reused_when_already_registered(monkeypatch: pytest.MonkeyPatch) -> None:
    """Test a second registration of a _total counter returns the existing one."""
    monkeypatch.delitem(metrics._metrics_cache, "gateway_routing_attempts_total")

    counter = _get_or_create_counter(
        "gateway_routing_attempts_total",
        "Forwarding attempts to backend instances",
        ["service", "outcome"],
    )

    assert counter is ROUTING_ATTEMPTS


def test_gauge_reused_when_already_registered(monkeypatch: pytest.MonkeyPatch) -> None:
    """Test a second registration of a gauge returns the existing one."""
    monkeypatch.delitem(metrics._metrics_cache, "gateway_circuit_breaker_state")

    gauge = _get_or_create_gauge(
        "gateway_circuit_breaker_state",
        "Circuit breaker state (0=closed, 1=half_open, 2=open)",
        ["service"],
    )

    assert gauge is CIRCUIT_STATE
