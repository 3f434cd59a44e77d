"""Tests for instance selection strategies."""

from __future__ import annotations

import threading

import pytest

from cab_gateway.routing.load_balancer import (
    LoadBalancingAlgorithm,
    RoundRobinSelector,
    WeightedRoundRobinSelector,
    create_selector,
)
from cab_gateway.routing.models import Instance, ServiceConfig


@pytest.fixture
def three_instances() -> ServiceConfig:
    """Create a service with three instances."""
    return ServiceConfig(
        service_name="driver-service",
        instances=[Instance(address=f"http://driver-{i}:3004") for i in range(3)],
    )


def _pick(selector, count: int) -> list[str]:
    picks = []
    for _ in range(count):
        instance = selector.next()
        assert instance is not None
        picks.append(instance.address)
    return picks


def test_round_robin_rotation(three_instances: ServiceConfig) -> None:
    """Test round robin cycles in fixed order."""
    selector = RoundRobinSelector(three_instances)

    picks = _pick(selector, 6)

    assert picks == [
        "http://driver-0:3004",
        "http://driver-1:3004",
        "http://driver-2:3004",
        "http://driver-0:3004",
        "http://driver-1:3004",
        "http://driver-2:3004",
    ]


@pytest.mark.parametrize("offset", [0, 1, 2, 5])
def test_round_robin_window_is_fair(three_instances: ServiceConfig, offset: int) -> None:
    """Test any window of k*N selections picks each instance k times."""
    selector = RoundRobinSelector(three_instances)
    _pick(selector, offset)

    picks = _pick(selector, 12)

    for instance in three_instances.instances:
        assert picks.count(instance.address) == 4


def test_skips_unhealthy_instances(three_instances: ServiceConfig) -> None:
    """Test unhealthy instances are never selected."""
    three_instances.instances[1].healthy = False
    selector = RoundRobinSelector(three_instances)

    picks = _pick(selector, 10)

    assert "http://driver-1:3004" not in picks
    assert set(picks) == {"http://driver-0:3004", "http://driver-2:3004"}


def test_returns_none_without_healthy_instances(three_instances: ServiceConfig) -> None:
    """Test selection returns None instead of raising when all are down."""
    for instance in three_instances.instances:
        instance.healthy = False

    selector = RoundRobinSelector(three_instances)

    assert selector.next() is None
    assert selector.next() is None


def test_shrinking_healthy_set_stays_in_range(three_instances: ServiceConfig) -> None:
    """Test cursor is reduced modulo the current healthy set size."""
    selector = RoundRobinSelector(three_instances)
    _pick(selector, 2)  # cursor now points at the third instance

    three_instances.instances[2].healthy = False
    three_instances.instances[1].healthy = False

    instance = selector.next()
    assert instance is not None
    assert instance.address == "http://driver-0:3004"


def test_sees_instances_added_later(three_instances: ServiceConfig) -> None:
    """Test instance list replacements are visible to the next selection."""
    selector = RoundRobinSelector(three_instances)
    three_instances.instances = [
        *three_instances.instances,
        Instance(address="http://driver-3:3004"),
    ]

    picks = _pick(selector, 4)

    assert "http://driver-3:3004" in picks


def test_weighted_round_robin_proportions() -> None:
    """Test weighted selection follows the 1:2:3 weights."""
    service = ServiceConfig(
        service_name="pricing-service",
        instances=[
            Instance(address="http://pricing-1:3008", weight=1),
            Instance(address="http://pricing-2:3008", weight=2),
            Instance(address="http://pricing-3:3008", weight=3),
        ],
    )
    selector = WeightedRoundRobinSelector(service)

    picks = _pick(selector, 18)

    assert picks.count("http://pricing-1:3008") == 3
    assert picks.count("http://pricing-2:3008") == 6
    assert picks.count("http://pricing-3:3008") == 9


def test_weighted_round_robin_skips_unhealthy() -> None:
    """Test weighted selection ignores unhealthy heavy instances."""
    service = ServiceConfig(
        service_name="pricing-service",
        instances=[
            Instance(address="http://pricing-1:3008", weight=1),
            Instance(address="http://pricing-2:3008", weight=5, healthy=False),
        ],
    )
    selector = WeightedRoundRobinSelector(service)

    assert set(_pick(selector, 5)) == {"http://pricing-1:3008"}


def test_create_selector(three_instances: ServiceConfig) -> None:
    """Test selector factory honours the algorithm."""
    assert isinstance(create_selector(three_instances), RoundRobinSelector)
    assert isinstance(
        create_selector(three_instances, LoadBalancingAlgorithm.WEIGHTED_ROUND_ROBIN),
        WeightedRoundRobinSelector,
    )


def test_concurrent_selection_is_fair(three_instances: ServiceConfig) -> None:
    """Test concurrent callers never corrupt the rotation."""
    selector = RoundRobinSelector(three_instances)
    picks: list[str] = []
    lock = threading.Lock()

    def select_many() -> None:
        for _ in range(30):
            instance = selector.next()
            with lock:
                picks.append(instance.address)

    threads = [threading.Thread(target=select_many) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(picks) == 120
    for instance in three_instances.instances:
        assert picks.count(instance.address) == 40
