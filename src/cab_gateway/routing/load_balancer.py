"""
Load Balancer

Instance selection strategies for distributing requests across the healthy
instances of one backend service.
"""

from __future__ import annotations

import math
import threading
from abc import ABC, abstractmethod
from enum import Enum

import structlog

from .models import Instance, ServiceConfig

logger = structlog.get_logger()


class LoadBalancingAlgorithm(str, Enum):
    """Load balancing algorithm types."""

    ROUND_ROBIN = "round_robin"
    WEIGHTED_ROUND_ROBIN = "weighted_round_robin"


class InstanceSelector(ABC):
    """
    Base class for instance selectors.

    A selector is bound to one service and reads that service's instance
    list on every call, so instances added, removed or re-flagged by other
    components are seen by the next selection. Selection is serialized per
    selector.
    """

    def __init__(self, service: ServiceConfig) -> None:
        """
        Initialize selector.

        Args:
            service: Service whose instances are selected from
        """
        self.service = service
        self._lock = threading.Lock()

    def healthy_instances(self) -> list[Instance]:
        """Snapshot of the service's currently healthy instances."""
        return [i for i in self.service.instances if i.healthy]

    def next(self) -> Instance | None:
        """
        Select the next instance to try.

        Returns:
            A healthy instance, or None if no instance is healthy
        """
        with self._lock:
            instances = self.healthy_instances()
            if not instances:
                logger.warning(
                    "No healthy instances available",
                    service=self.service.service_name,
                )
                return None

            return self._select(instances)

    @abstractmethod
    def _select(self, instances: list[Instance]) -> Instance:
        """
        Pick one of a non-empty list of healthy instances.

        Called with the selector lock held.
        """


class RoundRobinSelector(InstanceSelector):
    """Strict, unweighted round robin over the healthy instances."""

    def __init__(self, service: ServiceConfig) -> None:
        super().__init__(service)
        self._cursor = 0

    def _select(self, instances: list[Instance]) -> Instance:
        # Reduced modulo the current healthy set so a shrinking set never
        # indexes out of range
        index = self._cursor % len(instances)
        self._cursor = (index + 1) % len(instances)
        return instances[index]


class WeightedRoundRobinSelector(InstanceSelector):
    """
    Interleaved weighted round robin.

    Over one full cycle each healthy instance is picked ``weight`` times.
    Weights and GCD are recomputed from the current healthy set on every
    call.
    """

    def __init__(self, service: ServiceConfig) -> None:
        super().__init__(service)
        self._current_index = -1
        self._current_weight = 0

    def _select(self, instances: list[Instance]) -> Instance:
        weights = [i.weight for i in instances]
        max_weight = max(weights)
        gcd_weight = math.gcd(*weights)

        while True:
            self._current_index = (self._current_index + 1) % len(instances)

            if self._current_index == 0:
                self._current_weight -= gcd_weight
                if self._current_weight <= 0:
                    self._current_weight = max_weight

            if instances[self._current_index].weight >= self._current_weight:
                return instances[self._current_index]


def create_selector(
    service: ServiceConfig,
    algorithm: LoadBalancingAlgorithm = LoadBalancingAlgorithm.ROUND_ROBIN,
) -> InstanceSelector:
    """
    Create selector instance based on algorithm.

    Args:
        service: Service to select instances for
        algorithm: Load balancing algorithm

    Returns:
        Selector instance
    """
    selectors: dict[LoadBalancingAlgorithm, type[InstanceSelector]] = {
        LoadBalancingAlgorithm.ROUND_ROBIN: RoundRobinSelector,
        LoadBalancingAlgorithm.WEIGHTED_ROUND_ROBIN: WeightedRoundRobinSelector,
    }

    selector_class = selectors.get(algorithm)
    if not selector_class:
        logger.warning(
            "Unknown load balancing algorithm, using round robin",
            algorithm=algorithm,
        )
        selector_class = RoundRobinSelector

    return selector_class(service)
