"""
Service Registry

Owns every logical backend service: its configuration, its instance set and
the per-service circuit breaker and instance selector built for it.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Callable

import structlog

from cab_gateway.exceptions import ConfigurationError, NotFoundError
from cab_gateway.monitoring.metrics import INSTANCE_HEALTH

from .circuit_breaker import CircuitBreaker, CircuitBreakerConfig
from .load_balancer import InstanceSelector, LoadBalancingAlgorithm, create_selector
from .models import Instance, ServiceConfig

logger = structlog.get_logger()


@dataclass
class _ServiceEntry:
    config: ServiceConfig
    breaker: CircuitBreaker
    selector: InstanceSelector
    lock: threading.Lock


class ServiceRegistry:
    """
    Registry of logical backend services.

    Instance lists are replaced copy-on-write under a per-service lock, so
    selectors and the health checker always iterate a consistent snapshot
    while administrative operations run concurrently with routing.
    """

    def __init__(
        self,
        algorithm: LoadBalancingAlgorithm = LoadBalancingAlgorithm.ROUND_ROBIN,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize service registry.

        Args:
            algorithm: Load balancing algorithm for new services
            clock: Monotonic clock handed to circuit breakers
        """
        self.algorithm = algorithm
        self._clock = clock
        self._services: dict[str, _ServiceEntry] = {}
        self._lock = threading.Lock()
        self._started_at = time.monotonic()

    def register_service(self, config: ServiceConfig) -> None:
        """
        Register a logical service.

        Args:
            config: Service configuration

        Raises:
            ConfigurationError: If the service name is already registered
        """
        with self._lock:
            if config.service_name in self._services:
                raise ConfigurationError(
                    f"Service '{config.service_name}' already registered",
                    details={"service": config.service_name},
                )

            breaker = CircuitBreaker(
                config.service_name,
                CircuitBreakerConfig(
                    failure_threshold=config.breaker_threshold,
                    recovery_timeout=config.recovery_timeout,
                ),
                clock=self._clock,
            )
            self._services[config.service_name] = _ServiceEntry(
                config=config,
                breaker=breaker,
                selector=create_selector(config, self.algorithm),
                lock=threading.Lock(),
            )

        for instance in config.instances:
            INSTANCE_HEALTH.labels(service=config.service_name, address=instance.address).set(
                1 if instance.healthy else 0
            )

        logger.info(
            "Service registered",
            service=config.service_name,
            instances=[i.address for i in config.instances],
            route_prefix=config.route_prefix,
        )

    def get_config(self, service_name: str) -> ServiceConfig:
        """
        Get service configuration.

        Raises:
            NotFoundError: If the service is unknown
        """
        return self._entry(service_name).config

    def get_breaker(self, service_name: str) -> CircuitBreaker:
        """Get the circuit breaker owned by a service."""
        return self._entry(service_name).breaker

    def get_selector(self, service_name: str) -> InstanceSelector:
        """Get the instance selector owned by a service."""
        return self._entry(service_name).selector

    def list_services(self) -> list[str]:
        """Get all registered service names."""
        return list(self._services.keys())

    def add_instance(self, service_name: str, address: str, weight: int = 1) -> Instance:
        """
        Add a healthy instance to a service.

        No-op if the address is already present.

        Args:
            service_name: Service name
            address: Instance base URL
            weight: Relative weight for weighted selection

        Returns:
            The new or already present instance
        """
        entry = self._entry(service_name)
        if weight < 1:
            raise ConfigurationError(
                "Instance weight must be at least 1",
                details={"service": service_name, "address": address, "weight": weight},
            )

        with entry.lock:
            existing = entry.config.find_instance(address)
            if existing:
                return existing

            instance = Instance(address=address, weight=weight)
            entry.config.instances = [*entry.config.instances, instance]

        INSTANCE_HEALTH.labels(service=service_name, address=address).set(1)
        logger.info(
            "Service instance added",
            service=service_name,
            address=address,
            weight=weight,
        )
        return instance

    def remove_instance(self, service_name: str, address: str) -> bool:
        """
        Remove an instance from a service.

        Calls already in flight to the instance complete normally.

        Returns:
            True if the instance was present
        """
        entry = self._entry(service_name)

        with entry.lock:
            remaining = [i for i in entry.config.instances if i.address != address]
            removed = len(remaining) != len(entry.config.instances)
            entry.config.instances = remaining

        if removed:
            INSTANCE_HEALTH.remove(service_name, address)
            logger.info("Service instance removed", service=service_name, address=address)

        return removed

    def mark_instance_healthy(self, service_name: str, address: str) -> None:
        """Mark an instance healthy. Ignored if the address was removed."""
        self._set_health(service_name, address, healthy=True)

    def mark_instance_unhealthy(self, service_name: str, address: str) -> None:
        """Mark an instance unhealthy. Ignored if the address was removed."""
        self._set_health(service_name, address, healthy=False)

    def reset_circuit_breaker(self, service_name: str) -> None:
        """Force a service's circuit breaker to closed state."""
        self._entry(service_name).breaker.reset()

    def resolve_prefix(self, path: str) -> str | None:
        """
        Find the service whose route prefix serves a path.

        The longest matching prefix wins.

        Returns:
            Service name or None
        """
        best: tuple[int, str] | None = None

        for name, entry in list(self._services.items()):
            prefix = entry.config.route_prefix
            if not prefix:
                continue

            prefix = prefix.rstrip("/")
            if path == prefix or path.startswith(prefix + "/"):
                if best is None or len(prefix) > best[0]:
                    best = (len(prefix), name)

        return best[1] if best else None

    def get_status(self) -> dict[str, Any]:
        """
        Get routing status of every service.

        Returns:
            Mapping of service name to instance health and breaker state
        """
        status: dict[str, Any] = {}

        for name, entry in list(self._services.items()):
            instances = list(entry.config.instances)
            breaker_stats = entry.breaker.get_stats()

            status[name] = {
                "instances": [
                    {
                        "address": i.address,
                        "healthy": i.healthy,
                        "weight": i.weight,
                        "consecutive_failures": i.consecutive_failures,
                    }
                    for i in instances
                ],
                "breaker_state": breaker_stats["state"].value,
                "failure_count": breaker_stats["failure_count"],
                "healthy_instances": len([i for i in instances if i.healthy]),
                "total_instances": len(instances),
            }

        return status

    def get_metrics(self) -> dict[str, Any]:
        """Status snapshot with timestamp and gateway uptime."""
        return {
            "services": self.get_status(),
            "timestamp": datetime.now(UTC).isoformat(),
            "uptime_seconds": time.monotonic() - self._started_at,
        }

    def _entry(self, service_name: str) -> _ServiceEntry:
        entry = self._services.get(service_name)
        if entry is None:
            raise NotFoundError(service_name)
        return entry

    def _set_health(self, service_name: str, address: str, healthy: bool) -> None:
        entry = self._entry(service_name)

        with entry.lock:
            instance = entry.config.find_instance(address)
            if instance is None:
                return

            was_healthy = instance.healthy
            if healthy:
                instance.mark_healthy()
            else:
                instance.mark_unhealthy()

        INSTANCE_HEALTH.labels(service=service_name, address=address).set(1 if healthy else 0)

        if was_healthy != healthy:
            logger.info(
                "Instance health changed",
                service=service_name,
                address=address,
                healthy=healthy,
            )
