"""
Health Checker

Background task that periodically probes every configured backend instance
and updates its healthy flag. Probe results are instance-local and never
touch circuit breakers.
"""

from __future__ import annotations

import asyncio

import httpx
import structlog

from cab_gateway.exceptions import HealthProbeError, NotFoundError

from .models import Instance
from .registry import ServiceRegistry

logger = structlog.get_logger()


class HealthChecker:
    """
    Periodic health prober for all registered instances.

    Probes for different instances run concurrently. A probe is skipped when
    the previous probe of the same instance has not finished yet.
    """
    def __init__(
        self,
        registry: ServiceRegistry,
        interval: float = 30.0,
        probe_timeout: float = 5.0,
        client: httpx.AsyncClient | None = None,
    ):
        """
        Initialize health checker.

        Args:
            registry: Registry whose instances are probed
            interval: Seconds between ticks
            probe_timeout: Timeout for a single probe in seconds
            client: HTTP client to probe with; one is created if omitted.
                A supplied client is left open for its owner to close.
        """
        self.registry = registry
        self.interval = interval
        self.probe_timeout = probe_timeout
        self._owns_client = client is None
        self._http_client = client or httpx.AsyncClient(timeout=probe_timeout)
        self._in_flight: set[tuple[str, str]] = set()
        self._probe_tasks: set[asyncio.Task] = set()
        self._task: asyncio.Task | None = None
        self._running = False

    @property
    def running(self) -> bool:
        """Whether the periodic loop is active."""
        return self._running

    async def start(self) -> None:
        """Start the periodic health check loop."""
        if self._running:
            return

        if self._http_client.is_closed and self._owns_client:
            self._http_client = httpx.AsyncClient(timeout=self.probe_timeout)

        self._running = True
        self._task = asyncio.create_task(self._health_check_loop())
        logger.info(
            "Health checker started",
            interval=self.interval,
            probe_timeout=self.probe_timeout,
        )

    async def stop(self) -> None:
        """Stop the loop and cancel probes still in flight.

        The checker can be started again afterwards.
        """
        if self._running:
            self._running = False
            if self._task:
                self._task.cancel()
                try:
                    await self._task
                except asyncio.CancelledError:
                    pass
                self._task = None

        probe_tasks = list(self._probe_tasks)
        for task in probe_tasks:
            task.cancel()
        await asyncio.gather(*probe_tasks, return_exceptions=True)

        # A probe cancelled before it started never clears its own key
        self._probe_tasks.clear()
        self._in_flight.clear()
        logger.info("Health checker stopped")

    async def close(self) -> None:
        """Stop the checker and close the HTTP client if it created it."""
        await self.stop()
        if self._owns_client:
            await self._http_client.aclose()

    async def check_all(self) -> dict[str, dict[str, bool]]:
        """
        Run one tick and wait for its probes.

        Returns:
            Mapping of service name to probed address and resulting health;
            skipped instances are left out
        """
        launched = self._launch_probes()
        results = await asyncio.gather(*(task for _, task in launched))

        summary: dict[str, dict[str, bool]] = {}
        for (service_name, address), healthy in zip(
            (key for key, _ in launched), results, strict=True
        ):
            summary.setdefault(service_name, {})[address] = healthy
        return summary

    def _launch_probes(self) -> list[tuple[tuple[str, str], asyncio.Task]]:
        """
        Start a probe task for every instance not already being probed.

        Returns:
            The started tasks keyed by (service, address)
        """
        launched: list[tuple[tuple[str, str], asyncio.Task]] = []

        for service_name in self.registry.list_services():
            try:
                config = self.registry.get_config(service_name)
            except NotFoundError:
                continue

            for instance in list(config.instances):
                key = (service_name, instance.address)
                if key in self._in_flight:
                    logger.debug(
                        "Previous probe still running, skipping",
                        service=service_name,
                        address=instance.address,
                    )
                    continue

                self._in_flight.add(key)
                task = asyncio.create_task(
                    self._check_instance(service_name, instance, config.health_check_path)
                )
                self._probe_tasks.add(task)
                task.add_done_callback(self._probe_tasks.discard)
                launched.append((key, task))

        return launched

    async def probe(self, address: str, health_check_path: str) -> None:
        """
        Probe one instance.

        Raises:
            HealthProbeError: Unless the instance answered HTTP 200 in time
        """
        url = f"{address.rstrip('/')}{health_check_path}"

        try:
            response = await asyncio.wait_for(
                self._http_client.get(url, timeout=self.probe_timeout),
                timeout=self.probe_timeout,
            )
        except (TimeoutError, httpx.TimeoutException) as e:
            raise HealthProbeError(address, "timed out") from e
        except httpx.HTTPError as e:
            raise HealthProbeError(address, str(e) or type(e).__name__) from e

        if response.status_code != 200:
            raise HealthProbeError(address, f"status {response.status_code}")

    async def _check_instance(
        self, service_name: str, instance: Instance, health_check_path: str
    ) -> bool:
        try:
            await self.probe(instance.address, health_check_path)
        except HealthProbeError as e:
            logger.warning(
                "Health check failed",
                service=service_name,
                address=instance.address,
                error=e.reason,
            )
            self.registry.mark_instance_unhealthy(service_name, instance.address)
            return False
        except Exception as e:
            logger.error(
                "Unexpected health probe error",
                service=service_name,
                address=instance.address,
                error=str(e),
                error_type=type(e).__name__,
            )
            self.registry.mark_instance_unhealthy(service_name, instance.address)
            return False
        finally:
            self._in_flight.discard((service_name, instance.address))

        self.registry.mark_instance_healthy(service_name, instance.address)
        return True


    async def _health_check_loop(self) -> None:
        """Launch a tick every interval without waiting for its probes."""
        while self._running:
            try:
                await asyncio.sleep(self.interval)
                self._launch_probes()

            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Health check loop error", error=str(e))
