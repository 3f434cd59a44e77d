"""Gateway-specific pytest configuration."""

from __future__ import annotations

import asyncio
from collections.abc import Callable

import pytest

from cab_gateway.routing.models import (
    ForwardRequest,
    Instance,
    RoutingOutcome,
    ServiceConfig,
    UpstreamResponse,
)
from cab_gateway.routing.registry import ServiceRegistry
from cab_gateway.routing.transport import Transport


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedTransport(Transport):
    """
    Transport answering from a per-address script.

    Each address maps to a callable producing the outcome; addresses without
    a script answer 200. Every call is recorded.
    """

    def __init__(self) -> None:
        self.calls: list[str] = []
        self.requests: list[ForwardRequest] = []
        self.scripts: dict[str, Callable[[], RoutingOutcome]] = {}
        self.delays: dict[str, float] = {}
        self.closed = False

    def succeed(
        self,
        address: str,
        status_code: int = 200,
        content: bytes = b"ok",
        headers: list[tuple[str, str]] | None = None,
    ) -> None:
        self.scripts[address] = lambda: RoutingOutcome.success(
            UpstreamResponse(status_code=status_code, headers=headers or [], content=content)
        )

    def fail(self, address: str) -> None:
        self.scripts[address] = lambda: RoutingOutcome.transport_failure("connection refused")

    def time_out(self, address: str) -> None:
        self.scripts[address] = lambda: RoutingOutcome.timeout()

    def hang(self, address: str, seconds: float) -> None:
        self.delays[address] = seconds

    async def send(
        self, address: str, request: ForwardRequest, timeout: float
    ) -> RoutingOutcome:
        self.calls.append(address)
        self.requests.append(request)
        delay = self.delays.get(address)
        if delay:
            await asyncio.sleep(delay)

        script = self.scripts.get(address)
        if script is None:
            return RoutingOutcome.success(UpstreamResponse(status_code=200, content=b"ok"))
        return script()

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def clock() -> FakeClock:
    """Create fake clock for testing."""
    return FakeClock()


@pytest.fixture
def ride_service() -> ServiceConfig:
    """Create ride-service configuration with instances A and B."""
    return ServiceConfig(
        service_name="ride-service",
        instances=[
            Instance(address="http://ride-a:3005"),
            Instance(address="http://ride-b:3005"),
        ],
        health_check_path="/api/rides/health",
        request_timeout=1.0,
        max_retries=0,
        breaker_threshold=3,
        recovery_timeout=1.0,
        route_prefix="/api/rides",
    )


@pytest.fixture
def registry(clock: FakeClock, ride_service: ServiceConfig) -> ServiceRegistry:
    """Create registry holding ride-service."""
    registry = ServiceRegistry(clock=clock)
    registry.register_service(ride_service)
    return registry


@pytest.fixture
def transport() -> ScriptedTransport:
    """Create scripted transport for testing."""
    return ScriptedTransport()
