"""
Circuit Breaker

Per-service circuit breaker gating whether a request may attempt a backend.
Prevents cascading failures by failing fast while a service is unhealthy and
admitting a single trial call once the recovery timeout has elapsed.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

import structlog

from cab_gateway.monitoring.metrics import CIRCUIT_STATE

logger = structlog.get_logger()

_STATE_GAUGE_VALUES = {"closed": 0, "half_open": 1, "open": 2}


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Service is failing, reject requests
    HALF_OPEN = "half_open"  # One trial call in flight


@dataclass
class CircuitBreakerConfig:
    """Circuit breaker configuration."""

    failure_threshold: int = 5
    """Number of consecutive failures before opening circuit"""

    recovery_timeout: float = 60.0
    """Time in seconds before admitting a trial call (half-open)"""


@dataclass
class CircuitBreakerStats:
    """Circuit breaker state and counters."""

    state: CircuitState = CircuitState.CLOSED
    failure_count: int = 0
    opened_at: float | None = None
    half_open_trial_in_flight: bool = False
    generation: int = 0
    last_state_change: float = field(default_factory=time.monotonic)
    total_admitted: int = 0
    total_rejected: int = 0
    total_failures: int = 0
    total_successes: int = 0


@dataclass(frozen=True)
class BreakerPermit:
    """Admission ticket handed out by :meth:`CircuitBreaker.acquire`.

    The generation ties an outcome to the breaker state it was admitted
    under; outcomes from an earlier generation are discarded.
    """

    generation: int
    trial: bool = False


class CircuitBreaker:
    """
    Circuit breaker for one logical service.

    States:
    - CLOSED: Normal operation, requests pass through
    - OPEN: Service is failing, requests are rejected until the
      recovery timeout elapses
    - HALF_OPEN: Exactly one trial call is in flight; every other call is
      rejected until the trial resolves

    All transitions happen under a lock, so concurrent admissions and
    outcome reports for the same service are linearizable.
    """

    def __init__(
        self,
        service_name: str,
        config: CircuitBreakerConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize circuit breaker.

        Args:
            service_name: Name of the service
            config: Circuit breaker configuration
            clock: Monotonic clock returning seconds
        """
        self.service_name = service_name
        self.config = config or CircuitBreakerConfig()
        self._clock = clock
        self._lock = threading.Lock()
        self.stats = CircuitBreakerStats(last_state_change=clock())
        CIRCUIT_STATE.labels(service=service_name).set(0)

    @property
    def state(self) -> CircuitState:
        """Get current circuit state."""
        return self.stats.state

    @property
    def is_closed(self) -> bool:
        """Check if circuit is closed (normal operation)."""
        return self.stats.state == CircuitState.CLOSED

    @property
    def is_open(self) -> bool:
        """Check if circuit is open (failing fast)."""
        return self.stats.state == CircuitState.OPEN

    @property
    def is_half_open(self) -> bool:
        """Check if circuit is half-open (trial call admitted)."""
        return self.stats.state == CircuitState.HALF_OPEN

    def get_state(self) -> CircuitState:
        """Get current circuit state."""
        return self.stats.state

    def acquire(self) -> BreakerPermit | None:
        """
        Ask for admission of one call.

        Returns:
            A permit if the call may reach the backend, None otherwise
        """
        with self._lock:
            stats = self.stats

            if stats.state == CircuitState.CLOSED:
                stats.total_admitted += 1
                return BreakerPermit(stats.generation)

            if stats.state == CircuitState.OPEN:
                if self._recovery_elapsed():
                    self._transition_to_half_open()
                    stats.half_open_trial_in_flight = True
                    stats.total_admitted += 1
                    return BreakerPermit(stats.generation, trial=True)

                stats.total_rejected += 1
                logger.debug(
                    "Circuit breaker is open, failing fast",
                    service=self.service_name,
                    retry_after=self._time_until_retry(),
                )
                return None

            # HALF_OPEN
            if stats.half_open_trial_in_flight:
                stats.total_rejected += 1
                logger.debug(
                    "Circuit breaker trial in flight, rejecting",
                    service=self.service_name,
                )
                return None

            stats.half_open_trial_in_flight = True
            stats.total_admitted += 1
            return BreakerPermit(stats.generation, trial=True)

    def allow_request(self) -> bool:
        """Check whether a call may attempt the backend right now."""
        return self.acquire() is not None

    def record_success(self, permit: BreakerPermit | None = None) -> None:
        """
        Report a call that reached the backend.

        Args:
            permit: Permit the call was admitted with
        """
        with self._lock:
            if not self._accepts(permit):
                return

            self.stats.total_successes += 1

            if self.stats.state == CircuitState.CLOSED:
                self.stats.failure_count = 0
            elif self.stats.state == CircuitState.HALF_OPEN:
                self._transition_to_closed()

    def record_failure(self, permit: BreakerPermit | None = None) -> None:
        """
        Report a call that failed to reach the backend.

        Args:
            permit: Permit the call was admitted with
        """
        with self._lock:
            if not self._accepts(permit):
                return

            stats = self.stats
            stats.total_failures += 1

            if stats.state == CircuitState.CLOSED:
                stats.failure_count += 1
                logger.warning(
                    "Circuit breaker call failed",
                    service=self.service_name,
                    failure_count=stats.failure_count,
                    threshold=self.config.failure_threshold,
                )
                if stats.failure_count >= self.config.failure_threshold:
                    self._transition_to_open()
            elif stats.state == CircuitState.HALF_OPEN:
                # Failed trial reopens and restarts the recovery timer
                stats.failure_count += 1
                self._transition_to_open()

    def release(self, permit: BreakerPermit) -> None:
        """
        Give back a permit whose call never produced an outcome.

        A released trial frees the half-open slot so the next call can be
        admitted as the trial.
        """
        with self._lock:
            if (
                permit.trial
                and permit.generation == self.stats.generation
                and self.stats.state == CircuitState.HALF_OPEN
            ):
                self.stats.half_open_trial_in_flight = False
                logger.debug("Circuit breaker trial released", service=self.service_name)

    def reset(self) -> None:
        """Manually reset circuit breaker to closed state."""
        with self._lock:
            logger.info("Circuit breaker manually reset", service=self.service_name)
            self._transition_to_closed()

    def time_until_retry(self) -> float:
        """Seconds until an open circuit admits a trial call."""
        with self._lock:
            return self._time_until_retry()

    def get_stats(self) -> dict[str, Any]:
        """
        Get circuit breaker statistics.

        Returns:
            Dictionary of statistics
        """
        with self._lock:
            stats = self.stats
            return {
                "service": self.service_name,
                "state": stats.state,
                "failure_count": stats.failure_count,
                "half_open_trial_in_flight": stats.half_open_trial_in_flight,
                "retry_after_seconds": self._time_until_retry(),
                "total_admitted": stats.total_admitted,
                "total_rejected": stats.total_rejected,
                "total_failures": stats.total_failures,
                "total_successes": stats.total_successes,
                "state_uptime_seconds": self._clock() - stats.last_state_change,
                "config": {
                    "failure_threshold": self.config.failure_threshold,
                    "recovery_timeout": self.config.recovery_timeout,
                },
            }

    def _accepts(self, permit: BreakerPermit | None) -> bool:
        if permit is None or permit.generation == self.stats.generation:
            return True

        logger.debug(
            "Discarding outcome admitted under an earlier breaker state",
            service=self.service_name,
            permit_generation=permit.generation,
            generation=self.stats.generation,
        )
        return False

    def _recovery_elapsed(self) -> bool:
        if self.stats.opened_at is None:
            return True
        return self._clock() - self.stats.opened_at >= self.config.recovery_timeout

    def _time_until_retry(self) -> float:
        if self.stats.state != CircuitState.OPEN or self.stats.opened_at is None:
            return 0.0

        elapsed = self._clock() - self.stats.opened_at
        return max(0.0, self.config.recovery_timeout - elapsed)

    def _set_state(self, new_state: CircuitState) -> CircuitState:
        old_state = self.stats.state
        self.stats.state = new_state
        self.stats.generation += 1
        self.stats.half_open_trial_in_flight = False
        self.stats.last_state_change = self._clock()
        CIRCUIT_STATE.labels(service=self.service_name).set(
            _STATE_GAUGE_VALUES[new_state.value]
        )
        return old_state

    def _transition_to_open(self) -> None:
        old_state = self._set_state(CircuitState.OPEN)
        self.stats.opened_at = self._clock()

        logger.error(
            "Circuit breaker opened",
            service=self.service_name,
            old_state=old_state,
            failure_count=self.stats.failure_count,
            recovery_timeout=self.config.recovery_timeout,
        )

    def _transition_to_half_open(self) -> None:
        old_state = self._set_state(CircuitState.HALF_OPEN)

        logger.info(
            "Circuit breaker half-opened (admitting trial call)",
            service=self.service_name,
            old_state=old_state,
        )

    def _transition_to_closed(self) -> None:
        old_state = self._set_state(CircuitState.CLOSED)
        self.stats.failure_count = 0
        self.stats.opened_at = None

        logger.info(
            "Circuit breaker closed (service recovered)",
            service=self.service_name,
            old_state=old_state,
        )
