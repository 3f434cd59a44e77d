"""
Request Router

Per-request orchestration: circuit breaker admission, instance selection,
bounded forwarding through the transport, outcome classification and
feedback into breaker and instance health, with retries.
"""

from __future__ import annotations

import asyncio

import structlog

from cab_gateway.exceptions import ServiceUnavailableError, UnavailableReason
from cab_gateway.monitoring.metrics import REJECTED_REQUESTS, ROUTING_ATTEMPTS

from .models import ForwardRequest, RoutingOutcome, UpstreamResponse
from .registry import ServiceRegistry
from .transport import Transport

logger = structlog.get_logger()


class RequestRouter:
    """
    Routes requests for logical services to backend instances.

    Every attempt updates breaker and instance health; only the final
    attempt's outcome reaches the caller.
    """

    def __init__(self, registry: ServiceRegistry, transport: Transport):
        """
        Initialize request router.

        Args:
            registry: Service registry
            transport: Transport performing the network calls
        """
        self.registry = registry
        self.transport = transport

    async def route(self, service_name: str, request: ForwardRequest) -> UpstreamResponse:
        """
        Route a request to a healthy instance of a service.

        Args:
            service_name: Target logical service
            request: Request to forward

        Returns:
            Backend response (any status code)

        Raises:
            NotFoundError: If the service is unknown
            ServiceUnavailableError: If the circuit is open, no instance is
                healthy, or every attempt failed
        """
        config = self.registry.get_config(service_name)
        breaker = self.registry.get_breaker(service_name)
        selector = self.registry.get_selector(service_name)

        last_outcome: RoutingOutcome | None = None

        for attempt in range(config.max_retries + 1):
            permit = breaker.acquire()
            if permit is None:
                raise self._unavailable(
                    service_name,
                    UnavailableReason.CIRCUIT_OPEN,
                    attempt,
                    retry_after=breaker.time_until_retry(),
                )

            instance = selector.next()
            if instance is None:
                breaker.release(permit)
                raise self._unavailable(
                    service_name, UnavailableReason.NO_HEALTHY_INSTANCES, attempt
                )

            outcome: RoutingOutcome | None = None
            try:
                outcome = await self._forward(instance.address, request, config.request_timeout)
            finally:
                if outcome is None:
                    # Caller went away; the attempt never produced an outcome
                    breaker.release(permit)

            ROUTING_ATTEMPTS.labels(service=service_name, outcome=outcome.kind.value).inc()

            if outcome.is_success:
                breaker.record_success(permit)
                self.registry.mark_instance_healthy(service_name, instance.address)

                logger.info(
                    "Request proxied successfully",
                    service=service_name,
                    address=instance.address,
                    path=request.path,
                    status_code=outcome.response.status_code,
                    attempt=attempt,
                )
                return outcome.response

            breaker.record_failure(permit)
            self.registry.mark_instance_unhealthy(service_name, instance.address)
            last_outcome = outcome

            logger.warning(
                "Proxy attempt failed",
                service=service_name,
                address=instance.address,
                outcome=outcome.kind.value,
                error=outcome.error,
                attempt=attempt,
                max_retries=config.max_retries,
            )

        raise self._unavailable(
            service_name,
            UnavailableReason.RETRIES_EXHAUSTED,
            config.max_retries,
            details={
                "last_outcome": last_outcome.kind.value if last_outcome else None,
                "error": last_outcome.error if last_outcome else None,
            },
        )

    async def _forward(
        self, address: str, request: ForwardRequest, timeout: float
    ) -> RoutingOutcome:
        """
        Call the transport, bounded by the request timeout.

        A call exceeding the timeout is cancelled, so a late response is
        never observed. Unexpected transport errors count as transport
        failures.
        """
        try:
            return await asyncio.wait_for(
                self.transport.send(address, request, timeout), timeout=timeout
            )
        except TimeoutError:
            return RoutingOutcome.timeout(f"no response within {timeout}s")
        except Exception as e:
            logger.error(
                "Unexpected transport error",
                address=address,
                error=str(e),
                error_type=type(e).__name__,
            )
            return RoutingOutcome.transport_failure(str(e) or type(e).__name__)

    def _unavailable(
        self,
        service_name: str,
        reason: UnavailableReason,
        attempt: int,
        retry_after: float | None = None,
        details: dict | None = None,
    ) -> ServiceUnavailableError:
        REJECTED_REQUESTS.labels(service=service_name, reason=reason.value).inc()
        logger.error(
            "Service unavailable",
            service=service_name,
            reason=reason.value,
            attempt=attempt,
            retry_after=retry_after,
        )
        return ServiceUnavailableError(
            service_name, reason, retry_after=retry_after, details=details
        )
