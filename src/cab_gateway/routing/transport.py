"""
Transport

Performs the network call to a resolved backend instance and classifies the
result. The router only chooses the address and timeout and interprets the
returned outcome.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

import httpx
import structlog

from .models import ForwardRequest, RoutingOutcome, UpstreamResponse

logger = structlog.get_logger()

GATEWAY_NAME = "cab-booking-gateway"

# Headers the HTTP client sets itself or that only apply to one hop
_HOP_BY_HOP_HEADERS = frozenset(
    {
        "connection",
        "content-length",
        "host",
        "keep-alive",
        "proxy-connection",
        "te",
        "trailer",
        "transfer-encoding",
        "upgrade",
    }
)

# httpx hands back decoded bodies, so encoding headers no longer apply
_STRIPPED_RESPONSE_HEADERS = _HOP_BY_HOP_HEADERS | {"content-encoding"}

# Set by the gateway on every forwarded request
_GATEWAY_HEADERS = frozenset({"x-gateway", "x-request-id", "x-forwarded-for"})


class Transport(ABC):
    """Forwards one request to one backend instance."""

    @abstractmethod
    async def send(
        self, address: str, request: ForwardRequest, timeout: float
    ) -> RoutingOutcome:
        """
        Forward a request.

        Args:
            address: Instance base URL
            request: Request to forward
            timeout: Seconds before the call counts as timed out

        Returns:
            Classified outcome; implementations must not raise for network
            errors
        """

    async def close(self) -> None:
        """Release transport resources."""


class HttpxTransport(Transport):
    """
    Transport built on a shared ``httpx.AsyncClient``.

    Any HTTP response, whatever its status code, is a success: the breaker
    tracks whether the backend process answers, not business-level errors.
    """

    def __init__(self, client: httpx.AsyncClient | None = None):
        """
        Initialize transport.

        Args:
            client: HTTP client to use; one is created if omitted
        """
        self._client = client or httpx.AsyncClient()

    async def send(
        self, address: str, request: ForwardRequest, timeout: float
    ) -> RoutingOutcome:
        url = f"{address.rstrip('/')}{request.path}"
        if request.query:
            url = f"{url}?{request.query}"

        try:
            response = await self._client.request(
                method=request.method,
                url=url,
                headers=self._forward_headers(request),
                content=request.body or None,
                timeout=timeout,
            )
        except httpx.TimeoutException as e:
            logger.warning("Upstream request timed out", url=url, error=str(e))
            return RoutingOutcome.timeout(str(e) or "request timed out")
        except httpx.HTTPError as e:
            logger.warning(
                "Upstream transport error",
                url=url,
                error=str(e),
                error_type=type(e).__name__,
            )
            return RoutingOutcome.transport_failure(str(e) or type(e).__name__)

        return RoutingOutcome.success(
            UpstreamResponse(
                status_code=response.status_code,
                headers=[
                    (k, v)
                    for k, v in response.headers.multi_items()
                    if k.lower() not in _STRIPPED_RESPONSE_HEADERS
                ],
                content=response.content,
            )
        )

    @staticmethod
    def _forward_headers(request: ForwardRequest) -> list[tuple[str, str]]:
        # Repeated headers are kept as separate pairs
        headers = [
            (k, v)
            for k, v in request.headers
            if k.lower() not in _HOP_BY_HOP_HEADERS and k.lower() not in _GATEWAY_HEADERS
        ]
        headers.append(("X-Gateway", GATEWAY_NAME))
        headers.append(("X-Request-ID", request.request_id or "unknown"))
        if request.client_ip:
            headers.append(("X-Forwarded-For", request.client_ip))
        return headers

    async def close(self) -> None:
        """Close HTTP client and cleanup resources."""
        await self._client.aclose()
