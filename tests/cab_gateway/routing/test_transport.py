"""Tests for the httpx transport."""

from __future__ import annotations

import httpx
import pytest

from cab_gateway.routing.models import ForwardRequest, OutcomeKind
from cab_gateway.routing.transport import GATEWAY_NAME, HttpxTransport

RIDE_A = "http://ride-a:3005"


def _transport(handler) -> HttpxTransport:
    return HttpxTransport(httpx.AsyncClient(transport=httpx.MockTransport(handler)))


@pytest.mark.asyncio
async def test_forwards_request_with_gateway_headers() -> None:
    """Test path, query, body and tracing headers reach the backend."""
    captured: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(201, json={"ride": 42})

    transport = _transport(handler)
    request = ForwardRequest(
        method="POST",
        path="/api/rides",
        query="city=lisbon",
        headers=[("Authorization", "Bearer token"), ("Connection", "keep-alive")],
        body=b'{"pickup": "A"}',
        client_ip="10.0.0.7",
        request_id="req-123",
    )

    outcome = await transport.send(RIDE_A, request, timeout=1.0)

    assert outcome.kind == OutcomeKind.SUCCESS
    assert outcome.response.status_code == 201

    sent = captured[0]
    assert sent.method == "POST"
    assert str(sent.url) == "http://ride-a:3005/api/rides?city=lisbon"
    assert sent.content == b'{"pickup": "A"}'
    assert sent.headers["authorization"] == "Bearer token"
    assert sent.headers["x-gateway"] == GATEWAY_NAME
    assert sent.headers["x-request-id"] == "req-123"
    assert sent.headers["x-forwarded-for"] == "10.0.0.7"
    await transport.close()


@pytest.mark.asyncio
async def test_error_status_is_success() -> None:
    """Test a 5xx response is a successful transport outcome."""
    transport = _transport(lambda request: httpx.Response(503, content=b"busy"))

    outcome = await transport.send(RIDE_A, ForwardRequest(method="GET", path="/"), 1.0)

    assert outcome.is_success
    assert outcome.response.status_code == 503
    assert outcome.response.content == b"busy"
    await transport.close()


@pytest.mark.asyncio
async def test_connection_error_is_transport_failure() -> None:
    """Test connection errors are classified, not raised."""

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    transport = _transport(handler)

    outcome = await transport.send(RIDE_A, ForwardRequest(method="GET", path="/"), 1.0)

    assert outcome.kind == OutcomeKind.TRANSPORT_FAILURE
    assert "connection refused" in outcome.error
    await transport.close()


@pytest.mark.asyncio
async def test_client_timeout_is_timeout() -> None:
    """Test httpx timeouts are classified as timeouts."""

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("read timed out", request=request)

    transport = _transport(handler)

    outcome = await transport.send(RIDE_A, ForwardRequest(method="GET", path="/"), 1.0)

    assert outcome.kind == OutcomeKind.TIMEOUT
    await transport.close()


@pytest.mark.asyncio
async def test_response_hop_headers_stripped() -> None:
    """Test per-hop response headers are not passed back."""
    transport = _transport(
        lambda request: httpx.Response(
            200, headers={"X-Ride-Id": "42", "Keep-Alive": "timeout=5"}
        )
    )

    outcome = await transport.send(RIDE_A, ForwardRequest(method="GET", path="/"), 1.0)

    headers = {k.lower(): v for k, v in outcome.response.headers}
    assert headers["x-ride-id"] == "42"
    assert "keep-alive" not in headers
    await transport.close()


@pytest.mark.asyncio
async def test_repeated_headers_preserved() -> None:
    """Test repeated headers travel as separate values in both directions."""
    captured: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(
            200, headers=[("Set-Cookie", "session=abc"), ("Set-Cookie", "theme=dark")]
        )

    transport = _transport(handler)
    request = ForwardRequest(
        method="GET",
        path="/api/rides",
        headers=[
            ("Accept", "application/json"),
            ("Accept", "text/plain"),
            ("X-Gateway", "spoofed"),
        ],
        request_id="req-9",
    )

    outcome = await transport.send(RIDE_A, request, timeout=1.0)

    cookies = [v for k, v in outcome.response.headers if k.lower() == "set-cookie"]
    assert cookies == ["session=abc", "theme=dark"]
    assert captured[0].headers.get_list("accept") == ["application/json", "text/plain"]
    assert captured[0].headers.get_list("x-gateway") == [GATEWAY_NAME]
    await transport.close()
