"""
Logging Middleware

Request/response logging with structured logging and request correlation.
"""

from __future__ import annotations

import time
import uuid
from collections.abc import Callable

import structlog
from fastapi import Request, Response

logger = structlog.get_logger()


async def logging_middleware(request: Request, call_next: Callable) -> Response:
    """
    Add structured logging and request tracing.

    Reuses an inbound X-Request-ID when present so the id travels to the
    backend services unchanged.
    """
    trace_id = request.headers.get("x-request-id") or str(uuid.uuid4())
    request.state.request_id = trace_id

    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(
        trace_id=trace_id,
        method=request.method,
        url=str(request.url),
        client_host=request.client.host if request.client else None,
    )

    start_time = time.time()

    try:
        response = await call_next(request)

        logger.info(
            "Request completed",
            status_code=response.status_code,
            duration=time.time() - start_time,
        )

        response.headers["X-Trace-ID"] = trace_id
        response.headers["X-Request-ID"] = trace_id

        return response

    except Exception as exc:
        logger.error(
            "Request failed",
            error=str(exc),
            error_type=type(exc).__name__,
            duration=time.time() - start_time,
            exc_info=True,
        )
        raise
