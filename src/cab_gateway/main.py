"""
Gateway - FastAPI Application

Main application entry point for the cab booking API gateway. Wires the
service registry, request router and health checker into one application
and exposes proxy, status and administrative endpoints.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import httpx
import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.responses import Response

from cab_gateway.config import GatewaySettings, settings as default_settings
from cab_gateway.exceptions import (
    ConfigurationError,
    NotFoundError,
    ServiceUnavailableError,
    UnavailableReason,
)
from cab_gateway.middleware.logging import logging_middleware
from cab_gateway.models.routing import UnavailableResponse
from cab_gateway.routes import admin, health, proxy
from cab_gateway.routing.health_checker import HealthChecker
from cab_gateway.routing.router import RequestRouter
from cab_gateway.routing.transport import HttpxTransport, Transport
from cab_gateway.services import (
    ServiceDefinition,
    build_registry,
    load_service_definitions,
)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    logger = structlog.get_logger()
    gateway_settings: GatewaySettings = app.state.settings

    try:
        logger.info(
            "Starting API Gateway",
            version=gateway_settings.GATEWAY_VERSION,
            name=gateway_settings.GATEWAY_NAME,
            services=app.state.registry.list_services(),
        )

        if gateway_settings.HEALTH_CHECK_ENABLED:
            await app.state.health_checker.start()

        yield
    finally:
        logger.info("Shutting down API Gateway")

        await app.state.health_checker.close()
        await app.state.router.transport.close()
        logger.info("Backend clients closed")


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ServiceUnavailableError)
    async def service_unavailable_handler(
        request: Request, exc: ServiceUnavailableError
    ) -> JSONResponse:
        headers = {}
        if exc.reason == UnavailableReason.CIRCUIT_OPEN and exc.retry_after is not None:
            headers["Retry-After"] = str(max(1, round(exc.retry_after)))

        body = UnavailableResponse(service=exc.service_name, reason=exc.reason.value)
        return JSONResponse(status_code=503, content=body.model_dump(), headers=headers)

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": exc.message})

    @app.exception_handler(ConfigurationError)
    async def configuration_error_handler(
        request: Request, exc: ConfigurationError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=400, content={"detail": exc.message, "details": exc.details}
        )


def create_app(
    gateway_settings: GatewaySettings | None = None,
    service_definitions: dict[str, ServiceDefinition] | None = None,
    transport: Transport | None = None,
    health_client: httpx.AsyncClient | None = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        gateway_settings: Settings; the environment-loaded settings if omitted
        service_definitions: Service table; loaded from settings if omitted
        transport: Transport for forwarding; httpx-based if omitted
        health_client: HTTP client for health probes
    """
    gateway_settings = gateway_settings or default_settings
    if service_definitions is None:
        service_definitions = load_service_definitions(gateway_settings.SERVICES_FILE)

    registry = build_registry(service_definitions, gateway_settings)

    app = FastAPI(
        title=gateway_settings.GATEWAY_NAME,
        description="API gateway routing ride-hailing traffic to backend services",
        version=gateway_settings.GATEWAY_VERSION,
        docs_url="/docs" if gateway_settings.DEBUG else None,
        redoc_url="/redoc" if gateway_settings.DEBUG else None,
        lifespan=lifespan,
    )

    app.state.settings = gateway_settings
    app.state.registry = registry
    app.state.router = RequestRouter(registry, transport or HttpxTransport())
    app.state.health_checker = HealthChecker(
        registry,
        interval=gateway_settings.HEALTH_CHECK_INTERVAL,
        probe_timeout=gateway_settings.HEALTH_CHECK_TIMEOUT,
        client=health_client,
    )

    _register_exception_handlers(app)

    @app.middleware("http")
    async def add_logging_middleware(request, call_next):
        return await logging_middleware(request, call_next)

    app.include_router(health.router, tags=["health"])
    app.include_router(admin.status_router, tags=["status"])

    if gateway_settings.ADMIN_ENABLED:
        app.include_router(admin.admin_router, tags=["admin"])

    if gateway_settings.ENABLE_METRICS:

        @app.get("/metrics", include_in_schema=False)
        async def metrics() -> Response:
            return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Catch-all proxy must come last
    app.include_router(proxy.router, tags=["proxy"])

    return app
