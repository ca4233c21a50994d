"""Proxy FastAPI application factory.

The create_app() factory is the single entry point for building the ASGI
application. It builds the startup-time tables (route table, header
allowlist), the shared outbound client, the middleware stack, the
reserved routes, and the catch-all proxy route.

Usage:
    # Local development
    from api_proxy import create_app, ProxySettings
    app = create_app(ProxySettings())

    # Production (environment-driven, used by the CLI)
    uvicorn api_proxy.main:create_app_from_env --factory

    # Testing (simulated upstream)
    forwarder = Forwarder.from_settings(settings, transport=httpx.MockTransport(handler))
    app = create_app(settings, forwarder=forwarder)
"""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse
from starlette.responses import Response

from .limits import BodySizeLimitMiddleware
from .landing import render_landing_page
from .observability.logging import get_logger
from .observability.metrics import metrics_text
from .observability.middleware import (
    MetricsMiddleware,
    RequestIdMiddleware,
    RequestLoggingMiddleware,
)
from .routing.forwarder import Forwarder
from .routing.headers import HeaderFilter
from .routing.proxy import proxy_request
from .routing.table import RouteTable
from .settings import ProxySettings

logger = get_logger(__name__)

SERVICE_NAME = "api-proxy"

ROBOTS_TXT = "User-agent: *\nDisallow: /"

# Exact-match paths served by the application itself, never proxied.
RESERVED_PATHS: frozenset[str] = frozenset({
    "/",
    "/index.html",
    "/robots.txt",
    "/health",
})
METRICS_PATH = "/metrics"


def create_app(
    settings: ProxySettings | None = None,
    *,
    forwarder: Forwarder | None = None,
) -> FastAPI:
    """Create a configured proxy application.

    Args:
        settings: Application settings. Defaults to ``ProxySettings()``.
        forwarder: Outbound forwarder override. When None, one is built
            from ``settings``.

    Returns:
        Configured FastAPI application ready for uvicorn.

    Raises:
        ValueError: If settings validation fails or the route table is
            malformed.
    """
    if settings is None:
        settings = ProxySettings()

    errors = settings.validate()
    if errors:
        raise ValueError(
            "Proxy settings validation failed:\n"
            + "\n".join(f"  - {e}" for e in errors)
        )

    route_table = RouteTable.from_mapping(settings.routes)
    header_filter = HeaderFilter(settings.allowed_headers)
    if forwarder is None:
        forwarder = Forwarder.from_settings(settings)
    landing_page = render_landing_page(route_table)

    reserved_paths = RESERVED_PATHS
    if settings.metrics_enabled:
        reserved_paths = reserved_paths | {METRICS_PATH}

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "proxy_startup",
            routes=len(route_table),
            request_timeout=settings.request_timeout,
            connect_timeout=settings.connect_timeout,
            max_body_size_mb=settings.max_body_size_mb,
        )
        try:
            yield
        finally:
            await forwarder.aclose()
            logger.info("proxy_shutdown")

    app = FastAPI(
        title="API Proxy",
        description="Prefix-routed reverse proxy for upstream HTTP APIs",
        version="0.1.0",
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    # Startup-built, read-only for the process lifetime.
    app.state.settings = settings
    app.state.route_table = route_table
    app.state.header_filter = header_filter
    app.state.forwarder = forwarder
    app.state.reserved_paths = reserved_paths

    # ── Middleware stack (last added runs first) ─────────────────
    # Order of execution: RequestID -> Logging -> Metrics -> BodySize -> route
    app.add_middleware(BodySizeLimitMiddleware, max_body_size=settings.max_body_size)
    if settings.metrics_enabled:
        app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIdMiddleware)

    # ── Reserved routes ─────────────────────────────────────────

    @app.get("/", response_class=HTMLResponse)
    @app.get("/index.html", response_class=HTMLResponse)
    async def index():
        return HTMLResponse(landing_page)

    @app.get("/robots.txt", response_class=PlainTextResponse)
    async def robots():
        return PlainTextResponse(ROBOTS_TXT)

    @app.get("/health")
    async def health():
        return JSONResponse({"status": "healthy", "service": SERVICE_NAME})

    if settings.metrics_enabled:
        @app.get(METRICS_PATH)
        async def metrics():
            body, content_type = metrics_text()
            return Response(content=body, media_type=content_type)

    # ── Proxy (every method, every other path) ──────────────────
    app.add_route("/{path:path}", proxy_request, include_in_schema=False)

    return app


def create_app_from_env() -> FastAPI:
    """Factory for ``uvicorn --factory``: settings come from the environment."""
    from .observability.logging import configure_logging

    settings = ProxySettings.from_env()
    configure_logging(
        level=settings.log_level,
        json_output=settings.log_format == "json",
    )
    return create_app(settings)
