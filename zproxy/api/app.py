"""FastAPI application factory for the zproxy API server."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import httpx
import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from structlog import get_logger

from zproxy import __version__
from zproxy.api.middleware.errors import setup_error_handlers
from zproxy.api.routes.health import router as health_router
from zproxy.api.routes.openai import router as openai_router
from zproxy.config.settings import Settings, get_settings
from zproxy.core.http_client import close_shared_http_client, get_shared_http_client
from zproxy.core.logging import setup_logging


logger = get_logger(__name__)


def create_app(
    settings: Settings | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Optional settings override. If None, uses get_settings().
        http_client: Client for upstream calls. When omitted the process-wide
            shared client is opened on startup and closed on shutdown.

    Returns:
        Configured FastAPI application instance.
    """
    if settings is None:
        settings = get_settings()

    if not structlog.is_configured():
        setup_logging(
            json_logs=settings.logging.format == "json",
            log_level_name=settings.logging.level,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan manager."""
        logger.info(
            "server_starting",
            version=__version__,
            host=settings.server.host,
            port=settings.server.port,
            upstream=settings.upstream.api_endpoint,
            anonymous_mode=settings.upstream.anonymous_mode,
            tool_support=settings.translation.tool_support,
            thinking_mode=settings.translation.thinking_mode,
        )
        app.state.settings = settings
        owns_client = http_client is None
        app.state.http_client = (
            await get_shared_http_client(settings) if owns_client else http_client
        )
        try:
            yield
        finally:
            if owns_client:
                await close_shared_http_client()
            logger.info("server_stopped")

    app = FastAPI(
        title="zproxy",
        description="OpenAI-compatible API server in front of the Z.ai chat service",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors.origins,
        allow_credentials=settings.cors.credentials,
        allow_methods=settings.cors.methods,
        allow_headers=settings.cors.headers,
    )

    setup_error_handlers(app)

    app.include_router(health_router, tags=["health"])
    app.include_router(openai_router, prefix="/v1", tags=["openai"])

    return app
