"""FastAPI application factory for the local proxy server."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import httpx
import structlog
from fastapi import FastAPI
from structlog import get_logger

from claude_multi_auth import __version__
from claude_multi_auth.api.middleware.errors import setup_error_handlers
from claude_multi_auth.api.routes.proxy import router as proxy_router
from claude_multi_auth.api.routes.status import router as status_router
from claude_multi_auth.config.settings import Settings, get_settings
from claude_multi_auth.core.logging import setup_logging
from claude_multi_auth.services.proxy_service import RequestProxy
from claude_multi_auth.storage.base import ConfigStore
from claude_multi_auth.storage.json_file import JsonFileConfigStore


logger = get_logger(__name__)


def create_app(
    settings: Settings | None = None,
    store: ConfigStore | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    """Create the FastAPI application.

    Args:
        settings: Settings (process-wide settings if not provided)
        store: Configuration store (JSON file from settings if not provided)
        transport: httpx transport for upstream calls, for tests

    Returns:
        Configured FastAPI application
    """
    if settings is None:
        settings = get_settings()
    # The CLI configures logging before serving; embedders may not have
    if not structlog.is_configured():
        setup_logging(settings.log_level, settings.log_json)
    if store is None:
        store = JsonFileConfigStore(settings.config_file, settings.config_id)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        async with httpx.AsyncClient(
            timeout=settings.request_timeout, transport=transport
        ) as client:
            app.state.request_proxy = RequestProxy(store, client, settings=settings)
            logger.info(
                "server_started",
                upstream=settings.upstream_base_url,
                config=store.get_location(),
                config_id=settings.config_id,
            )
            yield
            app.state.request_proxy = None
        logger.info("server_stopped")

    app = FastAPI(
        title="claude-multi-auth",
        description="Multi-account OAuth proxy for the Anthropic API",
        version=__version__,
        lifespan=lifespan,
    )

    setup_error_handlers(app)
    app.include_router(status_router)
    app.include_router(proxy_router)

    return app
