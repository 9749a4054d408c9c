"""FastAPI application factory for chatrelay."""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

from chatrelay import __version__
from chatrelay.adapters import AdapterRegistry
from chatrelay.config.logging import get_logger, init_logging
from chatrelay.config.settings import Settings, get_settings
from chatrelay.events import get_event_emitter
from chatrelay.listener.channel import close_connection_pools
from chatrelay.listener.tasks import BackgroundTaskSupervisor

logger = get_logger("web")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown."""
    init_logging()
    await app.state.adapters.initialize()
    logger.info(f"chatrelay {__version__} ready (platforms: {', '.join(app.state.adapters.platforms) or 'none'})")

    yield

    # Coordination tasks may still be waiting out their grace period
    settings: Settings = app.state.settings
    drain_timeout = (settings.gateway_max_duration_ms + settings.listener_grace_period_ms) / 1000
    await app.state.background.drain(timeout=drain_timeout)
    await close_connection_pools()
    logger.info("Shutdown complete")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()

    app = FastAPI(
        title="chatrelay",
        description="Discord Gateway keep-alive and event relay",
        version=__version__,
        lifespan=lifespan,
    )

    # Shared per-process state, read by the routes
    from chatrelay.web.routes.gateway import build_gateway_listener

    app.state.settings = settings
    app.state.adapters = AdapterRegistry(settings)
    app.state.background = BackgroundTaskSupervisor()
    app.state.events = get_event_emitter()
    app.state.gateway_listener = build_gateway_listener(settings)

    from chatrelay.web.routes.gateway import router as gateway_router
    from chatrelay.web.routes.webhooks import router as webhooks_router

    app.include_router(gateway_router, tags=["gateway"])
    app.include_router(webhooks_router, tags=["webhooks"])

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "service": "chatrelay",
            "redis_configured": bool(settings.redis_url),
            "platforms": app.state.adapters.platforms,
            "background_tasks": app.state.background.pending,
        }

    return app
