"""
FastAPI Application

Entry point for the footfall rollup API: range statistics over cached
daily/hourly rollups, raw visitor listing, store listing and manual refresh.
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

from footfall.config import get_settings
from footfall.config.logging import configure_logging
from footfall.database.connection import close_database, get_session_factory, init_database
from footfall.database.event_store import EventStore
from footfall.database.rollup_store import RollupStore
from footfall.domain import SystemClock
from footfall.ingestion.upstream_client import DisplayForceClient
from footfall.orchestration.rollup_cache import create_rollup_cache
from footfall.serving.api.middleware import RequestLoggingMiddleware
from footfall.serving.api.routes import (
    admin_router,
    health_router,
    stats_router,
    stores_router,
    visitors_router,
)

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    settings = get_settings()
    configure_logging()

    logger.info("Starting footfall rollup API", environment=settings.app_env)

    await init_database()
    session_factory = get_session_factory()

    clock = SystemClock()
    client = DisplayForceClient.from_settings(settings.upstream)
    event_store = EventStore(session_factory)
    cache, scheduler = create_rollup_cache(
        client=client,
        rollups=RollupStore(session_factory, clock=clock),
        events=event_store,
        settings=settings,
        clock=clock,
    )

    app.state.session_factory = session_factory
    app.state.upstream_client = client
    app.state.event_store = event_store
    app.state.rollup_cache = cache
    app.state.scheduler = scheduler

    scheduled = settings.rollup.scheduler_enabled and client.is_configured
    if settings.rollup.scheduler_enabled and not client.is_configured:
        logger.warning("DISPLAYFORCE_TOKEN not set, scheduled refreshes disabled")
    await scheduler.start(scheduled=scheduled)

    yield

    logger.info("Shutting down...")
    await scheduler.stop()
    await close_database()


def create_app() -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title="Footfall Rollup API",
        description="Cached visitor analytics over the DisplayForce API",
        version=settings.version,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.add_middleware(RequestLoggingMiddleware)

    app.include_router(health_router, prefix="/api/v1", tags=["Health"])
    app.include_router(stats_router, prefix="/api/v1/stats", tags=["Stats"])
    app.include_router(visitors_router, prefix="/api/v1/visitors", tags=["Visitors"])
    app.include_router(stores_router, prefix="/api/v1/stores", tags=["Stores"])
    app.include_router(admin_router, prefix="/api/v1/admin", tags=["Admin"])

    @app.get("/api/v1/info")
    async def api_info():
        """API information endpoint."""
        return {
            "name": settings.app_name,
            "version": settings.version,
            "environment": settings.app_env,
            "documentation": "/docs",
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
