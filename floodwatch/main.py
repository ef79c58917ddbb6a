"""
FastAPI application entry point.

Run with:
    uvicorn floodwatch.main:app --reload --port 8000

One RefreshScheduler per monitored zone is started in the lifespan and
shares a single aggregator, cache store and connectivity monitor.
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# ── Core infrastructure ──
from floodwatch.core.cache import build_cache_store
from floodwatch.core.config import Settings, get_settings
from floodwatch.core.errors import register_error_handlers
from floodwatch.core.logging_config import get_logger, setup_logging

# ── Domain ──
from floodwatch.risk.aggregator import UnifiedAggregator
from floodwatch.scheduler.events import ConnectivityMonitor
from floodwatch.scheduler.refresh_scheduler import RefreshScheduler

# ── API routers ──
from floodwatch.api.v1.zones import router as zones_router

logger = get_logger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Start zone schedulers on startup, stop them on shutdown."""
        setup_logging()
        logger.info(
            "Starting %s v%s [%s]",
            settings.APP_NAME, settings.APP_VERSION, settings.ENVIRONMENT,
        )

        cache_store = build_cache_store(settings)
        aggregator = UnifiedAggregator(settings)
        schedulers = {
            zone_id: RefreshScheduler(
                zone_id, aggregator, cache_store, app.state.monitor, settings,
            )
            for zone_id in settings.MONITORED_ZONES
        }
        for scheduler in schedulers.values():
            await scheduler.start()
        app.state.schedulers = schedulers
        app.state.aggregator = aggregator

        yield

        for scheduler in schedulers.values():
            await scheduler.stop()
        await aggregator.close()
        await cache_store.close()
        logger.info("Shutting down %s", settings.APP_NAME)

    app = FastAPI(
        title=settings.APP_NAME,
        description=(
            "Zone flood-risk awareness for the Brahmaputra basin. "
            "Aggregates Tomorrow.io, Open-Meteo and IMD warnings, "
            "estimates river levels from rainfall and publishes one "
            "combined risk level per zone."
        ),
        version=settings.APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.monitor = ConnectivityMonitor()
    app.state.aggregator = None
    app.state.schedulers = {}

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(app)
    app.include_router(zones_router)

    @app.get("/", tags=["root"])
    async def root():
        return {
            "service": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "environment": settings.ENVIRONMENT,
            "zones": list(settings.MONITORED_ZONES),
            "docs": "/docs",
        }

    @app.get("/health/live", tags=["health"])
    async def liveness():
        return {"status": "alive"}

    return app


app = create_app()
