"""
FastAPI application entry point.

Run with:
    uvicorn floodwatch.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# ── Core infrastructure ──
from floodwatch.core.config import settings
from floodwatch.core.logging_config import setup_logging
from floodwatch.core.errors import register_error_handlers
from floodwatch.core.middleware import RequestLoggingMiddleware
from floodwatch.core.scheduler import ThreadingTimerService

# ── Domain ──
from floodwatch.alerts.engine import AlertEngine
from floodwatch.ingestion.weather_service import (
    FallbackWeatherProvider,
    StaticWeatherProvider,
)
from floodwatch.ml.sensor_model import InMemorySensorOracle, default_sensor_nodes

# ── API routers ──
from floodwatch.api.v1.alerts import router as alert_router

# ── Initialise logging ──
setup_logging()
logger = logging.getLogger(__name__)


def create_app(
    *,
    engine: Optional[AlertEngine] = None,
    weather: Optional[StaticWeatherProvider] = None,
    sensors: Optional[InMemorySensorOracle] = None,
) -> FastAPI:
    """
    Build the application. Collaborators default to the in-memory demo
    setup; tests pass their own engine (fake clock, manual timer).
    """
    weather_override = weather or StaticWeatherProvider()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Manage startup and shutdown events."""
        logger.info(
            "Starting %s v%s [%s]",
            settings.APP_NAME, settings.APP_VERSION, settings.ENVIRONMENT,
        )
        yield
        timer = app.state.engine.timer
        if isinstance(timer, ThreadingTimerService):
            timer.shutdown()
        logger.info("Shutting down %s", settings.APP_NAME)

    app = FastAPI(
        title=settings.APP_NAME,
        description=(
            "Community flood alert engine for Guwahati. Clusters citizen "
            "reports, scores them against photos, weather and sensor data, "
            "raises area-wide alerts and lets the community confirm or clear "
            "them."
        ),
        version=settings.APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.state.engine = engine or AlertEngine()
    app.state.weather_override = weather_override
    app.state.weather = FallbackWeatherProvider(weather_override)
    app.state.sensors = sensors or InMemorySensorOracle(default_sensor_nodes())

    # ── Middleware stack (order matters — outermost first) ──
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS if not settings.CORS_ALLOW_ALL else ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    # ── Error handlers ──
    register_error_handlers(app)

    # ── Register routers ──
    app.include_router(alert_router)

    @app.get("/", tags=["root"])
    async def root():
        return {
            "service": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "environment": settings.ENVIRONMENT,
            "docs": "/docs",
        }

    @app.get("/health/live", tags=["health"])
    async def liveness():
        """Liveness probe — is the process alive?"""
        return {"status": "alive"}

    return app


app = create_app()
