"""Main FastAPI application for the VitalWatch monitoring API.

This module sets up the FastAPI application with all routes, middleware,
and configuration. ``create_app`` accepts a prebuilt runtime so tests can
inject fakes; the module-level ``app`` is wired from environment settings.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from vitalwatch import __version__
from vitalwatch.dashboard.api.logging_config import setup_logging
from vitalwatch.dashboard.api.middleware import setup_middleware
from vitalwatch.dashboard.api.routes import health, patients, performance, sessions, websocket
from vitalwatch.dashboard.services.runtime import MonitoringRuntime, build_runtime
from vitalwatch.infrastructure.settings import settings

logger = logging.getLogger(__name__)


def create_app(runtime: Optional[MonitoringRuntime] = None) -> FastAPI:
    """Create the API application.

    Parameters:
        runtime: Prebuilt monitoring runtime (built from settings when omitted)

    Returns:
        FastAPI: Configured application
    """
    if runtime is None:
        runtime = build_runtime(
            config=settings.monitoring,
            broadcast_history_limit=settings.broadcast_history_limit,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Lifespan context manager for startup and shutdown events."""
        logger.info(f"{settings.app_name} API starting up...")
        logger.info("API documentation available at /api/docs")
        await runtime.startup()
        yield
        logger.info(f"{settings.app_name} API shutting down...")
        await runtime.shutdown()

    app = FastAPI(
        title=f"{settings.app_name} Monitoring API",
        description="Real-time vital-sign risk monitoring and alerting",
        version=__version__,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
        lifespan=lifespan
    )
    app.state.runtime = runtime

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Process-Time", "X-Request-ID"],
    )

    setup_middleware(app)

    app.include_router(health.router)
    app.include_router(sessions.router)
    app.include_router(patients.router)
    app.include_router(performance.router)
    app.include_router(websocket.router)

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {
            "message": f"{settings.app_name} Monitoring API",
            "version": __version__,
            "docs": "/api/docs",
            "health": "/api/health"
        }

    return app


def _create_default_app() -> FastAPI:
    setup_logging(use_json=settings.log_json, log_level=settings.log_level)
    return create_app()


app = _create_default_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "vitalwatch.dashboard.api.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower()
    )
