"""Realtime service main application.

The lifespan is the composition root: it builds the connection hub and the
realtime client factory, and every WebSocket client gets its own
RealtimeService and RealtimeSession built from them.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from functools import partial
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from fitcenter_realtime.config import get_settings
from fitcenter_realtime.observability import get_logger, setup_logging

from .api import health, realtime, websocket
from .services.hub import ConnectionHub
from .services.transport import create_realtime_client

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Handles startup and shutdown of shared resources.
    """
    settings = get_settings()
    setup_logging(log_level=settings.log_level, log_format=settings.log_format)

    logger.info(
        "Starting realtime service",
        version=settings.app_version,
    )

    if not settings.supabase.is_configured:
        logger.warning("Supabase is not configured; WebSocket sessions will be refused")

    app.state.hub = ConnectionHub(max_queue_size=settings.realtime.client_queue_size)
    if not hasattr(app.state, "client_factory"):
        app.state.client_factory = partial(create_realtime_client, settings.supabase)

    logger.info("Realtime service ready")

    yield

    logger.info(
        "Shutting down realtime service",
        connected_clients=app.state.hub.get_client_count(),
    )
    await app.state.hub.shutdown()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Fitness Center Realtime",
        description="Realtime notifications, presence and broadcast for the fitness center",
        version=settings.app_version,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.is_development else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(health.router, tags=["Health"])
    app.include_router(realtime.router, prefix="/api/v1", tags=["Realtime"])
    app.include_router(websocket.router, tags=["WebSocket"])

    return app


app = create_app()
