"""
FastAPI Application Entry Point.

This is the main application file for the SafeRoute monitoring backend.
"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from saferoute.app.core.config import settings
from saferoute.app.api.v1.router import router as api_v1_router
from saferoute.app.core.observability import ObservabilityMiddleware, configure_logging
from saferoute.app.core.redis_client import ping_redis, close_redis
from saferoute.app.db.session import engine, Base
from saferoute.app.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler
)
from fastapi import HTTPException
from saferoute.app.services.dispatcher import AlertDispatcher
from saferoute.app.services.messaging import build_provider
from saferoute.app.services.realtime import RealtimeBroadcaster
from saferoute.app.services.tracking_service import TrackingService

# Import models to ensure they are registered with Base
from saferoute.app.models.user import User  # noqa: F401
from saferoute.app.models.audit_log import AuditLog  # noqa: F401
from saferoute.app.models.safe_circle import SafeCircle, CircleMember  # noqa: F401
from saferoute.app.models.route import Route, RoutePath, RoutePathPoint  # noqa: F401
from saferoute.app.models.trip import Trip  # noqa: F401
from saferoute.app.models.location_sample import LocationSample  # noqa: F401
from saferoute.app.models.alert import Alert  # noqa: F401
from saferoute.app.models.alert_delivery import AlertDelivery  # noqa: F401

logger = logging.getLogger("saferoute.app")


def build_tracking_service(provider=None, broadcaster=None) -> TrackingService:
    """Wire the dispatcher and tracking service from settings."""
    broadcaster = broadcaster or RealtimeBroadcaster()
    dispatcher = AlertDispatcher(provider or build_provider(), broadcaster=broadcaster)
    return TrackingService(dispatcher, broadcaster=broadcaster)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for application startup/shutdown.

    1. Creates database tables on startup.
    2. Builds the tracking service and resumes sessions of ACTIVE trips.
    3. Stops every tracking session and closes the provider and Redis on shutdown.
    """
    configure_logging()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    tracking = build_tracking_service()
    app.state.tracking = tracking
    resumed = await tracking.resume_active_trips()
    logger.info("Started with %d resumed tracking session(s)", resumed)
    yield
    await tracking.shutdown()
    await tracking.dispatcher.provider.aclose()
    await close_redis()


# Initialize FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    debug=settings.debug,
    description="Trip safety monitoring: route adherence, stops, alerts and Safe Circle delivery",
    lifespan=lifespan,
)

app.add_middleware(ObservabilityMiddleware)

# Register global exception handlers
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Health check endpoint.

    Returns:
        dict: Status, application information and tracking load
    """
    tracking = getattr(app.state, "tracking", None)
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.api_version,
        "redis": await ping_redis(),
        "active_sessions": len(tracking.registry) if tracking is not None else 0,
    }


# Include API v1 router
app.include_router(api_v1_router, prefix=f"/{settings.api_version}")


@app.get("/", tags=["Root"])
async def root():
    """
    Root endpoint.

    Returns:
        dict: Welcome message and API documentation links
    """
    return {
        "message": "Welcome to SafeRoute Backend API",
        "docs": "/docs",
        "health": "/health",
    }
