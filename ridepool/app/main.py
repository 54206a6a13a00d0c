"""
FastAPI Application Entry Point.

This is the main application file for the event ride-share backend.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from ridepool.app.core.config import settings
from ridepool.app.core.logging import configure_logging
from ridepool.app.core.observability import ObservabilityMiddleware
from ridepool.app.core.redis_client import close_redis, ping_redis
from ridepool.app.api.v1.router import router as api_v1_router
from ridepool.app.db.session import engine, Base
from ridepool.app.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler
)

# Import models to ensure they are registered with Base
from ridepool.app.models.account import Account
from ridepool.app.models.event import Event
from ridepool.app.models.offer import Offer, OfferLeg
from ridepool.app.models.ride_request import RideRequest
from ridepool.app.models.join_request import JoinRequest

logger = configure_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for application startup/shutdown.

    Creates database tables on startup; releases Redis and the
    connection pool on shutdown.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Application started", extra={"version": settings.api_version})
    yield
    await close_redis()
    await engine.dispose()


# Initialize FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    debug=settings.debug,
    description="Ride sharing for events: drivers offer seats, passengers ask to join",
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

    Redis only backs the geocode cache, so its absence is reported but
    does not make the service unhealthy.
    """
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.api_version,
        "cache": "ok" if await ping_redis() else "unavailable",
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
        "message": "Welcome to the Ridepool API",
        "docs": "/docs",
        "health": "/health",
    }
