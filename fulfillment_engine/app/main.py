"""
FastAPI Application Entry Point.

Fulfillment Orchestration Engine: order splitting, courier assignment,
shipping pricing, delivery tracking and courier settlements.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fulfillment_engine.app.core.config import settings
from fulfillment_engine.app.api.v1.router import router as api_v1_router
from fulfillment_engine.app.core.observability import ObservabilityMiddleware
from fulfillment_engine.app.core.redis_client import ping_redis
from fulfillment_engine.app.db.session import engine, Base
from fulfillment_engine.app.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler
)

# Import models to ensure they are registered with Base
from fulfillment_engine.app.models.zone import Zone
from fulfillment_engine.app.models.hub import Hub, HubCourier
from fulfillment_engine.app.models.courier import Courier
from fulfillment_engine.app.models.shipping_rate import ShippingRate
from fulfillment_engine.app.models.order import Order, SubOrder
from fulfillment_engine.app.models.tracking_event import TrackingEvent
from fulfillment_engine.app.models.settlement import Settlement, SettlementItem
from fulfillment_engine.app.models.notification import NotificationOutbox
from fulfillment_engine.app.models.audit_log import AuditLog


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for application startup/shutdown.
    
    Creates database tables on startup and disposes the engine on shutdown.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await engine.dispose()

# Initialize FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    debug=settings.debug,
    description="Order splitting, courier assignment, shipping pricing, tracking and courier settlements",
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
        dict: Status, application information and Redis reachability
    """
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.api_version,
        "redis": await ping_redis(),
    }


# Include API v1 router
app.include_router(api_v1_router, prefix=f"/{settings.api_version}")


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": "Fulfillment Orchestration Engine",
        "docs": "/docs",
        "health": "/health",
    }
