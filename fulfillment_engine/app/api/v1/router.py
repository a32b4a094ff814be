"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from fulfillment_engine.app.api.v1.endpoints import (
    shipping, orders, tracking, settlements, configuration, activity
)

router = APIRouter()

# Shipping estimates
router.include_router(shipping.router)

# Order ingest, lookup and courier assignment
router.include_router(orders.router)

# Tracking updates and courier webhooks
router.include_router(tracking.router)

# Courier settlements
router.include_router(settlements.router)

# Zones, hubs, couriers and rates
router.include_router(configuration.router)

# Audit trail and notification outbox
router.include_router(activity.router)
