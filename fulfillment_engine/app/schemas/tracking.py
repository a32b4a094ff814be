"""
Tracking Pydantic schemas.

Operator tracking updates and courier webhook payloads.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, Dict, Any
from fulfillment_engine.app.models.enums import SubOrderStatus, TrackingSource


class TrackingEventCreate(BaseModel):
    """Schema for recording a status report against a sub-order."""
    status: SubOrderStatus
    description: Optional[str] = Field(None, max_length=500)
    location: Optional[str] = Field(None, max_length=200)
    event_time: Optional[datetime] = Field(None, description="Defaults to now (UTC)")
    source: TrackingSource = TrackingSource.API
    actor_type: str = Field(default="operator", max_length=50)


class CourierWebhookPayload(BaseModel):
    """Status update pushed by a courier."""
    tracking_number: str = Field(..., min_length=1, max_length=100)
    status: str = Field(..., min_length=1, max_length=50, description="Courier status label, e.g. 'Out for Delivery'")
    description: Optional[str] = Field(None, max_length=500)
    location: Optional[str] = Field(None, max_length=200)
    timestamp: Optional[datetime] = None
    data: Optional[Dict[str, Any]] = None


class CourierWebhookAck(BaseModel):
    received: bool = True
    processed: bool
    duplicate: bool = False
    sub_order_id: Optional[int] = None
    status: Optional[SubOrderStatus] = None
