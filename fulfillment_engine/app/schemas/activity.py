"""
Activity Schemas.

Audit trail entries and queued customer notifications.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, Dict, Any, List


class AuditLogResponse(BaseModel):
    """Schema for audit log entry."""
    id: int
    action: str
    actor: Optional[str]
    entity_type: Optional[str]
    entity_id: Optional[int]
    meta_data: Optional[Dict[str, Any]]
    timestamp: datetime

    class Config:
        from_attributes = True


class AuditTrailResponse(BaseModel):
    logs: List[AuditLogResponse]
    total: int


class OutboxNotificationResponse(BaseModel):
    id: int
    order_id: int
    channel: str
    recipient: Optional[str]
    new_status: str
    old_status: Optional[str]
    metadata_payload: Optional[Dict[str, Any]]
    is_sent: bool
    created_at: datetime
    sent_at: Optional[datetime]

    class Config:
        from_attributes = True


class MarkSentRequest(BaseModel):
    notification_ids: List[int] = Field(..., min_length=1)


class MarkSentResponse(BaseModel):
    updated: int
