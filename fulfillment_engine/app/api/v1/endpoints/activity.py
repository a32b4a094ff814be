"""
Activity API Endpoints.

Audit trail listing and the notification outbox consumed by the email sender.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

from fulfillment_engine.app.api.deps import get_outbox_notifier
from fulfillment_engine.app.db.session import get_db
from fulfillment_engine.app.schemas.activity import (
    AuditLogResponse, AuditTrailResponse, MarkSentRequest, MarkSentResponse, OutboxNotificationResponse
)
from fulfillment_engine.app.services.audit import get_audit_trail
from fulfillment_engine.app.services.notification_service import OutboxNotifier

router = APIRouter(tags=["Activity"])


@router.get("/activity-logs", response_model=AuditTrailResponse)
async def list_activity_logs(
    entity_type: str = Query(None, description="order, sub_order, settlement, zone, hub, courier or rate"),
    entity_id: int = Query(None, description="Filter by record ID"),
    action: str = Query(None, description="Filter by action type"),
    limit: int = Query(100, ge=1, le=500, description="Maximum records to return"),
    db: AsyncSession = Depends(get_db)
):
    """
    Get audit trail with optional filtering, most recent first.
    """
    logs = await get_audit_trail(
        db=db,
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        limit=limit
    )
    
    return AuditTrailResponse(
        logs=[AuditLogResponse.model_validate(log) for log in logs],
        total=len(logs)
    )


@router.get("/notifications/outbox", response_model=List[OutboxNotificationResponse])
async def list_pending_notifications(
    limit: int = Query(100, ge=1, le=500),
    outbox: OutboxNotifier = Depends(get_outbox_notifier)
):
    """Unsent status notifications, oldest first."""
    return await outbox.pending(limit)


@router.post("/notifications/outbox/mark-sent", response_model=MarkSentResponse)
async def mark_notifications_sent(
    data: MarkSentRequest,
    outbox: OutboxNotifier = Depends(get_outbox_notifier)
):
    """Flag notifications as handed off to the sender."""
    return MarkSentResponse(updated=await outbox.mark_sent(data.notification_ids))
