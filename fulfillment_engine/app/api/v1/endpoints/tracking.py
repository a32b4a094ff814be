"""
Tracking API Endpoints.

Operator tracking updates and the courier webhook receiver.
"""

import logging
from fastapi import APIRouter, Depends, Path, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from fulfillment_engine.app.api.deps import get_actor, get_tracking_service, get_webhook_deduplicator
from fulfillment_engine.app.db.session import get_db
from fulfillment_engine.app.domain.tracking.tracking_service import TrackingService
from fulfillment_engine.app.schemas.orders import TrackingEventResponse
from fulfillment_engine.app.schemas.tracking import CourierWebhookAck, CourierWebhookPayload, TrackingEventCreate
from fulfillment_engine.app.services.audit import log_event, AuditAction
from fulfillment_engine.app.services.webhook_dedup import WebhookDeduplicator

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Tracking"])


@router.post(
    "/sub-orders/{sub_order_id}/tracking-events",
    response_model=TrackingEventResponse,
    status_code=status.HTTP_201_CREATED
)
async def record_tracking_event(
    event_in: TrackingEventCreate,
    sub_order_id: int = Path(..., description="Sub-order ID"),
    service: TrackingService = Depends(get_tracking_service),
    actor: Optional[str] = Depends(get_actor),
    db: AsyncSession = Depends(get_db)
):
    """
    Record a delivery status report for a sub-order.
    
    409 ERR_TRACKING_TRANSITION when strict tracking is enabled and the
    update would move the shipment backwards or out of a terminal status.
    """
    event = await service.record_tracking_event(
        sub_order_id,
        event_in.status,
        description=event_in.description,
        location=event_in.location,
        event_time=event_in.event_time,
        source=event_in.source,
        actor_type=event_in.actor_type,
    )
    response = TrackingEventResponse.model_validate(event)
    
    await log_event(
        db=db,
        action=AuditAction.TRACKING_RECORDED,
        actor=actor,
        entity_type="sub_order",
        entity_id=sub_order_id,
        metadata={"status": event_in.status.value, "event_id": response.id}
    )
    return response


@router.post("/webhooks/courier", response_model=CourierWebhookAck)
async def courier_webhook(
    payload: CourierWebhookPayload,
    service: TrackingService = Depends(get_tracking_service),
    dedup: WebhookDeduplicator = Depends(get_webhook_deduplicator)
):
    """
    Receive a courier status update.
    
    Always acknowledges known-format payloads: repeats and unknown tracking
    numbers are accepted without effect so couriers stop redelivering.
    """
    if not await dedup.claim(payload.tracking_number, payload.status, payload.timestamp):
        logger.info("Duplicate courier webhook ignored", extra={"tracking_number": payload.tracking_number})
        return CourierWebhookAck(processed=False, duplicate=True)
    
    try:
        event = await service.ingest_courier_update(
            payload.tracking_number,
            payload.status,
            description=payload.description,
            location=payload.location,
            event_time=payload.timestamp,
            raw_data=payload.model_dump(mode="json"),
        )
    except Exception:
        await dedup.release(payload.tracking_number, payload.status, payload.timestamp)
        raise
    
    if event is None:
        return CourierWebhookAck(processed=False)
    return CourierWebhookAck(processed=True, sub_order_id=event.sub_order_id, status=event.status)
