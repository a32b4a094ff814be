"""
Tracking Service (Domain Logic).

Records delivery status reports for sub-orders, keeps the sub-order's
denormalized status and milestone timestamps in step with its event log,
and rolls the parent order's status up from its sub-orders.
"""

import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from fulfillment_engine.app.core.config import EngineOptions
from fulfillment_engine.app.core.exceptions import (
    ResourceNotFoundError, SubOrderNotFound, TrackingTransitionRejected, ValidationError
)
from fulfillment_engine.app.db.session import as_naive_utc, utcnow
from fulfillment_engine.app.domain.tracking.state_machine import derive_order_status, transition_error
from fulfillment_engine.app.models.enums import OrderStatus, SubOrderStatus, TrackingSource
from fulfillment_engine.app.models.order import Order
from fulfillment_engine.app.models.tracking_event import TrackingEvent
from fulfillment_engine.app.repositories.fulfillment_repository import FulfillmentRepository
from fulfillment_engine.app.services.notification_service import OutboxNotifier

logger = logging.getLogger(__name__)

StatusNotifier = Callable[[Order, OrderStatus, Optional[OrderStatus]], Awaitable[Any]]

MILESTONE_FIELDS = {
    SubOrderStatus.PICKED_UP: "picked_up_at",
    SubOrderStatus.IN_TRANSIT: "in_transit_at",
    SubOrderStatus.OUT_FOR_DELIVERY: "out_for_delivery_at",
    SubOrderStatus.DELIVERED: "delivered_at",
    SubOrderStatus.FAILED: "failed_at",
}

# Courier status strings → sub-order status
COURIER_STATUS_MAP = {
    "pending pick-up": SubOrderStatus.ASSIGNED,
    "picked-up": SubOrderStatus.PICKED_UP,
    "dispatched": SubOrderStatus.IN_TRANSIT,
    "in transit": SubOrderStatus.IN_TRANSIT,
    "out for delivery": SubOrderStatus.OUT_FOR_DELIVERY,
    "delivered": SubOrderStatus.DELIVERED,
    "failed delivery": SubOrderStatus.FAILED,
    "returned": SubOrderStatus.RETURNED,
    "cancelled": SubOrderStatus.CANCELLED,
}


def map_courier_status(raw_status: str) -> SubOrderStatus:
    """
    Translate a courier's status label. Engine values ("in_transit") pass
    through unchanged; anything else is a ValidationError.
    """
    key = (raw_status or "").strip().lower()
    if key in COURIER_STATUS_MAP:
        return COURIER_STATUS_MAP[key]
    try:
        return SubOrderStatus(key)
    except ValueError:
        raise ValidationError(f"Unknown courier status: {raw_status}", details={"status": raw_status})


class TrackingService:

    def __init__(
        self,
        repository: FulfillmentRepository,
        options: EngineOptions,
        notifier: Optional[StatusNotifier] = None
    ):
        self.repository = repository
        self.options = options
        self.notifier = notifier or OutboxNotifier(repository)

    async def record_tracking_event(
        self,
        sub_order_id: int,
        status: Union[SubOrderStatus, str],
        description: Optional[str] = None,
        location: Optional[str] = None,
        event_time: Optional[datetime] = None,
        source: TrackingSource = TrackingSource.API,
        actor_type: str = "system",
        raw_data: Optional[Dict[str, Any]] = None
    ) -> TrackingEvent:
        """
        Append a tracking event and sync the sub-order with it.

        The sub-order's status only follows the event when the event is the
        newest by event_time; a back-dated event is kept in the log (and may
        fill an empty milestone) without rewinding the status.

        Raises:
            SubOrderNotFound: unknown sub-order.
            ValidationError: unknown status value.
            TrackingTransitionRejected: strict mode only.
        """
        if not isinstance(status, SubOrderStatus):
            try:
                status = SubOrderStatus(status)
            except ValueError:
                raise ValidationError(f"Unknown tracking status: {status}", details={"status": status})

        sub_order = await self.repository.get_sub_order(sub_order_id)
        if sub_order is None:
            raise SubOrderNotFound(sub_order_id)

        event_time = as_naive_utc(event_time) if event_time else utcnow()
        latest = await self.repository.latest_tracking_event(sub_order_id)
        is_latest = latest is None or event_time >= latest.event_time
        current = sub_order.status

        if self.options.strict_tracking_order:
            if not is_latest:
                raise TrackingTransitionRejected(
                    sub_order_id, current.value, status.value,
                    f"event time {event_time.isoformat()} is older than the latest event"
                )
            reason = transition_error(current, status)
            if reason:
                raise TrackingTransitionRejected(sub_order_id, current.value, status.value, reason)

        changes: Dict[str, Any] = {}
        if is_latest:
            changes["status"] = status
            changes["last_tracking_update"] = event_time
        milestone = MILESTONE_FIELDS.get(status)
        if milestone and getattr(sub_order, milestone) is None:
            changes[milestone] = event_time

        event = TrackingEvent(
            sub_order_id=sub_order.id,
            status=status,
            description=description,
            location=location,
            actor_type=actor_type,
            source=source,
            raw_data=raw_data,
            event_time=event_time,
        )

        async with self.repository.transaction():
            await self.repository.insert_tracking_events([event])
            if changes:
                await self.repository.update_sub_order(sub_order, **changes)
            await self.refresh_order_status(sub_order.order_id)

        logger.info(
            "Tracking event recorded",
            extra={
                "sub_order_id": sub_order_id,
                "status": status.value,
                "previous_status": current.value,
                "source": source.value,
                "applied": is_latest,
            }
        )
        return event

    async def ingest_courier_update(
        self,
        tracking_number: str,
        courier_status: str,
        description: Optional[str] = None,
        location: Optional[str] = None,
        event_time: Optional[datetime] = None,
        raw_data: Optional[Dict[str, Any]] = None
    ) -> Optional[TrackingEvent]:
        """
        Apply a courier webhook. Unknown tracking numbers are acknowledged
        and ignored (None is returned).
        """
        status = map_courier_status(courier_status)
        sub_order = await self.repository.find_sub_order_by_tracking_number(tracking_number)
        if sub_order is None:
            logger.info("Courier update for unknown tracking number ignored", extra={"tracking_number": tracking_number})
            return None

        return await self.record_tracking_event(
            sub_order.id,
            status,
            description=description or courier_status,
            location=location,
            event_time=event_time,
            source=TrackingSource.COURIER_WEBHOOK,
            actor_type="courier",
            raw_data=raw_data,
        )

    async def refresh_order_status(self, order_id: int) -> Order:
        """Recompute the parent order's status; notify when it changes."""
        order = await self.repository.get_order(order_id)
        if order is None:
            raise ResourceNotFoundError("Order", order_id)

        sub_orders = await self.repository.list_sub_orders(order_id)
        new_status = derive_order_status(sub_order.status for sub_order in sub_orders)
        if new_status is None or new_status == order.overall_status:
            return order

        old_status = order.overall_status
        await self.repository.update_order(order, overall_status=new_status)
        await self.notifier(order, new_status, old_status)
        logger.info(
            "Order status changed",
            extra={"order_id": order_id, "new_status": new_status.value, "old_status": old_status.value}
        )
        return order
