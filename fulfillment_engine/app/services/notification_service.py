"""
Order status notifications.

The engine calls a notifier with (order, new_status, old_status) whenever an
order's overall status changes. The default notifier queues an email row in
the outbox; sending it is someone else's job.
"""

import logging
from typing import List, Optional

from fulfillment_engine.app.db.session import utcnow
from fulfillment_engine.app.models.enums import OrderStatus
from fulfillment_engine.app.models.notification import NotificationOutbox
from fulfillment_engine.app.models.order import Order
from fulfillment_engine.app.repositories.fulfillment_repository import FulfillmentRepository

logger = logging.getLogger(__name__)


class OutboxNotifier:

    channel = "email"

    def __init__(self, repository: FulfillmentRepository):
        self.repository = repository

    async def __call__(
        self,
        order: Order,
        new_status: OrderStatus,
        old_status: Optional[OrderStatus]
    ) -> NotificationOutbox:
        """Queue one notification for an order status change."""
        notification = NotificationOutbox(
            order_id=order.id,
            channel=self.channel,
            recipient=order.customer_email,
            new_status=new_status.value,
            old_status=old_status.value if old_status else None,
            metadata_payload={
                "external_order_id": order.external_order_id,
                "customer_name": order.customer_name,
            }
        )
        await self.repository.insert_notification(notification)
        logger.info(
            "Order status notification queued",
            extra={"order_id": order.id, "new_status": new_status.value}
        )
        return notification

    async def pending(self, limit: int = 100) -> List[NotificationOutbox]:
        return await self.repository.list_unsent_notifications(limit)

    async def mark_sent(self, notification_ids: List[int]) -> int:
        """Flag rows as delivered once the sender has handed them off."""
        return await self.repository.mark_notifications_sent(notification_ids, utcnow())
