"""
Courier Assignment (Domain Logic).

Picks the best courier linked to a sub-order's hub and records the
assignment as a tracking event.
"""

import logging
import secrets
import string
import time
from typing import List, Tuple

from fulfillment_engine.app.core.config import EngineOptions
from fulfillment_engine.app.core.exceptions import MissingHub, NoCourierAvailable, SubOrderNotFound
from fulfillment_engine.app.db.session import utcnow
from fulfillment_engine.app.models.courier import Courier
from fulfillment_engine.app.models.enums import SubOrderStatus, TrackingSource
from fulfillment_engine.app.models.hub import HubCourier
from fulfillment_engine.app.models.order import SubOrder
from fulfillment_engine.app.models.tracking_event import TrackingEvent
from fulfillment_engine.app.repositories.fulfillment_repository import FulfillmentRepository

logger = logging.getLogger(__name__)

_TRACKING_ALPHABET = string.ascii_uppercase + string.digits


def generate_tracking_number(courier_code: str) -> str:
    """<CODE PREFIX>-<epoch ms>-<6 random uppercase alnum>, e.g. FEZ-1718000000000-Q7K2ZD."""
    prefix = (courier_code or "TRK")[:3].upper()
    suffix = "".join(secrets.choice(_TRACKING_ALPHABET) for _ in range(6))
    return f"{prefix}-{int(time.time() * 1000)}-{suffix}"


class CourierAssignmentService:

    def __init__(self, repository: FulfillmentRepository, options: EngineOptions):
        self.repository = repository
        self.options = options

    async def available_couriers(self, hub_id: int) -> List[Tuple[HubCourier, Courier]]:
        """Active couriers linked to the hub, best first (primary, then priority)."""
        return await self.repository.find_hub_couriers(hub_id)

    async def assign_courier(self, sub_order_id: int) -> SubOrder:
        """
        Assign the hub's best courier to a sub-order.

        Flow:
        1. Load sub-order (SubOrderNotFound), require hub (MissingHub)
        2. First link by is_primary desc, priority desc (NoCourierAvailable)
        3. Set courier, tracking number (if none yet), status ASSIGNED
        4. Append ASSIGNED tracking event (source auto_assignment)

        Re-running on an assigned sub-order overwrites the courier.
        """
        sub_order = await self.repository.get_sub_order(sub_order_id)
        if sub_order is None:
            raise SubOrderNotFound(sub_order_id)
        if sub_order.hub_id is None:
            raise MissingHub(sub_order_id)

        candidates = await self.available_couriers(sub_order.hub_id)
        if not candidates:
            logger.warning("No courier linked to hub", extra={"hub_id": sub_order.hub_id, "sub_order_id": sub_order_id})
            raise NoCourierAvailable(sub_order.hub_id)
        link, courier = candidates[0]

        previous_courier_id = sub_order.courier_id
        now = utcnow()

        async with self.repository.transaction():
            await self.repository.update_sub_order(
                sub_order,
                courier_id=courier.id,
                tracking_number=sub_order.tracking_number or generate_tracking_number(courier.code),
                status=SubOrderStatus.ASSIGNED,
                last_tracking_update=now,
            )
            await self.repository.insert_tracking_events([
                TrackingEvent(
                    sub_order_id=sub_order.id,
                    status=SubOrderStatus.ASSIGNED,
                    description=f"Order assigned to {courier.name}",
                    actor_type="system",
                    source=TrackingSource.AUTO_ASSIGNMENT,
                    raw_data={"courier_id": courier.id, "is_primary": link.is_primary, "priority": link.priority},
                    event_time=now,
                )
            ])

        logger.info(
            "Courier assigned",
            extra={
                "sub_order_id": sub_order.id,
                "courier_id": courier.id,
                "previous_courier_id": previous_courier_id,
                "tracking_number": sub_order.tracking_number,
            }
        )
        return sub_order
