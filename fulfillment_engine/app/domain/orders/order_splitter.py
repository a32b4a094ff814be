"""
Order Splitter (Domain Logic).

Turns one storefront order into a main Order plus one SubOrder per
(hub, vendor) combination, each with an initial tracking event.

Two write modes:
- transactional (default): order, sub-orders and events commit together or
  not at all.
- sequential: each stage commits on its own, so a failure part way leaves
  the main order behind. The failure is raised as SubOrderPersistFailed
  with the ids that did make it, for the caller to reconcile.
"""

import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from fulfillment_engine.app.core.config import EngineOptions
from fulfillment_engine.app.core.exceptions import (
    DuplicateOrder, OperationTimeoutError, OrderPersistFailed, SubOrderPersistFailed, ValidationError
)
from fulfillment_engine.app.db.session import utcnow
from fulfillment_engine.app.domain.shipping.zone_resolver import ZoneResolver
from fulfillment_engine.app.models.enums import OrderStatus, SubOrderStatus, TrackingSource
from fulfillment_engine.app.models.order import Order, SubOrder
from fulfillment_engine.app.models.tracking_event import TrackingEvent
from fulfillment_engine.app.repositories.fulfillment_repository import FulfillmentRepository
from fulfillment_engine.app.schemas.orders import OrderCreate, OrderItemIn
from fulfillment_engine.app.schemas.shipping import ShippingEstimate

logger = logging.getLogger(__name__)

INITIAL_EVENT_DESCRIPTION = "Order received and awaiting processing"
INITIAL_EVENT_LOCATION = "Processing Center"

GroupKey = Tuple[Optional[int], Optional[str]]


@dataclass
class SplitOrder:
    order: Order
    sub_orders: List[SubOrder]


def group_items(items: List[OrderItemIn]) -> "OrderedDict[GroupKey, List[OrderItemIn]]":
    """Partition items by (hub_id, vendor_id), keeping first-seen order."""
    groups: "OrderedDict[GroupKey, List[OrderItemIn]]" = OrderedDict()
    for item in items:
        groups.setdefault((item.hub_id, item.vendor_id), []).append(item)
    return groups


def allocate_shipping_fee(fee_paid: float, group_count: int) -> float:
    # Even split, not proportional to each group's computed cost.
    if group_count <= 0:
        return 0.0
    return round(fee_paid / group_count, 2)


def per_sub_order_costs(
    keys: List[GroupKey],
    estimate: Optional[ShippingEstimate]
) -> Dict[GroupKey, Optional[float]]:
    """Each hub group's calculated cost shared evenly by that hub's sub-orders."""
    if estimate is None:
        return {key: None for key in keys}
    hub_costs = {group.hub_id: group.shipping_cost for group in estimate.breakdown}
    per_hub: Dict[Optional[int], int] = {}
    for hub_id, _ in keys:
        per_hub[hub_id] = per_hub.get(hub_id, 0) + 1
    costs: Dict[GroupKey, Optional[float]] = {}
    for key in keys:
        hub_cost = hub_costs.get(key[0])
        costs[key] = None if hub_cost is None else round(hub_cost / per_hub[key[0]], 2)
    return costs


def describe_group(key: GroupKey, items: List[OrderItemIn]) -> Dict[str, object]:
    return {"hub_id": key[0], "vendor_id": key[1], "item_count": len(items)}


class OrderSplitter:

    def __init__(self, repository: FulfillmentRepository, options: EngineOptions):
        self.repository = repository
        self.options = options
        self.zones = ZoneResolver(repository, options)

    async def split_order(
        self,
        order_in: OrderCreate,
        shipping_estimate: Optional[ShippingEstimate] = None
    ) -> SplitOrder:
        """
        Persist main order, sub-orders and their initial tracking events.

        Flow:
        1. Validate input and resolve zone (nothing written on failure)
        2. Insert main order (status processing)
        3. Group items by (hub, vendor), one sub-order per group
        4. Split paid shipping fee evenly
        5. Insert sub-orders (status pending)
        6. Insert one pending tracking event per sub-order

        Raises:
            ValidationError, ZoneNotFound, DuplicateOrder: before any write.
            OrderPersistFailed: main order not written, or transaction rolled back.
            SubOrderPersistFailed: sequential mode, main order written but not all children.
        """
        subtotal = order_in.computed_subtotal()
        if order_in.subtotal is not None and abs(order_in.subtotal - subtotal) > 0.01:
            raise ValidationError(
                "Order subtotal does not match its line items",
                details={"subtotal": order_in.subtotal, "computed_subtotal": subtotal}
            )

        zone = await self.zones.resolve(order_in.delivery_state, order_in.delivery_city)

        if order_in.external_order_id:
            existing = await self.repository.find_order_by_external_id(order_in.external_order_id)
            if existing is not None:
                raise DuplicateOrder(order_in.external_order_id, existing.id)

        order = Order(
            external_order_id=order_in.external_order_id,
            customer_name=order_in.customer_name,
            customer_email=order_in.customer_email,
            customer_phone=order_in.customer_phone,
            delivery_address=order_in.delivery_address,
            delivery_city=order_in.delivery_city,
            delivery_state=order_in.delivery_state,
            delivery_zone_id=zone.id,
            subtotal=subtotal,
            total_amount=(
                order_in.total_amount
                if order_in.total_amount is not None
                else round(subtotal + order_in.shipping_fee_paid, 2)
            ),
            shipping_fee_paid=order_in.shipping_fee_paid,
            payment_status=order_in.payment_status,
            overall_status=OrderStatus.PROCESSING,
        )
        groups = group_items(order_in.items)

        if self.options.transactional_order_ingest:
            result = await self._split_in_transaction(order, groups, order_in, shipping_estimate)
        else:
            result = await self._split_sequentially(order, groups, order_in, shipping_estimate)

        logger.info(
            "Order split",
            extra={
                "order_id": result.order.id,
                "sub_orders": len(result.sub_orders),
                "zone": zone.name,
            }
        )
        return result

    def _build_sub_orders(
        self,
        order_id: int,
        groups: "OrderedDict[GroupKey, List[OrderItemIn]]",
        fee_paid: float,
        estimate: Optional[ShippingEstimate]
    ) -> List[SubOrder]:
        fee_share = allocate_shipping_fee(fee_paid, len(groups))
        costs = per_sub_order_costs(list(groups.keys()), estimate)
        now = utcnow()
        return [
            SubOrder(
                order_id=order_id,
                hub_id=key[0],
                vendor_id=key[1],
                items=[item.as_stored() for item in items],
                subtotal=round(sum(item.line_total() for item in items), 2),
                allocated_shipping_fee=fee_share,
                shipping_cost=costs[key],
                status=SubOrderStatus.PENDING,
                last_tracking_update=now,
            )
            for key, items in groups.items()
        ]

    @staticmethod
    def _initial_events(sub_orders: List[SubOrder]) -> List[TrackingEvent]:
        return [
            TrackingEvent(
                sub_order_id=sub_order.id,
                status=SubOrderStatus.PENDING,
                description=INITIAL_EVENT_DESCRIPTION,
                location=INITIAL_EVENT_LOCATION,
                actor_type="system",
                source=TrackingSource.SYSTEM,
                event_time=sub_order.last_tracking_update,
            )
            for sub_order in sub_orders
        ]

    async def _split_in_transaction(self, order, groups, order_in, estimate) -> SplitOrder:
        try:
            async with self.repository.transaction():
                await self.repository.insert_order(order)
                sub_orders = self._build_sub_orders(order.id, groups, order_in.shipping_fee_paid, estimate)
                await self.repository.insert_sub_orders(sub_orders)
                await self.repository.insert_tracking_events(self._initial_events(sub_orders))
        except OperationTimeoutError:
            logger.error("Order ingest timed out; transaction rolled back")
            raise
        except Exception as exc:
            logger.error("Order ingest rolled back: %s", exc)
            raise OrderPersistFailed(f"Order ingest rolled back: {exc}", rolled_back=True) from exc
        return SplitOrder(order=order, sub_orders=sub_orders)

    async def _split_sequentially(self, order, groups, order_in, estimate) -> SplitOrder:
        try:
            await self.repository.insert_order(order)
        except OperationTimeoutError:
            raise
        except Exception as exc:
            logger.error("Main order insert failed: %s", exc)
            raise OrderPersistFailed(f"Main order insert failed: {exc}") from exc
        order_id = order.id

        sub_orders = self._build_sub_orders(order_id, groups, order_in.shipping_fee_paid, estimate)
        try:
            await self.repository.insert_sub_orders(sub_orders)
        except Exception as exc:
            failed = [describe_group(key, items) for key, items in groups.items()]
            logger.error(
                "Sub-order insert failed; main order left without children",
                extra={"order_id": order_id, "failed_groups": len(failed)}
            )
            raise SubOrderPersistFailed(order_id, [], failed, "sub_orders", cause=str(exc)) from exc
        sub_order_ids = [sub_order.id for sub_order in sub_orders]

        try:
            await self.repository.insert_tracking_events(self._initial_events(sub_orders))
        except Exception as exc:
            logger.error(
                "Initial tracking events missing",
                extra={"order_id": order_id, "sub_order_ids": sub_order_ids}
            )
            raise SubOrderPersistFailed(
                order_id,
                sub_order_ids,
                [describe_group(key, items) for key, items in groups.items()],
                "tracking_events",
                cause=str(exc)
            ) from exc

        return SplitOrder(order=order, sub_orders=sub_orders)
