"""
Order Service (Domain Logic).

Storefront-facing order workflows built on the engine components:
ingest (price, split, auto-assign), cancellation, tracking lookup and
administrative purge.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from fulfillment_engine.app.core.config import EngineOptions
from fulfillment_engine.app.core.exceptions import (
    AppException, OrderNotCancellable, OrderPurgeBlocked, RateNotFound, ResourceNotFoundError
)
from fulfillment_engine.app.db.session import utcnow
from fulfillment_engine.app.domain.orders.courier_assignment import CourierAssignmentService
from fulfillment_engine.app.domain.orders.order_splitter import OrderSplitter
from fulfillment_engine.app.domain.shipping.calculator import ShippingCalculator
from fulfillment_engine.app.domain.tracking.state_machine import CANCELLABLE_STATUSES
from fulfillment_engine.app.domain.tracking.tracking_service import StatusNotifier, TrackingService
from fulfillment_engine.app.models.enums import OrderStatus, SubOrderStatus, TrackingSource
from fulfillment_engine.app.models.order import Order, SubOrder
from fulfillment_engine.app.models.tracking_event import TrackingEvent
from fulfillment_engine.app.repositories.fulfillment_repository import FulfillmentRepository
from fulfillment_engine.app.schemas.orders import OrderCreate
from fulfillment_engine.app.schemas.shipping import ShippingCalculationRequest, ShippingEstimate, ShippingItem

logger = logging.getLogger(__name__)


@dataclass
class IngestResult:
    order: Order
    sub_orders: List[SubOrder]
    shipping: Optional[ShippingEstimate] = None
    assignment_failures: List[Dict[str, object]] = field(default_factory=list)


def shipping_request_for(order_in: OrderCreate) -> ShippingCalculationRequest:
    return ShippingCalculationRequest(
        delivery_state=order_in.delivery_state,
        delivery_city=order_in.delivery_city,
        items=[
            ShippingItem(
                product_id=item.product_id,
                hub_id=item.hub_id,
                quantity=item.quantity,
                weight=item.weight,
                price=item.unit_price,
            )
            for item in order_in.items
        ],
        total_order_value=order_in.computed_subtotal(),
    )


class OrderService:

    def __init__(
        self,
        repository: FulfillmentRepository,
        options: EngineOptions,
        notifier: Optional[StatusNotifier] = None
    ):
        self.repository = repository
        self.options = options
        self.calculator = ShippingCalculator(repository, options)
        self.splitter = OrderSplitter(repository, options)
        self.assignment = CourierAssignmentService(repository, options)
        self.tracking = TrackingService(repository, options, notifier)

    async def ingest(self, order_in: OrderCreate, auto_assign: bool = True) -> IngestResult:
        """
        Price, split and (optionally) assign couriers for a storefront order.

        A missing rate does not block the order: it is split without
        per-sub-order shipping costs. Assignment failures are collected per
        sub-order instead of aborting the ingest.
        """
        try:
            estimate = await self.calculator.calculate(shipping_request_for(order_in))
        except RateNotFound as exc:
            logger.warning("Ingesting order without shipping costs: %s", exc.message)
            estimate = None

        split = await self.splitter.split_order(order_in, estimate)
        result = IngestResult(order=split.order, sub_orders=split.sub_orders, shipping=estimate)
        if not auto_assign:
            return result

        order_id = split.order.id
        for sub_order_id in [sub_order.id for sub_order in split.sub_orders]:
            try:
                await self.assignment.assign_courier(sub_order_id)
            except AppException as exc:
                logger.warning(
                    "Auto-assignment failed",
                    extra={"sub_order_id": sub_order_id, "error_code": exc.error_code}
                )
                result.assignment_failures.append({
                    "sub_order_id": sub_order_id,
                    "error_code": exc.error_code,
                    "message": exc.message,
                })

        # Reload: a rolled-back assignment expires the loaded rows
        result.order = await self.get_order(order_id)
        result.sub_orders = await self.repository.list_sub_orders(order_id)
        return result

    async def get_order(self, order_id: int) -> Order:
        order = await self.repository.get_order(order_id)
        if order is None:
            raise ResourceNotFoundError("Order", order_id)
        return order

    async def tracking_details(
        self,
        order_id: int,
        customer_email: Optional[str] = None
    ) -> Tuple[Order, List[Tuple[SubOrder, List[TrackingEvent]]]]:
        """
        Order with each sub-order's events, newest first.

        When `customer_email` is given it must match the order's email
        (case-insensitively); a mismatch looks exactly like a missing order.
        """
        order = await self.get_order(order_id)
        if customer_email is not None:
            if order.customer_email.strip().lower() != customer_email.strip().lower():
                raise ResourceNotFoundError("Order", order_id)

        sub_orders = await self.repository.list_sub_orders(order_id)
        events = await self.repository.list_tracking_events(s.id for s in sub_orders)
        by_sub_order: Dict[int, List[TrackingEvent]] = {s.id: [] for s in sub_orders}
        for event in events:
            by_sub_order[event.sub_order_id].append(event)
        return order, [(s, by_sub_order[s.id]) for s in sub_orders]

    async def cancel_order(self, order_id: int, reason: Optional[str] = None) -> Order:
        """
        Cancel an order whose sub-orders are all still pending or assigned.

        Raises:
            OrderNotCancellable: listing the sub-orders already in flight.
        """
        order = await self.get_order(order_id)
        sub_orders = await self.repository.list_sub_orders(order_id)
        blocking = [s.id for s in sub_orders if s.status not in CANCELLABLE_STATUSES]
        if blocking or order.overall_status == OrderStatus.CANCELLED:
            raise OrderNotCancellable(order_id, blocking)

        now = utcnow()
        description = f"Order cancelled: {reason}" if reason else "Order cancelled"
        old_status = order.overall_status
        async with self.repository.transaction():
            for sub_order in sub_orders:
                await self.repository.update_sub_order(
                    sub_order, status=SubOrderStatus.CANCELLED, last_tracking_update=now
                )
            await self.repository.insert_tracking_events([
                TrackingEvent(
                    sub_order_id=sub_order.id,
                    status=SubOrderStatus.CANCELLED,
                    description=description,
                    actor_type="operator",
                    source=TrackingSource.OPERATOR,
                    event_time=now,
                )
                for sub_order in sub_orders
            ])
            await self.repository.update_order(order, overall_status=OrderStatus.CANCELLED)
            await self.tracking.notifier(order, OrderStatus.CANCELLED, old_status)

        logger.info("Order cancelled", extra={"order_id": order_id, "sub_orders": len(sub_orders)})
        return order

    async def purge_order(self, order_id: int) -> int:
        """
        Delete an order with its sub-orders, tracking events and outbox rows.

        Refused while any sub-order sits in a live (non-voided) settlement.
        Returns the number of sub-orders deleted.
        """
        order = await self.get_order(order_id)
        sub_orders = await self.repository.list_sub_orders(order_id)
        settled = await self.repository.settled_sub_order_ids(s.id for s in sub_orders)
        if settled:
            raise OrderPurgeBlocked(order.id, sorted(settled))

        async with self.repository.transaction():
            deleted = await self.repository.delete_order_cascade(order_id)

        logger.info("Order purged", extra={"order_id": order_id, "sub_orders": deleted})
        return deleted
