"""
Fulfillment data access.

The single gateway between the engine and the relational store. Every call
is bounded by the repository's timeout. Outside `transaction()` each write
commits on its own (sequential independent inserts); inside it, writes are
flushed and committed once at the end.
"""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import select, delete, update, or_, case
from sqlalchemy.ext.asyncio import AsyncSession

from fulfillment_engine.app.core.reliability import run_with_timeout
from fulfillment_engine.app.models.zone import Zone
from fulfillment_engine.app.models.hub import Hub, HubCourier
from fulfillment_engine.app.models.courier import Courier
from fulfillment_engine.app.models.shipping_rate import ShippingRate
from fulfillment_engine.app.models.order import Order, SubOrder
from fulfillment_engine.app.models.tracking_event import TrackingEvent
from fulfillment_engine.app.models.settlement import Settlement, SettlementItem
from fulfillment_engine.app.models.notification import NotificationOutbox
from fulfillment_engine.app.models.enums import (
    SettlementStatus, SubOrderStatus, SubOrderSettlementStatus
)

ELIGIBLE_SETTLEMENT_STATUSES = (SubOrderSettlementStatus.PENDING, SubOrderSettlementStatus.APPROVED)
ELIGIBLE_DELIVERY_STATUSES = (SubOrderStatus.DELIVERED, SubOrderStatus.IN_TRANSIT)


class FulfillmentRepository:

    def __init__(self, session: AsyncSession, timeout: Optional[float] = None):
        self.session = session
        self.timeout = timeout
        self._in_transaction = False

    # Plumbing

    async def _run(self, operation: str, awaitable):
        return await run_with_timeout(awaitable, operation, self.timeout)

    async def _persist(self, operation: str) -> None:
        if self._in_transaction:
            await self._run(operation, self.session.flush())
            return
        try:
            await self._run(operation, self.session.commit())
        except Exception:
            await self.session.rollback()
            raise

    @property
    def in_transaction(self) -> bool:
        return self._in_transaction

    @asynccontextmanager
    async def transaction(self):
        """Group writes into one commit; roll everything back on error."""
        if self._in_transaction:
            # Nested use joins the outer transaction.
            yield self
            return
        self._in_transaction = True
        try:
            yield self
            await self._run("commit", self.session.commit())
        except Exception:
            await self.session.rollback()
            raise
        finally:
            self._in_transaction = False

    async def _scalar(self, operation: str, stmt):
        result = await self._run(operation, self.session.execute(stmt))
        return result.scalar_one_or_none()

    async def _scalars(self, operation: str, stmt) -> list:
        result = await self._run(operation, self.session.execute(stmt))
        return list(result.scalars().all())

    async def _add(self, operation: str, instance):
        self.session.add(instance)
        await self._persist(operation)
        return instance

    # Zones

    async def list_zones(self, order_by_name: bool = False) -> List[Zone]:
        ordering = Zone.name if order_by_name else Zone.id
        return await self._scalars("list_zones", select(Zone).order_by(ordering))

    async def find_zone_by_state(self, state: str) -> Optional[Zone]:
        """First zone (by id) whose state list contains `state`, case-insensitively."""
        for zone in await self.list_zones():
            if zone.covers_state(state):
                return zone
        return None

    async def get_zone(self, zone_id: int) -> Optional[Zone]:
        return await self._scalar("get_zone", select(Zone).where(Zone.id == zone_id))

    async def insert_zone(self, zone: Zone) -> Zone:
        return await self._add("insert_zone", zone)

    async def update_zone(self, zone: Zone, **changes) -> Zone:
        for field, value in changes.items():
            setattr(zone, field, value)
        await self._persist("update_zone")
        return zone

    # Rates

    async def find_active_rate(
        self,
        zone_id: int,
        hub_id: Optional[int],
        courier_id: Optional[int] = None,
        weight_kg: Optional[float] = None
    ) -> Optional[ShippingRate]:
        """
        Highest-priority active rate for the zone that applies to this hub.

        Hub- and courier-scoped rows win ties over unscoped (NULL) rows.
        """
        query = select(ShippingRate).where(
            ShippingRate.zone_id == zone_id,
            ShippingRate.is_active == True,
        )
        if hub_id is None:
            query = query.where(ShippingRate.hub_id.is_(None))
        else:
            query = query.where(or_(ShippingRate.hub_id == hub_id, ShippingRate.hub_id.is_(None)))
        if courier_id is not None:
            query = query.where(or_(ShippingRate.courier_id == courier_id, ShippingRate.courier_id.is_(None)))
        if weight_kg is not None:
            query = query.where(
                or_(ShippingRate.min_weight_kg.is_(None), ShippingRate.min_weight_kg <= weight_kg),
                or_(ShippingRate.max_weight_kg.is_(None), ShippingRate.max_weight_kg >= weight_kg),
            )
        query = query.order_by(
            ShippingRate.priority.desc(),
            case((ShippingRate.hub_id.is_(None), 1), else_=0),
            case((ShippingRate.courier_id.is_(None), 1), else_=0),
            ShippingRate.id,
        ).limit(1)
        return await self._scalar("find_active_rate", query)

    async def get_rate(self, rate_id: int) -> Optional[ShippingRate]:
        return await self._scalar("get_rate", select(ShippingRate).where(ShippingRate.id == rate_id))

    async def list_rates(self, zone_id: Optional[int] = None) -> List[ShippingRate]:
        query = select(ShippingRate).order_by(ShippingRate.zone_id, ShippingRate.priority.desc())
        if zone_id is not None:
            query = query.where(ShippingRate.zone_id == zone_id)
        return await self._scalars("list_rates", query)

    async def insert_rate(self, rate: ShippingRate) -> ShippingRate:
        return await self._add("insert_rate", rate)

    async def update_rate(self, rate: ShippingRate, **changes) -> ShippingRate:
        for field, value in changes.items():
            setattr(rate, field, value)
        await self._persist("update_rate")
        return rate

    # Hubs and couriers

    async def get_hub(self, hub_id: int) -> Optional[Hub]:
        return await self._scalar("get_hub", select(Hub).where(Hub.id == hub_id))

    async def get_hubs(self, hub_ids: Iterable[int]) -> Dict[int, Hub]:
        ids = [hub_id for hub_id in hub_ids if hub_id is not None]
        if not ids:
            return {}
        hubs = await self._scalars("get_hubs", select(Hub).where(Hub.id.in_(ids)))
        return {hub.id: hub for hub in hubs}

    async def list_hubs(self) -> List[Hub]:
        return await self._scalars("list_hubs", select(Hub).order_by(Hub.id))

    async def insert_hub(self, hub: Hub) -> Hub:
        return await self._add("insert_hub", hub)

    async def get_courier(self, courier_id: int) -> Optional[Courier]:
        return await self._scalar("get_courier", select(Courier).where(Courier.id == courier_id))

    async def get_couriers(self, courier_ids: Iterable[int]) -> Dict[int, Courier]:
        ids = [courier_id for courier_id in courier_ids if courier_id is not None]
        if not ids:
            return {}
        couriers = await self._scalars("get_couriers", select(Courier).where(Courier.id.in_(ids)))
        return {courier.id: courier for courier in couriers}

    async def list_couriers(self) -> List[Courier]:
        return await self._scalars("list_couriers", select(Courier).order_by(Courier.id))

    async def insert_courier(self, courier: Courier) -> Courier:
        return await self._add("insert_courier", courier)

    async def find_hub_couriers(self, hub_id: int, active_only: bool = True) -> List[Tuple[HubCourier, Courier]]:
        """Hub's courier links, best first: is_primary desc, priority desc."""
        query = (
            select(HubCourier, Courier)
            .join(Courier, Courier.id == HubCourier.courier_id)
            .where(HubCourier.hub_id == hub_id)
            .order_by(HubCourier.is_primary.desc(), HubCourier.priority.desc(), HubCourier.id)
        )
        if active_only:
            query = query.where(Courier.is_active == True)
        result = await self._run("find_hub_couriers", self.session.execute(query))
        return [(row[0], row[1]) for row in result.all()]

    async def insert_hub_courier(self, link: HubCourier) -> HubCourier:
        return await self._add("insert_hub_courier", link)

    # Orders

    async def insert_order(self, order: Order) -> Order:
        return await self._add("insert_order", order)

    async def get_order(self, order_id: int) -> Optional[Order]:
        return await self._scalar("get_order", select(Order).where(Order.id == order_id))

    async def find_order_by_external_id(self, external_order_id: str) -> Optional[Order]:
        return await self._scalar(
            "find_order_by_external_id",
            select(Order).where(Order.external_order_id == external_order_id)
        )

    async def update_order(self, order: Order, **changes) -> Order:
        for field, value in changes.items():
            setattr(order, field, value)
        await self._persist("update_order")
        return order

    async def insert_sub_orders(self, sub_orders: Sequence[SubOrder]) -> List[SubOrder]:
        self.session.add_all(list(sub_orders))
        await self._persist("insert_sub_orders")
        return list(sub_orders)

    async def get_sub_order(self, sub_order_id: int) -> Optional[SubOrder]:
        return await self._scalar("get_sub_order", select(SubOrder).where(SubOrder.id == sub_order_id))

    async def find_sub_order_by_tracking_number(self, tracking_number: str) -> Optional[SubOrder]:
        return await self._scalar(
            "find_sub_order_by_tracking_number",
            select(SubOrder).where(SubOrder.tracking_number == tracking_number)
        )

    async def list_sub_orders(self, order_id: int) -> List[SubOrder]:
        return await self._scalars(
            "list_sub_orders",
            select(SubOrder).where(SubOrder.order_id == order_id).order_by(SubOrder.id)
        )

    async def get_sub_orders(self, sub_order_ids: Iterable[int]) -> List[SubOrder]:
        ids = list(sub_order_ids)
        if not ids:
            return []
        return await self._scalars(
            "get_sub_orders",
            select(SubOrder).where(SubOrder.id.in_(ids)).order_by(SubOrder.id)
        )

    async def update_sub_order(self, sub_order: SubOrder, **changes) -> SubOrder:
        for field, value in changes.items():
            setattr(sub_order, field, value)
        await self._persist("update_sub_order")
        return sub_order

    async def delete_order_cascade(self, order_id: int) -> int:
        """Purge an order with its sub-orders, tracking events and outbox rows."""
        sub_order_ids = select(SubOrder.id).where(SubOrder.order_id == order_id)
        await self._run("delete_settlement_items", self.session.execute(
            delete(SettlementItem).where(SettlementItem.sub_order_id.in_(sub_order_ids)).execution_options(synchronize_session=False)
        ))
        await self._run("delete_tracking_events", self.session.execute(
            delete(TrackingEvent).where(TrackingEvent.sub_order_id.in_(sub_order_ids)).execution_options(synchronize_session=False)
        ))
        result = await self._run("delete_sub_orders", self.session.execute(
            delete(SubOrder).where(SubOrder.order_id == order_id).execution_options(synchronize_session=False)
        ))
        await self._run("delete_outbox", self.session.execute(
            delete(NotificationOutbox).where(NotificationOutbox.order_id == order_id).execution_options(synchronize_session=False)
        ))
        await self._run("delete_order", self.session.execute(
            delete(Order).where(Order.id == order_id).execution_options(synchronize_session=False)
        ))
        await self._persist("delete_order_cascade")
        return result.rowcount

    # Tracking

    async def insert_tracking_events(self, events: Sequence[TrackingEvent]) -> List[TrackingEvent]:
        self.session.add_all(list(events))
        await self._persist("insert_tracking_events")
        return list(events)

    async def latest_tracking_event(self, sub_order_id: int) -> Optional[TrackingEvent]:
        return await self._scalar(
            "latest_tracking_event",
            select(TrackingEvent)
            .where(TrackingEvent.sub_order_id == sub_order_id)
            .order_by(TrackingEvent.event_time.desc(), TrackingEvent.id.desc())
            .limit(1)
        )

    async def list_tracking_events(self, sub_order_ids: Iterable[int]) -> List[TrackingEvent]:
        ids = list(sub_order_ids)
        if not ids:
            return []
        return await self._scalars(
            "list_tracking_events",
            select(TrackingEvent)
            .where(TrackingEvent.sub_order_id.in_(ids))
            .order_by(TrackingEvent.event_time.desc(), TrackingEvent.id.desc())
        )

    # Settlements

    async def insert_settlement(self, settlement: Settlement, items: Sequence[SettlementItem]) -> Settlement:
        self.session.add(settlement)
        await self._run("insert_settlement", self.session.flush())
        for item in items:
            item.settlement_id = settlement.id
        self.session.add_all(list(items))
        await self._persist("insert_settlement")
        return settlement

    async def update_settlement(self, settlement: Settlement, **changes) -> Settlement:
        for field, value in changes.items():
            setattr(settlement, field, value)
        await self._persist("update_settlement")
        return settlement

    async def get_settlement(self, settlement_id: int) -> Optional[Settlement]:
        return await self._scalar(
            "get_settlement",
            select(Settlement).where(Settlement.id == settlement_id)
        )

    async def list_settlements(
        self,
        courier_id: Optional[int] = None,
        status: Optional[SettlementStatus] = None,
        limit: int = 50
    ) -> List[Settlement]:
        query = select(Settlement).order_by(Settlement.created_at.desc(), Settlement.id.desc()).limit(limit)
        if courier_id is not None:
            query = query.where(Settlement.courier_id == courier_id)
        if status is not None:
            query = query.where(Settlement.status == status)
        return await self._scalars("list_settlements", query)

    async def list_settlement_items(self, settlement_id: int) -> List[SettlementItem]:
        return await self._scalars(
            "list_settlement_items",
            select(SettlementItem)
            .where(SettlementItem.settlement_id == settlement_id)
            .order_by(SettlementItem.sub_order_id)
        )

    async def settled_sub_order_ids(self, sub_order_ids: Optional[Iterable[int]] = None) -> set:
        """Sub-orders already present in a non-voided settlement."""
        query = (
            select(SettlementItem.sub_order_id)
            .join(Settlement, Settlement.id == SettlementItem.settlement_id)
            .where(Settlement.status != SettlementStatus.VOIDED)
        )
        if sub_order_ids is not None:
            query = query.where(SettlementItem.sub_order_id.in_(list(sub_order_ids)))
        return set(await self._scalars("settled_sub_order_ids", query))

    async def query_sub_orders_for_settlement(
        self,
        courier_id: Optional[int] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        unsettled_only: bool = True
    ) -> List[SubOrder]:
        """
        Sub-orders owed to couriers: settlement pending/approved and
        delivery status delivered/in_transit.
        """
        query = select(SubOrder).where(
            SubOrder.courier_id.is_not(None),
            SubOrder.settlement_status.in_(ELIGIBLE_SETTLEMENT_STATUSES),
            SubOrder.status.in_(ELIGIBLE_DELIVERY_STATUSES),
        ).order_by(SubOrder.created_at, SubOrder.id)
        if courier_id is not None:
            query = query.where(SubOrder.courier_id == courier_id)
        if start is not None:
            query = query.where(SubOrder.created_at >= start)
        if end is not None:
            query = query.where(SubOrder.created_at <= end)
        if unsettled_only:
            settled = (
                select(SettlementItem.sub_order_id)
                .join(Settlement, Settlement.id == SettlementItem.settlement_id)
                .where(Settlement.status != SettlementStatus.VOIDED)
            )
            query = query.where(SubOrder.id.not_in(settled))
        return await self._scalars("query_sub_orders_for_settlement", query)

    async def list_courier_sub_orders(self, courier_id: Optional[int] = None) -> List[SubOrder]:
        query = select(SubOrder).where(SubOrder.courier_id.is_not(None)).order_by(SubOrder.id)
        if courier_id is not None:
            query = query.where(SubOrder.courier_id == courier_id)
        return await self._scalars("list_courier_sub_orders", query)

    # Notifications

    async def insert_notification(self, notification: NotificationOutbox) -> NotificationOutbox:
        return await self._add("insert_notification", notification)

    async def list_notifications(self, order_id: int) -> List[NotificationOutbox]:
        return await self._scalars(
            "list_notifications",
            select(NotificationOutbox)
            .where(NotificationOutbox.order_id == order_id)
            .order_by(NotificationOutbox.id)
        )

    async def list_unsent_notifications(self, limit: int = 100) -> List[NotificationOutbox]:
        return await self._scalars(
            "list_unsent_notifications",
            select(NotificationOutbox)
            .where(NotificationOutbox.is_sent == False)
            .order_by(NotificationOutbox.created_at, NotificationOutbox.id)
            .limit(limit)
        )

    async def mark_notifications_sent(self, notification_ids: Iterable[int], sent_at: datetime) -> int:
        ids = list(notification_ids)
        if not ids:
            return 0
        result = await self._run("mark_notifications_sent", self.session.execute(
            update(NotificationOutbox)
            .where(NotificationOutbox.id.in_(ids))
            .values(is_sent=True, sent_at=sent_at)
            .execution_options(synchronize_session=False)
        ))
        await self._persist("mark_notifications_sent")
        return result.rowcount
