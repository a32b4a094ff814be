"""
Settlement Service (Domain Logic).

Batches the sub-orders a courier has carried into settlements and walks a
settlement through approval, payment or voiding, keeping each linked
sub-order's settlement status in step.

Payment is a two-phase write: the settlement row commits first, then each
sub-order commits on its own. Sub-orders that fail in phase two are reported
through SettlementPaidPartially and can be resynchronised by paying again.
"""

import logging
from datetime import date, datetime, time
from typing import Dict, List, Optional, Tuple

from fulfillment_engine.app.core.config import EngineOptions
from fulfillment_engine.app.core.exceptions import (
    NoEligibleShipments, ResourceNotFoundError, SettlementPaidPartially,
    SettlementStateConflict, ValidationError
)
from fulfillment_engine.app.db.session import as_naive_utc, utcnow
from fulfillment_engine.app.models.enums import SettlementStatus, SubOrderSettlementStatus
from fulfillment_engine.app.models.order import SubOrder
from fulfillment_engine.app.models.settlement import Settlement, SettlementItem
from fulfillment_engine.app.repositories.fulfillment_repository import (
    ELIGIBLE_DELIVERY_STATUSES, FulfillmentRepository
)
from fulfillment_engine.app.schemas.settlements import CourierPaymentStats, PendingCourierPayment

logger = logging.getLogger(__name__)


def settlement_amount(sub_order: SubOrder) -> float:
    """What the courier is owed for one sub-order (0 when its cost is unknown)."""
    return round(sub_order.shipping_cost or 0, 2)


def settlement_window(start_date: date, end_date: date) -> Tuple[datetime, datetime]:
    """Whole days, start 00:00 through end 23:59:59.999999."""
    return datetime.combine(start_date, time.min), datetime.combine(end_date, time.max)


class SettlementService:

    def __init__(self, repository: FulfillmentRepository, options: EngineOptions):
        self.repository = repository
        self.options = options

    async def get_settlement(self, settlement_id: int) -> Settlement:
        settlement = await self.repository.get_settlement(settlement_id)
        if settlement is None:
            raise ResourceNotFoundError("Settlement", settlement_id)
        return settlement

    async def create_settlement(
        self,
        courier_id: int,
        start_date: date,
        end_date: date,
        notes: Optional[str] = None
    ) -> Settlement:
        """
        Create a PENDING settlement from the courier's eligible, unsettled
        sub-orders created within the period.

        Raises:
            ValidationError: start_date after end_date.
            ResourceNotFoundError: unknown courier.
            NoEligibleShipments: nothing to settle (no empty batches are created).
        """
        if start_date > end_date:
            raise ValidationError(
                "start_date must not be after end_date",
                details={"start_date": str(start_date), "end_date": str(end_date)}
            )
        courier = await self.repository.get_courier(courier_id)
        if courier is None:
            raise ResourceNotFoundError("Courier", courier_id)

        period_start, period_end = settlement_window(start_date, end_date)
        sub_orders = await self.repository.query_sub_orders_for_settlement(
            courier_id, period_start, period_end, unsettled_only=True
        )
        if not sub_orders:
            raise NoEligibleShipments(courier_id, start_date, end_date)

        items = [
            SettlementItem(sub_order_id=sub_order.id, amount=settlement_amount(sub_order))
            for sub_order in sub_orders
        ]
        settlement = Settlement(
            courier_id=courier_id,
            period_start=period_start,
            period_end=period_end,
            total_amount=round(sum(item.amount for item in items), 2),
            shipment_count=len(items),
            status=SettlementStatus.PENDING,
            notes=notes,
        )

        async with self.repository.transaction():
            await self.repository.insert_settlement(settlement, items)

        logger.info(
            "Settlement created",
            extra={
                "settlement_id": settlement.id,
                "courier_id": courier_id,
                "shipments": len(items),
                "total_amount": settlement.total_amount,
            }
        )
        return settlement

    async def _linked_sub_orders(self, settlement_id: int) -> List[SubOrder]:
        items = await self.repository.list_settlement_items(settlement_id)
        return await self.repository.get_sub_orders(item.sub_order_id for item in items)

    async def approve(self, settlement_id: int, approved_by: Optional[str] = None) -> Settlement:
        """PENDING → APPROVED; linked sub-orders become settlement-approved."""
        settlement = await self.get_settlement(settlement_id)
        if settlement.status != SettlementStatus.PENDING:
            raise SettlementStateConflict(settlement_id, settlement.status.value, "approve")

        sub_orders = await self._linked_sub_orders(settlement_id)
        async with self.repository.transaction():
            await self.repository.update_settlement(
                settlement,
                status=SettlementStatus.APPROVED,
                approved_by=approved_by,
                approved_at=utcnow(),
            )
            for sub_order in sub_orders:
                if sub_order.settlement_status != SubOrderSettlementStatus.PAID:
                    await self.repository.update_sub_order(
                        sub_order, settlement_status=SubOrderSettlementStatus.APPROVED
                    )

        logger.info("Settlement approved", extra={"settlement_id": settlement_id, "approved_by": approved_by})
        return settlement

    async def mark_paid(
        self,
        settlement_id: int,
        payment_reference: str,
        payment_method: Optional[str] = None,
        payment_date: Optional[datetime] = None,
        paid_by: Optional[str] = None,
        notes: Optional[str] = None
    ) -> Settlement:
        """
        Mark a settlement paid and stamp every linked sub-order.

        Allowed from PENDING or APPROVED. Calling it again on a PAID
        settlement only updates sub-orders a previous call failed to reach;
        if none are left it is a SettlementStateConflict.

        Raises:
            SettlementStateConflict: voided, or already fully paid.
            SettlementPaidPartially: settlement paid, some sub-orders not updated.
        """
        settlement = await self.get_settlement(settlement_id)
        if settlement.status == SettlementStatus.VOIDED:
            raise SettlementStateConflict(settlement_id, settlement.status.value, "pay")

        sub_orders = await self._linked_sub_orders(settlement_id)
        if settlement.status == SettlementStatus.PAID:
            targets = [s for s in sub_orders if s.settlement_status != SubOrderSettlementStatus.PAID]
            if not targets:
                raise SettlementStateConflict(settlement_id, settlement.status.value, "pay")
            logger.warning(
                "Resynchronising sub-orders of a paid settlement",
                extra={"settlement_id": settlement_id, "sub_orders": [s.id for s in targets]}
            )
            paid_on = settlement.payment_date or utcnow()
            payment_reference = settlement.payment_reference or payment_reference
        else:
            targets = sub_orders
            paid_on = as_naive_utc(payment_date) if payment_date else utcnow()
            # Phase 1: the settlement row
            await self.repository.update_settlement(
                settlement,
                status=SettlementStatus.PAID,
                payment_reference=payment_reference,
                payment_method=payment_method,
                payment_date=paid_on,
                paid_by=paid_by,
                paid_at=utcnow(),
                notes=notes if notes is not None else settlement.notes,
            )

        # Phase 2: each sub-order on its own
        pending = [(sub_order, sub_order.id, settlement_amount(sub_order)) for sub_order in targets]
        updated: List[int] = []
        failed: List[int] = []
        for sub_order, sub_order_id, amount in pending:
            try:
                await self.repository.update_sub_order(
                    sub_order,
                    settlement_status=SubOrderSettlementStatus.PAID,
                    settlement_date=paid_on,
                    payment_reference=payment_reference,
                    courier_paid_amount=amount,
                )
                updated.append(sub_order_id)
            except Exception as exc:
                logger.error(
                    "Sub-order payment update failed",
                    extra={"settlement_id": settlement_id, "sub_order_id": sub_order_id, "error": str(exc)}
                )
                failed.append(sub_order_id)

        if failed:
            raise SettlementPaidPartially(settlement_id, updated, failed)

        logger.info(
            "Settlement paid",
            extra={"settlement_id": settlement_id, "sub_orders": len(updated), "reference": payment_reference}
        )
        return settlement

    async def void(self, settlement_id: int, reason: Optional[str] = None) -> Settlement:
        """PENDING/APPROVED → VOIDED; linked sub-orders can be batched again."""
        settlement = await self.get_settlement(settlement_id)
        if settlement.status not in (SettlementStatus.PENDING, SettlementStatus.APPROVED):
            raise SettlementStateConflict(settlement_id, settlement.status.value, "void")

        sub_orders = await self._linked_sub_orders(settlement_id)
        async with self.repository.transaction():
            await self.repository.update_settlement(
                settlement,
                status=SettlementStatus.VOIDED,
                voided_at=utcnow(),
                notes=reason if reason is not None else settlement.notes,
            )
            for sub_order in sub_orders:
                if sub_order.settlement_status != SubOrderSettlementStatus.PAID:
                    await self.repository.update_sub_order(
                        sub_order, settlement_status=SubOrderSettlementStatus.PENDING
                    )

        logger.info("Settlement voided", extra={"settlement_id": settlement_id})
        return settlement

    async def list_settlements(
        self,
        courier_id: Optional[int] = None,
        status: Optional[SettlementStatus] = None,
        limit: int = 50
    ) -> List[Settlement]:
        return await self.repository.list_settlements(courier_id, status, limit)

    async def settlement_detail(self, settlement_id: int) -> Tuple[Settlement, List[SettlementItem]]:
        settlement = await self.get_settlement(settlement_id)
        items = await self.repository.list_settlement_items(settlement_id)
        return settlement, items

    async def payment_stats(self, courier_id: Optional[int] = None) -> CourierPaymentStats:
        """
        Payment totals over a courier's sub-orders (all couriers when None).

        pending/approved only count shipments that are delivered or in
        transit; paid_amount sums what was actually paid.
        """
        sub_orders = await self.repository.list_courier_sub_orders(courier_id)
        eligible = [s for s in sub_orders if s.status in ELIGIBLE_DELIVERY_STATUSES]

        pending = sum(settlement_amount(s) for s in eligible if s.settlement_status == SubOrderSettlementStatus.PENDING)
        approved = sum(settlement_amount(s) for s in eligible if s.settlement_status == SubOrderSettlementStatus.APPROVED)
        paid = sum(s.courier_paid_amount or 0 for s in sub_orders if s.settlement_status == SubOrderSettlementStatus.PAID)

        return CourierPaymentStats(
            courier_id=courier_id,
            total_shipments=len(sub_orders),
            pending_payment=round(pending, 2),
            approved_payment=round(approved, 2),
            paid_amount=round(paid, 2),
            total_due=round(pending + approved, 2),
        )

    async def pending_payments(self) -> List[PendingCourierPayment]:
        """Per-courier summary of what is owed, largest amount first."""
        sub_orders = await self.repository.query_sub_orders_for_settlement(unsettled_only=False)
        by_courier: Dict[int, List[SubOrder]] = {}
        for sub_order in sub_orders:
            by_courier.setdefault(sub_order.courier_id, []).append(sub_order)
        couriers = await self.repository.get_couriers(by_courier.keys())

        summaries = []
        for courier_id, rows in by_courier.items():
            courier = couriers.get(courier_id)
            created = [row.created_at for row in rows]
            summaries.append(PendingCourierPayment(
                courier_id=courier_id,
                courier_name=courier.name if courier else None,
                courier_code=courier.code if courier else None,
                pending_shipments=len(rows),
                total_amount_due=round(sum(settlement_amount(row) for row in rows), 2),
                approved_amount=round(sum(
                    settlement_amount(row) for row in rows
                    if row.settlement_status == SubOrderSettlementStatus.APPROVED
                ), 2),
                oldest_shipment=min(created),
                newest_shipment=max(created),
            ))
        summaries.sort(key=lambda summary: summary.total_amount_due, reverse=True)
        return summaries

