"""
Courier Settlement API Endpoints.

Settlement batching and the approve → pay / void workflow.
"""

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from fulfillment_engine.app.api.deps import get_actor, get_settlement_service
from fulfillment_engine.app.db.session import get_db
from fulfillment_engine.app.domain.billing.settlement_service import SettlementService
from fulfillment_engine.app.models.enums import SettlementStatus
from fulfillment_engine.app.schemas.settlements import (
    CourierPaymentStats, PendingCourierPayment, SettlementApproveRequest, SettlementCreate,
    SettlementDetailResponse, SettlementItemResponse, SettlementPayRequest, SettlementResponse,
    SettlementVoidRequest
)
from fulfillment_engine.app.services.audit import log_event, AuditAction

router = APIRouter(prefix="/settlements", tags=["Settlements"])


@router.post("", response_model=SettlementResponse, status_code=status.HTTP_201_CREATED)
async def create_settlement(
    data: SettlementCreate,
    service: SettlementService = Depends(get_settlement_service),
    actor: Optional[str] = Depends(get_actor),
    db: AsyncSession = Depends(get_db)
):
    """
    Batch a courier's eligible shipments for the period into a PENDING settlement.
    
    400 ERR_NO_ELIGIBLE_SHIPMENTS when nothing qualifies.
    """
    settlement = await service.create_settlement(data.courier_id, data.start_date, data.end_date, data.notes)
    response = SettlementResponse.model_validate(settlement)
    
    await log_event(
        db=db,
        action=AuditAction.SETTLEMENT_CREATED,
        actor=actor,
        entity_type="settlement",
        entity_id=response.id,
        metadata={
            "courier_id": response.courier_id,
            "shipments": response.shipment_count,
            "total_amount": response.total_amount
        }
    )
    return response


@router.get("", response_model=List[SettlementResponse])
async def list_settlements(
    courier_id: Optional[int] = Query(None),
    settlement_status: Optional[SettlementStatus] = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=500),
    service: SettlementService = Depends(get_settlement_service)
):
    """List settlements, newest first."""
    return await service.list_settlements(courier_id, settlement_status, limit)


@router.get("/pending-payments", response_model=List[PendingCourierPayment])
async def pending_payments(service: SettlementService = Depends(get_settlement_service)):
    """What each courier is owed, largest amount first."""
    return await service.pending_payments()


@router.get("/stats", response_model=CourierPaymentStats)
async def payment_stats(
    courier_id: Optional[int] = Query(None),
    service: SettlementService = Depends(get_settlement_service)
):
    """Payment totals for one courier, or all couriers."""
    return await service.payment_stats(courier_id)


@router.get("/{settlement_id}", response_model=SettlementDetailResponse)
async def get_settlement(
    settlement_id: int = Path(..., description="Settlement ID"),
    service: SettlementService = Depends(get_settlement_service)
):
    settlement, items = await service.settlement_detail(settlement_id)
    return SettlementDetailResponse(
        settlement=SettlementResponse.model_validate(settlement),
        items=[SettlementItemResponse.model_validate(item) for item in items],
    )


@router.post("/{settlement_id}/approve", response_model=SettlementResponse)
async def approve_settlement(
    settlement_id: int = Path(..., description="Settlement ID"),
    body: Optional[SettlementApproveRequest] = None,
    service: SettlementService = Depends(get_settlement_service),
    actor: Optional[str] = Depends(get_actor),
    db: AsyncSession = Depends(get_db)
):
    """Approve a PENDING settlement."""
    approved_by = (body.approved_by if body else None) or actor
    settlement = await service.approve(settlement_id, approved_by)
    response = SettlementResponse.model_validate(settlement)
    
    await log_event(
        db=db,
        action=AuditAction.SETTLEMENT_APPROVED,
        actor=approved_by,
        entity_type="settlement",
        entity_id=settlement_id
    )
    return response


@router.post("/{settlement_id}/mark-paid", response_model=SettlementResponse)
async def mark_settlement_paid(
    payment: SettlementPayRequest,
    settlement_id: int = Path(..., description="Settlement ID"),
    service: SettlementService = Depends(get_settlement_service),
    actor: Optional[str] = Depends(get_actor),
    db: AsyncSession = Depends(get_db)
):
    """
    Mark a PENDING or APPROVED settlement as PAID.
    
    500 ERR_SETTLEMENT_PARTIAL lists sub-orders that still need updating;
    calling again finishes them.
    """
    settlement = await service.mark_paid(
        settlement_id,
        payment.payment_reference,
        payment_method=payment.payment_method,
        payment_date=payment.payment_date,
        paid_by=payment.paid_by or actor,
        notes=payment.notes,
    )
    response = SettlementResponse.model_validate(settlement)
    
    await log_event(
        db=db,
        action=AuditAction.SETTLEMENT_PAID,
        actor=payment.paid_by or actor,
        entity_type="settlement",
        entity_id=settlement_id,
        metadata={"payment_reference": payment.payment_reference, "total_amount": response.total_amount}
    )
    return response


@router.post("/{settlement_id}/void", response_model=SettlementResponse)
async def void_settlement(
    settlement_id: int = Path(..., description="Settlement ID"),
    body: Optional[SettlementVoidRequest] = None,
    service: SettlementService = Depends(get_settlement_service),
    actor: Optional[str] = Depends(get_actor),
    db: AsyncSession = Depends(get_db)
):
    """Void an unpaid settlement; its shipments become eligible again."""
    reason = body.reason if body else None
    settlement = await service.void(settlement_id, reason)
    response = SettlementResponse.model_validate(settlement)
    
    await log_event(
        db=db,
        action=AuditAction.SETTLEMENT_VOIDED,
        actor=(body.voided_by if body else None) or actor,
        entity_type="settlement",
        entity_id=settlement_id,
        metadata={"reason": reason}
    )
    return response
