"""
Order API Endpoints.

Storefront order ingest, order lookup, cancellation, purge and manual
courier assignment.
"""

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from fulfillment_engine.app.api.deps import (
    get_actor, get_assignment_service, get_order_service
)
from fulfillment_engine.app.core.config import settings
from fulfillment_engine.app.db.session import get_db
from fulfillment_engine.app.domain.orders.courier_assignment import CourierAssignmentService
from fulfillment_engine.app.domain.orders.order_service import OrderService
from fulfillment_engine.app.schemas.orders import (
    AssignmentFailure, OrderCancelRequest, OrderCreate, OrderIngestResponse, OrderPurgeResponse,
    OrderResponse, OrderTrackingResponse, SplitOrderResult, SubOrderResponse, SubOrderTracking,
    TrackingEventResponse
)
from fulfillment_engine.app.services.audit import log_event, AuditAction

router = APIRouter(tags=["Orders"])


async def _tracking_response(service: OrderService, order_id: int, email: Optional[str] = None) -> OrderTrackingResponse:
    order, sub_orders = await service.tracking_details(order_id, email)
    return OrderTrackingResponse(
        order=OrderResponse.model_validate(order),
        sub_orders=[
            SubOrderTracking(
                sub_order=SubOrderResponse.model_validate(sub_order),
                events=[TrackingEventResponse.model_validate(event) for event in events],
            )
            for sub_order, events in sub_orders
        ],
    )


@router.post("/orders", response_model=OrderIngestResponse, status_code=status.HTTP_201_CREATED)
async def ingest_order(
    order_in: OrderCreate,
    service: OrderService = Depends(get_order_service),
    actor: Optional[str] = Depends(get_actor),
    db: AsyncSession = Depends(get_db)
):
    """
    Ingest a storefront order.
    
    Prices it, splits it into hub/vendor sub-orders and, when enabled,
    assigns a courier to each. Assignment failures are listed in the
    response rather than failing the request.
    """
    result = await service.ingest(order_in, auto_assign=settings.auto_assign_couriers)
    response = OrderIngestResponse(
        order=OrderResponse.model_validate(result.order),
        sub_orders=[SubOrderResponse.model_validate(s) for s in result.sub_orders],
        shipping=result.shipping,
        assignment_failures=[AssignmentFailure(**failure) for failure in result.assignment_failures],
    )
    
    await log_event(
        db=db,
        action=AuditAction.ORDER_INGESTED,
        actor=actor,
        entity_type="order",
        entity_id=response.order.id,
        metadata={
            "external_order_id": response.order.external_order_id,
            "sub_orders": [s.id for s in response.sub_orders],
            "assignment_failures": len(response.assignment_failures),
        }
    )
    return response


@router.get("/orders/{order_id}", response_model=SplitOrderResult)
async def get_order(
    order_id: int = Path(..., description="Order ID"),
    service: OrderService = Depends(get_order_service)
):
    """Main order with its sub-orders."""
    order = await service.get_order(order_id)
    sub_orders = await service.repository.list_sub_orders(order_id)
    return SplitOrderResult(
        order=OrderResponse.model_validate(order),
        sub_orders=[SubOrderResponse.model_validate(s) for s in sub_orders],
    )


@router.get("/orders/{order_id}/tracking", response_model=OrderTrackingResponse)
async def get_order_tracking(
    order_id: int = Path(..., description="Order ID"),
    service: OrderService = Depends(get_order_service)
):
    """Order with every sub-order's tracking history, newest event first."""
    return await _tracking_response(service, order_id)


@router.get("/public/orders/{order_id}/tracking", response_model=OrderTrackingResponse)
async def get_public_order_tracking(
    order_id: int = Path(..., description="Order ID"),
    email: str = Query(..., min_length=3, description="Customer email on the order"),
    service: OrderService = Depends(get_order_service)
):
    """Customer-facing tracking; 404 unless the email matches the order."""
    return await _tracking_response(service, order_id, email)


@router.post("/orders/{order_id}/cancel", response_model=OrderResponse)
async def cancel_order(
    order_id: int = Path(..., description="Order ID"),
    body: Optional[OrderCancelRequest] = None,
    service: OrderService = Depends(get_order_service),
    actor: Optional[str] = Depends(get_actor),
    db: AsyncSession = Depends(get_db)
):
    """Cancel an order while none of its sub-orders has been picked up."""
    reason = body.reason if body else None
    order = await service.cancel_order(order_id, reason)
    response = OrderResponse.model_validate(order)
    
    await log_event(
        db=db,
        action=AuditAction.ORDER_CANCELLED,
        actor=actor,
        entity_type="order",
        entity_id=order_id,
        metadata={"reason": reason}
    )
    return response


@router.delete("/orders/{order_id}", response_model=OrderPurgeResponse)
async def purge_order(
    order_id: int = Path(..., description="Order ID"),
    service: OrderService = Depends(get_order_service),
    actor: Optional[str] = Depends(get_actor),
    db: AsyncSession = Depends(get_db)
):
    """
    Administrative purge: order, sub-orders, tracking events, outbox rows.
    
    Refused (409) while a sub-order is part of an open settlement.
    """
    deleted = await service.purge_order(order_id)
    
    await log_event(
        db=db,
        action=AuditAction.ORDER_PURGED,
        actor=actor,
        entity_type="order",
        entity_id=order_id,
        metadata={"deleted_sub_orders": deleted}
    )
    return OrderPurgeResponse(order_id=order_id, deleted_sub_orders=deleted)


@router.post("/sub-orders/{sub_order_id}/assign-courier", response_model=SubOrderResponse)
async def assign_courier(
    sub_order_id: int = Path(..., description="Sub-order ID"),
    service: CourierAssignmentService = Depends(get_assignment_service),
    actor: Optional[str] = Depends(get_actor),
    db: AsyncSession = Depends(get_db)
):
    """(Re-)assign the hub's best courier to a sub-order."""
    sub_order = await service.assign_courier(sub_order_id)
    response = SubOrderResponse.model_validate(sub_order)
    
    await log_event(
        db=db,
        action=AuditAction.COURIER_ASSIGNED,
        actor=actor,
        entity_type="sub_order",
        entity_id=sub_order_id,
        metadata={"courier_id": response.courier_id, "tracking_number": response.tracking_number}
    )
    return response
