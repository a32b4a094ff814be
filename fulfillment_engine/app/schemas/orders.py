"""
Order Pydantic schemas.

Storefront order ingest, sub-order views and order tracking responses.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List, Any, Dict
from fulfillment_engine.app.models.enums import (
    OrderStatus, PaymentStatus, SubOrderStatus, SubOrderSettlementStatus, TrackingSource
)
from fulfillment_engine.app.schemas.shipping import ShippingEstimate


class OrderItemIn(BaseModel):
    """One storefront line item."""
    product_id: str = Field(..., min_length=1, max_length=100)
    product_name: Optional[str] = Field(None, max_length=200)
    hub_id: Optional[int] = None
    vendor_id: Optional[str] = Field(None, max_length=100)
    quantity: int = Field(..., gt=0)
    unit_price: float = Field(..., ge=0)
    weight: Optional[float] = Field(None, gt=0, description="Unit weight in kilograms")
    
    def line_total(self) -> float:
        return self.unit_price * self.quantity
    
    def as_stored(self) -> Dict[str, Any]:
        return {
            "product_id": self.product_id,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "unit_price": self.unit_price,
            "weight": self.weight,
        }


class OrderCreate(BaseModel):
    """Schema for a normalized storefront order."""
    external_order_id: Optional[str] = Field(None, max_length=100)
    customer_name: str = Field(..., min_length=1, max_length=200)
    customer_email: str = Field(..., min_length=3, max_length=200)
    customer_phone: Optional[str] = Field(None, max_length=50)
    delivery_address: str = Field(..., min_length=1, max_length=500)
    delivery_city: Optional[str] = Field(None, max_length=100)
    delivery_state: str = Field(..., min_length=1, max_length=100)
    items: List[OrderItemIn] = Field(..., min_length=1)
    shipping_fee_paid: float = Field(default=0, ge=0)
    subtotal: Optional[float] = Field(None, ge=0, description="Defaults to the sum of line totals")
    total_amount: Optional[float] = Field(None, ge=0, description="Defaults to subtotal + shipping fee")
    payment_status: PaymentStatus = PaymentStatus.PENDING
    
    def computed_subtotal(self) -> float:
        return round(sum(item.line_total() for item in self.items), 2)


class TrackingEventResponse(BaseModel):
    """Schema for one tracking event."""
    id: int
    sub_order_id: int
    status: SubOrderStatus
    description: Optional[str]
    location: Optional[str]
    actor_type: str
    source: TrackingSource
    event_time: datetime
    created_at: datetime
    
    class Config:
        from_attributes = True


class SubOrderResponse(BaseModel):
    """Schema for sub-order response."""
    id: int
    order_id: int
    hub_id: Optional[int]
    courier_id: Optional[int]
    vendor_id: Optional[str]
    items: List[Dict[str, Any]]
    subtotal: float
    allocated_shipping_fee: float
    shipping_cost: Optional[float]
    tracking_number: Optional[str]
    status: SubOrderStatus
    settlement_status: SubOrderSettlementStatus
    picked_up_at: Optional[datetime]
    in_transit_at: Optional[datetime]
    out_for_delivery_at: Optional[datetime]
    delivered_at: Optional[datetime]
    failed_at: Optional[datetime]
    last_tracking_update: Optional[datetime]
    created_at: datetime
    
    class Config:
        from_attributes = True


class OrderResponse(BaseModel):
    """Schema for main order response."""
    id: int
    external_order_id: Optional[str]
    customer_name: str
    customer_email: str
    customer_phone: Optional[str]
    delivery_address: str
    delivery_city: Optional[str]
    delivery_state: str
    delivery_zone_id: int
    subtotal: float
    total_amount: float
    shipping_fee_paid: float
    payment_status: PaymentStatus
    overall_status: OrderStatus
    created_at: datetime
    updated_at: datetime
    
    class Config:
        from_attributes = True


class SplitOrderResult(BaseModel):
    """Main order plus the sub-orders it was split into."""
    order: OrderResponse
    sub_orders: List[SubOrderResponse]


class AssignmentFailure(BaseModel):
    sub_order_id: int
    error_code: str
    message: str


class OrderIngestResponse(BaseModel):
    """Result of a storefront order ingest."""
    order: OrderResponse
    sub_orders: List[SubOrderResponse]
    shipping: Optional[ShippingEstimate] = None
    assignment_failures: List[AssignmentFailure] = []


class SubOrderTracking(BaseModel):
    sub_order: SubOrderResponse
    events: List[TrackingEventResponse]


class OrderTrackingResponse(BaseModel):
    """Order with each sub-order's events, newest first."""
    order: OrderResponse
    sub_orders: List[SubOrderTracking]


class OrderCancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class OrderPurgeResponse(BaseModel):
    order_id: int
    deleted_sub_orders: int
