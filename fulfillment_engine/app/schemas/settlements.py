"""
Courier settlement schemas.
"""

from pydantic import BaseModel, Field
from datetime import date, datetime
from typing import Optional, List
from fulfillment_engine.app.models.enums import SettlementStatus


class SettlementCreate(BaseModel):
    """Schema for batching a courier's shipments over a period."""
    courier_id: int
    start_date: date
    end_date: date
    notes: Optional[str] = Field(None, max_length=1000)


class SettlementApproveRequest(BaseModel):
    approved_by: Optional[str] = Field(None, max_length=100)


class SettlementPayRequest(BaseModel):
    """Payment metadata stamped on the settlement and its sub-orders."""
    payment_reference: str = Field(..., min_length=1, max_length=100)
    payment_method: Optional[str] = Field(None, max_length=50)
    payment_date: Optional[datetime] = None
    paid_by: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = Field(None, max_length=1000)


class SettlementVoidRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=1000)
    voided_by: Optional[str] = Field(None, max_length=100)


class SettlementItemResponse(BaseModel):
    id: int
    sub_order_id: int
    amount: float
    
    class Config:
        from_attributes = True


class SettlementResponse(BaseModel):
    """Schema for displaying settlements."""
    id: int
    courier_id: int
    period_start: datetime
    period_end: datetime
    total_amount: float
    shipment_count: int
    status: SettlementStatus
    approved_by: Optional[str]
    approved_at: Optional[datetime]
    payment_reference: Optional[str]
    payment_method: Optional[str]
    payment_date: Optional[datetime]
    paid_by: Optional[str]
    paid_at: Optional[datetime]
    voided_at: Optional[datetime]
    notes: Optional[str]
    created_at: datetime
    updated_at: datetime
    
    class Config:
        from_attributes = True


class SettlementDetailResponse(BaseModel):
    settlement: SettlementResponse
    items: List[SettlementItemResponse]


class CourierPaymentStats(BaseModel):
    """Fresh aggregate over a courier's sub-orders."""
    courier_id: Optional[int]
    total_shipments: int
    pending_payment: float
    approved_payment: float
    paid_amount: float
    total_due: float


class PendingCourierPayment(BaseModel):
    courier_id: int
    courier_name: Optional[str]
    courier_code: Optional[str]
    pending_shipments: int
    total_amount_due: float
    approved_amount: float
    oldest_shipment: datetime
    newest_shipment: datetime
