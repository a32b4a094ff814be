"""
Shipping Pydantic schemas.

Request and response models for shipping estimates.
"""

from pydantic import BaseModel, Field
from typing import Optional, List


class ShippingItem(BaseModel):
    """One cart line as seen by the shipping calculator."""
    product_id: Optional[str] = None
    hub_id: Optional[int] = Field(None, description="Fulfilling hub; None falls into the default group")
    quantity: int = Field(..., gt=0)
    weight: Optional[float] = Field(None, gt=0, description="Unit weight in kilograms")
    price: Optional[float] = Field(None, ge=0, description="Unit price")


class ShippingCalculationRequest(BaseModel):
    """Schema for a shipping estimate."""
    delivery_state: str = Field(..., min_length=1, max_length=100)
    delivery_city: Optional[str] = Field(None, max_length=100)
    items: List[ShippingItem] = Field(..., min_length=1)
    total_order_value: Optional[float] = Field(None, ge=0)
    
    def declared_value(self) -> float:
        """Explicit order value, else the sum of priced items."""
        if self.total_order_value is not None:
            return self.total_order_value
        return sum((item.price or 0) * item.quantity for item in self.items)


class HubShippingBreakdown(BaseModel):
    hub_id: Optional[int]
    hub_name: str
    shipping_cost: float
    item_count: int
    total_weight_kg: float
    rate_id: int


class ShippingEstimate(BaseModel):
    """Schema for a shipping estimate result."""
    total_shipping_fee: float
    zone_id: int
    zone_name: str
    estimated_delivery_days: int
    breakdown: List[HubShippingBreakdown]
