"""
Shipping configuration schemas.

Zones, hubs, couriers, hub-courier links and shipping rates.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List


class ZoneCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    code: str = Field(..., min_length=1, max_length=20)
    states: List[str] = Field(..., min_length=1, description="Member state names")
    cities: Optional[List[str]] = None
    estimated_delivery_days: Optional[int] = Field(None, ge=0)


class ZoneUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    states: Optional[List[str]] = Field(None, min_length=1)
    cities: Optional[List[str]] = None
    estimated_delivery_days: Optional[int] = Field(None, ge=0)


class ZoneResponse(BaseModel):
    id: int
    name: str
    code: str
    states: List[str]
    cities: Optional[List[str]]
    estimated_delivery_days: Optional[int]
    created_at: datetime
    
    class Config:
        from_attributes = True


class HubCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    code: Optional[str] = Field(None, max_length=20)
    address: Optional[str] = Field(None, max_length=500)
    city: Optional[str] = Field(None, max_length=100)
    state: Optional[str] = Field(None, max_length=100)


class HubResponse(BaseModel):
    id: int
    name: str
    code: Optional[str]
    address: Optional[str]
    city: Optional[str]
    state: Optional[str]
    is_active: bool
    created_at: datetime
    
    class Config:
        from_attributes = True


class CourierCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    code: str = Field(..., min_length=1, max_length=20)
    base_rate: Optional[float] = Field(None, ge=0)
    success_rate: Optional[float] = Field(None, ge=0, le=100)
    is_active: bool = True


class CourierResponse(BaseModel):
    id: int
    name: str
    code: str
    base_rate: Optional[float]
    success_rate: Optional[float]
    is_active: bool
    created_at: datetime
    
    class Config:
        from_attributes = True


class HubCourierCreate(BaseModel):
    courier_id: int
    is_primary: bool = False
    priority: int = Field(default=0, ge=0)


class HubCourierResponse(BaseModel):
    """A hub's courier link with the courier's details."""
    link_id: int
    hub_id: int
    courier_id: int
    courier_name: str
    courier_code: str
    is_primary: bool
    priority: int
    is_active: bool


class ShippingRateCreate(BaseModel):
    zone_id: int
    hub_id: Optional[int] = None
    courier_id: Optional[int] = None
    name: Optional[str] = Field(None, max_length=100)
    flat_rate: float = Field(..., ge=0)
    per_kg_rate: Optional[float] = Field(None, ge=0)
    min_weight_kg: Optional[float] = Field(None, ge=0)
    max_weight_kg: Optional[float] = Field(None, gt=0)
    free_shipping_threshold: Optional[float] = Field(None, gt=0)
    priority: int = 0


class ShippingRateResponse(BaseModel):
    id: int
    zone_id: int
    hub_id: Optional[int]
    courier_id: Optional[int]
    name: Optional[str]
    flat_rate: float
    per_kg_rate: Optional[float]
    min_weight_kg: Optional[float]
    max_weight_kg: Optional[float]
    free_shipping_threshold: Optional[float]
    is_active: bool
    priority: int
    created_at: datetime
    
    class Config:
        from_attributes = True
