"""
Shipping Rate database model.

Defines the flat / per-kg pricing used by the shipping calculator.
"""

from sqlalchemy import Column, Integer, String, Float, DateTime, Boolean, ForeignKey
from fulfillment_engine.app.db.session import Base, utcnow


class ShippingRate(Base):
    """
    Shipping Rate model.
    
    Scoped to a zone and optionally to a hub and/or courier. Several rates
    may match; the active one with the highest priority governs. Rates are
    soft-disabled through is_active and never hard deleted.
    """
    __tablename__ = "shipping_rates"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    
    # Scope
    zone_id = Column(Integer, ForeignKey("zones.id"), nullable=False, index=True)
    hub_id = Column(Integer, ForeignKey("hubs.id"), nullable=True, index=True)
    courier_id = Column(Integer, ForeignKey("couriers.id"), nullable=True, index=True)
    
    name = Column(String(100), nullable=True)
    
    # Pricing
    flat_rate = Column(Float, nullable=False)
    per_kg_rate = Column(Float, nullable=True)
    min_weight_kg = Column(Float, nullable=True)
    max_weight_kg = Column(Float, nullable=True)
    free_shipping_threshold = Column(Float, nullable=True)
    
    # Selection
    is_active = Column(Boolean, default=True, nullable=False, index=True)
    priority = Column(Integer, default=0, nullable=False)
    
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    
    def __repr__(self):
        return f"<ShippingRate(id={self.id}, zone={self.zone_id}, hub={self.hub_id}, flat={self.flat_rate}, priority={self.priority})>"
