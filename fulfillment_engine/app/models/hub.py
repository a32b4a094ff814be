"""
Hub and Hub-Courier database models.

A hub is a fulfillment location; HubCourier links rank the couriers that
may collect from it.
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, UniqueConstraint
from fulfillment_engine.app.db.session import Base, utcnow


class Hub(Base):
    """
    Hub model for the fulfillment network.
    
    Each hub has an address and an active flag (soft delete).
    """
    __tablename__ = "hubs"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    
    # Hub details
    name = Column(String(200), nullable=False)
    code = Column(String(20), nullable=True, unique=True)
    address = Column(String(500), nullable=True)
    city = Column(String(100), nullable=True)
    state = Column(String(100), nullable=True)
    
    # Status (soft delete)
    is_active = Column(Boolean, default=True, nullable=False, index=True)
    
    # Timestamps
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    
    def __repr__(self):
        return f"<Hub(id={self.id}, name='{self.name}', active={self.is_active})>"


class HubCourier(Base):
    """
    Hub → Courier preference link.
    
    Selection order is is_primary desc, priority desc; at most one primary
    link per hub.
    """
    __tablename__ = "hub_couriers"
    __table_args__ = (
        UniqueConstraint("hub_id", "courier_id", name="uq_hub_courier"),
    )
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    
    hub_id = Column(Integer, ForeignKey("hubs.id"), nullable=False, index=True)
    courier_id = Column(Integer, ForeignKey("couriers.id"), nullable=False, index=True)
    
    is_primary = Column(Boolean, default=False, nullable=False)
    priority = Column(Integer, default=0, nullable=False)
    
    created_at = Column(DateTime, default=utcnow, nullable=False)
    
    def __repr__(self):
        return f"<HubCourier(hub={self.hub_id}, courier={self.courier_id}, primary={self.is_primary}, priority={self.priority})>"
