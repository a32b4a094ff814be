"""
Tracking Event database model.

Append-only delivery log for a sub-order.
"""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, JSON
from fulfillment_engine.app.db.session import Base, utcnow
from fulfillment_engine.app.models.enums import SubOrderStatus, TrackingSource, enum_column


class TrackingEvent(Base):
    """
    Tracking Event model.
    
    NO updates allowed. The newest event by event_time defines the
    sub-order's current status.
    """
    __tablename__ = "tracking_events"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    
    sub_order_id = Column(Integer, ForeignKey("sub_orders.id"), nullable=False, index=True)
    
    status = Column(enum_column(SubOrderStatus), nullable=False)
    description = Column(String(500), nullable=True)
    location = Column(String(200), nullable=True)
    
    # Reporter
    actor_type = Column(String(50), nullable=False, default="system")
    source = Column(enum_column(TrackingSource), nullable=False, default=TrackingSource.SYSTEM)
    raw_data = Column(JSON, nullable=True)
    
    event_time = Column(DateTime, default=utcnow, nullable=False, index=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    
    def __repr__(self):
        return f"<TrackingEvent(id={self.id}, sub_order={self.sub_order_id}, status='{self.status.value}')>"
