"""
Notification Outbox Database Model.

Status-change notifications waiting for the email sender.
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, JSON
from fulfillment_engine.app.db.session import Base, utcnow


class NotificationOutbox(Base):
    """
    One pending customer notification per order status change.
    Delivery (templating, SMTP) happens outside the engine.
    """
    __tablename__ = "notification_outbox"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    channel = Column(String(20), nullable=False, default="email")
    recipient = Column(String(200), nullable=True)
    
    new_status = Column(String(32), nullable=False)
    old_status = Column(String(32), nullable=True)
    metadata_payload = Column(JSON, nullable=True)
    
    is_sent = Column(Boolean, default=False, nullable=False, index=True)
    sent_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    
    def __repr__(self):
        return f"<NotificationOutbox(id={self.id}, order={self.order_id}, status='{self.new_status}')>"
