"""
Audit Log Database Model.

One row per operator or engine action on an order, sub-order, settlement
or piece of shipping configuration.
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON, Index
from fulfillment_engine.app.db.session import Base, utcnow


class AuditLog(Base):
    """
    Audit trail entry.

    `actor` is the X-Actor header of the request, or "system" for
    engine-initiated actions such as automatic courier assignment.
    """
    __tablename__ = "audit_logs"
    __table_args__ = (
        Index("ix_audit_logs_entity", "entity_type", "entity_id"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    action = Column(String(100), nullable=False, index=True)
    actor = Column(String(100), nullable=True)

    # "order", "sub_order", "settlement", "zone", "hub", "courier", "rate"
    entity_type = Column(String(50), nullable=True)
    entity_id = Column(Integer, nullable=True)

    meta_data = Column(JSON, nullable=True)
    timestamp = Column(DateTime, default=utcnow, nullable=False, index=True)

    def __repr__(self):
        return f"<AuditLog {self.action} {self.entity_type}:{self.entity_id} by {self.actor}>"
