"""
Courier Settlement database models.

Aggregates delivered sub-orders into a single payment obligation to a courier.
"""

from sqlalchemy import Column, Integer, Float, ForeignKey, DateTime, String, Text, UniqueConstraint
from fulfillment_engine.app.db.session import Base, utcnow
from fulfillment_engine.app.models.enums import SettlementStatus, enum_column


class Settlement(Base):
    """
    Settlement model.
    
    Represents a periodic aggregation of sub-order shipping costs owed to a courier.
    Workflow: PENDING -> APPROVED -> PAID, or PENDING/APPROVED -> VOIDED.
    """
    __tablename__ = "courier_settlements"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    
    # Payee
    courier_id = Column(Integer, ForeignKey("couriers.id"), nullable=False, index=True)
    
    # Period
    period_start = Column(DateTime, nullable=False)
    period_end = Column(DateTime, nullable=False)
    
    # Financials
    total_amount = Column(Float, nullable=False)
    shipment_count = Column(Integer, nullable=False, default=0)
    
    # Status
    status = Column(enum_column(SettlementStatus), default=SettlementStatus.PENDING, nullable=False, index=True)
    
    # Approval Flow
    approved_by = Column(String(100), nullable=True)
    approved_at = Column(DateTime, nullable=True)
    
    # Payment Flow
    payment_reference = Column(String(100), nullable=True)
    payment_method = Column(String(50), nullable=True)
    payment_date = Column(DateTime, nullable=True)
    paid_by = Column(String(100), nullable=True)
    paid_at = Column(DateTime, nullable=True)
    notes = Column(Text, nullable=True)
    
    voided_at = Column(DateTime, nullable=True)
    
    # Timestamps
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    
    def __repr__(self):
        return f"<Settlement(id={self.id}, courier={self.courier_id}, status='{self.status.value}', amount={self.total_amount})>"


class SettlementItem(Base):
    """One sub-order's amount within a settlement."""
    __tablename__ = "settlement_items"
    __table_args__ = (
        UniqueConstraint("settlement_id", "sub_order_id", name="uq_settlement_sub_order"),
    )
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    
    settlement_id = Column(Integer, ForeignKey("courier_settlements.id"), nullable=False, index=True)
    sub_order_id = Column(Integer, ForeignKey("sub_orders.id"), nullable=False, index=True)
    amount = Column(Float, nullable=False)
    
    created_at = Column(DateTime, default=utcnow, nullable=False)
    
    def __repr__(self):
        return f"<SettlementItem(settlement={self.settlement_id}, sub_order={self.sub_order_id}, amount={self.amount})>"
