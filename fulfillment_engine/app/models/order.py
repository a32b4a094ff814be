"""
Order and Sub-Order database models.

A storefront order is split into hub/vendor-scoped sub-orders; each
sub-order is shipped, tracked and settled on its own.
"""

from sqlalchemy import Column, Integer, String, Float, DateTime, ForeignKey, JSON
from fulfillment_engine.app.db.session import Base, utcnow
from fulfillment_engine.app.models.enums import (
    OrderStatus, PaymentStatus, SubOrderStatus, SubOrderSettlementStatus, enum_column
)


class Order(Base):
    """
    Main (parent) order.
    
    Created once per storefront checkout; mutated only by status
    transitions; deleted only by administrative purge.
    """
    __tablename__ = "orders"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    
    # Storefront reference
    external_order_id = Column(String(100), nullable=True, unique=True, index=True)
    
    # Customer
    customer_name = Column(String(200), nullable=False)
    customer_email = Column(String(200), nullable=False, index=True)
    customer_phone = Column(String(50), nullable=True)
    
    # Delivery
    delivery_address = Column(String(500), nullable=False)
    delivery_city = Column(String(100), nullable=True)
    delivery_state = Column(String(100), nullable=False)
    delivery_zone_id = Column(Integer, ForeignKey("zones.id"), nullable=False, index=True)
    
    # Financials
    subtotal = Column(Float, nullable=False)
    total_amount = Column(Float, nullable=False)
    shipping_fee_paid = Column(Float, nullable=False, default=0)
    
    # Status
    payment_status = Column(enum_column(PaymentStatus), default=PaymentStatus.PENDING, nullable=False)
    overall_status = Column(enum_column(OrderStatus), default=OrderStatus.PENDING, nullable=False, index=True)
    
    # Timestamps
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    
    def __repr__(self):
        return f"<Order(id={self.id}, status='{self.overall_status.value}', total={self.total_amount})>"


class SubOrder(Base):
    """
    Sub-order: one (hub, vendor) slice of an order.
    
    `status` mirrors the latest tracking event by event_time; the engine
    writes both together. Never created with zero items.
    """
    __tablename__ = "sub_orders"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    
    # Ownership
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    hub_id = Column(Integer, ForeignKey("hubs.id"), nullable=True, index=True)
    courier_id = Column(Integer, ForeignKey("couriers.id"), nullable=True, index=True)
    vendor_id = Column(String(100), nullable=True)
    
    # Line items: [{product_id, product_name, quantity, unit_price, weight}]
    items = Column(JSON, nullable=False)
    
    # Financials
    subtotal = Column(Float, nullable=False)
    allocated_shipping_fee = Column(Float, nullable=False, default=0)
    shipping_cost = Column(Float, nullable=True)
    
    # Delivery
    tracking_number = Column(String(100), nullable=True, unique=True, index=True)
    status = Column(enum_column(SubOrderStatus), default=SubOrderStatus.PENDING, nullable=False, index=True)
    
    # Lifecycle milestones
    picked_up_at = Column(DateTime, nullable=True)
    in_transit_at = Column(DateTime, nullable=True)
    out_for_delivery_at = Column(DateTime, nullable=True)
    delivered_at = Column(DateTime, nullable=True)
    failed_at = Column(DateTime, nullable=True)
    last_tracking_update = Column(DateTime, nullable=True)
    
    # Courier settlement
    settlement_status = Column(
        enum_column(SubOrderSettlementStatus),
        default=SubOrderSettlementStatus.PENDING,
        nullable=False,
        index=True
    )
    settlement_date = Column(DateTime, nullable=True)
    payment_reference = Column(String(100), nullable=True)
    courier_paid_amount = Column(Float, nullable=True)
    
    # Timestamps
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    
    def __repr__(self):
        return f"<SubOrder(id={self.id}, order={self.order_id}, hub={self.hub_id}, status='{self.status.value}')>"
