"""
Fulfillment enumerations.

Sub-order delivery statuses carry an explicit ordinal so tracking can run in
strict monotonic mode; the parent order has its own, separate status enum.
"""

import enum

from sqlalchemy import Enum


class SubOrderStatus(str, enum.Enum):
    """
    Sub-order delivery status.
    
    Status flow:
        PENDING → ASSIGNED → PICKED_UP → IN_TRANSIT → OUT_FOR_DELIVERY → DELIVERED
        FAILED / RETURNED reachable from any in-flight status
        CANCELLED reachable from PENDING / ASSIGNED only
    """
    PENDING = "pending"
    ASSIGNED = "assigned"
    PICKED_UP = "picked_up"
    IN_TRANSIT = "in_transit"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    FAILED = "failed"
    RETURNED = "returned"
    CANCELLED = "cancelled"

    @property
    def ordinal(self) -> int:
        return _SUB_ORDER_ORDINALS[self]

    @property
    def is_terminal(self) -> bool:
        return self in (SubOrderStatus.DELIVERED, SubOrderStatus.RETURNED, SubOrderStatus.CANCELLED)

    @property
    def is_shipped(self) -> bool:
        """True once the courier has physically taken the parcel."""
        return self in (
            SubOrderStatus.PICKED_UP,
            SubOrderStatus.IN_TRANSIT,
            SubOrderStatus.OUT_FOR_DELIVERY,
            SubOrderStatus.DELIVERED,
        )


_SUB_ORDER_ORDINALS = {
    SubOrderStatus.PENDING: 0,
    SubOrderStatus.ASSIGNED: 1,
    SubOrderStatus.PICKED_UP: 2,
    SubOrderStatus.IN_TRANSIT: 3,
    SubOrderStatus.OUT_FOR_DELIVERY: 4,
    SubOrderStatus.DELIVERED: 5,
    SubOrderStatus.FAILED: 6,
    SubOrderStatus.RETURNED: 7,
    SubOrderStatus.CANCELLED: 8,
}


class OrderStatus(str, enum.Enum):
    """Overall status of the parent (storefront) order."""
    PENDING = "pending"
    PROCESSING = "processing"
    PARTIALLY_SHIPPED = "partially_shipped"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class SettlementStatus(str, enum.Enum):
    """Courier settlement batch status."""
    PENDING = "pending"  # Created, waiting for approval
    APPROVED = "approved"  # Approved, waiting for payment
    PAID = "paid"  # Payment processed
    VOIDED = "voided"  # Cancelled; items released for re-batching


class SubOrderSettlementStatus(str, enum.Enum):
    """What the courier is owed for a single sub-order."""
    PENDING = "pending"
    APPROVED = "approved"
    PAID = "paid"


class TrackingSource(str, enum.Enum):
    """Who reported a tracking event."""
    SYSTEM = "system"
    AUTO_ASSIGNMENT = "auto_assignment"
    API = "api"
    OPERATOR = "operator"
    COURIER_WEBHOOK = "courier_webhook"
    SYNC = "sync"


def enum_column(enum_cls) -> Enum:
    """Store enum values (lowercase strings) rather than member names."""
    return Enum(
        enum_cls,
        values_callable=lambda members: [member.value for member in members],
        native_enum=False,
        length=32,
    )
