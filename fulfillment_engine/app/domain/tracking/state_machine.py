"""
Tracking State Machine.

Legal sub-order status progression and the parent order roll-up.

Accept-any mode (default) records whatever a courier or operator reports.
Strict mode refuses:
- events older than the sub-order's latest event
- any move out of a terminal status (delivered, returned, cancelled)
- stepping backwards along pending → … → delivered
- cancelling once the parcel has left pending/assigned
"""

from typing import Iterable, Optional

from fulfillment_engine.app.models.enums import OrderStatus, SubOrderStatus

FORWARD_PATH = (
    SubOrderStatus.PENDING,
    SubOrderStatus.ASSIGNED,
    SubOrderStatus.PICKED_UP,
    SubOrderStatus.IN_TRANSIT,
    SubOrderStatus.OUT_FOR_DELIVERY,
    SubOrderStatus.DELIVERED,
)

CANCELLABLE_STATUSES = (SubOrderStatus.PENDING, SubOrderStatus.ASSIGNED)

# A failed delivery may be re-attempted or sent back
REATTEMPT_STATUSES = (SubOrderStatus.IN_TRANSIT, SubOrderStatus.OUT_FOR_DELIVERY, SubOrderStatus.RETURNED)


def transition_error(current: SubOrderStatus, requested: SubOrderStatus) -> Optional[str]:
    """Reason a strict-mode transition is illegal, or None when allowed."""
    if requested == current:
        return None
    if current.is_terminal:
        return f"{current.value} is terminal"
    if requested == SubOrderStatus.CANCELLED:
        if current in CANCELLABLE_STATUSES:
            return None
        return "only pending or assigned shipments can be cancelled"
    if current == SubOrderStatus.FAILED:
        if requested in REATTEMPT_STATUSES:
            return None
        return "a failed delivery can only be re-attempted or returned"
    if requested in (SubOrderStatus.FAILED, SubOrderStatus.RETURNED):
        return None
    if requested.ordinal < current.ordinal:
        return "status cannot move backwards"
    return None


def derive_order_status(statuses: Iterable[SubOrderStatus]) -> Optional[OrderStatus]:
    """
    Parent order status implied by its sub-orders, or None to leave it as is.
    
    - every sub-order delivered or cancelled, at least one delivered → DELIVERED
    - every sub-order cancelled → CANCELLED
    - every sub-order picked up or later → SHIPPED
    - some picked up or later → PARTIALLY_SHIPPED
    """
    statuses = list(statuses)
    if not statuses:
        return None
    
    finished = (SubOrderStatus.DELIVERED, SubOrderStatus.CANCELLED)
    if all(s in finished for s in statuses) and SubOrderStatus.DELIVERED in statuses:
        return OrderStatus.DELIVERED
    if all(s == SubOrderStatus.CANCELLED for s in statuses):
        return OrderStatus.CANCELLED
    
    shipped = [s for s in statuses if s.is_shipped]
    if len(shipped) == len(statuses):
        return OrderStatus.SHIPPED
    if shipped:
        return OrderStatus.PARTIALLY_SHIPPED
    return None
