"""
Audit logging service for operator and system actions.

Records who changed orders, couriers, settlements and shipping configuration.
"""

from typing import Optional, Dict, Any
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc
from fulfillment_engine.app.models.audit_log import AuditLog


SYSTEM_ACTOR = "system"


# Audit event constants
class AuditAction:
    """Standardized audit action constants."""
    # Orders
    ORDER_INGESTED = "ORDER_INGESTED"
    ORDER_CANCELLED = "ORDER_CANCELLED"
    ORDER_PURGED = "ORDER_PURGED"
    
    # Fulfillment
    COURIER_ASSIGNED = "COURIER_ASSIGNED"
    TRACKING_RECORDED = "TRACKING_RECORDED"
    
    # Courier settlements
    SETTLEMENT_CREATED = "SETTLEMENT_CREATED"
    SETTLEMENT_APPROVED = "SETTLEMENT_APPROVED"
    SETTLEMENT_PAID = "SETTLEMENT_PAID"
    SETTLEMENT_VOIDED = "SETTLEMENT_VOIDED"
    
    # Shipping configuration
    ZONE_CREATED = "ZONE_CREATED"
    ZONE_UPDATED = "ZONE_UPDATED"
    HUB_CREATED = "HUB_CREATED"
    COURIER_CREATED = "COURIER_CREATED"
    HUB_COURIER_LINKED = "HUB_COURIER_LINKED"
    RATE_CREATED = "RATE_CREATED"
    RATE_DEACTIVATED = "RATE_DEACTIVATED"


async def log_event(
    db: AsyncSession,
    action: str,
    actor: Optional[str] = None,
    entity_type: Optional[str] = None,
    entity_id: Optional[int] = None,
    metadata: Optional[Dict[str, Any]] = None
) -> AuditLog:
    """
    Log an operator or system event to the audit log.
    
    Args:
        db: Database session
        action: Action being performed (use AuditAction constants)
        actor: Operator name, or None for engine-initiated actions
        entity_type: Kind of record acted upon ("order", "settlement", ...)
        entity_id: ID of the record acted upon
        metadata: Additional context as JSON
        
    Returns:
        Created AuditLog instance
    """
    audit_log = AuditLog(
        actor=actor or SYSTEM_ACTOR,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        meta_data=metadata
    )
    
    db.add(audit_log)
    await db.commit()
    await db.refresh(audit_log)
    
    return audit_log


async def get_audit_trail(
    db: AsyncSession,
    entity_type: Optional[str] = None,
    entity_id: Optional[int] = None,
    action: Optional[str] = None,
    limit: int = 100
) -> list[AuditLog]:
    """
    Retrieve audit trail with optional filtering, most recent first.
    """
    query = select(AuditLog).order_by(desc(AuditLog.timestamp), desc(AuditLog.id))
    
    if entity_type:
        query = query.where(AuditLog.entity_type == entity_type)
    
    if entity_id is not None:
        query = query.where(AuditLog.entity_id == entity_id)
    
    if action:
        query = query.where(AuditLog.action == action)
    
    query = query.limit(limit)
    
    result = await db.execute(query)
    return list(result.scalars().all())
