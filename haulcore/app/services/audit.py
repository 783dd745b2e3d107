"""
Audit logging service for lifecycle transitions.

Audit rows are written inside the caller's transaction, so a rolled-back
transition leaves no audit trace.
"""

from typing import Optional, Dict, Any
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from haulcore.app.models.audit_log import AuditLog
from haulcore.app.domain.results import DriverIdentity


# Audit event constants
class AuditAction:
    """Standardized audit action constants."""
    # Loads
    LOAD_POSTED = "LOAD_POSTED"
    LOAD_ACCEPTED = "LOAD_ACCEPTED"
    LOADING_STARTED = "LOADING_STARTED"
    LOADING_FINISHED = "LOADING_FINISHED"
    CONTRACT_DETAILS_SAVED = "CONTRACT_DETAILS_SAVED"
    PICKUP_COMPLETED = "PICKUP_COMPLETED"
    DELIVERY_STARTED = "DELIVERY_STARTED"
    DELIVERY_COMPLETED = "DELIVERY_COMPLETED"
    STORAGE_DROP_COMPLETED = "STORAGE_DROP_COMPLETED"
    LOAD_CANCELLED = "LOAD_CANCELLED"

    # Trips
    TRIP_CREATED = "TRIP_CREATED"
    TRIP_LOAD_ATTACHED = "TRIP_LOAD_ATTACHED"
    TRIP_LOAD_DETACHED = "TRIP_LOAD_DETACHED"
    TRIP_STARTED = "TRIP_STARTED"
    TRIP_EN_ROUTE = "TRIP_EN_ROUTE"
    TRIP_COMPLETED = "TRIP_COMPLETED"
    TRIP_CANCELLED = "TRIP_CANCELLED"
    DELIVERY_INDEX_ADVANCED = "DELIVERY_INDEX_ADVANCED"

    # Money
    PAYMENT_RECORDED = "PAYMENT_RECORDED"
    EXPENSE_RECORDED = "EXPENSE_RECORDED"
    EXPENSE_DELETION_PENDING = "EXPENSE_DELETION_PENDING"
    EXPENSE_DELETION_CANCELLED = "EXPENSE_DELETION_CANCELLED"
    EXPENSE_DELETED = "EXPENSE_DELETED"
    SETTLEMENT_CALCULATED = "SETTLEMENT_CALCULATED"


async def log_event(
    db: AsyncSession,
    identity: DriverIdentity,
    action: str,
    entity_type: str,
    entity_id: int,
    metadata: Optional[Dict[str, Any]] = None
) -> AuditLog:
    """
    Add an audit row to the current transaction.

    Args:
        db: Database session (caller commits)
        identity: Caller performing the action
        action: Action being performed (use AuditAction constants)
        entity_type: "load", "trip", "expense"...
        entity_id: ID of the entity acted upon
        metadata: Additional context as JSON

    Returns:
        Pending AuditLog instance
    """
    audit_log = AuditLog(
        actor_driver_id=identity.driver_id,
        company_id=identity.company_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        meta_data=metadata,
    )

    db.add(audit_log)
    await db.flush()

    return audit_log


async def get_audit_trail(
    db: AsyncSession,
    company_id: int,
    entity_type: Optional[str] = None,
    entity_id: Optional[int] = None,
    action: Optional[str] = None,
    limit: int = 100
) -> list[AuditLog]:
    """
    Retrieve a company's audit trail with optional filtering, oldest first.
    """
    query = select(AuditLog).where(AuditLog.company_id == company_id)

    if entity_type:
        query = query.where(AuditLog.entity_type == entity_type)

    if entity_id is not None:
        query = query.where(AuditLog.entity_id == entity_id)

    if action:
        query = query.where(AuditLog.action == action)

    query = query.order_by(AuditLog.id).limit(limit)

    result = await db.execute(query)
    return list(result.scalars().all())
