"""
Audit Log Database Model.

Tracks every lifecycle transition for the owner dashboard and support.
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.sql import func
from haulcore.app.db.session import Base


class AuditLog(Base):
    """
    Audit log model for lifecycle events.

    Events logged:
    - LOAD_* transitions (accepted, loading, loaded, delivery started/completed...)
    - TRIP_* transitions and delivery index advances
    - PAYMENT_RECORDED / EXPENSE_* / SETTLEMENT_CALCULATED
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Who performed the action (None for owner/system actions)
    actor_driver_id = Column(Integer, index=True, nullable=True)
    company_id = Column(Integer, index=True, nullable=False)

    # What action was performed
    action = Column(String(100), nullable=False, index=True)

    # What it was performed on
    entity_type = Column(String(50), nullable=False)
    entity_id = Column(Integer, nullable=False, index=True)

    # Additional context (JSON for flexibility)
    meta_data = Column(JSON, nullable=True)

    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    def __repr__(self):
        return f"<AuditLog(id={self.id}, action='{self.action}', entity={self.entity_type}:{self.entity_id})>"
