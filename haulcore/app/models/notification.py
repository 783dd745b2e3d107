"""
Owner Notification Database Model.
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, JSON
from sqlalchemy.sql import func
from haulcore.app.db.session import Base


class OwnerNotification(Base):
    """
    In-app notification for the company owner.
    Written by DatabaseOwnerNotificationService after a transition commits.
    """
    __tablename__ = "owner_notifications"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Recipient
    company_id = Column(Integer, nullable=False, index=True)

    # Content
    event_kind = Column(String(100), nullable=False, index=True)
    entity_id = Column(Integer, nullable=False)
    metadata_payload = Column(JSON, nullable=True)

    # State
    is_read = Column(Boolean, default=False, nullable=False, index=True)
    read_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<OwnerNotification(id={self.id}, company={self.company_id}, event='{self.event_kind}')>"
