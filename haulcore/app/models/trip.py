"""
Trip database model.

A trip is one driver's multi-load run, created by the company owner.
"""

from sqlalchemy import Column, Integer, String, Numeric, DateTime, Enum
from sqlalchemy.sql import func
from haulcore.app.db.session import Base
from haulcore.app.models.trip_enums import TripStatus


class Trip(Base):
    """
    Trip model.

    ``current_delivery_index`` is the shared counter gating delivery order.
    It only moves through a conditional UPDATE (see TripLifecycleController).
    """
    __tablename__ = "trips"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Ownership
    company_id = Column(Integer, nullable=False, index=True)
    driver_id = Column(Integer, nullable=True, index=True)
    trip_number = Column(String(50), nullable=True)

    # Status
    status = Column(Enum(TripStatus), default=TripStatus.PLANNED, nullable=False, index=True)

    # Odometer
    odometer_start = Column(Numeric(12, 2), nullable=True)
    odometer_start_photo_url = Column(String(500), nullable=True)
    odometer_end = Column(Numeric(12, 2), nullable=True)
    odometer_end_photo_url = Column(String(500), nullable=True)

    current_delivery_index = Column(Integer, nullable=False, default=1)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    settled_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<Trip(id={self.id}, driver_id={self.driver_id}, status='{self.status.value}')>"
