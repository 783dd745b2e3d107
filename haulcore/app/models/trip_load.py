"""
Trip Load association model.

Links a load to the trip carrying it. ``sequence_index`` is the pickup
order; the delivery order lives on the load and may differ.
"""

from sqlalchemy import Column, Integer, ForeignKey, DateTime, UniqueConstraint
from sqlalchemy.sql import func
from haulcore.app.db.session import Base


class TripLoad(Base):
    """A load is on at most one trip."""
    __tablename__ = "trip_loads"
    __table_args__ = (
        UniqueConstraint("load_id", name="uq_trip_loads_load_id"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    trip_id = Column(Integer, ForeignKey('trips.id'), nullable=False, index=True)
    load_id = Column(Integer, ForeignKey('loads.id'), nullable=False, index=True)

    sequence_index = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<TripLoad(trip_id={self.trip_id}, load_id={self.load_id}, seq={self.sequence_index})>"
