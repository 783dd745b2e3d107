"""
Settlement database models.

Computed financial closeout of a completed trip.
"""

from sqlalchemy import Column, Integer, Numeric, ForeignKey, DateTime, Enum, String, UniqueConstraint
from sqlalchemy.sql import func
from haulcore.app.db.session import Base
from haulcore.app.models.billing_enums import SettlementLineCategory


class Settlement(Base):
    """
    Settlement model.

    One row per trip. Re-settling a trip replaces the values and line items
    in place; earlier values are not retained.
    """
    __tablename__ = "settlements"
    __table_args__ = (
        UniqueConstraint("trip_id", name="uq_settlements_trip_id"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    company_id = Column(Integer, nullable=False, index=True)
    trip_id = Column(Integer, ForeignKey('trips.id'), nullable=False, index=True)

    # Financials
    total_miles = Column(Numeric(12, 2), nullable=False, default=0)
    total_volume = Column(Numeric(12, 2), nullable=False, default=0)
    total_revenue = Column(Numeric(12, 2), nullable=False, default=0)
    total_collected = Column(Numeric(12, 2), nullable=False, default=0)
    total_expenses = Column(Numeric(12, 2), nullable=False, default=0)
    reimbursable_expenses = Column(Numeric(12, 2), nullable=False, default=0)
    net_amount = Column(Numeric(12, 2), nullable=False, default=0)

    # Timestamps
    calculated_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<Settlement(id={self.id}, trip_id={self.trip_id}, net={self.net_amount})>"


class SettlementLineItem(Base):
    """Itemized revenue, collections and expenses behind a settlement."""
    __tablename__ = "settlement_line_items"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    settlement_id = Column(Integer, ForeignKey('settlements.id'), nullable=False, index=True)
    load_id = Column(Integer, ForeignKey('loads.id'), nullable=True)

    position = Column(Integer, nullable=False)
    category = Column(Enum(SettlementLineCategory), nullable=False)
    description = Column(String(255), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)

    def __repr__(self):
        return f"<SettlementLineItem(settlement_id={self.settlement_id}, category='{self.category.value}', amount={self.amount})>"
