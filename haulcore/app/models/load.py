"""
Load database model.

A load is one shipment with its own pickup/delivery lifecycle. Loads are
mutated only through the load status machine and never deleted.
"""

from sqlalchemy import Column, Integer, String, Numeric, DateTime, Enum
from sqlalchemy.sql import func
from haulcore.app.db.session import Base
from haulcore.app.models.load_enums import LoadStatus, LoadSource, PostingType
from haulcore.app.models.billing_enums import PaymentMethod


class Load(Base):
    """
    Load model.

    Balance identity (kept by every write path):
        remaining_balance == contract_balance_due
                             - amount_collected_at_pickup
                             - amount_collected_on_delivery
    """
    __tablename__ = "loads"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Ownership
    company_id = Column(Integer, nullable=False, index=True)

    # Status
    status = Column(Enum(LoadStatus), default=LoadStatus.PENDING, nullable=False, index=True)
    load_source = Column(Enum(LoadSource), default=LoadSource.OWN, nullable=False)
    posting_type = Column(Enum(PostingType), default=PostingType.LOAD, nullable=False)

    # Customer / destination
    customer_name = Column(String(200), nullable=True)
    delivery_city = Column(String(100), nullable=True)
    delivery_state = Column(String(50), nullable=True)

    # Contract
    rate_per_cuft = Column(Numeric(12, 2), nullable=True)
    contract_balance_due = Column(Numeric(12, 2), nullable=False, default=0)
    contract_linehaul_total = Column(Numeric(12, 2), nullable=True)
    contract_accessorials_total = Column(Numeric(12, 2), nullable=True)
    contract_job_number = Column(String(100), nullable=True)

    # Volume (cubic feet)
    starting_volume = Column(Numeric(12, 2), nullable=True)
    ending_volume = Column(Numeric(12, 2), nullable=True)
    actual_volume = Column(Numeric(12, 2), nullable=True)
    loading_start_photo_url = Column(String(500), nullable=True)
    loading_end_photo_url = Column(String(500), nullable=True)

    # Position in the trip's delivery sequence (independent of pickup order)
    delivery_order = Column(Integer, nullable=True)

    # Payments
    payment_method = Column(Enum(PaymentMethod), nullable=True)
    amount_collected_at_pickup = Column(Numeric(12, 2), nullable=False, default=0)
    amount_collected_on_delivery = Column(Numeric(12, 2), nullable=False, default=0)
    remaining_balance = Column(Numeric(12, 2), nullable=False, default=0)

    # Phase timestamps
    accepted_at = Column(DateTime(timezone=True), nullable=True)
    loading_started_at = Column(DateTime(timezone=True), nullable=True)
    loading_finished_at = Column(DateTime(timezone=True), nullable=True)
    contract_details_entered_at = Column(DateTime(timezone=True), nullable=True)
    pickup_completed_at = Column(DateTime(timezone=True), nullable=True)
    delivery_started_at = Column(DateTime(timezone=True), nullable=True)
    delivery_finished_at = Column(DateTime(timezone=True), nullable=True)
    storage_completed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<Load(id={self.id}, company_id={self.company_id}, status='{self.status.value}')>"
