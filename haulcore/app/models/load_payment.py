"""
Load Payment database model.

Immutable record of money collected for a load in the field.
"""

from sqlalchemy import Column, Integer, Numeric, ForeignKey, DateTime, Enum, String
from sqlalchemy.sql import func
from haulcore.app.db.session import Base
from haulcore.app.models.billing_enums import PaymentType, PaymentMethod, PaymentCollector


class LoadPayment(Base):
    """
    Load Payment model.

    Append-only audit trail of collected money. NO updates or deletions.
    The load row carries the current balance; this table must always agree
    with it.
    """
    __tablename__ = "load_payments"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    company_id = Column(Integer, nullable=False, index=True)
    load_id = Column(Integer, ForeignKey('loads.id'), nullable=False, index=True)

    payment_type = Column(Enum(PaymentType), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    method = Column(Enum(PaymentMethod), nullable=False)
    collected_by = Column(Enum(PaymentCollector), default=PaymentCollector.DRIVER, nullable=False)
    notes = Column(String(500), nullable=True)

    # Timestamps (Immutable - no updated_at)
    collected_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<LoadPayment(id={self.id}, load_id={self.load_id}, type='{self.payment_type.value}', amount={self.amount})>"
