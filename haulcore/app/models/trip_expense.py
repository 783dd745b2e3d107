"""
Trip Expense database model.
"""

from sqlalchemy import Column, Integer, Numeric, ForeignKey, DateTime, Enum, String
from sqlalchemy.sql import func
from haulcore.app.db.session import Base
from haulcore.app.models.trip_enums import ExpenseCategory, ExpensePaidBy, REIMBURSABLE_PAYERS


class TripExpense(Base):
    """
    Trip-level cost (fuel, tolls, lumper...).

    Rows are never edited. Removal goes through the two-phase deletion in
    ExpenseLedger: ``pending_deletion_at`` is set first, the row is deleted on
    commit.
    """
    __tablename__ = "trip_expenses"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    company_id = Column(Integer, nullable=False, index=True)
    trip_id = Column(Integer, ForeignKey('trips.id'), nullable=False, index=True)

    category = Column(Enum(ExpenseCategory), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    paid_by = Column(Enum(ExpensePaidBy), nullable=False)
    description = Column(String(255), nullable=True)

    pending_deletion_at = Column(DateTime(timezone=True), nullable=True)
    incurred_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    @property
    def reimbursable(self) -> bool:
        return self.paid_by in REIMBURSABLE_PAYERS

    def __repr__(self):
        return f"<TripExpense(id={self.id}, trip_id={self.trip_id}, category='{self.category.value}', amount={self.amount})>"
