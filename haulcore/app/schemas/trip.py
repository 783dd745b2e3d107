"""
Trip, Expense and Settlement Schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from decimal import Decimal
from typing import Optional, List
from haulcore.app.models.billing_enums import SettlementLineCategory
from haulcore.app.models.trip_enums import TripStatus, ExpenseCategory, ExpensePaidBy
from haulcore.app.schemas.load import LoadResponse


class TripCreate(BaseModel):
    driver_id: Optional[int] = None
    trip_number: Optional[str] = Field(None, max_length=50)


class AttachLoadRequest(BaseModel):
    load_id: int
    sequence_index: Optional[int] = Field(None, ge=1, description="Pickup position")
    delivery_order: Optional[int] = Field(None, ge=1, description="Delivery position")


class TripStartRequest(BaseModel):
    # Kept loose so a missing or garbled reading reaches the domain check
    odometer_start: Optional[str] = None
    photo_url: Optional[str] = None


class TripCompleteRequest(BaseModel):
    odometer_end: Optional[str] = None
    photo_url: Optional[str] = None


class TripResponse(BaseModel):
    """Schema for displaying a trip."""
    id: int
    company_id: int
    driver_id: Optional[int]
    trip_number: Optional[str]
    status: TripStatus
    odometer_start: Optional[Decimal]
    odometer_end: Optional[Decimal]
    current_delivery_index: int
    started_at: Optional[datetime]
    completed_at: Optional[datetime]
    settled_at: Optional[datetime]

    class Config:
        from_attributes = True


class TripLoadResponse(BaseModel):
    id: int
    trip_id: int
    load_id: int
    sequence_index: int

    class Config:
        from_attributes = True


class ExpenseCreate(BaseModel):
    category: ExpenseCategory
    amount: Decimal = Field(..., gt=0)
    paid_by: ExpensePaidBy
    description: Optional[str] = Field(None, max_length=255)


class ExpenseResponse(BaseModel):
    id: int
    trip_id: int
    category: ExpenseCategory
    amount: Decimal
    paid_by: ExpensePaidBy
    description: Optional[str]
    reimbursable: bool
    pending_deletion_at: Optional[datetime]
    incurred_at: datetime

    class Config:
        from_attributes = True


class SettlementLineItemResponse(BaseModel):
    position: int
    category: SettlementLineCategory
    description: str
    amount: Decimal
    load_id: Optional[int]

    class Config:
        from_attributes = True


class SettlementResponse(BaseModel):
    """Schema for displaying a trip settlement."""
    id: int
    trip_id: int
    total_miles: Decimal
    total_volume: Decimal
    total_revenue: Decimal
    total_collected: Decimal
    total_expenses: Decimal
    reimbursable_expenses: Decimal
    net_amount: Decimal
    calculated_at: datetime
    line_items: List[SettlementLineItemResponse] = []


class TripDetailResponse(BaseModel):
    trip: TripResponse
    loads: List[LoadResponse]
    expenses: List[ExpenseResponse]
    settlement: Optional[SettlementResponse] = None
