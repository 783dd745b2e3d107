"""
Load Schemas (driver load actions and owner posting).
"""

from pydantic import BaseModel, Field
from datetime import datetime
from decimal import Decimal
from typing import Optional
from haulcore.app.models.billing_enums import PaymentMethod, PaymentType, PaymentCollector
from haulcore.app.models.load_enums import LoadStatus, LoadSource, PostingType


class StartLoadingRequest(BaseModel):
    starting_volume: Optional[Decimal] = Field(None, ge=0, description="Cubic feet in the truck before loading")
    photo_url: Optional[str] = None


class FinishLoadingRequest(BaseModel):
    ending_volume: Optional[Decimal] = Field(None, ge=0, description="Cubic feet in the truck after loading")
    photo_url: Optional[str] = None


class Accessorials(BaseModel):
    """Accessorial charges from the customer contract."""
    shuttle: Optional[Decimal] = Field(None, ge=0)
    long_carry: Optional[Decimal] = Field(None, ge=0)
    stairs: Optional[Decimal] = Field(None, ge=0)
    bulky: Optional[Decimal] = Field(None, ge=0)
    packing: Optional[Decimal] = Field(None, ge=0)
    other: Optional[Decimal] = Field(None, ge=0)


class ContractDetailsRequest(BaseModel):
    contract_balance_due: Decimal = Field(..., ge=0)
    rate_per_cuft: Optional[Decimal] = Field(None, ge=0)
    linehaul_total: Optional[Decimal] = Field(None, ge=0)
    accessorials: Optional[Accessorials] = None
    job_number: Optional[str] = Field(None, max_length=100)
    customer_name: Optional[str] = Field(None, max_length=200)
    delivery_city: Optional[str] = Field(None, max_length=100)
    delivery_state: Optional[str] = Field(None, max_length=50)


class PickupCompletionRequest(BaseModel):
    contract_balance_due: Decimal = Field(..., ge=0)
    actual_volume: Optional[Decimal] = Field(None, ge=0)
    rate_per_cuft: Optional[Decimal] = Field(None, ge=0)
    linehaul_total: Optional[Decimal] = Field(None, ge=0)
    accessorials: Optional[Accessorials] = None
    amount_collected: Optional[Decimal] = Field(None, description="Deposit taken at pickup")
    payment_method: Optional[PaymentMethod] = None


class StartDeliveryRequest(BaseModel):
    collected_amount: Optional[Decimal] = Field(None, description="Money collected before unloading")
    payment_method: Optional[PaymentMethod] = None


class CancelLoadRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=255)


class LoadCreate(BaseModel):
    """Owner posting a new load."""
    contract_balance_due: Decimal = Field(Decimal("0"), ge=0)
    customer_name: Optional[str] = Field(None, max_length=200)
    delivery_city: Optional[str] = Field(None, max_length=100)
    delivery_state: Optional[str] = Field(None, max_length=50)
    rate_per_cuft: Optional[Decimal] = Field(None, ge=0)
    linehaul_total: Optional[Decimal] = Field(None, ge=0)
    load_source: LoadSource = LoadSource.OWN
    posting_type: PostingType = PostingType.LOAD


class LoadResponse(BaseModel):
    """Schema for displaying a load."""
    id: int
    company_id: int
    status: LoadStatus
    load_source: LoadSource
    posting_type: PostingType
    customer_name: Optional[str]
    delivery_city: Optional[str]
    delivery_state: Optional[str]
    delivery_order: Optional[int]
    contract_balance_due: Decimal
    contract_linehaul_total: Optional[Decimal]
    contract_accessorials_total: Optional[Decimal]
    starting_volume: Optional[Decimal]
    ending_volume: Optional[Decimal]
    actual_volume: Optional[Decimal]
    payment_method: Optional[PaymentMethod]
    amount_collected_at_pickup: Decimal
    amount_collected_on_delivery: Decimal
    remaining_balance: Decimal
    accepted_at: Optional[datetime]
    pickup_completed_at: Optional[datetime]
    delivery_started_at: Optional[datetime]
    delivery_finished_at: Optional[datetime]

    class Config:
        from_attributes = True


class GatingResponse(BaseModel):
    load_id: int
    required: bool
    load_source: Optional[str]
    posting_type: Optional[str]


class BlockingLoadResponse(BaseModel):
    id: int
    delivery_order: int
    display_name: str


class DeliveryOrderCheckResponse(BaseModel):
    load_id: int
    allowed: bool
    reason: Optional[str] = None
    blocking_load: Optional[BlockingLoadResponse] = None
    current_index: Optional[int] = None
    this_load_order: Optional[int] = None


class PaymentResponse(BaseModel):
    id: int
    load_id: int
    payment_type: PaymentType
    amount: Decimal
    method: PaymentMethod
    collected_by: PaymentCollector
    collected_at: datetime

    class Config:
        from_attributes = True


class BalanceResponse(BaseModel):
    load_id: int
    remaining_balance: Decimal
    derived_balance: Decimal
    agrees: bool
