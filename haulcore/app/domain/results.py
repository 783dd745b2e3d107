"""
Result values returned by lifecycle operations.

Business-rule outcomes (order violations, incomplete deliveries, invalid
transitions, bad input) come back as a failed ``ActionResult``; only storage
failures raise.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Generic, List, Optional, TypeVar

from haulcore.app.core.exceptions import AppException

T = TypeVar("T")


@dataclass(frozen=True)
class ActionResult(Generic[T]):
    """Success value or a typed AppException."""
    value: Optional[T] = None
    error: Optional[AppException] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T = None) -> "ActionResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: AppException) -> "ActionResult[T]":
        return cls(error=error)

    def unwrap(self) -> T:
        """Return the value, or raise the carried error (HTTP layer)."""
        if self.error is not None:
            raise self.error
        return self.value


@dataclass(frozen=True)
class DriverIdentity:
    """Caller context resolved once per request."""
    company_id: int
    driver_id: Optional[int] = None
    role: str = "DRIVER"

    @property
    def is_owner(self) -> bool:
        return self.role == "OWNER"


@dataclass(frozen=True)
class BlockingLoad:
    """The load that must be delivered before the requested one."""
    id: int
    delivery_order: int
    customer_name: Optional[str] = None
    delivery_city: Optional[str] = None
    delivery_state: Optional[str] = None

    @property
    def display_name(self) -> str:
        if self.customer_name:
            return self.customer_name
        if self.delivery_city and self.delivery_state:
            return f"{self.delivery_city}, {self.delivery_state}"
        return f"Delivery #{self.delivery_order}"


@dataclass(frozen=True)
class DeliveryOrderCheck:
    allowed: bool
    reason: Optional[str] = None
    blocking_load: Optional[BlockingLoad] = None
    current_index: Optional[int] = None
    this_load_order: Optional[int] = None


@dataclass(frozen=True)
class GatingDecision:
    """Answer to requires_contract_details / requires_pickup_completion."""
    required: bool
    load_source: Optional[str] = None
    posting_type: Optional[str] = None


@dataclass(frozen=True)
class SettlementLine:
    category: str
    description: str
    amount: Decimal
    load_id: Optional[int] = None


@dataclass(frozen=True)
class SettlementTotals:
    trip_id: int
    total_miles: Decimal
    total_volume: Decimal
    total_revenue: Decimal
    total_collected: Decimal
    total_expenses: Decimal
    reimbursable_expenses: Decimal
    net_amount: Decimal
    line_items: List[SettlementLine] = field(default_factory=list)


@dataclass(frozen=True)
class TripDetail:
    """Owner view of a trip: loads in pickup order, live expenses, settlement."""
    trip: object
    loads: List[object] = field(default_factory=list)
    expenses: List[object] = field(default_factory=list)
    settlement: Optional[object] = None
