"""
Trip-related enumerations.
"""

import enum


class TripStatus(str, enum.Enum):
    """Trip status enumeration."""
    PLANNED = "planned"  # Created by the owner, driver not yet started
    ACTIVE = "active"  # Driver recorded the starting odometer
    EN_ROUTE = "en_route"
    COMPLETED = "completed"  # All loads delivered, ending odometer recorded
    SETTLED = "settled"  # Settlement computed (may be recalculated)
    CANCELLED = "cancelled"


TERMINAL_TRIP_STATUSES = frozenset({
    TripStatus.COMPLETED,
    TripStatus.SETTLED,
    TripStatus.CANCELLED,
})


class ExpenseCategory(str, enum.Enum):
    """Trip expense category."""
    FUEL = "fuel"
    TOLLS = "tolls"
    LUMPER = "lumper"
    PARKING = "parking"
    MAINTENANCE = "maintenance"
    LODGING = "lodging"
    OTHER = "other"


class ExpensePaidBy(str, enum.Enum):
    """Who paid the expense; driver-paid expenses are reimbursable."""
    COMPANY_CARD = "company_card"
    DRIVER_PERSONAL = "driver_personal"
    DRIVER_CASH = "driver_cash"


REIMBURSABLE_PAYERS = frozenset({
    ExpensePaidBy.DRIVER_PERSONAL,
    ExpensePaidBy.DRIVER_CASH,
})
