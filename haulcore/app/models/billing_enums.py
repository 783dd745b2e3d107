"""
Payment and settlement enumerations.
"""

import enum


class PaymentType(str, enum.Enum):
    """Payment type enumeration."""
    DEPOSIT = "deposit"  # Collected at pickup
    COLLECTION = "collection"  # Collected at delivery


class PaymentMethod(str, enum.Enum):
    """How the customer paid in the field."""
    CASH = "cash"
    ZELLE = "zelle"
    CASHIER_CHECK = "cashier_check"
    MONEY_ORDER = "money_order"
    PERSONAL_CHECK = "personal_check"
    VENMO = "venmo"
    CARD = "card"
    ALREADY_PAID = "already_paid"  # Nothing collected by the driver


class PaymentCollector(str, enum.Enum):
    DRIVER = "driver"
    OFFICE = "office"


class SettlementLineCategory(str, enum.Enum):
    """Settlement line item category."""
    REVENUE = "revenue"
    COLLECTION = "collection"
    EXPENSE = "expense"
