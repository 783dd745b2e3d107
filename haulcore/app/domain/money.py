"""
Money and measurement helpers.

All amounts are ``Decimal`` quantized to cents; volumes and odometer readings
use the same two-place precision so sums are exact and repeatable.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Iterable, Optional, Union

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

Numeric = Union[Decimal, int, float, str]


def to_money(value: Optional[Numeric]) -> Decimal:
    """Coerce a numeric input to a cent-quantized Decimal. None becomes 0."""
    if value is None:
        return ZERO
    if isinstance(value, float):
        value = str(value)
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def to_optional_money(value: Optional[Numeric]) -> Optional[Decimal]:
    if value is None:
        return None
    return to_money(value)


def parse_numeric(value) -> Optional[Decimal]:
    """
    Parse user-entered numbers (odometer, volume).

    Returns None when the value is missing or not a finite number.
    """
    if value is None or isinstance(value, bool):
        return None
    try:
        parsed = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not parsed.is_finite():
        return None
    return parsed.quantize(CENT, rounding=ROUND_HALF_UP)


def money_sum(values: Iterable[Optional[Numeric]]) -> Decimal:
    total = ZERO
    for value in values:
        total += to_money(value)
    return total


def remaining_balance(contract_balance_due, collected_at_pickup, collected_on_delivery) -> Decimal:
    """contract_balance_due - amount_collected_at_pickup - amount_collected_on_delivery"""
    return to_money(contract_balance_due) - to_money(collected_at_pickup) - to_money(collected_on_delivery)
