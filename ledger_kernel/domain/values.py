"""
Values -- monetary helpers shared by the kernel, engines, and modules.

All monetary arithmetic uses ``Decimal``.  Amounts arriving as ``str`` or
``int`` are converted exactly; floats are rejected because they cannot
represent most decimal fractions.
"""

from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any

ZERO = Decimal("0")
CENT = Decimal("0.01")


def to_decimal(value: Decimal | int | str) -> Decimal:
    """Convert an input amount to Decimal without passing through float."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool) or isinstance(value, float):
        raise TypeError(f"Monetary amounts must not be {type(value).__name__}: {value!r}")
    return Decimal(str(value))


def quantize_money(value: Decimal) -> Decimal:
    """Round half-up to cents for display and report totals."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def state_value(value: Any) -> str:
    """Plain string form of a status whether it is an enum member or a loaded column value."""
    if isinstance(value, Enum):
        return str(value.value)
    return str(value)
