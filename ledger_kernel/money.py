"""
Fixed-point money helpers.

All amounts inside the kernel are Decimal values quantised to cents.
"""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Iterable, Union

ZERO = Decimal("0.00")
CENT = Decimal("0.01")

MoneyLike = Union[Decimal, int, float, str]


def to_money(value: MoneyLike) -> Decimal:
    """
    Convert a value to a cent-quantised Decimal.

    Floats go through str() first so that 0.1 becomes Decimal("0.10")
    instead of its binary expansion.
    """
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        amount = value
    else:
        try:
            amount = Decimal(str(value))
        except InvalidOperation:
            raise ValueError(f"Invalid money amount: {value!r}")
    if not amount.is_finite():
        raise ValueError(f"Invalid money amount: {value!r}")
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def money_sum(values: Iterable[Decimal]) -> Decimal:
    total = ZERO
    for value in values:
        total += value
    return total


def format_money(value: Decimal) -> str:
    return str(to_money(value))
