"""Exact decimal arithmetic for monetary values.

Every invoice amount is computed through these helpers. Inputs may be
``Decimal``, ``int`` or ``str``; ``float`` is rejected because binary floating
point cannot represent most decimal amounts exactly.
"""

from collections.abc import Iterable
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from app.core.config import settings

MoneyInput = Decimal | int | str

ZERO = Decimal("0")


def to_decimal(value: MoneyInput | None) -> Decimal:
    """Convert a value to Decimal. None is treated as zero."""
    if value is None:
        return ZERO
    if isinstance(value, bool) or isinstance(value, float):
        raise TypeError(f"Monetary values must not be {type(value).__name__}: {value!r}")
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(value)
    except InvalidOperation:
        raise ValueError(f"Invalid monetary value: {value!r}") from None


def quantize(value: MoneyInput, places: int | None = None) -> Decimal:
    """Round to the stored monetary scale (half-up)."""
    scale = settings.MONEY_DECIMAL_PLACES if places is None else places
    exponent = Decimal(1).scaleb(-scale)
    return to_decimal(value).quantize(exponent, rounding=ROUND_HALF_UP)


def add(a: MoneyInput | None, b: MoneyInput | None) -> Decimal:
    return to_decimal(a) + to_decimal(b)


def subtract(a: MoneyInput | None, b: MoneyInput | None) -> Decimal:
    return to_decimal(a) - to_decimal(b)


def multiply(a: MoneyInput | None, b: MoneyInput | None) -> Decimal:
    return to_decimal(a) * to_decimal(b)


def sum_amounts(values: Iterable[MoneyInput | None]) -> Decimal:
    """Sum an iterable of amounts; an empty iterable sums to zero."""
    result = ZERO
    for value in values:
        result += to_decimal(value)
    return result


def divide(a: MoneyInput | None, b: MoneyInput) -> Decimal:
    divisor = to_decimal(b)
    if divisor == 0:
        raise ZeroDivisionError("Cannot divide a monetary value by zero")
    return to_decimal(a) / divisor
