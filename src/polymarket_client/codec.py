"""
Numeric codec between human-denominated decimals and exchange fixed point.

Conversions are exact. A value with more significant fractional digits than
the target scale raises PrecisionError unless the caller explicitly asks for
truncation (ROUND_DOWN), the only rounding rule the codec applies. Order
amount rounding lives in the helpers below and is driven by the order builder.
"""

from decimal import Decimal, ROUND_DOWN, ROUND_HALF_EVEN, ROUND_UP, InvalidOperation
from typing import Optional, Union

from .constants import TOKEN_DECIMALS
from .errors import PrecisionError

Numeric = Union[Decimal, int, float, str]


def to_decimal(value: Numeric) -> Decimal:
    """Convert a numeric value to Decimal without binary float artifacts."""
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except InvalidOperation as e:
        raise ValueError(f"Not a decimal value: {value!r}") from e


def decimal_places(value: Numeric) -> int:
    """Number of significant fractional digits (trailing zeros ignored)."""
    exponent = to_decimal(value).normalize().as_tuple().exponent
    if not isinstance(exponent, int):
        raise ValueError(f"Not a finite value: {value!r}")
    return max(0, -exponent)


def _quantum(places: int) -> Decimal:
    return Decimal(1).scaleb(-places)


def round_down(value: Numeric, places: int) -> Decimal:
    return to_decimal(value).quantize(_quantum(places), rounding=ROUND_DOWN)


def round_up(value: Numeric, places: int) -> Decimal:
    return to_decimal(value).quantize(_quantum(places), rounding=ROUND_UP)


def round_normal(value: Numeric, places: int) -> Decimal:
    return to_decimal(value).quantize(_quantum(places), rounding=ROUND_HALF_EVEN)


def to_exchange_units(
    value: Numeric,
    decimals: int = TOKEN_DECIMALS,
    rounding: Optional[str] = None,
) -> int:
    """
    Convert a decimal amount to integer exchange units.

    Args:
        value: Human-denominated amount
        decimals: Fixed-point scale of the target token
        rounding: None for exact conversion, ROUND_DOWN to truncate

    Returns:
        Integer amount in base units

    Raises:
        PrecisionError: If the value does not fit the scale exactly
    """
    if rounding not in (None, ROUND_DOWN):
        raise ValueError("Only exact conversion or ROUND_DOWN truncation is supported")

    decimal_value = to_decimal(value)
    if not decimal_value.is_finite():
        raise ValueError(f"Not a finite value: {value!r}")

    scaled = decimal_value.scaleb(decimals)
    integral = scaled.to_integral_value(rounding=ROUND_DOWN)
    if integral != scaled and rounding is None:
        raise PrecisionError(value, decimals)
    return int(integral)


def from_exchange_units(units: int, decimals: int = TOKEN_DECIMALS) -> Decimal:
    """Convert integer exchange units back to a decimal amount."""
    if isinstance(units, bool) or not isinstance(units, int):
        raise TypeError(f"Exchange units must be an integer, got {type(units).__name__}")
    return Decimal(units).scaleb(-decimals)
