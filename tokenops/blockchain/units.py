"""
Amount Conversion
Decimal strings <-> integer base units, without float rounding.
"""
from decimal import Decimal, InvalidOperation, localcontext
from typing import Union

from tokenops.errors import ValidationError

ETHER_DECIMALS = 18

Amount = Union[str, int, Decimal]


def to_base_units(amount: Amount, decimals: int) -> int:
    """
    Convert a human amount to the token's smallest unit.

    Raises:
        ValidationError: If the amount is not a number, is negative, or has
            more fractional digits than the token supports

    Example:
        >>> to_base_units("1.5", 6)
        1500000
    """
    with localcontext() as ctx:
        ctx.prec = 100
        try:
            value = Decimal(str(amount).strip())
        except InvalidOperation as e:
            raise ValidationError(f"Invalid amount: {amount!r}") from e

        if not value.is_finite() or value < 0:
            raise ValidationError(f"Invalid amount: {amount!r}")

        scaled = value.scaleb(decimals)
        if scaled != scaled.to_integral_value():
            raise ValidationError(f"Amount {amount} has more than {decimals} decimal places")
        return int(scaled)


def from_base_units(value: Union[int, str], decimals: int) -> str:
    """
    Convert base units back to a plain decimal string.

    Trailing zeros are dropped: ``from_base_units(10**20, 18) == "100"``.
    """
    with localcontext() as ctx:
        ctx.prec = 100
        scaled = Decimal(int(value)).scaleb(-decimals)
        if scaled == 0:
            return "0"
        return format(scaled.normalize(), "f")


def parse_ether(amount: Amount) -> int:
    return to_base_units(amount, ETHER_DECIMALS)


def format_ether(wei: Union[int, str]) -> str:
    return from_base_units(wei, ETHER_DECIMALS)


def parse_positive_amount(amount: Amount) -> Decimal:
    """Validate a request amount: numeric and strictly greater than zero."""
    try:
        value = Decimal(str(amount).strip())
    except InvalidOperation as e:
        raise ValidationError(f"Invalid amount: {amount!r}") from e
    if not value.is_finite() or value <= 0:
        raise ValidationError("Amount must be greater than zero")
    return value
