"""
Amount Calculator.

Totals are always computed here from the quantity and the configured unit price.
A total sent by the browser is never read.
"""

import math
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from storefront.exceptions import InvalidQuantityError, InvalidRefundRequestError

MINOR_UNITS_PER_MAJOR = 100


def _as_number(value: object) -> int | float | None:
    # bool is an int subclass; JSON true is not a quantity
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value


def validate_quantity(quantity: object) -> int:
    """
    Return quantity as an int.

    Raises:
        InvalidQuantityError: If quantity is missing, non-numeric, fractional,
            non-finite, zero or negative.
    """
    number = _as_number(quantity)
    if number is None:
        raise InvalidQuantityError(quantity)
    if isinstance(number, float) and (not math.isfinite(number) or not number.is_integer()):
        raise InvalidQuantityError(quantity)
    if number < 1:
        raise InvalidQuantityError(quantity)
    return int(number)


def calculate_order_total(quantity: object, unit_price_minor: int) -> int:
    """Order total in minor units: unit_price_minor × quantity."""
    return unit_price_minor * validate_quantity(quantity)


def to_minor_units(amount: object) -> int:
    """
    Convert a major-unit amount to minor units, rounding half up.

    The decimal text of the number is used, so 10.005 becomes 1001 rather than
    falling victim to its binary approximation.

    Raises:
        InvalidRefundRequestError: If amount is missing, non-numeric, non-finite,
            or not positive once converted.
    """
    number = _as_number(amount)
    if number is None:
        raise InvalidRefundRequestError("amount must be a number")
    if isinstance(number, float) and not math.isfinite(number):
        raise InvalidRefundRequestError("amount must be finite")
    if number <= 0:
        raise InvalidRefundRequestError("amount must be positive")

    try:
        minor = (Decimal(str(number)) * MINOR_UNITS_PER_MAJOR).quantize(
            Decimal("1"), rounding=ROUND_HALF_UP
        )
    except InvalidOperation as exc:
        raise InvalidRefundRequestError("amount is not representable") from exc

    if minor <= 0:
        raise InvalidRefundRequestError("amount rounds to zero minor units")
    return int(minor)
