"""Markup calculator: reference price plus configured markup.

    suggested = reference * (1 + percentage / 100) + flat_fee

Computed in Decimal and quantized to the catalog's four fractional digits.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from pricekeeper.errors import InvalidArgument
from pricekeeper.models import MarkupSettings

PRICE_QUANTUM = Decimal("0.0001")
HUNDRED = Decimal("100")


def to_decimal(value, field: str = "value") -> Decimal:
    """Coerce int/str/float/Decimal to Decimal; floats go through str()."""
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except (InvalidOperation, ValueError, TypeError) as exc:
            raise InvalidArgument(f"{field} is not a number: {value!r}") from exc
    if not result.is_finite():
        raise InvalidArgument(f"{field} must be finite, got {value!r}")
    return result


def quantize_price(value: Decimal) -> Decimal:
    return value.quantize(PRICE_QUANTUM, rounding=ROUND_HALF_UP)


def calculate_suggested_price(
    reference_price: Decimal,
    settings: MarkupSettings,
) -> Decimal:
    """Derive the suggested price for a reference price.

    Args:
        reference_price: External per-million-token price (>= 0)
        settings: Current markup configuration

    Returns:
        Suggested price quantized to 4 decimal places

    Raises:
        InvalidArgument: If any input is negative
    """
    reference_price = to_decimal(reference_price, "reference_price")
    percentage = to_decimal(settings.percentage_markup, "percentage_markup")
    flat_fee = to_decimal(settings.flat_fee_markup, "flat_fee_markup")

    if reference_price < 0:
        raise InvalidArgument(f"reference_price must be >= 0, got {reference_price}")
    if percentage < 0:
        raise InvalidArgument(f"percentage_markup must be >= 0, got {percentage}")
    if flat_fee < 0:
        raise InvalidArgument(f"flat_fee_markup must be >= 0, got {flat_fee}")

    return quantize_price(reference_price * (1 + percentage / HUNDRED) + flat_fee)
