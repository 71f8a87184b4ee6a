"""Money helpers: decimal coercion and minor/major unit conversion."""
from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

CENTS = Decimal("0.01")


def to_decimal(value: Any) -> Decimal:
    """Coerce ints, floats and numeric strings to ``Decimal`` without float noise."""

    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError) as exc:
            raise ValueError(f"Not a numeric amount: {value!r}") from exc
    if not result.is_finite():
        raise ValueError(f"Not a finite amount: {value!r}")
    return result


def quantize(value: Any) -> Decimal:
    """Round to two decimals, half up."""

    return to_decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def minor_to_major(value: Any) -> Decimal | None:
    """Convert a provider amount in minor units (e.g. 10000) to major units (100.00)."""

    if value is None or isinstance(value, bool):
        return None
    try:
        return quantize(to_decimal(value) / 100)
    except ValueError:
        return None


def major_to_minor(value: Any) -> int:
    """Convert a major-unit amount to the integer minor units expected by the provider."""

    return int((quantize(value) * 100).to_integral_value(rounding=ROUND_HALF_UP))


def is_numeric(value: Any) -> bool:
    if isinstance(value, bool) or value is None:
        return False
    try:
        to_decimal(value)
    except ValueError:
        return False
    return True


__all__ = ["CENTS", "to_decimal", "quantize", "minor_to_major", "major_to_minor", "is_numeric"]
