# Overview: Helpers for integer minor-unit (cents) money values.

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from .errors import InvalidInputError


def format_cents(cents: int | None) -> str | None:
    """Render cents as a two-decimal string: 1050 -> "10.50"."""
    if cents is None:
        return None
    sign = "-" if cents < 0 else ""
    cents = abs(int(cents))
    return f"{sign}{cents // 100}.{cents % 100:02d}"


def to_decimal(cents: int) -> Decimal:
    return (Decimal(int(cents)) / 100).quantize(Decimal("0.01"))


def parse_amount_to_cents(value, field: str = "price") -> int:
    """
    Accept a decimal amount ("10.5", 10.50, Decimal) and return cents.

    Amounts with more than two decimal places are rounded half-up.
    """
    if isinstance(value, bool) or value is None:
        raise InvalidInputError(f"{field} must be a decimal amount")
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise InvalidInputError(f"{field} must be a decimal amount")
    if not amount.is_finite():
        raise InvalidInputError(f"{field} must be a decimal amount")
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
