"""Monetary value helpers.

Every stored amount is an integer count of minor currency units (cents).
Decimal is used only at the human-input boundary, never for storage.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from campus_finance.services.errors import ValidationError

BPS_DENOMINATOR = 10000


def to_minor_units(major: Decimal | str | int | float) -> int:
    """Convert a major-unit amount (dollars) to minor units, rounding half up.

    Truncation would systematically under-bill (19.999 → 1999), so the value
    is rounded: ``round(major * 100)``.
    """
    try:
        value = Decimal(str(major))
    except (InvalidOperation, ValueError) as exc:
        raise ValidationError(f"Invalid amount: {major!r}") from exc
    if not value.is_finite():
        raise ValidationError(f"Invalid amount: {major!r}")
    return int((value * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def to_major_units(minor: int) -> Decimal:
    return (Decimal(minor) / 100).quantize(Decimal("0.01"))


def format_amount(minor: int, currency_label: str = "USD") -> str:
    sign = "-" if minor < 0 else ""
    return f"{sign}{currency_label} {abs(to_major_units(minor)):,.2f}"


def apply_bps(amount: int, bps: int) -> int:
    """``amount × bps / 10000`` in integer arithmetic, rounded half up."""
    if bps < 0 or bps > BPS_DENOMINATOR:
        raise ValidationError(f"Basis points must be between 0 and {BPS_DENOMINATOR}, got {bps}")
    product = amount * bps
    if product >= 0:
        return (product + BPS_DENOMINATOR // 2) // BPS_DENOMINATOR
    return -((-product + BPS_DENOMINATOR // 2) // BPS_DENOMINATOR)


def require_positive(amount: int, field: str = "amount") -> int:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValidationError(f"{field} must be an integer number of minor units")
    if amount <= 0:
        raise ValidationError(f"{field} must be positive, got {amount}")
    return amount
