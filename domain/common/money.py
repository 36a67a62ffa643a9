"""
Amount helpers - integer minor-unit money (IRR/Toman have no fractional part).
"""
from __future__ import annotations

from domain.common.exceptions import ValidationError


def validate_amount(amount: int, *, minimum: int = 1, field: str = "amount") -> int:
    """Return ``amount`` unchanged if it is an integer >= ``minimum``."""
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValidationError(f"{field} must be an integer, got {amount!r}", field=field)
    if amount < minimum:
        raise ValidationError(
            f"{field} must be at least {minimum}, got {amount}",
            field=field,
            details={"minimum": minimum, "value": amount},
        )
    return amount


def format_amount(amount: int, currency: str = "IRR") -> str:
    """Group thousands, e.g. ``format_amount(1250000) == '1,250,000 IRR'``."""
    return f"{amount:,} {currency}"


def percent_of(amount: int, percent: float) -> int:
    """Integer share of ``amount``; fractions are truncated toward zero."""
    return int(amount * percent / 100)
