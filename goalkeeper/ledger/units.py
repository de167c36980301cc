"""Conversion between integer base units and human-readable token amounts.

The ledger only ever stores integers. USDT-style tokens use 6 decimals, so
``parse_units("12.5")`` is 12_500_000 base units and ``format_units`` reverses
it.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation

DEFAULT_DECIMALS = 6


def format_units(amount: int, decimals: int = DEFAULT_DECIMALS) -> str:
    """Render base units as a decimal string without trailing zeros."""
    if not isinstance(amount, int) or isinstance(amount, bool):
        raise TypeError(f"amount must be int, got {type(amount).__name__}")
    if decimals < 0:
        raise ValueError("decimals must be non-negative")
    sign = "-" if amount < 0 else ""
    whole, frac = divmod(abs(amount), 10 ** decimals)
    if decimals == 0 or frac == 0:
        return f"{sign}{whole}"
    frac_str = str(frac).rjust(decimals, "0").rstrip("0")
    return f"{sign}{whole}.{frac_str}"


def parse_units(text: str, decimals: int = DEFAULT_DECIMALS) -> int:
    """Parse a decimal string into base units.

    Raises ValueError for malformed input, negative values, or more
    fractional digits than the token supports.
    """
    if decimals < 0:
        raise ValueError("decimals must be non-negative")
    try:
        value = Decimal(str(text).strip())
    except InvalidOperation as exc:
        raise ValueError(f"Not a decimal amount: {text!r}") from exc
    if not value.is_finite():
        raise ValueError(f"Not a finite amount: {text!r}")
    if value < 0:
        raise ValueError(f"Amount must not be negative: {text!r}")
    scaled = value.scaleb(decimals)
    if scaled != scaled.to_integral_value():
        raise ValueError(f"Too many decimal places for {decimals}-decimal token: {text!r}")
    return int(scaled)
