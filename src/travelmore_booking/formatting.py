"""Currency display for user-facing messages."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal


def format_price(amount: Decimal | int | float | str, symbol: str = "Rp") -> str:
    """Format an amount the way the storefront shows rupiah: ``Rp 1.450.000``."""
    whole = Decimal(str(amount)).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    grouped = f"{int(whole):,}".replace(",", ".")
    return f"{symbol} {grouped}"


__all__ = ["format_price"]
