"""Tier lookup, add-on sums and booking totals."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Iterable, Mapping, Optional, Sequence, Tuple, Union

from .schemas import Addon, PriceTier, Product

ZERO = Decimal("0")


class TierNotFoundError(LookupError):
    """Raised when no tier can price the requested unit count."""


class BelowRange(str, Enum):
    """What to charge when the unit count is below every tier's minimum."""

    FIRST_TIER = "first_tier"
    LOWEST_PRICE = "lowest_price"
    REJECT = "reject"


class TierTable:
    """Immutable price tiers ordered by ``min_pax``."""

    __slots__ = ("_tiers",)

    def __init__(self, tiers: Iterable[PriceTier]) -> None:
        self._tiers: Tuple[PriceTier, ...] = tuple(sorted(tiers, key=lambda tier: tier.min_pax))

    def __len__(self) -> int:
        return len(self._tiers)

    def __iter__(self):
        return iter(self._tiers)

    def __bool__(self) -> bool:
        return bool(self._tiers)

    @property
    def tiers(self) -> Tuple[PriceTier, ...]:
        return self._tiers

    def lookup(
        self, unit_count: int, *, below_range: BelowRange = BelowRange.FIRST_TIER
    ) -> Decimal:
        """Return the unit price for ``unit_count``.

        The first tier whose range covers the count wins. Counts above every
        range use the tier with the highest ``min_pax``. Counts below every
        range are priced according to ``below_range``; the storefront itself
        has always charged ``BelowRange.LOWEST_PRICE`` there.
        """
        if not self._tiers:
            raise TierNotFoundError("tier_table_empty")

        for tier in self._tiers:
            if unit_count >= tier.min_pax and (tier.max_pax is None or unit_count <= tier.max_pax):
                return tier.price

        if unit_count < self._tiers[0].min_pax:
            if below_range is BelowRange.REJECT:
                raise TierNotFoundError(f"no_tier_for_unit_count_{unit_count}")
            if below_range is BelowRange.LOWEST_PRICE:
                return min(tier.price for tier in self._tiers)
            return self._tiers[0].price

        # Past the last bound, or inside a gap: the nearest tier starting below applies.
        covering = [tier for tier in self._tiers if tier.min_pax <= unit_count]
        return covering[-1].price


PriceSource = Union[TierTable, Sequence[PriceTier], Decimal, int, float, str]


def resolve_unit_price(
    source: PriceSource,
    unit_count: int,
    *,
    below_range: BelowRange = BelowRange.FIRST_TIER,
) -> Decimal:
    """Resolve the per-unit price from a tier table or a flat price."""
    if isinstance(source, TierTable):
        return source.lookup(unit_count, below_range=below_range)
    if isinstance(source, (list, tuple)):
        return TierTable(source).lookup(unit_count, below_range=below_range)
    return Decimal(str(source))


def product_unit_price(
    product: Product,
    unit_count: int,
    *,
    below_range: BelowRange = BelowRange.FIRST_TIER,
) -> Decimal:
    """Unit price for a product, falling back from tiers to flat prices."""
    if product.price_tiers:
        return resolve_unit_price(TierTable(product.price_tiers), unit_count, below_range=below_range)
    if product.price is not None:
        return product.price
    if product.starting_from_price is not None:
        return product.starting_from_price
    return ZERO


def addon_total(catalog: Iterable[Addon], selected: Iterable[str]) -> Decimal:
    """Sum the prices of selected add-ons that exist in the catalog."""
    prices = {addon.name: addon.price for addon in catalog}
    return sum((prices[name] for name in set(selected) if name in prices), ZERO)


def prune_selection(catalog: Iterable[Addon], selected: Iterable[str]) -> Tuple[str, ...]:
    """Drop selected names that are no longer offered by the catalog."""
    names = {addon.name for addon in catalog}
    return tuple(name for name in selected if name in names)


def coerce_date(value: Any) -> Optional[date]:
    """Accept a date, a datetime or an ISO ``YYYY-MM-DD`` string."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value.strip():
        try:
            return date.fromisoformat(value.strip())
        except ValueError:
            return None
    return None


def rental_days(start: Optional[date], end: Optional[date]) -> int:
    """Calendar days covered by an inclusive rental date range."""
    if start is None or end is None or end < start:
        return 0
    return (end - start).days + 1


@dataclass(frozen=True)
class PricingInputs:
    """Snapshot of the booking inputs a discount is computed against."""

    unit_count: int = 1
    selected_addons: Tuple[str, ...] = ()
    context: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Totals:
    subtotal: Decimal
    addon_total: Decimal
    discount: Decimal
    grand_total: Decimal

    @property
    def priced_total(self) -> Decimal:
        """Subtotal plus add-ons, before any discount."""
        return self.subtotal + self.addon_total


def compute_totals(
    unit_price: Decimal,
    unit_count: int,
    addon_total: Decimal,
    confirmed_discount: Decimal,
) -> Totals:
    subtotal = Decimal(unit_price) * max(unit_count, 0)
    grand_total = max(ZERO, subtotal + addon_total - confirmed_discount)
    return Totals(
        subtotal=subtotal,
        addon_total=addon_total,
        discount=confirmed_discount,
        grand_total=grand_total,
    )


__all__ = [
    "BelowRange",
    "PricingInputs",
    "TierNotFoundError",
    "TierTable",
    "Totals",
    "addon_total",
    "coerce_date",
    "compute_totals",
    "product_unit_price",
    "prune_selection",
    "rental_days",
    "resolve_unit_price",
]
