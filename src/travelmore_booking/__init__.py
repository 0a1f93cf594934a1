"""Booking engine for the TravelMore storefront."""

from .discount import DiscountSession, DiscountState, DiscountStatus
from .form import BookingForm
from .pricing import Totals, addon_total, compute_totals, resolve_unit_price
from .products import ProductType

__all__ = [
    "BookingForm",
    "DiscountSession",
    "DiscountState",
    "DiscountStatus",
    "ProductType",
    "Totals",
    "addon_total",
    "compute_totals",
    "resolve_unit_price",
]
