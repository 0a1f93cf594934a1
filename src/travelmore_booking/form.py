"""Booking form engine shared by every product type."""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional, Protocol, Tuple

from .config import Settings
from .contact import prefill_contact
from .discount import DiscountSession, DiscountState, PriceChecker
from .pricing import (
    BelowRange,
    PricingInputs,
    Totals,
    addon_total,
    coerce_date,
    compute_totals,
    product_unit_price,
    prune_selection,
    rental_days,
)
from .products import UnitField, get_profile
from .schemas import Product
from .submission import BookingSubmission, FieldErrors, OrderCreator, SubmissionResult

logger = logging.getLogger(__name__)

DATE_FIELDS = ("booking_date", "start_date", "end_date")


class BookingClient(PriceChecker, OrderCreator, Protocol):
    """Anything that can both check prices and create orders."""


class BookingForm:
    """State of one open booking form.

    Setters apply synchronously and ``totals`` is recomputed on every read, so
    the displayed subtotal never waits on the network. Setters that touch
    pricing inputs also tell the discount session, which re-confirms an
    applied code once the inputs have been quiet for the debounce window.
    """

    def __init__(
        self,
        product: Product,
        client: BookingClient,
        *,
        settings: Settings | None = None,
        user: Optional[Mapping[str, Any]] = None,
        below_range: BelowRange | None = None,
        debounce_seconds: float | None = None,
    ) -> None:
        self.product = product
        self.profile = get_profile(product.product_type)
        self.settings = settings or Settings()
        self.below_range = (
            self.settings.below_range_policy if below_range is None else BelowRange(below_range)
        )
        self.discount = DiscountSession(
            client, product, settings=self.settings, debounce_seconds=debounce_seconds
        )
        self.submission = BookingSubmission(client, product)
        self.fields: Dict[str, Any] = {}
        self._quantity = 1
        self._adults = 1
        self._children = 0
        self._selected: Tuple[str, ...] = ()
        self.reset(user)

    # -- derived values -------------------------------------------------

    @property
    def unit_count(self) -> int:
        if self.profile.unit_field is UnitField.PARTY:
            return self._adults + self._children
        if self.profile.unit_field is UnitField.DAYS:
            return rental_days(self.fields.get("start_date"), self.fields.get("end_date"))
        return self._quantity

    @property
    def selected_addons(self) -> Tuple[str, ...]:
        return self._selected

    @property
    def pricing_inputs(self) -> PricingInputs:
        context: Dict[str, Any] = {}
        if self.profile.unit_field is UnitField.PARTY:
            context = {"adults": self._adults, "children": self._children}
        elif self.profile.unit_field is UnitField.DAYS:
            context = {
                "start_date": self.fields.get("start_date"),
                "end_date": self.fields.get("end_date"),
            }
        return PricingInputs(
            unit_count=self.unit_count,
            selected_addons=self._selected,
            context=context,
        )

    @property
    def unit_price(self) -> Decimal:
        return product_unit_price(self.product, self.unit_count, below_range=self.below_range)

    @property
    def totals(self) -> Totals:
        return compute_totals(
            self.unit_price,
            self.unit_count,
            addon_total(self.product.addons, self._selected),
            self.discount.confirmed_amount,
        )

    @property
    def discount_state(self) -> DiscountState:
        return self.discount.state

    @property
    def errors(self) -> FieldErrors:
        return self.submission.errors

    # -- setters ----------------------------------------------------------

    def set_unit_count(self, count: int) -> None:
        if self.profile.unit_field is UnitField.DAYS:
            raise ValueError("rental duration is set through set_dates()")
        if self.profile.unit_field is UnitField.PARTY:
            self.set_party(count, self._children)
            return
        self._quantity = int(count)
        self._pricing_changed("quantity")

    def set_party(self, adults: int, children: int = 0) -> None:
        if self.profile.unit_field is not UnitField.PARTY:
            raise ValueError(f"{self.profile.product_type.value} is not priced per party")
        self._adults = int(adults)
        self._children = max(int(children), 0)
        self._pricing_changed("adults")

    def toggle_addon(self, name: str) -> None:
        if name in self._selected:
            self._selected = tuple(item for item in self._selected if item != name)
        elif any(addon.name == name for addon in self.product.addons):
            self._selected = self._selected + (name,)
        else:
            logger.debug("addon_toggle_ignored", extra={"addon": name})
            return
        self._pricing_changed("selected_addons")

    def set_dates(self, start: date | str | None, end: date | str | None = None) -> None:
        self.fields[self.profile.date_field] = coerce_date(start)
        self.submission.clear_error(self.profile.date_field)
        if self.profile.duration_priced:
            self.fields["end_date"] = coerce_date(end)
            self._pricing_changed("end_date")

    def set_field(self, name: str, value: Any) -> None:
        if name in DATE_FIELDS:
            if name == "end_date":
                self.set_dates(self.fields.get(self.profile.date_field), value)
            else:
                self.set_dates(value, self.fields.get("end_date"))
            return
        self.fields[name] = value
        self.submission.clear_error(name)

    def set_code(self, text: Optional[str]) -> None:
        self.discount.set_code(text)
        self.submission.clear_error("discount_code")

    # -- actions ----------------------------------------------------------

    async def apply_code(self) -> DiscountState:
        return await self.discount.apply_code()

    async def submit(self) -> SubmissionResult:
        self._selected = prune_selection(self.product.addons, self._selected)
        result = await self.submission.submit(
            self.fields, self.pricing_inputs, self.totals, self.discount.state
        )
        if result.ok:
            self._selected = ()
            self.discount.reset(self.pricing_inputs)
        return result

    def reset(self, user: Optional[Mapping[str, Any]] = None) -> None:
        """Return to a fresh form, optionally prefilled from the signed-in user."""
        self._quantity = 1
        self._adults = 1
        self._children = 0
        self._selected = ()
        self.fields = {
            self.profile.date_field: None,
            "participant_nationality": "",
            "pickup_location": "",
            "special_request": "",
            **prefill_contact(user, self.settings.default_country_code),
        }
        if self.profile.duration_priced:
            self.fields["end_date"] = None
        self.submission.reset()
        self.discount.reset(self.pricing_inputs)

    async def aclose(self) -> None:
        await self.discount.aclose()

    def _pricing_changed(self, field_name: str) -> None:
        self.submission.clear_error(field_name)
        self.discount.inputs_changed(self.pricing_inputs)


__all__ = ["BookingClient", "BookingForm"]
