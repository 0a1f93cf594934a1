"""Discount code validation lifecycle for a single booking form.

The pricing service is the only authority on what a code is worth, and its
answer depends on the unit count, the selected add-ons and, for rentals, the
date range. A confirmed amount therefore has to be re-confirmed whenever those
inputs change. Two rules keep the displayed discount honest:

* editing the code text drops any confirmed amount immediately;
* only the response to the most recently issued request may change state.
  Each request takes the next sequence number; anything that supersedes it
  (a newer request, a code edit, a reset) bumps the counter.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from decimal import Decimal
from enum import Enum
from typing import Optional, Protocol, Set

from pydantic import ValidationError

from .client import StorefrontConnectionError, StorefrontError
from .config import Settings
from .formatting import format_price
from .pricing import ZERO, PricingInputs
from .products import ProductProfile, UnitField, get_profile
from .schemas import PriceCheckRequest, PriceCheckResponse, Product

logger = logging.getLogger(__name__)

NOT_APPLICABLE_MESSAGE = "Code valid but no discount applicable."
INVALID_CODE_MESSAGE = "Invalid or expired discount code."
UNREACHABLE_MESSAGE = "Could not reach the pricing service. Please try again."
INVALID_INPUT_MESSAGE = "Please check your booking details before applying a code."


class DiscountStatus(str, Enum):
    IDLE = "idle"
    CHECKING = "checking"
    APPLIED = "applied"
    REJECTED = "rejected"


@dataclass(frozen=True)
class DiscountState:
    code: str = ""
    confirmed_amount: Decimal = ZERO
    status: DiscountStatus = DiscountStatus.IDLE
    message: Optional[str] = None
    # An automatic re-check is in flight; the confirmed amount stays shown.
    revalidating: bool = False

    @property
    def is_applied(self) -> bool:
        return self.status is DiscountStatus.APPLIED


class PriceChecker(Protocol):
    async def check_price(self, request: PriceCheckRequest) -> PriceCheckResponse: ...


def normalize_code(text: Optional[str]) -> str:
    return (text or "").strip().upper()


def build_price_check(
    profile: ProductProfile,
    product: Product,
    code: str,
    inputs: PricingInputs,
) -> PriceCheckRequest:
    """Describe the current pricing inputs to the pricing service."""
    extra: dict = {}
    if profile.unit_field is UnitField.QUANTITY:
        extra["quantity"] = inputs.unit_count
    elif profile.unit_field is UnitField.PARTY:
        extra["adults"] = inputs.context.get("adults", inputs.unit_count)
        extra["children"] = inputs.context.get("children", 0)
    for key in ("start_date", "end_date"):
        if inputs.context.get(key) is not None:
            extra[key] = inputs.context[key]
    return PriceCheckRequest(
        type=profile.check_type,
        id=product.id,
        discount_code=code,
        unit_count=inputs.unit_count,
        selected_addons=list(inputs.selected_addons),
        **extra,
    )


class DiscountSession:
    """Owns the discount code, its confirmed amount and the re-check protocol."""

    def __init__(
        self,
        client: PriceChecker,
        product: Product,
        *,
        settings: Settings | None = None,
        debounce_seconds: float | None = None,
    ) -> None:
        self.client = client
        self.product = product
        self.profile = get_profile(product.product_type)
        self.settings = settings or Settings()
        self.debounce_seconds = (
            self.settings.discount_debounce_seconds
            if debounce_seconds is None
            else debounce_seconds
        )
        self._state = DiscountState()
        self._inputs = PricingInputs()
        self._sequence = 0
        self._pending: asyncio.Task[None] | None = None
        # Revalidations past their debounce window, awaiting the pricing service.
        self._inflight: Set[asyncio.Task[None]] = set()

    @property
    def state(self) -> DiscountState:
        return self._state

    @property
    def inputs(self) -> PricingInputs:
        return self._inputs

    @property
    def confirmed_amount(self) -> Decimal:
        return self._state.confirmed_amount

    @property
    def pending_revalidation(self) -> asyncio.Task[None] | None:
        return self._pending

    def set_code(self, text: Optional[str]) -> None:
        self._cancel_pending()
        self._sequence += 1
        self._state = DiscountState(code=normalize_code(text))

    def inputs_changed(self, inputs: PricingInputs) -> None:
        """Record new pricing inputs and restart the re-check timer if needed.

        Must be called from inside the running event loop when a code is
        applied or being checked.
        """
        self._inputs = inputs
        state = self._state
        if not state.code or state.status not in {
            DiscountStatus.APPLIED,
            DiscountStatus.CHECKING,
        }:
            return
        self._cancel_pending()
        self._pending = asyncio.create_task(self._revalidate_when_quiet())

    async def apply_code(self) -> DiscountState:
        state = self._state
        if not state.code or state.status is DiscountStatus.CHECKING:
            return state
        self._cancel_pending()
        await self._check(keep_amount=state.is_applied)
        return self._state

    def reset(self, inputs: PricingInputs | None = None) -> None:
        self._cancel_pending()
        self._sequence += 1
        self._state = DiscountState()
        self._inputs = inputs or PricingInputs()

    async def aclose(self) -> None:
        tasks = [task for task in (self._pending, *self._inflight) if task is not None]
        self._pending = None
        self._inflight.clear()
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass

    def _cancel_pending(self) -> None:
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()
        self._pending = None

    async def _revalidate_when_quiet(self) -> None:
        await asyncio.sleep(self.debounce_seconds)
        # From here on the check is in flight and only the sequence number
        # can supersede it.
        task = asyncio.current_task()
        if task is not None:
            self._inflight.add(task)
            task.add_done_callback(self._inflight.discard)
        self._pending = None
        state = self._state
        if not state.code:
            return
        if state.status is DiscountStatus.APPLIED:
            await self._check(keep_amount=True)
        elif state.status is DiscountStatus.CHECKING:
            await self._check(keep_amount=False)

    async def _check(self, *, keep_amount: bool) -> None:
        self._sequence += 1
        sequence = self._sequence
        code = self._state.code
        inputs = self._inputs
        if keep_amount:
            self._state = replace(self._state, revalidating=True)
        else:
            self._state = DiscountState(code=code, status=DiscountStatus.CHECKING)

        try:
            request = build_price_check(self.profile, self.product, code, inputs)
        except ValidationError:
            logger.info(
                "discount_check_skipped_invalid_inputs",
                extra={"code": code, "unit_count": inputs.unit_count},
            )
            self._state = DiscountState(
                code=code, status=DiscountStatus.REJECTED, message=INVALID_INPUT_MESSAGE
            )
            return

        try:
            response = await self.client.check_price(request)
        except StorefrontError as exc:
            if sequence != self._sequence:
                logger.debug("discount_check_stale_error_discarded", extra={"code": code})
                return
            logger.warning(
                "discount_check_failed",
                extra={
                    "code": code,
                    "product_type": self.profile.product_type.value,
                    "product_id": self.product.id,
                    "error": str(exc),
                },
            )
            if isinstance(exc, StorefrontConnectionError):
                message = UNREACHABLE_MESSAGE
            else:
                message = exc.detail or INVALID_CODE_MESSAGE
            self._state = DiscountState(
                code=code, status=DiscountStatus.REJECTED, message=message
            )
            return

        if sequence != self._sequence:
            logger.debug(
                "discount_check_stale_response_discarded",
                extra={"code": code, "unit_count": inputs.unit_count},
            )
            return

        amount = response.discount_amount
        if amount > 0:
            self._state = DiscountState(
                code=code,
                confirmed_amount=amount,
                status=DiscountStatus.APPLIED,
                message=(
                    "Code applied! You saved "
                    f"{format_price(amount, self.settings.currency_symbol)}"
                ),
            )
            logger.info(
                "discount_applied",
                extra={"code": code, "amount": str(amount), "unit_count": inputs.unit_count},
            )
        else:
            self._state = DiscountState(
                code=code, status=DiscountStatus.REJECTED, message=NOT_APPLICABLE_MESSAGE
            )


__all__ = [
    "DiscountSession",
    "DiscountState",
    "DiscountStatus",
    "PriceChecker",
    "build_price_check",
    "normalize_code",
]
