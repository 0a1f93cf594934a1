"""Booking form validation, order payload assembly and order submission."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime, time
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Protocol

from .client import StorefrontError, StorefrontValidationError
from .contact import DEFAULT_COUNTRY_CODE, compose_phone_number
from .discount import DiscountState
from .pricing import PricingInputs, Totals, coerce_date
from .products import ProductProfile, ProductType, UnitField, get_profile
from .schemas import OrderResponse, Product

logger = logging.getLogger(__name__)

FieldErrors = Dict[str, str]

GENERAL = "general"
GENERAL_FAILURE_MESSAGE = "Booking failed. Please try again."
CHECK_INPUT_MESSAGE = "Please check your input details."

REQUIRED_MESSAGES: Dict[str, str] = {
    "booking_date": "Please select a date.",
    "start_date": "Please select a date.",
    "end_date": "Please select a return date.",
    "activity_time": "Please select a time.",
    "participant_nationality": "Please select a nationality.",
    "full_name": "Full name is required.",
    "email": "Email is required.",
    "phone_number": "Phone number is required.",
    "pickup_location": "Pickup location is required.",
}

OPTIONAL_FIELDS = ("participant_nationality", "special_request")

EMAIL_PATTERN = re.compile(r"^[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}$", re.IGNORECASE)
MIN_PHONE_DIGITS = 9
MIN_PICKUP_LENGTH = 5
MIN_NAME_LENGTH = 3


class SubmissionStatus(str, Enum):
    READY = "ready"
    SUBMITTING = "submitting"
    SUCCEEDED = "succeeded"


class SubmissionStateError(RuntimeError):
    """Raised when submit() is called while submitting or after success."""


@dataclass(frozen=True)
class SubmissionResult:
    ok: bool
    order_id: Optional[int | str] = None
    errors: FieldErrors = field(default_factory=dict)


class OrderCreator(Protocol):
    async def create_order(
        self,
        product_type: ProductType | str,
        product_id: int | str,
        payload: dict[str, Any],
    ) -> OrderResponse: ...


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


def _field_value(fields: Mapping[str, Any], name: str) -> Any:
    # The form keeps the phone as country code + local digits.
    if name == "phone_number" and "local_phone" in fields:
        return fields.get("local_phone")
    return fields.get(name)


def _serialize(value: Any) -> Any:
    if isinstance(value, (date, datetime, time)):
        return value.isoformat()
    return value


def validate_booking(
    profile: ProductProfile,
    fields: Mapping[str, Any],
    inputs: PricingInputs,
    totals: Totals,
) -> FieldErrors:
    """Client-side checks run before anything is sent to the order service."""
    errors: FieldErrors = {}
    for name in profile.required_fields:
        if _is_blank(_field_value(fields, name)):
            errors[name] = REQUIRED_MESSAGES.get(name, "This field is required.")

    if profile.unit_field is UnitField.QUANTITY and inputs.unit_count < 1:
        errors["quantity"] = "At least one participant is required."
    elif profile.unit_field is UnitField.PARTY:
        if int(inputs.context.get("adults", inputs.unit_count)) < 1:
            errors["adults"] = "At least one adult is required."
    elif profile.unit_field is UnitField.DAYS:
        start = coerce_date(fields.get("start_date"))
        end = coerce_date(fields.get("end_date"))
        if start and end and end < start:
            errors["end_date"] = "Return date must be on or after the pickup date."

    if totals.priced_total <= 0:
        errors[GENERAL] = "Price is not available for this booking."

    email = fields.get("email")
    if "email" not in errors and not _is_blank(email):
        if not EMAIL_PATTERN.match(str(email).strip()):
            errors["email"] = "Please enter a valid email address."

    if profile.strict_contact:
        name = fields.get("full_name")
        if "full_name" not in errors and len(str(name or "").strip()) < MIN_NAME_LENGTH:
            errors["full_name"] = "Full name is required."
        phone = re.sub(r"[^0-9]", "", str(_field_value(fields, "phone_number") or ""))
        if "phone_number" not in errors and len(phone) < MIN_PHONE_DIGITS:
            errors["phone_number"] = "Phone number is too short (min 9 digits)"
        pickup = fields.get("pickup_location")
        if "pickup_location" not in errors and len(str(pickup or "").strip()) < MIN_PICKUP_LENGTH:
            errors["pickup_location"] = "Pickup location details are too short."
    return errors


def build_order_payload(
    profile: ProductProfile,
    fields: Mapping[str, Any],
    inputs: PricingInputs,
    discount: DiscountState,
) -> Dict[str, Any]:
    """Assemble the order request; the code is only sent once confirmed."""
    payload: Dict[str, Any] = {}
    for name in profile.required_fields + OPTIONAL_FIELDS:
        if name == "phone_number":
            continue
        value = fields.get(name)
        payload[name] = None if _is_blank(value) else _serialize(value)

    if profile.unit_field is UnitField.QUANTITY:
        payload["quantity"] = inputs.unit_count
    elif profile.unit_field is UnitField.PARTY:
        payload["adults"] = int(inputs.context.get("adults", inputs.unit_count))
        payload["children"] = int(inputs.context.get("children", 0))

    if "local_phone" in fields:
        payload["phone_number"] = compose_phone_number(
            fields.get("phone_code") or DEFAULT_COUNTRY_CODE, fields.get("local_phone") or ""
        )
    else:
        payload["phone_number"] = fields.get("phone_number")
    payload["selected_addons"] = list(inputs.selected_addons)
    payload["discount_code"] = discount.code if discount.is_applied and discount.code else None
    return payload


def map_server_errors(errors: Mapping[str, Any], known_fields: set[str]) -> FieldErrors:
    """Translate a field-keyed 422 error map onto form fields."""
    mapped: FieldErrors = {}
    for name, messages in errors.items():
        if isinstance(messages, (list, tuple)):
            if not messages:
                continue
            message = str(messages[0])
        else:
            message = str(messages)
        target = name if name in known_fields else GENERAL
        mapped.setdefault(target, message)
    return mapped


class BookingSubmission:
    """Drives one form instance from READY to SUCCEEDED."""

    def __init__(self, client: OrderCreator, product: Product) -> None:
        self.client = client
        self.product = product
        self.profile = get_profile(product.product_type)
        self.status = SubmissionStatus.READY
        self.errors: FieldErrors = {}
        self.order_id: Optional[int | str] = None

    def validate(
        self, fields: Mapping[str, Any], inputs: PricingInputs, totals: Totals
    ) -> FieldErrors:
        self.errors = validate_booking(self.profile, fields, inputs, totals)
        return self.errors

    def clear_error(self, name: str) -> None:
        self.errors.pop(name, None)
        if name == "local_phone":
            self.errors.pop("phone_number", None)

    def reset(self) -> None:
        self.status = SubmissionStatus.READY
        self.errors = {}
        self.order_id = None

    async def submit(
        self,
        fields: Mapping[str, Any],
        inputs: PricingInputs,
        totals: Totals,
        discount: DiscountState,
    ) -> SubmissionResult:
        if self.status is SubmissionStatus.SUBMITTING:
            raise SubmissionStateError("submission_in_progress")
        if self.status is SubmissionStatus.SUCCEEDED:
            raise SubmissionStateError("submission_already_completed")

        if self.validate(fields, inputs, totals):
            return SubmissionResult(ok=False, errors=dict(self.errors))

        payload = build_order_payload(self.profile, fields, inputs, discount)
        self.status = SubmissionStatus.SUBMITTING
        try:
            response = await self.client.create_order(
                self.profile.product_type, self.product.id, payload
            )
        except StorefrontValidationError as exc:
            errors = map_server_errors(exc.errors, set(payload) | set(fields))
            if not errors:
                errors = {GENERAL: exc.detail or CHECK_INPUT_MESSAGE}
            self.errors = errors
            logger.info(
                "booking_rejected_by_server",
                extra={"product_id": self.product.id, "fields": sorted(errors)},
            )
            return SubmissionResult(ok=False, errors=dict(errors))
        except StorefrontError as exc:
            self.errors = {GENERAL: exc.detail or GENERAL_FAILURE_MESSAGE}
            logger.warning(
                "booking_submission_failed",
                extra={"product_id": self.product.id, "error": str(exc)},
            )
            return SubmissionResult(ok=False, errors=dict(self.errors))
        finally:
            # Anything short of a created order leaves the form editable.
            if self.status is SubmissionStatus.SUBMITTING:
                self.status = SubmissionStatus.READY

        self.status = SubmissionStatus.SUCCEEDED
        self.errors = {}
        self.order_id = response.order_id
        if self.order_id is None:
            logger.warning(
                "booking_created_without_order_id",
                extra={"product_id": self.product.id},
            )
        logger.info(
            "booking_created",
            extra={
                "product_type": self.profile.product_type.value,
                "product_id": self.product.id,
                "order_id": self.order_id,
                "discount_code": payload["discount_code"],
            },
        )
        return SubmissionResult(ok=True, order_id=self.order_id)


__all__ = [
    "BookingSubmission",
    "FieldErrors",
    "OrderCreator",
    "SubmissionResult",
    "SubmissionStateError",
    "SubmissionStatus",
    "build_order_payload",
    "map_server_errors",
    "validate_booking",
]
