from __future__ import annotations

import asyncio
import logging
from datetime import date
from decimal import Decimal

import pytest
import respx
from helpers import FakeOrderClient, make_activity, make_car, make_package, wait_until
from travelmore_booking.client import (
    StorefrontClient,
    StorefrontConnectionError,
    StorefrontRequestError,
    StorefrontValidationError,
)
from travelmore_booking.config import Settings
from travelmore_booking.discount import DiscountState, DiscountStatus
from travelmore_booking.pricing import PricingInputs, compute_totals
from travelmore_booking.products import ProductType, get_profile
from travelmore_booking.schemas import OrderResponse
from travelmore_booking.submission import (
    CHECK_INPUT_MESSAGE,
    GENERAL,
    GENERAL_FAILURE_MESSAGE,
    BookingSubmission,
    SubmissionStateError,
    SubmissionStatus,
    build_order_payload,
    map_server_errors,
    validate_booking,
)

PACKAGE = get_profile(ProductType.HOLIDAY_PACKAGE)
ACTIVITY = get_profile(ProductType.ACTIVITY)
CAR = get_profile(ProductType.CAR_RENTAL)


def _package_fields(**overrides):
    fields = {
        "start_date": date(2026, 8, 1),
        "participant_nationality": "Indonesia",
        "full_name": "Dewi Lestari",
        "email": "dewi@example.com",
        "phone_code": "+62",
        "local_phone": "81234567890",
        "pickup_location": "Hotel Tentrem Yogyakarta",
        "special_request": "",
    }
    fields.update(overrides)
    return fields


def _party(adults=3, children=0, addons=("Photographer",)):
    return PricingInputs(
        unit_count=adults + children,
        selected_addons=tuple(addons),
        context={"adults": adults, "children": children},
    )


def _package_totals(discount="0"):
    return compute_totals(Decimal("500000"), 3, Decimal("150000"), Decimal(discount))


APPLIED = DiscountState(
    code="SALE10",
    confirmed_amount=Decimal("200000"),
    status=DiscountStatus.APPLIED,
)


def test_valid_package_booking_has_no_errors():
    assert validate_booking(PACKAGE, _package_fields(), _party(), _package_totals()) == {}


def test_missing_required_fields_are_reported():
    errors = validate_booking(PACKAGE, {}, _party(), _package_totals())
    assert errors["start_date"] == "Please select a date."
    assert errors["full_name"] == "Full name is required."
    assert errors["email"] == "Email is required."
    assert errors["phone_number"] == "Phone number is required."
    assert errors["pickup_location"] == "Pickup location is required."


def test_package_requires_stricter_contact_details():
    fields = _package_fields(full_name="Al", local_phone="812345", pickup_location="Bali")
    errors = validate_booking(PACKAGE, fields, _party(), _package_totals())
    assert errors == {
        "full_name": "Full name is required.",
        "phone_number": "Phone number is too short (min 9 digits)",
        "pickup_location": "Pickup location details are too short.",
    }


def test_open_trip_skips_stricter_contact_checks():
    profile = get_profile(ProductType.OPEN_TRIP)
    fields = _package_fields(full_name="Al", local_phone="812345", pickup_location="Bali")
    assert validate_booking(profile, fields, _party(), _package_totals()) == {}


def test_invalid_email_is_reported():
    fields = _package_fields(email="dewi@example")
    errors = validate_booking(PACKAGE, fields, _party(), _package_totals())
    assert errors == {"email": "Please enter a valid email address."}


def test_package_needs_an_adult():
    errors = validate_booking(
        PACKAGE, _package_fields(), _party(adults=0, children=2), _package_totals()
    )
    assert errors["adults"] == "At least one adult is required."


def test_activity_needs_a_participant_and_a_price():
    fields = {
        "booking_date": "2026-08-01",
        "activity_time": "08:00",
        "participant_nationality": "Indonesia",
        "full_name": "Dewi",
        "email": "dewi@example.com",
        "phone_number": "+6281234567",
        "pickup_location": "Hotel",
    }
    totals = compute_totals(Decimal("450000"), 0, Decimal("0"), Decimal("0"))
    errors = validate_booking(ACTIVITY, fields, PricingInputs(unit_count=0), totals)
    assert errors["quantity"] == "At least one participant is required."
    assert errors[GENERAL] == "Price is not available for this booking."


def test_car_rental_rejects_return_before_pickup():
    fields = {
        "start_date": date(2026, 7, 4),
        "end_date": date(2026, 7, 1),
        "full_name": "Dewi",
        "email": "dewi@example.com",
        "phone_number": "+6281234567",
        "pickup_location": "Adisutjipto Airport",
    }
    totals = compute_totals(Decimal("650000"), 0, Decimal("0"), Decimal("0"))
    errors = validate_booking(CAR, fields, PricingInputs(unit_count=0), totals)
    assert errors["end_date"] == "Return date must be on or after the pickup date."


def test_payload_carries_code_only_when_applied():
    payload = build_order_payload(PACKAGE, _package_fields(), _party(), APPLIED)
    assert payload == {
        "start_date": "2026-08-01",
        "participant_nationality": "Indonesia",
        "full_name": "Dewi Lestari",
        "email": "dewi@example.com",
        "pickup_location": "Hotel Tentrem Yogyakarta",
        "special_request": None,
        "adults": 3,
        "children": 0,
        "phone_number": "+6281234567890",
        "selected_addons": ["Photographer"],
        "discount_code": "SALE10",
    }

    for state in (
        DiscountState(code="SALE10"),
        DiscountState(code="SALE10", status=DiscountStatus.CHECKING),
        DiscountState(code="SALE10", status=DiscountStatus.REJECTED, message="nope"),
    ):
        payload = build_order_payload(PACKAGE, _package_fields(), _party(), state)
        assert payload["discount_code"] is None


def test_activity_payload_sends_quantity():
    payload = build_order_payload(
        ACTIVITY,
        {"booking_date": date(2026, 8, 1), "phone_number": "+6281234567"},
        PricingInputs(unit_count=2, selected_addons=("Lunch",)),
        DiscountState(),
    )
    assert payload["quantity"] == 2
    assert payload["booking_date"] == "2026-08-01"
    assert payload["phone_number"] == "+6281234567"
    assert "adults" not in payload


def test_map_server_errors_takes_first_message_per_field():
    mapped = map_server_errors(
        {
            "email": ["The email has already been taken.", "Second"],
            "coupon": ["Coupon expired."],
            "phone_number": [],
            "full_name": "Name too long.",
        },
        {"email", "phone_number", "full_name"},
    )
    assert mapped == {
        "email": "The email has already been taken.",
        GENERAL: "Coupon expired.",
        "full_name": "Name too long.",
    }


@pytest.mark.asyncio
async def test_submit_success_returns_order_id():
    client = FakeOrderClient()
    submission = BookingSubmission(client, make_package())

    result = await submission.submit(_package_fields(), _party(), _package_totals(), APPLIED)

    assert result.ok is True
    assert result.order_id == 901
    assert submission.status is SubmissionStatus.SUCCEEDED
    product_type, product_id, payload = client.calls[0]
    assert product_type is ProductType.HOLIDAY_PACKAGE
    assert product_id == 7
    assert payload["discount_code"] == "SALE10"


@pytest.mark.asyncio
async def test_submit_after_success_is_rejected():
    client = FakeOrderClient(response=OrderResponse(id=42))
    submission = BookingSubmission(client, make_package())
    result = await submission.submit(_package_fields(), _party(), _package_totals(), APPLIED)
    assert result.order_id == 42

    with pytest.raises(SubmissionStateError):
        await submission.submit(_package_fields(), _party(), _package_totals(), APPLIED)
    assert len(client.calls) == 1


@pytest.mark.asyncio
async def test_invalid_form_never_reaches_the_server():
    client = FakeOrderClient()
    submission = BookingSubmission(client, make_package())

    result = await submission.submit({}, _party(), _package_totals(), DiscountState())

    assert result.ok is False
    assert "full_name" in result.errors
    assert submission.errors == result.errors
    assert submission.status is SubmissionStatus.READY
    assert client.calls == []


@pytest.mark.asyncio
async def test_server_validation_errors_map_to_fields():
    error = StorefrontValidationError(
        "storefront_validation_failed",
        errors={
            "email": ["The email has already been taken."],
            "coupon": ["Coupon expired."],
        },
    )
    submission = BookingSubmission(FakeOrderClient(error=error), make_package())

    result = await submission.submit(_package_fields(), _party(), _package_totals(), APPLIED)

    assert result.ok is False
    assert result.errors == {
        "email": "The email has already been taken.",
        GENERAL: "Coupon expired.",
    }
    assert submission.status is SubmissionStatus.READY


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error, message",
    [
        (StorefrontValidationError("storefront_validation_failed"), CHECK_INPUT_MESSAGE),
        (
            StorefrontValidationError("storefront_validation_failed", detail="Slot is full."),
            "Slot is full.",
        ),
        (StorefrontConnectionError("storefront_timeout"), GENERAL_FAILURE_MESSAGE),
        (
            StorefrontRequestError("storefront_error_500", status_code=500, detail="Quota full"),
            "Quota full",
        ),
    ],
)
async def test_other_failures_become_general_error(error, message):
    submission = BookingSubmission(FakeOrderClient(error=error), make_package())

    result = await submission.submit(_package_fields(), _party(), _package_totals(), APPLIED)

    assert result.errors == {GENERAL: message}
    assert submission.status is SubmissionStatus.READY


@pytest.mark.asyncio
async def test_submit_while_submitting_is_rejected():
    release: asyncio.Future = asyncio.get_running_loop().create_future()

    class SlowOrderClient(FakeOrderClient):
        async def create_order(self, product_type, product_id, payload):
            self.calls.append((product_type, product_id, payload))
            await release
            return self.response

    client = SlowOrderClient()
    submission = BookingSubmission(client, make_package())
    task = asyncio.create_task(
        submission.submit(_package_fields(), _party(), _package_totals(), APPLIED)
    )
    await wait_until(lambda: submission.status is SubmissionStatus.SUBMITTING)

    with pytest.raises(SubmissionStateError):
        await submission.submit(_package_fields(), _party(), _package_totals(), APPLIED)

    release.set_result(None)
    result = await task
    assert result.ok is True
    assert len(client.calls) == 1


def test_clear_error_on_local_phone_clears_phone_number():
    submission = BookingSubmission(FakeOrderClient(), make_activity())
    submission.errors = {"phone_number": "Phone number is required.", "email": "x"}

    submission.clear_error("local_phone")

    assert submission.errors == {"email": "x"}


def test_reset_clears_errors_and_status():
    submission = BookingSubmission(FakeOrderClient(), make_car())
    submission.errors = {GENERAL: "x"}
    submission.status = SubmissionStatus.SUCCEEDED
    submission.order_id = 5

    submission.reset()

    assert submission.errors == {}
    assert submission.status is SubmissionStatus.READY
    assert submission.order_id is None


@pytest.mark.asyncio
@respx.mock
async def test_malformed_order_response_returns_form_to_ready():
    base = "https://api.travelmore.test/api"
    route = respx.post(f"{base}/packages/7/book").respond(201, json={"order": [1]})
    client = StorefrontClient(Settings(api_base_url=base, api_token=""))
    submission = BookingSubmission(client, make_package())

    result = await submission.submit(_package_fields(), _party(), _package_totals(), APPLIED)

    assert result.ok is False
    assert result.errors == {GENERAL: GENERAL_FAILURE_MESSAGE}
    assert submission.status is SubmissionStatus.READY

    route.respond(201, json={"order": {"id": 77}})
    retry = await submission.submit(_package_fields(), _party(), _package_totals(), APPLIED)
    assert retry.ok is True
    assert retry.order_id == 77
    await client.aclose()


@pytest.mark.asyncio
async def test_unexpected_error_propagates_but_form_stays_editable():
    client = FakeOrderClient(error=RuntimeError("boom"))
    submission = BookingSubmission(client, make_package())

    with pytest.raises(RuntimeError):
        await submission.submit(_package_fields(), _party(), _package_totals(), APPLIED)
    assert submission.status is SubmissionStatus.READY

    client.error = None
    result = await submission.submit(_package_fields(), _party(), _package_totals(), APPLIED)
    assert result.ok is True


@pytest.mark.asyncio
async def test_created_order_without_id_is_logged(caplog):
    submission = BookingSubmission(FakeOrderClient(response=OrderResponse()), make_package())

    with caplog.at_level(logging.WARNING, logger="travelmore_booking.submission"):
        result = await submission.submit(
            _package_fields(), _party(), _package_totals(), APPLIED
        )

    assert result.ok is True
    assert result.order_id is None
    assert any(
        record.getMessage() == "booking_created_without_order_id" for record in caplog.records
    )
