"""Per-product-type booking profiles.

Every product type books through the same engine; what differs is captured
here: the discriminator sent to the pricing service, the order endpoint, which
date fields the form carries, how the unit count is written into payloads and
which contact fields are mandatory.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Tuple


class ProductType(str, Enum):
    ACTIVITY = "activity"
    HOLIDAY_PACKAGE = "holiday_package"
    OPEN_TRIP = "open_trip"
    CAR_RENTAL = "car_rental"


class UnitField(str, Enum):
    """How the unit count is serialized into request payloads."""

    QUANTITY = "quantity"
    PARTY = "party"  # adults + children
    DAYS = "days"  # derived from start_date/end_date


@dataclass(frozen=True)
class ProductProfile:
    product_type: ProductType
    check_type: str
    order_path: str
    date_field: str
    unit_field: UnitField
    required_fields: Tuple[str, ...]
    strict_contact: bool = False

    @property
    def duration_priced(self) -> bool:
        return self.unit_field is UnitField.DAYS

    def order_path_for(self, product_id: int | str) -> str:
        return self.order_path.format(id=product_id)


PROFILES: dict[ProductType, ProductProfile] = {
    ProductType.ACTIVITY: ProductProfile(
        product_type=ProductType.ACTIVITY,
        check_type="activity",
        order_path="/activities/{id}/book",
        date_field="booking_date",
        unit_field=UnitField.QUANTITY,
        required_fields=(
            "booking_date",
            "activity_time",
            "participant_nationality",
            "full_name",
            "email",
            "phone_number",
            "pickup_location",
        ),
    ),
    ProductType.HOLIDAY_PACKAGE: ProductProfile(
        product_type=ProductType.HOLIDAY_PACKAGE,
        check_type="holiday_package",
        order_path="/packages/{id}/book",
        date_field="start_date",
        unit_field=UnitField.PARTY,
        required_fields=(
            "start_date",
            "participant_nationality",
            "full_name",
            "email",
            "phone_number",
            "pickup_location",
        ),
        strict_contact=True,
    ),
    ProductType.OPEN_TRIP: ProductProfile(
        product_type=ProductType.OPEN_TRIP,
        check_type="open_trip",
        order_path="/open-trips/{id}/book",
        date_field="start_date",
        unit_field=UnitField.PARTY,
        required_fields=(
            "start_date",
            "pickup_location",
            "full_name",
            "email",
            "phone_number",
        ),
    ),
    ProductType.CAR_RENTAL: ProductProfile(
        product_type=ProductType.CAR_RENTAL,
        check_type="car_rental",
        order_path="/car-rentals/{id}/book",
        date_field="start_date",
        unit_field=UnitField.DAYS,
        required_fields=(
            "start_date",
            "end_date",
            "full_name",
            "email",
            "phone_number",
            "pickup_location",
        ),
    ),
}


def get_profile(product_type: ProductType | str) -> ProductProfile:
    return PROFILES[ProductType(product_type)]


__all__ = ["PROFILES", "ProductProfile", "ProductType", "UnitField", "get_profile"]
