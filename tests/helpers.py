"""Shared fakes and product fixtures for booking engine tests."""

from __future__ import annotations

import asyncio
from decimal import Decimal
from typing import Any, Callable

from travelmore_booking.client import StorefrontError
from travelmore_booking.products import ProductType
from travelmore_booking.schemas import (
    Addon,
    OrderResponse,
    PriceCheckRequest,
    PriceCheckResponse,
    PriceTier,
    Product,
)


def make_package(**overrides: Any) -> Product:
    data: dict[str, Any] = {
        "id": 7,
        "product_type": ProductType.HOLIDAY_PACKAGE,
        "name": "Merapi Sunrise Escape",
        "price_tiers": [
            PriceTier(min_pax=1, max_pax=4, price=Decimal("500000")),
            PriceTier(min_pax=5, max_pax=None, price=Decimal("400000")),
        ],
        "addons": [Addon(name="Photographer", price=Decimal("150000"))],
    }
    data.update(overrides)
    return Product(**data)


def make_activity(**overrides: Any) -> Product:
    data: dict[str, Any] = {
        "id": 11,
        "product_type": ProductType.ACTIVITY,
        "name": "Jomblang Cave",
        "price": Decimal("450000"),
        "addons": [
            Addon(name="Lunch", price=Decimal("50000")),
            Addon(name="Drone Footage", price=Decimal("200000")),
        ],
    }
    data.update(overrides)
    return Product(**data)


def make_open_trip(**overrides: Any) -> Product:
    data: dict[str, Any] = {
        "id": 21,
        "product_type": ProductType.OPEN_TRIP,
        "name": "Karimunjawa Open Trip",
        "starting_from_price": Decimal("1200000"),
        "price_tiers": [
            PriceTier(min_pax=2, max_pax=3, price=Decimal("1300000")),
            PriceTier(min_pax=4, max_pax=6, price=Decimal("1200000")),
        ],
    }
    data.update(overrides)
    return Product(**data)


def make_car(**overrides: Any) -> Product:
    data: dict[str, Any] = {
        "id": 3,
        "product_type": ProductType.CAR_RENTAL,
        "name": "Toyota Innova Reborn",
        "price": Decimal("650000"),
    }
    data.update(overrides)
    return Product(**data)


class ScriptedChecker:
    """Answers every price check immediately from a callable."""

    def __init__(
        self, answer: Callable[[PriceCheckRequest], PriceCheckResponse | Exception]
    ) -> None:
        self.answer = answer
        self.requests: list[PriceCheckRequest] = []

    async def check_price(self, request: PriceCheckRequest) -> PriceCheckResponse:
        self.requests.append(request)
        result = self.answer(request)
        if isinstance(result, Exception):
            raise result
        return result


class DeferredChecker:
    """Holds every price check open until the test resolves it."""

    def __init__(self) -> None:
        self.requests: list[PriceCheckRequest] = []
        self.futures: list[asyncio.Future[PriceCheckResponse]] = []

    async def check_price(self, request: PriceCheckRequest) -> PriceCheckResponse:
        future: asyncio.Future[PriceCheckResponse] = asyncio.get_running_loop().create_future()
        self.requests.append(request)
        self.futures.append(future)
        return await future

    def resolve(self, index: int, amount: int | str, message: str | None = None) -> None:
        self.futures[index].set_result(
            PriceCheckResponse(discount_amount=Decimal(str(amount)), message=message)
        )

    def fail(self, index: int, error: StorefrontError) -> None:
        self.futures[index].set_exception(error)


class FakeOrderClient:
    """Records create_order calls and replays a canned outcome."""

    def __init__(
        self,
        response: OrderResponse | None = None,
        error: Exception | None = None,
    ) -> None:
        self.response = response or OrderResponse(order={"id": 901})
        self.error = error
        self.calls: list[tuple[Any, Any, dict]] = []

    async def create_order(self, product_type, product_id, payload):
        self.calls.append((product_type, product_id, payload))
        if self.error is not None:
            raise self.error
        return self.response


class FakeBookingClient(FakeOrderClient):
    """Both halves of the storefront API, for form-level tests."""

    def __init__(self, checker: ScriptedChecker | DeferredChecker, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.checker = checker

    async def check_price(self, request: PriceCheckRequest) -> PriceCheckResponse:
        return await self.checker.check_price(request)


async def wait_until(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached before timeout")
        await asyncio.sleep(0.001)
