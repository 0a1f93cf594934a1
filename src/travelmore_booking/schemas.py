"""Schemas for product data and the pricing/order service contracts."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .products import ProductType


class PriceTier(BaseModel):
    model_config = ConfigDict(frozen=True)

    min_pax: int = Field(ge=1)
    max_pax: Optional[int] = Field(default=None, ge=0)
    price: Decimal = Field(ge=0)

    @field_validator("max_pax")
    @classmethod
    def _zero_means_unbounded(cls, value: Optional[int]) -> Optional[int]:
        # Product data encodes an open-ended tier as null or 0.
        return value or None


class Addon(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    price: Decimal = Field(default=Decimal("0"), ge=0)


class Product(BaseModel):
    """Product detail as loaded once for a booking session."""

    model_config = ConfigDict(frozen=True)

    id: int | str
    product_type: ProductType
    name: str = ""
    price: Optional[Decimal] = Field(default=None, ge=0)
    price_tiers: List[PriceTier] = Field(default_factory=list)
    starting_from_price: Optional[Decimal] = Field(default=None, ge=0)
    addons: List[Addon] = Field(default_factory=list)


class PriceCheckRequest(BaseModel):
    type: str
    id: int | str
    discount_code: str = Field(min_length=1)
    unit_count: int = Field(ge=0)
    selected_addons: List[str] = Field(default_factory=list)
    quantity: Optional[int] = None
    adults: Optional[int] = None
    children: Optional[int] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class PriceCheckResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    discount_amount: Decimal = Field(ge=0)
    total_amount: Optional[Decimal] = None
    message: Optional[str] = None


class OrderResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    order: Optional[Dict[str, Any]] = None
    id: Optional[int | str] = None

    @property
    def order_id(self) -> Optional[int | str]:
        if self.order and self.order.get("id") is not None:
            return self.order["id"]
        return self.id


__all__ = [
    "Addon",
    "OrderResponse",
    "PriceCheckRequest",
    "PriceCheckResponse",
    "PriceTier",
    "Product",
]
