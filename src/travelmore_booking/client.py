"""HTTP client for the TravelMore pricing and order endpoints."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional
from uuid import uuid4

import httpx
from pydantic import SecretStr, ValidationError

from .config import Settings
from .products import ProductType, get_profile
from .schemas import OrderResponse, PriceCheckRequest, PriceCheckResponse

logger = logging.getLogger(__name__)


class StorefrontError(Exception):
    """Base error for storefront request failures."""

    def __init__(self, message: str, *, detail: Optional[str] = None) -> None:
        super().__init__(message)
        # Human-readable message reported by the server, if any.
        self.detail = detail


class StorefrontConnectionError(StorefrontError):
    """Raised when the storefront API cannot be reached or times out."""


class StorefrontAuthError(StorefrontError):
    """Raised when the storefront API rejects authentication."""


class StorefrontNotFoundError(StorefrontError):
    """Raised when the product or endpoint is not found."""


class StorefrontRequestError(StorefrontError):
    """Raised for non-auth client and server errors."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        detail: Optional[str] = None,
    ) -> None:
        super().__init__(message, detail=detail)
        self.status_code = status_code


class StorefrontValidationError(StorefrontRequestError):
    """Raised for 422 responses carrying field-keyed errors."""

    def __init__(
        self,
        message: str,
        *,
        errors: Optional[Dict[str, Any]] = None,
        detail: Optional[str] = None,
    ) -> None:
        super().__init__(message, status_code=422, detail=detail)
        self.errors = errors or {}


def _secret_value(value: SecretStr | str | None) -> str:
    if value is None:
        return ""
    if isinstance(value, SecretStr):
        return value.get_secret_value()
    return str(value)


def _error_body(response: httpx.Response) -> Dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


class StorefrontClient:
    """Async client for the storefront booking API."""

    def __init__(
        self,
        settings: Settings,
        http: httpx.AsyncClient | None = None,
    ) -> None:
        self.settings = settings
        self.http = http or httpx.AsyncClient(
            base_url=settings.api_base_url,
            headers={"Accept": "application/json"},
            timeout=httpx.Timeout(
                settings.request_timeout_seconds,
                connect=settings.connect_timeout_seconds,
            ),
        )

    async def aclose(self) -> None:
        await self.http.aclose()

    async def call(
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> dict:
        request_headers = {"X-Request-Id": str(uuid4())}
        token = _secret_value(self.settings.api_token).strip()
        if token:
            request_headers["Authorization"] = f"Bearer {token}"
        if headers:
            request_headers.update(headers)
        try:
            response = await self.http.request(method, path, json=json, headers=request_headers)
        except httpx.TimeoutException as exc:
            raise StorefrontConnectionError(
                f"storefront_timeout: Request to {path} timed out"
            ) from exc
        except httpx.HTTPError as exc:
            raise StorefrontConnectionError(f"storefront_connection_failed: {exc}") from exc

        if response.status_code >= 400:
            body = _error_body(response)
            message = body.get("message") if isinstance(body.get("message"), str) else None
            if response.status_code in {401, 403}:
                raise StorefrontAuthError("storefront_auth_failed", detail=message)
            if response.status_code == 404:
                raise StorefrontNotFoundError("storefront_not_found", detail=message)
            if response.status_code == 422:
                errors = body.get("errors")
                raise StorefrontValidationError(
                    "storefront_validation_failed",
                    errors=errors if isinstance(errors, dict) else None,
                    detail=message,
                )
            raise StorefrontRequestError(
                f"storefront_error_{response.status_code}",
                status_code=response.status_code,
                detail=message,
            )

        try:
            return response.json()
        except ValueError:
            return {"status_code": response.status_code, "text": response.text}

    async def check_price(self, request: PriceCheckRequest) -> PriceCheckResponse:
        data = await self.call("POST", "/booking/check-price", json=request.to_payload())
        try:
            return PriceCheckResponse.model_validate(data)
        except ValidationError as exc:
            logger.warning("check_price_invalid_response", extra={"body": data})
            raise StorefrontRequestError("storefront_invalid_response") from exc

    async def create_order(
        self,
        product_type: ProductType | str,
        product_id: int | str,
        payload: dict[str, Any],
    ) -> OrderResponse:
        path = get_profile(product_type).order_path_for(product_id)
        data = await self.call("POST", path, json=payload)
        try:
            return OrderResponse.model_validate(data if isinstance(data, dict) else {})
        except ValidationError as exc:
            logger.warning("create_order_invalid_response", extra={"body": data, "path": path})
            raise StorefrontRequestError("storefront_invalid_response") from exc


__all__ = [
    "StorefrontAuthError",
    "StorefrontClient",
    "StorefrontConnectionError",
    "StorefrontError",
    "StorefrontNotFoundError",
    "StorefrontRequestError",
    "StorefrontValidationError",
]
