"""Async HTTP client for the Audivia API used by the storefront widgets."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Type, TypeVar

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .config import StorefrontConfig
from .errors import ApiError, NotConfigured, error_from_response

logger = logging.getLogger(__name__)

UNEXPECTED_RESPONSE_MESSAGE = "Unexpected response from the server"

ModelT = TypeVar("ModelT", bound=BaseModel)


class PayPalClientConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    client_id: str = Field(alias="clientId")
    environment: str = "sandbox"


class CreatedOrder(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    order_id: str = Field(alias="orderId")
    approval_url: Optional[str] = Field(default=None, alias="approvalUrl")
    purchase_ids: List[str] = Field(default_factory=list, alias="purchaseIds")
    total_cents: int = Field(default=0, alias="totalCents")
    currency: Optional[str] = None


class CaptureResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    status: str
    order_id: str = Field(alias="orderId")
    already_captured: bool = Field(default=False, alias="alreadyCaptured")
    purchases: List[Dict[str, Any]] = Field(default_factory=list)


class SubscriptionState(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    subscription: Optional[Dict[str, Any]] = None
    is_active: bool = Field(default=False, alias="isActive")


class BillingProfileStatus(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    is_complete: bool = Field(default=False, alias="isComplete")
    missing_fields: List[str] = Field(default_factory=list, alias="missingFields")


class StorefrontApi:
    """Cookie-session client for the JSON API.

    Error statuses are raised as :mod:`storefront.errors` types so callers can
    tell "log in first" and business-rule conflicts apart from outages.
    """

    def __init__(
        self,
        config: Optional[StorefrontConfig] = None,
        *,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.config = config or StorefrontConfig()
        self._client = client or httpx.AsyncClient(
            base_url=self.config.api_base_url,
            timeout=self.config.request_timeout,
            headers={"Accept": "application/json"},
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "StorefrontApi":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _request(self, method: str, path: str, *, json: Optional[Dict[str, Any]] = None) -> Any:
        try:
            response = await self._client.request(method, path, json=json)
        except httpx.HTTPError as exc:
            logger.warning("API request failed", extra={"method": method, "path": path, "error": str(exc)})
            raise ApiError(f"Could not reach the server: {exc}") from exc

        if response.status_code >= 400:
            try:
                payload = response.json()
            except ValueError:
                payload = None
            error = error_from_response(response.status_code, payload)
            logger.info(
                "API request rejected",
                extra={"method": method, "path": path, "status": response.status_code, "code": error.code},
            )
            raise error

        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            # A proxy or captive portal answering 2xx with HTML.
            logger.warning(
                "API returned a non-JSON body",
                extra={"method": method, "path": path, "status": response.status_code},
            )
            raise ApiError(UNEXPECTED_RESPONSE_MESSAGE, response.status_code) from exc

    # PayPal

    async def get_paypal_config(self) -> PayPalClientConfig:
        try:
            data = await self._request("GET", "/api/paypal/config")
        except ApiError as exc:
            if exc.status_code == 404:
                raise NotConfigured("PayPal is not configured", 404) from exc
            raise
        return _parse(PayPalClientConfig, data)

    async def create_order(self, audiobook_id: str) -> CreatedOrder:
        data = await self._request("POST", "/api/paypal/orders", json={"audiobookId": audiobook_id})
        return _parse(CreatedOrder, data)

    async def capture_order(self, order_id: str) -> CaptureResult:
        data = await self._request("POST", f"/api/paypal/orders/{order_id}/capture")
        return _parse(CaptureResult, data)

    async def activate_subscription(self, subscription_id: str, plan_id: str) -> SubscriptionState:
        data = await self._request(
            "POST",
            f"/api/paypal/subscriptions/{subscription_id}/activate",
            json={"planId": plan_id},
        )
        return _parse(SubscriptionState, data)

    async def get_billing_profile(self) -> BillingProfileStatus:
        data = await self._request("GET", "/api/billing-profile")
        return _parse(BillingProfileStatus, data or {})

    # Cart and favorites

    async def add_to_cart(self, audiobook_id: str) -> None:
        await self._request("POST", f"/api/cart/{audiobook_id}")

    async def remove_from_cart(self, audiobook_id: str) -> None:
        await self._request("DELETE", f"/api/cart/{audiobook_id}")

    async def add_favorite(self, audiobook_id: str) -> None:
        await self._request("POST", f"/api/audiobooks/{audiobook_id}/favorite")

    async def remove_favorite(self, audiobook_id: str) -> None:
        await self._request("DELETE", f"/api/audiobooks/{audiobook_id}/favorite")


def _parse(model: Type[ModelT], data: Any) -> ModelT:
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        logger.warning("API response did not match %s", model.__name__, extra={"errors": exc.error_count()})
        raise ApiError(UNEXPECTED_RESPONSE_MESSAGE) from exc


__all__ = [
    "BillingProfileStatus",
    "CaptureResult",
    "CreatedOrder",
    "PayPalClientConfig",
    "StorefrontApi",
    "SubscriptionState",
    "UNEXPECTED_RESPONSE_MESSAGE",
]
