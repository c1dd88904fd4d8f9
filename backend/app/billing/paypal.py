"""
PayPal REST API client used for orders, subscriptions and webhooks.

Talks to the Orders v2, Billing Subscriptions v1 and Notifications v1 APIs.
Access tokens obtained through the client-credentials grant are cached until
shortly before PayPal expires them.
"""
from __future__ import annotations

import logging
import time
from threading import Lock
from typing import Any, Dict, List, Mapping, Optional, Sequence

import httpx

from .models import PayPalEnvironment

logger = logging.getLogger("paypal")

_TOKEN_EXPIRY_MARGIN_SECONDS = 60

WEBHOOK_HEADER_MAP = {
    "auth_algo": "paypal-auth-algo",
    "cert_url": "paypal-cert-url",
    "transmission_id": "paypal-transmission-id",
    "transmission_sig": "paypal-transmission-sig",
    "transmission_time": "paypal-transmission-time",
}


class PayPalError(Exception):
    """Error returned by the PayPal API or raised while reaching it."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.details = details or {}


def format_amount(cents: int) -> str:
    """Render minor currency units as the two-decimal string PayPal expects."""

    if cents < 0:
        raise ValueError("amount must be >= 0")
    return f"{cents // 100}.{cents % 100:02d}"


def find_link(payload: Mapping[str, Any], rel: str) -> Optional[str]:
    for link in payload.get("links") or []:
        if isinstance(link, dict) and link.get("rel") == rel:
            return link.get("href")
    return None


class PayPalClient:
    """Synchronous PayPal client shared by the checkout service."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        *,
        environment: PayPalEnvironment = PayPalEnvironment.SANDBOX,
        timeout: float = 15.0,
        transport: Optional[httpx.BaseTransport] = None,
        clock=time.monotonic,
    ) -> None:
        if not client_id or not client_secret:
            raise ValueError("PayPal client id and secret are required")
        self.client_id = client_id
        self.environment = environment
        self._client_secret = client_secret
        self._clock = clock
        self._token: Optional[str] = None
        self._token_expires_at = 0.0
        self._token_lock = Lock()
        self._client = httpx.Client(
            base_url=environment.api_base_url,
            timeout=timeout,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "PayPalClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def _access_token(self) -> str:
        with self._token_lock:
            if self._token and self._clock() < self._token_expires_at:
                return self._token

            try:
                response = self._client.post(
                    "/v1/oauth2/token",
                    data={"grant_type": "client_credentials"},
                    auth=(self.client_id, self._client_secret),
                    headers={"Accept": "application/json"},
                )
                response.raise_for_status()
            except httpx.HTTPStatusError as e:
                logger.error("PayPal token request rejected", extra={
                    "status_code": e.response.status_code,
                    "environment": self.environment.value,
                })
                raise PayPalError(
                    "Failed to obtain PayPal access token",
                    status_code=e.response.status_code,
                ) from e
            except httpx.RequestError as e:
                logger.error("PayPal token request failed", extra={"error": str(e)})
                raise PayPalError(f"Request failed: {e}") from e

            data = response.json()
            expires_in = int(data.get("expires_in", 0))
            self._token = data["access_token"]
            self._token_expires_at = self._clock() + max(0, expires_in - _TOKEN_EXPIRY_MARGIN_SECONDS)
            return self._token

    def _request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        headers = {
            "Authorization": f"Bearer {self._access_token()}",
            "Content-Type": "application/json",
        }
        try:
            response = self._client.request(method, path, json=json, headers=headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            details: Dict[str, Any] = {}
            try:
                details = e.response.json()
            except ValueError:
                details = {"body": e.response.text[:500]}
            logger.error("PayPal API HTTP error", extra={
                "path": path,
                "status_code": e.response.status_code,
                "debug_id": details.get("debug_id"),
            })
            message = details.get("message") or f"PayPal API error: {e.response.status_code}"
            raise PayPalError(message, status_code=e.response.status_code, details=details) from e
        except httpx.RequestError as e:
            logger.error("PayPal API request error", extra={"path": path, "error": str(e)})
            raise PayPalError(f"Request failed: {e}") from e

        if response.status_code == 204 or not response.content:
            return {}
        return response.json()

    def create_order(
        self,
        *,
        reference_id: str,
        custom_id: str,
        amount_cents: int,
        currency: str,
        brand_name: str,
        return_url: str,
        cancel_url: str,
        description: Optional[str] = None,
        items: Optional[Sequence[Mapping[str, Any]]] = None,
        discount_cents: int = 0,
    ) -> Dict[str, Any]:
        """Create a CAPTURE-intent order.

        ``items`` holds ``{"name", "amount_cents"}`` mappings for multi-item
        orders; PayPal then requires an ``item_total`` breakdown matching the
        order amount. A ``discount_cents`` is reported in the same breakdown
        and ``amount_cents`` is then the item total minus the discount.
        """

        amount: Dict[str, Any] = {"currency_code": currency, "value": format_amount(amount_cents)}
        unit: Dict[str, Any] = {
            "reference_id": reference_id,
            "custom_id": custom_id,
            "amount": amount,
        }
        if description:
            unit["description"] = description[:127]
        if items:
            item_total = sum(int(item["amount_cents"]) for item in items)
            breakdown: Dict[str, Any] = {
                "item_total": {"currency_code": currency, "value": format_amount(item_total)},
            }
            if discount_cents > 0:
                breakdown["discount"] = {"currency_code": currency, "value": format_amount(discount_cents)}
            amount["breakdown"] = breakdown
            unit["items"] = [
                {
                    "name": str(item["name"])[:127],
                    "quantity": "1",
                    "unit_amount": {
                        "currency_code": currency,
                        "value": format_amount(int(item["amount_cents"])),
                    },
                    "category": "DIGITAL_GOODS",
                }
                for item in items
            ]

        payload = {
            "intent": "CAPTURE",
            "purchase_units": [unit],
            "application_context": {
                "brand_name": brand_name,
                "landing_page": "NO_PREFERENCE",
                "user_action": "PAY_NOW",
                "return_url": return_url,
                "cancel_url": cancel_url,
            },
        }
        return self._request("POST", "/v2/checkout/orders", json=payload)

    def capture_order(self, order_id: str) -> Dict[str, Any]:
        return self._request("POST", f"/v2/checkout/orders/{order_id}/capture")

    def get_order(self, order_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/v2/checkout/orders/{order_id}")

    def get_subscription(self, subscription_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/v1/billing/subscriptions/{subscription_id}")

    def create_subscription(
        self,
        *,
        plan_id: str,
        custom_id: str,
        brand_name: str,
        return_url: str,
        cancel_url: str,
        subscriber_email: Optional[str] = None,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "plan_id": plan_id,
            "custom_id": custom_id,
            "application_context": {
                "brand_name": brand_name,
                "user_action": "SUBSCRIBE_NOW",
                "return_url": return_url,
                "cancel_url": cancel_url,
            },
        }
        if subscriber_email:
            payload["subscriber"] = {"email_address": subscriber_email}
        return self._request("POST", "/v1/billing/subscriptions", json=payload)

    def cancel_subscription(self, subscription_id: str, reason: str) -> None:
        self._request(
            "POST",
            f"/v1/billing/subscriptions/{subscription_id}/cancel",
            json={"reason": reason[:128] or "Canceled by subscriber"},
        )

    def create_product(self, *, name: str, description: Optional[str] = None) -> Dict[str, Any]:
        payload = {
            "name": name[:127],
            "type": "DIGITAL",
            "category": "BOOKS_PERIODICALS_AND_NEWSPAPERS",
        }
        if description:
            payload["description"] = description[:256]
        return self._request("POST", "/v1/catalogs/products", json=payload)

    def create_plan(
        self,
        *,
        product_id: str,
        name: str,
        price_cents: int,
        currency: str,
        interval_months: int = 1,
        trial_days: int = 0,
        description: Optional[str] = None,
    ) -> Dict[str, Any]:
        cycles: List[Dict[str, Any]] = []
        if trial_days > 0:
            cycles.append(
                {
                    "frequency": {"interval_unit": "DAY", "interval_count": trial_days},
                    "tenure_type": "TRIAL",
                    "sequence": 1,
                    "total_cycles": 1,
                }
            )
        cycles.append(
            {
                "frequency": {"interval_unit": "MONTH", "interval_count": interval_months},
                "tenure_type": "REGULAR",
                "sequence": len(cycles) + 1,
                "total_cycles": 0,
                "pricing_scheme": {
                    "fixed_price": {"value": format_amount(price_cents), "currency_code": currency}
                },
            }
        )
        payload: Dict[str, Any] = {
            "product_id": product_id,
            "name": name[:127],
            "billing_cycles": cycles,
            "payment_preferences": {
                "auto_bill_outstanding": True,
                "payment_failure_threshold": 3,
            },
        }
        if description:
            payload["description"] = description[:127]
        return self._request("POST", "/v1/billing/plans", json=payload)

    def verify_webhook_signature(
        self,
        *,
        webhook_id: str,
        headers: Mapping[str, str],
        event: Mapping[str, Any],
    ) -> bool:
        lowered = {key.lower(): value for key, value in headers.items()}
        payload: Dict[str, Any] = {"webhook_id": webhook_id, "webhook_event": dict(event)}
        for field_name, header in WEBHOOK_HEADER_MAP.items():
            value = lowered.get(header)
            if not value:
                logger.warning("PayPal webhook missing header", extra={"header": header})
                return False
            payload[field_name] = value

        result = self._request("POST", "/v1/notifications/verify-webhook-signature", json=payload)
        return result.get("verification_status") == "SUCCESS"


__all__ = ["PayPalClient", "PayPalError", "find_link", "format_amount"]
