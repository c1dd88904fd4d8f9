from __future__ import annotations

import asyncio
import json
from types import SimpleNamespace
from typing import Dict, List, Optional

import pytest
from fastapi import HTTPException

from backend.app.billing import DiscountCode, DiscountQuote, DiscountRejected, DiscountType, PayPalError
from backend.app.billing.models import CaptureOutcome, CreatedOrder, PayPalConfig
from backend.app.gates import AccessError, ConflictError
from backend.app.routes import discounts as discount_routes
from backend.app.routes import paypal as paypal_routes
from backend.app.schemas.paypal import CartOrderRequest, CreateOrderRequest, ValidateDiscountRequest


class StubCheckoutService:
    def __init__(self) -> None:
        self.config: Optional[PayPalConfig] = PayPalConfig(client_id="client-abc", webhook_id="WH-1")
        self.create_error: Optional[Exception] = None
        self.capture_error: Optional[Exception] = None
        self.webhooks: List[Dict[str, object]] = []
        self.webhook_error: Optional[Exception] = None
        self.discount_codes: List[Optional[str]] = []

    def get_public_config(self) -> Optional[PayPalConfig]:
        return self.config

    def create_order(self, *, user_id: str, audiobook_id: str) -> CreatedOrder:
        if self.create_error is not None:
            raise self.create_error
        return CreatedOrder(order_id="ORDER-1", purchase_ids=["purchase-1"], total_cents=1299)

    def create_cart_order(self, *, user_id: str, discount_code: Optional[str] = None) -> CreatedOrder:
        self.discount_codes.append(discount_code)
        if discount_code:
            return CreatedOrder(
                order_id="ORDER-2",
                purchase_ids=["p-1", "p-2"],
                total_cents=2249,
                discount_cents=250,
                discount_code="WELCOME10",
            )
        return CreatedOrder(order_id="ORDER-2", purchase_ids=["p-1", "p-2"], total_cents=2499)

    def quote_discount(self, *, user_id, code, total_cents=None, for_subscription=False) -> DiscountQuote:
        if code != "WELCOME10":
            raise DiscountRejected("Discount code not found")
        if total_cents is None:
            raise ValueError("Cart is empty")
        discount = DiscountCode(id="d-1", code=code, type=DiscountType.PERCENTAGE, value=10)
        return DiscountQuote(discount, total_cents, discount.amount_off(total_cents))

    def capture_order(self, *, user_id: str, order_id: str) -> CaptureOutcome:
        if self.capture_error is not None:
            raise self.capture_error
        return CaptureOutcome(success=True, status="COMPLETED", order_id=order_id)

    def handle_webhook(self, event, *, headers, raw_event) -> bool:
        if self.webhook_error is not None:
            raise self.webhook_error
        self.webhooks.append({"event": event, "headers": headers, "raw": raw_event})
        return True


@pytest.fixture
def checkout(monkeypatch) -> StubCheckoutService:
    service = StubCheckoutService()
    monkeypatch.setattr(paypal_routes, "get_checkout_service", lambda: service)
    monkeypatch.setattr(discount_routes, "get_checkout_service", lambda: service)
    return service


USER = SimpleNamespace(id="11111111-1111-1111-1111-111111111111")


def test_public_config_exposes_client_id_only(checkout):
    response = paypal_routes.get_public_config()

    assert response.model_dump(by_alias=True) == {"clientId": "client-abc", "environment": "sandbox"}


def test_public_config_is_404_when_not_configured(checkout):
    checkout.config = None

    with pytest.raises(HTTPException) as exc:
        paypal_routes.get_public_config()

    assert exc.value.status_code == 404
    assert exc.value.detail == "PayPal is not configured"
    assert paypal_routes.get_status().configured is False


def test_create_order_returns_first_purchase_id(checkout):
    response = paypal_routes.create_order(CreateOrderRequest(audiobookId="book-1"), current_user=USER)

    assert response.order_id == "ORDER-1"
    assert response.purchase_id == "purchase-1"


def test_already_purchased_becomes_409(checkout):
    checkout.create_error = ConflictError("already_purchased", "You already own this audiobook")

    with pytest.raises(HTTPException) as exc:
        paypal_routes.create_order(CreateOrderRequest(audiobookId="book-1"), current_user=USER)

    assert exc.value.status_code == 409
    assert exc.value.detail["error"] == "already_purchased"


def test_missing_secret_becomes_503(checkout):
    checkout.create_error = AccessError("paypal_not_configured", "PayPal is not configured", status_code=503)

    with pytest.raises(HTTPException) as exc:
        paypal_routes.create_order(CreateOrderRequest(audiobookId="book-1"), current_user=USER)

    assert exc.value.status_code == 503


def test_paypal_failure_during_capture_becomes_502(checkout):
    checkout.capture_error = PayPalError("UNPROCESSABLE_ENTITY", status_code=422)

    with pytest.raises(HTTPException) as exc:
        paypal_routes.capture_order("ORDER-1", current_user=USER)

    assert exc.value.status_code == 502
    assert exc.value.detail["paypal_status"] == 422


def test_unknown_order_becomes_404(checkout):
    checkout.capture_error = LookupError("Order not found")

    with pytest.raises(HTTPException) as exc:
        paypal_routes.capture_order("ORDER-X", current_user=USER)

    assert exc.value.status_code == 404


class FakeRequest:
    def __init__(self, body: object, headers: Optional[Dict[str, str]] = None) -> None:
        self._body = body
        self.headers = headers or {}

    async def json(self):
        if isinstance(self._body, Exception):
            raise self._body
        return self._body


def test_cart_order_body_is_optional(checkout):
    plain = paypal_routes.create_cart_order(current_user=USER)
    discounted = paypal_routes.create_cart_order(CartOrderRequest(discountCode="welcome10"), current_user=USER)

    assert checkout.discount_codes == [None, "welcome10"]
    assert plain.discount_cents == 0
    assert discounted.model_dump(by_alias=True)["discountCents"] == 250
    assert discounted.discount_code == "WELCOME10"


def test_validate_discount_returns_amounts(checkout):
    response = discount_routes.validate_discount_code(
        ValidateDiscountRequest(code="WELCOME10", totalCents=2499),
        current_user=USER,
    )

    body = response.model_dump(by_alias=True)
    assert body["valid"] is True
    assert (body["discountAmountCents"], body["finalAmountCents"]) == (250, 2249)


def test_validate_discount_reports_rejection_without_raising(checkout):
    response = discount_routes.validate_discount_code(
        ValidateDiscountRequest(code="NOPE", totalCents=2499),
        current_user=USER,
    )

    assert response.valid is False
    assert response.error == "Discount code not found"


def test_validate_discount_with_empty_cart_becomes_400(checkout):
    with pytest.raises(HTTPException) as exc:
        discount_routes.validate_discount_code(ValidateDiscountRequest(code="WELCOME10"), current_user=USER)

    assert exc.value.status_code == 400


def test_webhook_is_handed_to_service(checkout):
    body = {"id": "WH-EVT-1", "event_type": "PAYMENT.CAPTURE.COMPLETED", "resource": {"id": "CAP-1"}}
    request = FakeRequest(body, {"paypal-transmission-id": "t-1"})

    response = asyncio.run(paypal_routes.receive_webhook(request))

    assert response.status_code == 204
    assert checkout.webhooks[0]["event"].event_id == "WH-EVT-1"
    assert checkout.webhooks[0]["headers"] == {"paypal-transmission-id": "t-1"}


def test_webhook_rejects_malformed_payload(checkout):
    request = FakeRequest(json.JSONDecodeError("bad", "", 0))

    with pytest.raises(HTTPException) as exc:
        asyncio.run(paypal_routes.receive_webhook(request))

    assert exc.value.status_code == 400
    assert checkout.webhooks == []


def test_webhook_signature_failure_is_rejected(checkout):
    checkout.webhook_error = AccessError("invalid_signature", "Webhook signature verification failed", status_code=400)
    request = FakeRequest({"id": "WH-EVT-2", "event_type": "PAYMENT.CAPTURE.DENIED"})

    with pytest.raises(HTTPException) as exc:
        asyncio.run(paypal_routes.receive_webhook(request))

    assert exc.value.status_code == 400
