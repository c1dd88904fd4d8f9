from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from storefront.api import UNEXPECTED_RESPONSE_MESSAGE, StorefrontApi
from storefront.config import StorefrontConfig, load_storefront_config
from storefront.errors import (
    ApiError,
    AuthenticationRequired,
    DomainConflict,
    NotConfigured,
)


def _api(handler) -> StorefrontApi:
    client = httpx.AsyncClient(base_url="http://testserver", transport=httpx.MockTransport(handler))
    return StorefrontApi(StorefrontConfig(api_base_url="http://testserver"), client=client)


async def _call(api: StorefrontApi, method: str, *args):
    async with api:
        return await getattr(api, method)(*args)


def test_create_order_posts_audiobook_id():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"orderId": "ORDER-1", "purchaseIds": ["p1"], "totalCents": 1299, "currency": "EUR"})

    order = asyncio.run(_call(_api(handler), "create_order", "book-1"))

    assert seen == {"path": "/api/paypal/orders", "body": {"audiobookId": "book-1"}}
    assert order.order_id == "ORDER-1"
    assert order.total_cents == 1299


def test_conflict_detail_becomes_domain_conflict():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            409,
            json={"detail": {"error": "already_purchased", "message": "You already own this audiobook"}},
        )

    with pytest.raises(DomainConflict) as excinfo:
        asyncio.run(_call(_api(handler), "add_to_cart", "book-1"))

    assert excinfo.value.code == "already_purchased"
    assert excinfo.value.message == "You already own this audiobook"


def test_bad_request_with_code_is_a_conflict_but_plain_is_not():
    def coded(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"detail": {"error": "free_audiobook", "message": "This audiobook is free"}})

    def plain(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"detail": "Invalid audiobook id"})

    with pytest.raises(DomainConflict):
        asyncio.run(_call(_api(coded), "create_order", "book-1"))
    with pytest.raises(ApiError) as excinfo:
        asyncio.run(_call(_api(plain), "create_order", "book-1"))
    assert not isinstance(excinfo.value, DomainConflict)
    assert excinfo.value.message == "Invalid audiobook id"


def test_unauthorized_maps_to_authentication_required():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"detail": "Not authenticated"})

    with pytest.raises(AuthenticationRequired):
        asyncio.run(_call(_api(handler), "add_favorite", "book-1"))


def test_missing_paypal_config_raises_not_configured():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"detail": "PayPal is not configured"})

    with pytest.raises(NotConfigured):
        asyncio.run(_call(_api(handler), "get_paypal_config"))


def test_transport_failure_is_an_api_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(ApiError) as excinfo:
        asyncio.run(_call(_api(handler), "capture_order", "ORDER-1"))
    assert excinfo.value.status_code is None


def test_delete_without_body_returns_none():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "DELETE"
        return httpx.Response(204)

    assert asyncio.run(_call(_api(handler), "remove_from_cart", "book-1")) is None


def test_html_body_with_success_status_is_an_api_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>upstream proxy</html>", headers={"Content-Type": "text/html"})

    with pytest.raises(ApiError) as excinfo:
        asyncio.run(_call(_api(handler), "capture_order", "ORDER-1"))

    assert excinfo.value.message == UNEXPECTED_RESPONSE_MESSAGE
    assert excinfo.value.status_code == 200


def test_success_body_of_the_wrong_shape_is_an_api_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"ok": True})

    with pytest.raises(ApiError) as excinfo:
        asyncio.run(_call(_api(handler), "create_order", "book-1"))

    assert excinfo.value.message == UNEXPECTED_RESPONSE_MESSAGE


def test_load_storefront_config_reads_environment():
    config = load_storefront_config(
        {
            "STOREFRONT_API_BASE_URL": "https://audivia.example/",
            "STOREFRONT_SDK_READY_TIMEOUT": "2.5",
            "STOREFRONT_CURRENCY": "usd",
        }
    )

    assert config.api_base_url == "https://audivia.example"
    assert config.sdk_ready_timeout == 2.5
    assert config.default_currency == "USD"

    with pytest.raises(ValueError):
        load_storefront_config({"STOREFRONT_REQUEST_TIMEOUT": "soon"})
