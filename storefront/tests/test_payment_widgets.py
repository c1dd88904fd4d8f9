from __future__ import annotations

import asyncio
import logging

import httpx
import pytest

from storefront.api import UNEXPECTED_RESPONSE_MESSAGE, StorefrontApi
from storefront.config import StorefrontConfig
from storefront.errors import ApiError, DomainConflict, OperationCancelled, ScriptLoadError
from storefront.notices import NoticeLevel
from storefront.sdk import SdkLoader
from storefront.widget import (
    NOT_CONFIGURED_MESSAGE,
    PAYMENT_FAILED_MESSAGE,
    SCRIPT_FAILED_MESSAGE,
    SUBSCRIPTION_UNAVAILABLE_MESSAGE,
    PurchaseButton,
    SubscriptionButton,
    WidgetState,
)

PLAN = {"id": "plan-1", "name": "Monthly", "paypal_plan_id": "P-123"}


def _purchase(api, loader, cache, notifier, **kwargs):
    kwargs.setdefault("audiobook_id", "book-1")
    return PurchaseButton(api, loader, cache=cache, notifier=notifier, **kwargs)


def _buttons(page, button):
    return page.sdks[button.signature.namespace].created[-1]


def test_one_script_per_mode_for_concurrent_mounts(page, api, cache, notifier):
    page.auto_load = False
    loader = SdkLoader(page)
    first = _purchase(api, loader, cache, notifier)
    second = _purchase(api, loader, cache, notifier, audiobook_id="book-2")
    subscription = SubscriptionButton(api, loader, plan=PLAN, cache=cache, notifier=notifier)

    async def finish_scripts():
        while len(page.scripts) < 2:
            await asyncio.sleep(0)
        for tag in list(page.scripts):
            tag.finish()

    async def scenario():
        await asyncio.gather(
            first.mount("slot-a"),
            second.mount("slot-b"),
            subscription.mount("slot-c"),
            finish_scripts(),
        )

    asyncio.run(scenario())

    assert len(page.injected) == 2
    purchase_src = [src for src in page.injected if "intent=subscription" not in src]
    subscription_src = [src for src in page.injected if "vault=true&intent=subscription" in src]
    assert len(purchase_src) == 1 and len(subscription_src) == 1
    assert "client-id=client-123" in purchase_src[0]
    assert "currency=EUR" in purchase_src[0]
    assert first.state is WidgetState.WIDGET_RENDERED
    assert second.state is WidgetState.WIDGET_RENDERED
    assert subscription.state is WidgetState.WIDGET_RENDERED


def test_render_happens_once_across_remounts_and_updates(page, api, cache, notifier):
    loader = SdkLoader(page)
    button = _purchase(api, loader, cache, notifier)

    async def scenario():
        await button.mount("slot")
        button.update(audiobook_id="book-2")
        await button.mount("slot")
        buttons = _buttons(page, button)
        await buttons.callbacks.on_approve({"orderID": "ORDER-9"})
        return buttons

    cache.set(("/api/audiobooks", "book-2"), {"title": "Second"})
    buttons = asyncio.run(scenario())

    sdk = page.sdks[button.signature.namespace]
    assert len(sdk.created) == 1
    assert buttons.rendered_into == ["slot"]
    assert ("/api/audiobooks", "book-2") not in cache


def test_update_rejects_unknown_props(page, api, cache, notifier):
    button = _purchase(api, SdkLoader(page), cache, notifier)
    with pytest.raises(AttributeError):
        button.update(state=WidgetState.TERMINAL)


def test_capture_success_invalidates_and_fires_on_success_once(page, api, cache, notifier, recorder):
    on_success = recorder()
    on_error = recorder()
    button = _purchase(api, SdkLoader(page), cache, notifier, on_success=on_success, on_error=on_error)
    cache.set(("/api/user/purchases",), [])
    cache.set(("/api/audiobooks", "book-1"), {"access": False})
    cache.set(("/api/audiobooks", "book-3"), {"access": False})

    async def scenario():
        await button.mount("slot")
        buttons = _buttons(page, button)
        order_id = await buttons.callbacks.create_order({})
        await buttons.callbacks.on_approve({"orderID": order_id})

    asyncio.run(scenario())

    assert api.orders == ["book-1"]
    assert api.captured == ["ORDER-1"]
    assert ("/api/user/purchases",) not in cache
    assert ("/api/audiobooks", "book-1") not in cache
    assert ("/api/audiobooks", "book-3") in cache
    assert len(on_success.calls) == 1
    assert on_success.calls[0].status == "COMPLETED"
    assert on_error.calls == []
    assert notifier.messages(NoticeLevel.SUCCESS)


def test_capture_failure_reports_error_without_invalidation(page, api, cache, notifier, recorder):
    on_success = recorder()
    on_error = recorder()
    api.capture_error = ApiError("Could not reach the server: network down")
    button = _purchase(api, SdkLoader(page), cache, notifier, on_success=on_success, on_error=on_error)
    cache.set(("/api/user/purchases",), [])

    async def scenario():
        await button.mount("slot")
        await _buttons(page, button).callbacks.on_approve({"orderID": "ORDER-1"})

    asyncio.run(scenario())

    assert on_error.calls == [api.capture_error]
    assert on_success.calls == []
    assert ("/api/user/purchases",) in cache
    assert notifier.messages(NoticeLevel.ERROR) == ["Could not reach the server: network down"]


def test_incomplete_capture_is_an_error(page, api, cache, notifier, recorder):
    on_error = recorder()
    api.capture_status = "PENDING"
    button = _purchase(api, SdkLoader(page), cache, notifier, on_error=on_error)
    cache.set(("/api/user/purchases",), [])

    async def scenario():
        await button.mount("slot")
        await _buttons(page, button).callbacks.on_approve({"orderID": "ORDER-1"})

    asyncio.run(scenario())

    assert len(on_error.calls) == 1
    assert "PENDING" in str(on_error.calls[0])
    assert ("/api/user/purchases",) in cache


def test_unmount_during_capture_suppresses_callbacks(page, api, cache, notifier, recorder):
    on_success = recorder()
    on_error = recorder()
    button = _purchase(api, SdkLoader(page), cache, notifier, on_success=on_success, on_error=on_error)
    cache.set(("/api/user/purchases",), [])

    async def scenario():
        api.capture_gate = asyncio.Event()
        await button.mount("slot")
        buttons = _buttons(page, button)
        approve = asyncio.ensure_future(buttons.callbacks.on_approve({"orderID": "ORDER-1"}))
        while not api.captured:
            await asyncio.sleep(0)
        await button.unmount()
        api.capture_gate.set()
        await approve
        return buttons

    buttons = asyncio.run(scenario())

    assert button.state is WidgetState.TERMINAL
    assert buttons.closed
    assert on_success.calls == []
    assert on_error.calls == []
    assert notifier.notices == []
    assert ("/api/user/purchases",) in cache


def test_create_order_conflict_fires_error_and_propagates(page, api, cache, notifier, recorder):
    on_error = recorder()
    api.order_error = DomainConflict("You already own this audiobook", 409, "already_purchased")
    button = _purchase(api, SdkLoader(page), cache, notifier, on_error=on_error)

    async def scenario():
        await button.mount("slot")
        await _buttons(page, button).callbacks.create_order({})

    with pytest.raises(DomainConflict):
        asyncio.run(scenario())

    assert on_error.calls == [api.order_error]
    assert notifier.messages(NoticeLevel.ERROR) == ["You already own this audiobook"]


def test_garbled_capture_response_reaches_on_error(page, cache, notifier, recorder):
    on_success = recorder()
    on_error = recorder()

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/api/paypal/config":
            return httpx.Response(200, json={"clientId": "client-123", "environment": "sandbox"})
        return httpx.Response(200, text="<html>upstream proxy</html>", headers={"Content-Type": "text/html"})

    client = httpx.AsyncClient(base_url="http://testserver", transport=httpx.MockTransport(handler))
    api = StorefrontApi(StorefrontConfig(api_base_url="http://testserver"), client=client)
    button = _purchase(api, SdkLoader(page), cache, notifier, on_success=on_success, on_error=on_error)
    cache.set(("/api/user/purchases",), [])

    async def scenario():
        async with api:
            await button.mount("slot")
            await _buttons(page, button).callbacks.on_approve({"orderID": "ORDER-1"})

    asyncio.run(scenario())

    assert len(on_error.calls) == 1
    assert isinstance(on_error.calls[0], ApiError)
    assert on_success.calls == []
    assert notifier.messages(NoticeLevel.ERROR) == [UNEXPECTED_RESPONSE_MESSAGE]
    assert ("/api/user/purchases",) in cache


def test_unexpected_create_order_failure_fires_error_and_propagates(page, api, cache, notifier, recorder):
    on_error = recorder()
    api.order_error = KeyError("orderId")
    button = _purchase(api, SdkLoader(page), cache, notifier, on_error=on_error)

    async def scenario():
        await button.mount("slot")
        await _buttons(page, button).callbacks.create_order({})

    with pytest.raises(KeyError):
        asyncio.run(scenario())

    assert on_error.calls == [api.order_error]
    assert notifier.messages(NoticeLevel.ERROR) == [PAYMENT_FAILED_MESSAGE]


def test_create_order_after_unmount_propagates_cancellation(page, api, cache, notifier):
    button = _purchase(api, SdkLoader(page), cache, notifier)

    async def scenario():
        await button.mount("slot")
        buttons = _buttons(page, button)
        await button.unmount()
        await buttons.callbacks.create_order({})

    with pytest.raises(OperationCancelled):
        asyncio.run(scenario())
    assert api.orders == []


def test_not_configured_keeps_widget_unconfigured(page, api, cache, notifier):
    api.client_id = None
    button = _purchase(api, SdkLoader(page), cache, notifier)

    handle = asyncio.run(button.mount("slot"))

    assert handle.state is WidgetState.UNCONFIGURED
    assert handle.placeholder == NOT_CONFIGURED_MESSAGE
    assert page.injected == []
    assert notifier.messages(NoticeLevel.INFO) == [NOT_CONFIGURED_MESSAGE]


def test_plan_without_paypal_id_shows_placeholder(page, api, cache, notifier):
    plan = {"id": "plan-2", "name": "Yearly", "paypal_plan_id": None}
    button = SubscriptionButton(api, SdkLoader(page), plan=plan, cache=cache, notifier=notifier)

    handle = asyncio.run(button.mount("slot"))

    assert handle.state is WidgetState.UNCONFIGURED
    assert handle.placeholder == SUBSCRIPTION_UNAVAILABLE_MESSAGE
    assert page.injected == []


def test_failed_script_load_then_new_mount_reinjects(page, api, cache, notifier):
    loader = SdkLoader(page)
    page.fail_next = True
    first = _purchase(api, loader, cache, notifier)

    asyncio.run(first.mount("slot"))

    assert first.state is WidgetState.SCRIPT_LOADING
    assert isinstance(first.last_error, ScriptLoadError)
    assert notifier.messages(NoticeLevel.ERROR) == [SCRIPT_FAILED_MESSAGE]
    assert page.scripts == []
    assert len(page.injected) == 1

    second = _purchase(api, loader, cache, notifier)
    asyncio.run(second.mount("slot"))

    assert len(page.injected) == 2
    assert second.state is WidgetState.WIDGET_RENDERED


def test_concurrent_waiters_share_one_failed_load(page, api, cache, notifier):
    page.auto_load = False
    loader = SdkLoader(page)
    first = _purchase(api, loader, cache, notifier)
    second = _purchase(api, loader, cache, notifier)

    async def fail_script():
        while not page.scripts:
            await asyncio.sleep(0)
        page.scripts[0].fail()

    async def scenario():
        await asyncio.gather(first.mount("a"), second.mount("b"), fail_script())

    asyncio.run(scenario())

    assert len(page.injected) == 1
    assert isinstance(first.last_error, ScriptLoadError)
    assert isinstance(second.last_error, ScriptLoadError)


def test_unmount_close_failure_is_logged(page, api, cache, notifier, caplog):
    button = _purchase(api, SdkLoader(page), cache, notifier)

    async def scenario():
        await button.mount("slot")
        _buttons(page, button).close_error = RuntimeError("container already gone")
        with caplog.at_level(logging.WARNING, logger="storefront.widget"):
            await button.unmount()

    asyncio.run(scenario())

    assert button.state is WidgetState.TERMINAL
    assert "close failed" in caplog.text


def test_mounted_context_releases_widget(page, api, cache, notifier):
    button = _purchase(api, SdkLoader(page), cache, notifier)

    async def scenario():
        async with button.mounted("slot") as handle:
            assert handle.state is WidgetState.WIDGET_RENDERED
        return _buttons(page, button)

    buttons = asyncio.run(scenario())

    assert buttons.closed
    assert button.state is WidgetState.TERMINAL


def test_subscription_approve_activates_and_invalidates(page, api, cache, notifier, actions, recorder):
    on_success = recorder()
    button = SubscriptionButton(
        api, SdkLoader(page), plan=PLAN, cache=cache, notifier=notifier, on_success=on_success
    )
    cache.set(("/api/user/subscription",), {"isActive": False})

    async def scenario():
        await button.mount("slot")
        buttons = _buttons(page, button)
        subscription_id = await buttons.callbacks.create_subscription({}, actions)
        await buttons.callbacks.on_approve({"subscriptionID": subscription_id})

    asyncio.run(scenario())

    assert actions.plan_ids == ["P-123"]
    assert api.activated == [("I-SUB-1", "plan-1")]
    assert ("/api/user/subscription",) not in cache
    assert len(on_success.calls) == 1
    assert on_success.calls[0].is_active


def test_cancel_from_paypal_notifies_and_calls_hook(page, api, cache, notifier, recorder):
    on_cancel = recorder()
    button = _purchase(api, SdkLoader(page), cache, notifier, on_cancel=on_cancel)

    async def scenario():
        await button.mount("slot")
        await _buttons(page, button).callbacks.on_cancel({"orderID": "ORDER-1"})

    asyncio.run(scenario())

    assert on_cancel.calls == [None]
    assert notifier.messages(NoticeLevel.INFO) == ["Payment cancelled"]
