from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional

import pytest

from storefront.api import (
    BillingProfileStatus,
    CaptureResult,
    CreatedOrder,
    PayPalClientConfig,
    SubscriptionState,
)
from storefront.errors import ApiError, NotConfigured, ScriptLoadError
from storefront.notices import CollectingNotifier
from storefront.query_cache import QueryCache
from storefront.sdk import ButtonCallbacks, ScriptSignature


class FakeButtons:
    def __init__(self, callbacks: ButtonCallbacks, style: Dict[str, Any]):
        self.callbacks = callbacks
        self.style = style
        self.rendered_into: List[Any] = []
        self.closed = False
        self.close_error: Optional[Exception] = None

    async def render(self, container: Any) -> None:
        self.rendered_into.append(container)

    async def close(self) -> None:
        if self.close_error is not None:
            raise self.close_error
        self.closed = True


class FakeSdk:
    def __init__(self) -> None:
        self.created: List[FakeButtons] = []
        self.close_error: Optional[Exception] = None

    def buttons(self, callbacks: ButtonCallbacks, style: Dict[str, Any]) -> FakeButtons:
        buttons = FakeButtons(callbacks, style)
        buttons.close_error = self.close_error
        self.created.append(buttons)
        return buttons


class FakeTag:
    def __init__(self, page: "FakePage", src: str, signature: ScriptSignature):
        self.page = page
        self.src = src
        self.signature = signature
        self._done = asyncio.Event()
        self._error: Optional[str] = None

    def finish(self) -> None:
        self.page.sdks.setdefault(self.signature.namespace, FakeSdk())
        self._done.set()

    def fail(self, reason: str = "network error") -> None:
        self._error = reason
        self._done.set()

    async def loaded(self) -> None:
        await self._done.wait()
        if self._error is not None:
            raise ScriptLoadError(self._error)


class FakePage:
    def __init__(self) -> None:
        self.scripts: List[FakeTag] = []
        self.injected: List[str] = []
        self.removed: List[FakeTag] = []
        self.sdks: Dict[str, FakeSdk] = {}
        self.auto_load = True
        self.fail_next = False

    def find_script(self, signature: ScriptSignature) -> Optional[FakeTag]:
        for tag in self.scripts:
            if tag.signature == signature:
                return tag
        return None

    def inject_script(self, src: str, signature: ScriptSignature) -> FakeTag:
        tag = FakeTag(self, src, signature)
        self.scripts.append(tag)
        self.injected.append(src)
        if self.fail_next:
            self.fail_next = False
            tag.fail()
        elif self.auto_load:
            tag.finish()
        return tag

    def remove_script(self, tag: FakeTag) -> None:
        if tag in self.scripts:
            self.scripts.remove(tag)
        self.removed.append(tag)

    def sdk(self, namespace: str) -> Optional[FakeSdk]:
        return self.sdks.get(namespace)


class FakeActions:
    def __init__(self) -> None:
        self.plan_ids: List[str] = []

    async def create_subscription(self, plan_id: str) -> str:
        self.plan_ids.append(plan_id)
        return "I-SUB-1"


class FakeApi:
    def __init__(self) -> None:
        self.client_id: Optional[str] = "client-123"
        self.config_error: Optional[ApiError] = None
        self.orders: List[str] = []
        self.order_error: Optional[ApiError] = None
        self.captured: List[str] = []
        self.capture_status = "COMPLETED"
        self.capture_error: Optional[ApiError] = None
        self.capture_gate: Optional[asyncio.Event] = None
        self.activated: List[tuple] = []
        self.profile = BillingProfileStatus(is_complete=True)
        self.profile_error: Optional[ApiError] = None
        self.calls: List[tuple] = []
        self.toggle_error: Optional[ApiError] = None

    async def get_paypal_config(self) -> PayPalClientConfig:
        if self.config_error is not None:
            raise self.config_error
        if self.client_id is None:
            raise NotConfigured("PayPal is not configured", 404)
        return PayPalClientConfig(client_id=self.client_id, environment="sandbox")

    async def create_order(self, audiobook_id: str) -> CreatedOrder:
        if self.order_error is not None:
            raise self.order_error
        self.orders.append(audiobook_id)
        return CreatedOrder(order_id=f"ORDER-{len(self.orders)}")

    async def capture_order(self, order_id: str) -> CaptureResult:
        self.captured.append(order_id)
        if self.capture_gate is not None:
            await self.capture_gate.wait()
        if self.capture_error is not None:
            raise self.capture_error
        return CaptureResult(
            success=self.capture_status == "COMPLETED",
            status=self.capture_status,
            order_id=order_id,
        )

    async def activate_subscription(self, subscription_id: str, plan_id: str) -> SubscriptionState:
        self.activated.append((subscription_id, plan_id))
        return SubscriptionState(subscription={"id": subscription_id, "status": "ACTIVE"}, is_active=True)

    async def get_billing_profile(self) -> BillingProfileStatus:
        if self.profile_error is not None:
            raise self.profile_error
        return self.profile

    async def _toggle(self, name: str, audiobook_id: str) -> None:
        self.calls.append((name, audiobook_id))
        if self.toggle_error is not None:
            raise self.toggle_error

    async def add_to_cart(self, audiobook_id: str) -> None:
        await self._toggle("add_to_cart", audiobook_id)

    async def remove_from_cart(self, audiobook_id: str) -> None:
        await self._toggle("remove_from_cart", audiobook_id)

    async def add_favorite(self, audiobook_id: str) -> None:
        await self._toggle("add_favorite", audiobook_id)

    async def remove_favorite(self, audiobook_id: str) -> None:
        await self._toggle("remove_favorite", audiobook_id)


class Recorder:
    def __init__(self) -> None:
        self.calls: List[Any] = []

    async def __call__(self, *args: Any) -> None:
        self.calls.append(args[0] if args else None)


@pytest.fixture
def page() -> FakePage:
    return FakePage()


@pytest.fixture
def api() -> FakeApi:
    return FakeApi()


@pytest.fixture
def notifier() -> CollectingNotifier:
    return CollectingNotifier()


@pytest.fixture
def cache() -> QueryCache:
    return QueryCache()


@pytest.fixture
def actions() -> FakeActions:
    return FakeActions()


@pytest.fixture
def recorder():
    return Recorder
