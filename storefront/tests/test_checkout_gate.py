from __future__ import annotations

import asyncio

from storefront.api import BillingProfileStatus
from storefront.checkout import CheckoutGate
from storefront.errors import AuthenticationRequired
from storefront.notices import NoticeLevel
from storefront.sdk import SdkLoader
from storefront.widget import WidgetState


def _gate(api, page, cache, notifier):
    return CheckoutGate(api, SdkLoader(page), cache=cache, notifier=notifier)


def test_incomplete_profile_blocks_payment_buttons(api, page, cache, notifier):
    api.profile = BillingProfileStatus(is_complete=False, missing_fields=["address", "city"])
    gate = _gate(api, page, cache, notifier)

    readiness = asyncio.run(gate.check())
    handle = asyncio.run(gate.open_purchase("slot", "book-1"))

    assert not readiness.ready
    assert readiness.missing_fields == ["address", "city"]
    assert handle is None
    assert page.injected == []
    assert notifier.messages(NoticeLevel.INFO) == ["Complete your billing profile before paying"]


def test_anonymous_visitor_is_asked_to_log_in(api, page, cache, notifier):
    api.profile_error = AuthenticationRequired("Not authenticated", 401)

    readiness = asyncio.run(_gate(api, page, cache, notifier).check())

    assert not readiness.ready
    assert readiness.message == "Log in to continue to checkout"


def test_complete_profile_mounts_purchase_button(api, page, cache, notifier):
    handle = asyncio.run(_gate(api, page, cache, notifier).open_purchase("slot", "book-1"))

    assert handle is not None
    assert handle.state is WidgetState.WIDGET_RENDERED
    assert len(page.injected) == 1


def test_complete_profile_mounts_subscription_button(api, page, cache, notifier):
    plan = {"id": "plan-1", "paypal_plan_id": "P-1"}
    handle = asyncio.run(_gate(api, page, cache, notifier).open_subscription("slot", plan))

    assert handle.state is WidgetState.WIDGET_RENDERED
    assert "intent=subscription" in page.injected[0]


def test_profile_completed_after_a_refusal_is_picked_up_on_retry(api, page, cache, notifier):
    api.profile = BillingProfileStatus(is_complete=False, missing_fields=["address"])
    gate = _gate(api, page, cache, notifier)
    assert not asyncio.run(gate.check()).ready

    api.profile = BillingProfileStatus(is_complete=True)

    assert asyncio.run(gate.check()).ready


def test_invalidate_profile_forces_a_fresh_lookup(api, page, cache, notifier):
    gate = _gate(api, page, cache, notifier)
    assert asyncio.run(gate.check()).ready

    api.profile = BillingProfileStatus(is_complete=False, missing_fields=["country"])
    assert asyncio.run(gate.check()).ready

    gate.invalidate_profile()
    readiness = asyncio.run(gate.check())

    assert not readiness.ready
    assert readiness.missing_fields == ["country"]
