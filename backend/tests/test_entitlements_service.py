from __future__ import annotations

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Dict, Optional, Set, Tuple

import pytest

from backend.app.catalog.models import Audiobook, Chapter
from backend.app.entitlements import (
    AccessInfo,
    EntitlementService,
    InMemoryEntitlementCache,
    SubscriptionRecord,
    SubscriptionStatus,
    UserRole,
    can_play_chapter,
    has_access,
    resolve_access,
)

NOW = datetime.now(timezone.utc)


def _audiobook(**overrides) -> Audiobook:
    data = dict(
        id="book-1",
        title="El Quijote",
        author="Cervantes",
        price_cents=1299,
        currency="EUR",
        publisher_id="publisher-1",
    )
    data.update(overrides)
    return Audiobook(**data)


def _subscription(status: SubscriptionStatus = SubscriptionStatus.ACTIVE, *, ends_in_days: int = 10) -> SubscriptionRecord:
    return SubscriptionRecord(
        id="sub-1",
        user_id="user-1",
        plan_id="plan-1",
        status=status,
        current_period_end=NOW + timedelta(days=ends_in_days),
    )


LISTENER = SimpleNamespace(id="user-1", role=UserRole.LISTENER.value)


class FakePurchaseLookup:
    def __init__(self) -> None:
        self.owned: Set[Tuple[str, str]] = set()
        self.calls = 0

    def has_completed_purchase(self, user_id: str, audiobook_id: str) -> bool:
        self.calls += 1
        return (user_id, audiobook_id) in self.owned


class FakeSubscriptionLookup:
    def __init__(self) -> None:
        self.records: Dict[str, SubscriptionRecord] = {}

    def get_current_subscription(self, user_id: str) -> Optional[SubscriptionRecord]:
        return self.records.get(user_id)


@pytest.fixture
def lookups() -> Tuple[FakePurchaseLookup, FakeSubscriptionLookup]:
    return FakePurchaseLookup(), FakeSubscriptionLookup()


@pytest.fixture
def entitlement_service(lookups):
    purchases, subscriptions = lookups
    return EntitlementService(
        purchase_lookup=purchases,
        subscription_lookup=subscriptions,
        cache=InMemoryEntitlementCache(),
        clock=lambda: NOW,
        ttl_seconds=600,
    )


@pytest.mark.parametrize(
    "book",
    [_audiobook(is_free=True), _audiobook(price_cents=0), _audiobook(is_free=True, price_cents=0)],
)
@pytest.mark.parametrize("purchased", [True, False])
@pytest.mark.parametrize(
    "subscription",
    [None, _subscription(), _subscription(SubscriptionStatus.CANCELED)],
)
def test_free_audiobooks_are_always_accessible(book, purchased, subscription):
    for viewer in (None, LISTENER):
        decision = resolve_access(book, viewer, has_purchase=purchased, subscription=subscription, now=NOW)
        assert decision.has_access is True
        assert decision.is_free is True


def test_active_subscription_grants_every_paid_audiobook():
    subscription = _subscription()
    for price in (1, 499, 2599):
        book = _audiobook(id=f"book-{price}", price_cents=price)
        assert has_access(book, LISTENER, has_purchase=False, subscription=subscription, now=NOW)


def test_paid_audiobook_without_purchase_or_subscription_is_denied():
    decision = resolve_access(_audiobook(), LISTENER, has_purchase=False, subscription=None, now=NOW)

    assert decision == AccessInfo(has_access=False)


@pytest.mark.parametrize(
    "status",
    [SubscriptionStatus.PAST_DUE, SubscriptionStatus.CANCELED, SubscriptionStatus.EXPIRED],
)
def test_inactive_subscription_does_not_grant_access(status):
    assert not has_access(_audiobook(), LISTENER, has_purchase=False, subscription=_subscription(status), now=NOW)


def test_subscription_past_period_end_does_not_grant_access():
    lapsed = _subscription(ends_in_days=-1)

    assert not has_access(_audiobook(), LISTENER, has_purchase=False, subscription=lapsed, now=NOW)


def test_purchase_takes_precedence_over_subscription():
    decision = resolve_access(_audiobook(), LISTENER, has_purchase=True, subscription=_subscription(), now=NOW)

    assert decision.is_purchased is True
    assert decision.is_subscriber is False


def test_anonymous_visitor_denied_for_paid_audiobook():
    assert resolve_access(_audiobook(), None, has_purchase=False, subscription=None).has_access is False


def test_publisher_and_admin_override():
    publisher = SimpleNamespace(id="publisher-1", role=UserRole.CREATOR.value)
    admin = SimpleNamespace(id="admin-9", role=UserRole.ADMIN)

    assert has_access(_audiobook(), publisher, has_purchase=False, subscription=None)
    assert has_access(_audiobook(), admin, has_purchase=False, subscription=None)


def test_sample_chapters_are_playable_without_access():
    sample = Chapter(id="ch-1", audiobook_id="book-1", title="Intro", chapter_number=1, is_sample=True)
    locked = Chapter(id="ch-2", audiobook_id="book-1", title="Uno", chapter_number=2)

    assert can_play_chapter(sample, AccessInfo.denied()) is True
    assert can_play_chapter(locked, AccessInfo.denied()) is False
    assert can_play_chapter(locked, AccessInfo(has_access=True, is_purchased=True)) is True


def test_service_caches_decision_until_user_is_invalidated(entitlement_service, lookups):
    purchases, _ = lookups
    book = _audiobook()

    assert entitlement_service.check_access(LISTENER, book).has_access is False
    assert entitlement_service.check_access(LISTENER, book).has_access is False
    assert purchases.calls == 1

    purchases.owned.add((LISTENER.id, book.id))
    assert entitlement_service.check_access(LISTENER, book).has_access is False

    entitlement_service.invalidate_user(LISTENER.id)
    decision = entitlement_service.check_access(LISTENER, book)

    assert decision.has_access is True
    assert decision.is_purchased is True
    assert purchases.calls == 2


def test_service_invalidates_by_audiobook(entitlement_service, lookups):
    _, subscriptions = lookups
    book = _audiobook()

    assert entitlement_service.check_access(LISTENER, book).has_access is False
    subscriptions.records[LISTENER.id] = _subscription()

    entitlement_service.invalidate_audiobook(book.id)

    assert entitlement_service.check_access(LISTENER, book).is_subscriber is True


def test_service_skips_lookups_for_free_audiobooks(entitlement_service, lookups):
    purchases, _ = lookups

    assert entitlement_service.check_access(LISTENER, _audiobook(is_free=True)).is_free is True
    assert purchases.calls == 0


def test_invalidation_leaves_other_users_cached():
    cache = InMemoryEntitlementCache()
    expires = datetime.now(timezone.utc) + timedelta(minutes=5)
    cache.set("access:a:book", AccessInfo(has_access=True), expires, {"user:a", "audiobook:book"})
    cache.set("access:b:book", AccessInfo(has_access=False), expires, {"user:b", "audiobook:book"})

    cache.invalidate({"user:a"})

    assert cache.get("access:a:book") is None
    assert cache.get("access:b:book") == AccessInfo(has_access=False)


def test_cache_drops_expired_decisions_and_counts_live_ones():
    clock = {"now": NOW}
    cache = InMemoryEntitlementCache(clock=lambda: clock["now"])
    cache.set("access:a:short", AccessInfo(has_access=True), NOW + timedelta(minutes=1), {"user:a"})
    cache.set("access:a:long", AccessInfo(has_access=True), NOW + timedelta(minutes=10), {"user:a"})
    cache.set("access:a:stale", AccessInfo(has_access=True), NOW - timedelta(seconds=1), {"user:a"})

    assert len(cache) == 2

    clock["now"] = NOW + timedelta(minutes=2)

    assert len(cache) == 1
    assert cache.get("access:a:short") is None
    assert cache.get("access:a:long") == AccessInfo(has_access=True)


def test_replacing_a_decision_moves_it_to_the_new_tags():
    cache = InMemoryEntitlementCache(clock=lambda: NOW)
    expires = NOW + timedelta(minutes=5)
    cache.set("access:a:book", AccessInfo(has_access=False), expires, {"user:a", "audiobook:old"})
    cache.set("access:a:book", AccessInfo(has_access=True), expires, {"user:a", "audiobook:book"})

    cache.invalidate({"audiobook:old"})
    assert cache.get("access:a:book") == AccessInfo(has_access=True)

    cache.invalidate({"audiobook:book"})
    assert cache.get("access:a:book") is None
    assert len(cache) == 0
