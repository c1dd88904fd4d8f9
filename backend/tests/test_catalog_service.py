from __future__ import annotations

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Dict, List, Optional, Set, Tuple

import pytest

from backend.app.catalog import Audiobook, CatalogService, Chapter, ContentStatus, Visibility
from backend.app.entitlements import EntitlementService, InMemoryEntitlementCache, SubscriptionRecord, SubscriptionStatus
from backend.app.gates import AccessError


class InMemoryCatalogRepository:
    def __init__(self) -> None:
        self.audiobooks: Dict[str, Audiobook] = {}
        self.chapters: Dict[str, Chapter] = {}

    def list_public_audiobooks(self, *, category=None, search=None, limit=50, offset=0) -> List[Audiobook]:
        listed = [book for book in self.audiobooks.values() if book.is_listed]
        if category:
            listed = [book for book in listed if book.category == category]
        if search:
            listed = [book for book in listed if search.lower() in book.title.lower()]
        return listed[offset : offset + limit]

    def get_audiobook(self, audiobook_id: str) -> Optional[Audiobook]:
        return self.audiobooks.get(audiobook_id)

    def list_chapters(self, audiobook_id: str) -> List[Chapter]:
        return sorted(
            (chapter for chapter in self.chapters.values() if chapter.audiobook_id == audiobook_id),
            key=lambda chapter: chapter.chapter_number,
        )

    def get_chapter(self, chapter_id: str) -> Optional[Chapter]:
        return self.chapters.get(chapter_id)


class FakePurchases:
    def __init__(self) -> None:
        self.owned: Set[Tuple[str, str]] = set()

    def has_completed_purchase(self, user_id: str, audiobook_id: str) -> bool:
        return (user_id, audiobook_id) in self.owned


class FakeSubscriptions:
    def __init__(self) -> None:
        self.records: Dict[str, SubscriptionRecord] = {}

    def get_current_subscription(self, user_id: str) -> Optional[SubscriptionRecord]:
        return self.records.get(user_id)


LISTENER = SimpleNamespace(id="user-1", role="LISTENER")
PUBLISHER = SimpleNamespace(id="publisher-1", role="CREATOR")


def _chapter(chapter_id: str, number: int, **overrides) -> Chapter:
    data = dict(
        id=chapter_id,
        audiobook_id="book-1",
        title=f"Capitulo {number}",
        chapter_number=number,
        audio_url=f"https://cdn.test/{chapter_id}.mp3",
        status=ContentStatus.APPROVED,
        visibility=Visibility.PUBLIC,
    )
    data.update(overrides)
    return Chapter(**data)


@pytest.fixture
def catalog():
    repository = InMemoryCatalogRepository()
    repository.audiobooks["book-1"] = Audiobook(
        id="book-1",
        title="El Quijote",
        author="Cervantes",
        price_cents=1299,
        status=ContentStatus.APPROVED,
        visibility=Visibility.PUBLIC,
        publisher_id="publisher-1",
    )
    repository.audiobooks["draft-1"] = Audiobook(
        id="draft-1",
        title="Borrador",
        author="Anon",
        price_cents=500,
        status=ContentStatus.DRAFT,
        publisher_id="publisher-1",
    )
    repository.chapters["ch-1"] = _chapter("ch-1", 1, is_sample=True)
    repository.chapters["ch-2"] = _chapter("ch-2", 2)
    repository.chapters["ch-3"] = _chapter("ch-3", 3, status=ContentStatus.PENDING_APPROVAL)
    purchases = FakePurchases()
    subscriptions = FakeSubscriptions()
    entitlements = EntitlementService(
        purchase_lookup=purchases,
        subscription_lookup=subscriptions,
        cache=InMemoryEntitlementCache(),
    )
    return repository, purchases, subscriptions, entitlements, CatalogService(repository, entitlements)


def test_listing_only_contains_approved_public_audiobooks(catalog):
    *_, service = catalog

    assert [book.id for book in service.list_audiobooks()] == ["book-1"]
    assert service.list_audiobooks(search="quijote")[0].id == "book-1"
    assert service.list_audiobooks(category="Poesia") == []


def test_detail_redacts_locked_chapters_for_listeners(catalog):
    *_, service = catalog

    detail = service.get_audiobook_detail(LISTENER, "book-1")

    assert detail.access.has_access is False
    assert [chapter.id for chapter in detail.chapters] == ["ch-1", "ch-2"]
    assert detail.chapters[0].audio_url is not None
    assert detail.chapters[1].audio_url is None


def test_detail_unlocks_chapters_after_purchase(catalog):
    _, purchases, _, entitlements, service = catalog
    purchases.owned.add(("user-1", "book-1"))
    entitlements.invalidate_user("user-1")

    detail = service.get_audiobook_detail(LISTENER, "book-1")

    assert detail.access.is_purchased is True
    assert all(chapter.audio_url for chapter in detail.chapters)


def test_publisher_sees_drafts_and_unapproved_chapters(catalog):
    *_, service = catalog

    assert service.get_audiobook(PUBLISHER, "draft-1").id == "draft-1"
    detail = service.get_audiobook_detail(PUBLISHER, "book-1")
    assert [chapter.id for chapter in detail.chapters] == ["ch-1", "ch-2", "ch-3"]

    with pytest.raises(LookupError):
        service.get_audiobook(LISTENER, "draft-1")
    with pytest.raises(LookupError):
        service.get_audiobook(None, "missing")


def test_locked_chapter_requires_purchase(catalog):
    *_, service = catalog

    assert service.get_chapter(None, "ch-1").is_sample is True
    with pytest.raises(AccessError) as excinfo:
        service.get_chapter(LISTENER, "ch-2")

    assert excinfo.value.status_code == 403
    assert excinfo.value.code == "purchase_required"


def test_active_subscription_unlocks_chapter(catalog):
    _, _, subscriptions, _, service = catalog
    subscriptions.records["user-1"] = SubscriptionRecord(
        id="sub-1",
        user_id="user-1",
        plan_id="plan-1",
        status=SubscriptionStatus.ACTIVE,
        current_period_end=datetime.now(timezone.utc) + timedelta(days=5),
    )

    assert service.get_chapter(LISTENER, "ch-2").id == "ch-2"
    with pytest.raises(LookupError):
        service.get_chapter(LISTENER, "ch-3")
