from __future__ import annotations

from typing import Dict, List, Optional, Set, Tuple
from uuid import uuid4

import pytest

from backend.app.catalog.models import Audiobook, ContentStatus, Visibility
from backend.app.gates import AccessError, ConflictError
from backend.app.library import CartItem, Favorite, LibraryService


class InMemoryLibraryRepository:
    def __init__(self, catalog: Dict[str, Audiobook]) -> None:
        self.catalog = catalog
        self.cart: Dict[Tuple[str, str], CartItem] = {}
        self.favorites: Dict[Tuple[str, str], Favorite] = {}
        self.purchased: Dict[str, List[str]] = {}

    def add_cart_item(self, user_id: str, audiobook_id: str):
        key = (user_id, audiobook_id)
        if key in self.cart:
            return self.cart[key], False
        item = CartItem(id=str(uuid4()), user_id=user_id, audiobook_id=audiobook_id)
        self.cart[key] = item
        return item, True

    def remove_cart_item(self, user_id: str, audiobook_id: str) -> bool:
        return self.cart.pop((user_id, audiobook_id), None) is not None

    def remove_many(self, user_id: str, audiobook_ids) -> int:
        return sum(self.remove_cart_item(user_id, audiobook_id) for audiobook_id in list(audiobook_ids))

    def clear_cart(self, user_id: str) -> int:
        keys = [key for key in self.cart if key[0] == user_id]
        for key in keys:
            del self.cart[key]
        return len(keys)

    def is_in_cart(self, user_id: str, audiobook_id: str) -> bool:
        return (user_id, audiobook_id) in self.cart

    def count_cart(self, user_id: str) -> int:
        return sum(1 for key in self.cart if key[0] == user_id)

    def list_cart(self, user_id: str) -> List[CartItem]:
        return [
            item.model_copy(update={"audiobook": self.catalog[item.audiobook_id]})
            for key, item in self.cart.items()
            if key[0] == user_id
        ]

    def list_cart_audiobooks(self, user_id: str) -> List[Audiobook]:
        return [item.audiobook for item in self.list_cart(user_id)]

    def add_favorite(self, user_id: str, audiobook_id: str):
        key = (user_id, audiobook_id)
        if key in self.favorites:
            return self.favorites[key], False
        favorite = Favorite(id=str(uuid4()), user_id=user_id, audiobook_id=audiobook_id)
        self.favorites[key] = favorite
        return favorite, True

    def remove_favorite(self, user_id: str, audiobook_id: str) -> bool:
        return self.favorites.pop((user_id, audiobook_id), None) is not None

    def is_favorite(self, user_id: str, audiobook_id: str) -> bool:
        return (user_id, audiobook_id) in self.favorites

    def list_favorites(self, user_id: str) -> List[Favorite]:
        return [favorite for key, favorite in self.favorites.items() if key[0] == user_id]

    def list_purchased_audiobooks(self, user_id: str) -> List[Audiobook]:
        return [self.catalog[book_id] for book_id in self.purchased.get(user_id, [])]


class FakeCatalog:
    def __init__(self, books: Dict[str, Audiobook]) -> None:
        self.books = books

    def get_audiobook(self, audiobook_id: str) -> Optional[Audiobook]:
        return self.books.get(audiobook_id)


class FakeOwnership:
    def __init__(self) -> None:
        self.owned: Set[Tuple[str, str]] = set()

    def has_completed_purchase(self, user_id: str, audiobook_id: str) -> bool:
        return (user_id, audiobook_id) in self.owned


def _book(book_id: str, **overrides) -> Audiobook:
    data = dict(
        id=book_id,
        title=book_id,
        author="Autor",
        price_cents=1000,
        currency="EUR",
        status=ContentStatus.APPROVED,
        visibility=Visibility.PUBLIC,
        publisher_id="publisher-1",
    )
    data.update(overrides)
    return Audiobook(**data)


@pytest.fixture
def library():
    books = {
        "book-1": _book("book-1"),
        "book-2": _book("book-2", price_cents=550),
        "free-1": _book("free-1", is_free=True),
    }
    repository = InMemoryLibraryRepository(books)
    ownership = FakeOwnership()
    service = LibraryService(repository=repository, catalog=FakeCatalog(books), ownership=ownership)
    return repository, ownership, service


def test_cart_summary_totals_current_prices(library):
    _, _, service = library
    service.add_to_cart("user-1", "book-1")
    service.add_to_cart("user-1", "book-2")

    summary = service.get_cart("user-1")

    assert summary.item_count == 2
    assert summary.total_cents == 1550
    assert summary.currency == "EUR"
    assert service.cart_count("user-1") == 2
    assert service.is_in_cart("user-1", "book-2") is True


def test_empty_cart_uses_default_currency(library):
    _, _, service = library

    summary = service.get_cart("user-1")

    assert (summary.item_count, summary.total_cents, summary.currency) == (0, 0, "EUR")


def test_adding_twice_returns_existing_entry(library):
    repository, _, service = library

    first = service.add_to_cart("user-1", "book-1")
    second = service.add_to_cart("user-1", "book-1")

    assert first.id == second.id
    assert len(repository.cart) == 1


def test_cart_rejects_free_owned_and_unknown_audiobooks(library):
    _, ownership, service = library
    ownership.owned.add(("user-1", "book-2"))

    with pytest.raises(AccessError) as free_error:
        service.add_to_cart("user-1", "free-1")
    assert free_error.value.status_code == 400

    with pytest.raises(ConflictError) as owned_error:
        service.add_to_cart("user-1", "book-2")
    assert owned_error.value.code == "already_purchased"

    with pytest.raises(LookupError):
        service.add_to_cart("user-1", "missing")


def test_remove_and_clear_are_noops_when_absent(library):
    _, _, service = library
    assert service.remove_from_cart("user-1", "book-1") is False

    service.add_to_cart("user-1", "book-1")
    service.add_to_cart("user-2", "book-1")

    assert service.clear_cart("user-1") == 1
    assert service.cart_count("user-1") == 0
    assert service.cart_count("user-2") == 1


def test_favorites_are_idempotent_sets(library):
    _, _, service = library

    first = service.add_favorite("user-1", "book-1")
    again = service.add_favorite("user-1", "book-1")

    assert first.id == again.id
    assert service.is_favorite("user-1", "book-1") is True
    assert [favorite.audiobook_id for favorite in service.list_favorites("user-1")] == ["book-1"]

    assert service.remove_favorite("user-1", "book-1") is True
    assert service.remove_favorite("user-1", "book-1") is False
    assert service.is_favorite("user-1", "book-1") is False


def test_favorite_of_unknown_audiobook_is_not_found(library):
    _, _, service = library

    with pytest.raises(LookupError):
        service.add_favorite("user-1", "missing")
    with pytest.raises(LookupError):
        service.remove_favorite("user-1", "missing")


def test_purchased_library_lists_owned_audiobooks(library):
    repository, _, service = library
    repository.purchased["user-1"] = ["book-2"]

    assert [book.id for book in service.list_purchased("user-1")] == ["book-2"]
    assert service.list_purchased("user-2") == []
