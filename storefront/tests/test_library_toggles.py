from __future__ import annotations

import asyncio

from storefront.errors import ApiError, AuthenticationRequired, DomainConflict
from storefront.notices import NoticeLevel
from storefront.toggles import LibraryToggles, ToggleOutcome


def _toggles(api, cache, notifier):
    return LibraryToggles(api, cache=cache, notifier=notifier)


def test_add_to_cart_invalidates_cart_queries(api, cache, notifier):
    cache.set(("/api/cart/check", "book-1"), {"isInCart": False})
    cache.set(("/api/cart",), {"items": []})
    cache.set(("/api/cart/count",), {"itemCount": 0})
    cache.set(("/api/cart/check", "book-2"), {"isInCart": True})

    result = asyncio.run(_toggles(api, cache, notifier).toggle_cart("book-1", currently_in_cart=False))

    assert result.outcome is ToggleOutcome.ADDED
    assert api.calls == [("add_to_cart", "book-1")]
    assert ("/api/cart",) not in cache
    assert ("/api/cart/count",) not in cache
    assert ("/api/cart/check", "book-1") not in cache
    assert ("/api/cart/check", "book-2") in cache
    assert notifier.messages(NoticeLevel.SUCCESS) == ["Added to cart"]


def test_remove_from_cart_when_present(api, cache, notifier):
    result = asyncio.run(_toggles(api, cache, notifier).toggle_cart("book-1", currently_in_cart=True))

    assert result.outcome is ToggleOutcome.REMOVED
    assert api.calls == [("remove_from_cart", "book-1")]


def test_cart_conflict_surfaces_server_message(api, cache, notifier):
    api.toggle_error = DomainConflict("You already own this audiobook", 409, "already_purchased")
    cache.set(("/api/cart",), {"items": []})

    result = asyncio.run(_toggles(api, cache, notifier).toggle_cart("book-1", currently_in_cart=False))

    assert result.outcome is ToggleOutcome.CONFLICT
    assert result.message == "You already own this audiobook"
    assert not result.ok
    assert ("/api/cart",) in cache
    assert notifier.messages(NoticeLevel.ERROR) == ["You already own this audiobook"]


def test_unauthenticated_toggle_asks_for_login(api, cache, notifier):
    api.toggle_error = AuthenticationRequired("Not authenticated", 401)

    result = asyncio.run(_toggles(api, cache, notifier).toggle_favorite("book-1", currently_favorite=False))

    assert result.outcome is ToggleOutcome.AUTH_REQUIRED
    assert "Log in" in result.message


def test_server_error_gives_generic_message(api, cache, notifier):
    api.toggle_error = ApiError("Internal Server Error", 500)

    result = asyncio.run(_toggles(api, cache, notifier).toggle_favorite("book-1", currently_favorite=True))

    assert result.outcome is ToggleOutcome.FAILED
    assert result.message == "Could not update your favorites. Please try again."


def test_favorite_toggle_invalidates_favorite_queries(api, cache, notifier):
    cache.set(("/api/audiobooks", "book-1", "favorite"), {"isFavorite": True})
    cache.set(("/api/library/favorites",), {"favorites": []})
    cache.set(("/api/audiobooks", "book-1"), {"title": "Kept"})

    result = asyncio.run(_toggles(api, cache, notifier).toggle_favorite("book-1", currently_favorite=True))

    assert result.outcome is ToggleOutcome.REMOVED
    assert api.calls == [("remove_favorite", "book-1")]
    assert ("/api/audiobooks", "book-1", "favorite") not in cache
    assert ("/api/library/favorites",) not in cache
    assert ("/api/audiobooks", "book-1") in cache
