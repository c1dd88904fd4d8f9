"""Cart and favorites operations shared by the cart and library routes."""
from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from typing import Iterable, List, Optional, Protocol, Sequence, Tuple

from ..catalog.models import Audiobook, ContentStatus
from ..gates import require_not_purchased, require_priced
from .models import CartItem, CartSummary, Favorite

logger = logging.getLogger("library")


class LibraryRepository(Protocol):
    """Persistence for the cart and favorites membership sets."""

    def add_cart_item(self, user_id: str, audiobook_id: str) -> Tuple[CartItem, bool]:
        ...

    def remove_cart_item(self, user_id: str, audiobook_id: str) -> bool:
        ...

    def remove_many(self, user_id: str, audiobook_ids: Iterable[str]) -> int:
        ...

    def clear_cart(self, user_id: str) -> int:
        ...

    def is_in_cart(self, user_id: str, audiobook_id: str) -> bool:
        ...

    def count_cart(self, user_id: str) -> int:
        ...

    def list_cart(self, user_id: str) -> List[CartItem]:
        ...

    def list_cart_audiobooks(self, user_id: str) -> List[Audiobook]:
        ...

    def add_favorite(self, user_id: str, audiobook_id: str) -> Tuple[Favorite, bool]:
        ...

    def remove_favorite(self, user_id: str, audiobook_id: str) -> bool:
        ...

    def is_favorite(self, user_id: str, audiobook_id: str) -> bool:
        ...

    def list_favorites(self, user_id: str) -> List[Favorite]:
        ...

    def list_purchased_audiobooks(self, user_id: str) -> List[Audiobook]:
        ...


class AudiobookLookup(Protocol):
    def get_audiobook(self, audiobook_id: str) -> Optional[Audiobook]:
        ...


class OwnershipLookup(Protocol):
    def has_completed_purchase(self, user_id: str, audiobook_id: str) -> bool:
        ...


_dataclass_kwargs = {"slots": True} if sys.version_info >= (3, 10) else {}


@dataclass(**_dataclass_kwargs)
class LibraryService:
    """Per-user cart and favorites sets plus the purchased library view."""

    repository: LibraryRepository
    catalog: AudiobookLookup
    ownership: OwnershipLookup
    default_currency: str = "EUR"

    def _require_audiobook(self, audiobook_id: str) -> Audiobook:
        audiobook = self.catalog.get_audiobook(audiobook_id)
        if audiobook is None:
            raise LookupError("Audiobook not found")
        return audiobook

    # Cart ------------------------------------------------------------------

    def get_cart(self, user_id: str) -> CartSummary:
        items = self.repository.list_cart(user_id)
        total = sum(item.audiobook.price_cents for item in items if item.audiobook and item.audiobook.is_priced)
        currency = next(
            (item.audiobook.currency for item in items if item.audiobook is not None),
            self.default_currency,
        )
        return CartSummary(items=items, total_cents=total, item_count=len(items), currency=currency)

    def cart_count(self, user_id: str) -> int:
        return self.repository.count_cart(user_id)

    def is_in_cart(self, user_id: str, audiobook_id: str) -> bool:
        return self.repository.is_in_cart(user_id, audiobook_id)

    def add_to_cart(self, user_id: str, audiobook_id: str) -> CartItem:
        """Add an audiobook to the cart; an existing entry is returned unchanged."""

        audiobook = self._require_audiobook(audiobook_id)
        if audiobook.status != ContentStatus.APPROVED:
            raise LookupError("Audiobook not found")
        require_priced(audiobook.is_priced)
        require_not_purchased(self.ownership.has_completed_purchase(user_id, audiobook.id))

        item, created = self.repository.add_cart_item(user_id, audiobook.id)
        if created:
            logger.info("Added audiobook to cart", extra={"user_id": user_id, "audiobook_id": audiobook.id})
        return item

    def remove_from_cart(self, user_id: str, audiobook_id: str) -> bool:
        return self.repository.remove_cart_item(user_id, audiobook_id)

    def clear_cart(self, user_id: str) -> int:
        return self.repository.clear_cart(user_id)

    def list_cart_audiobooks(self, user_id: str) -> Sequence[Audiobook]:
        return self.repository.list_cart_audiobooks(user_id)

    def remove_many(self, user_id: str, audiobook_ids: Iterable[str]) -> int:
        return self.repository.remove_many(user_id, audiobook_ids)

    # Favorites -------------------------------------------------------------

    def add_favorite(self, user_id: str, audiobook_id: str) -> Favorite:
        audiobook = self._require_audiobook(audiobook_id)
        favorite, _ = self.repository.add_favorite(user_id, audiobook.id)
        return favorite

    def remove_favorite(self, user_id: str, audiobook_id: str) -> bool:
        audiobook = self._require_audiobook(audiobook_id)
        return self.repository.remove_favorite(user_id, audiobook.id)

    def is_favorite(self, user_id: str, audiobook_id: str) -> bool:
        return self.repository.is_favorite(user_id, audiobook_id)

    def list_favorites(self, user_id: str) -> List[Favorite]:
        return self.repository.list_favorites(user_id)

    # Library ---------------------------------------------------------------

    def list_purchased(self, user_id: str) -> List[Audiobook]:
        return self.repository.list_purchased_audiobooks(user_id)


__all__ = ["AudiobookLookup", "LibraryRepository", "LibraryService", "OwnershipLookup"]
