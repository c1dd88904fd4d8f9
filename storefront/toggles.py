"""Cart and favorite toggles with their user-facing outcomes."""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Tuple

from .api import StorefrontApi
from .errors import ApiError, AuthenticationRequired, DomainConflict
from .notices import LoggingNotifier, NoticeLevel, Notifier
from .query_cache import QueryCache, QueryKey

logger = logging.getLogger(__name__)


class ToggleOutcome(str, enum.Enum):
    ADDED = "added"
    REMOVED = "removed"
    AUTH_REQUIRED = "auth_required"
    CONFLICT = "conflict"
    FAILED = "failed"


@dataclass(frozen=True)
class ToggleResult:
    outcome: ToggleOutcome
    message: str

    @property
    def ok(self) -> bool:
        return self.outcome in (ToggleOutcome.ADDED, ToggleOutcome.REMOVED)


@dataclass(frozen=True)
class _ToggleCopy:
    added: str
    removed: str
    login: str
    failed: str


_CART = _ToggleCopy(
    added="Added to cart",
    removed="Removed from cart",
    login="Log in to add audiobooks to your cart",
    failed="Could not update your cart. Please try again.",
)
_FAVORITES = _ToggleCopy(
    added="Added to favorites",
    removed="Removed from favorites",
    login="Log in to save favorites",
    failed="Could not update your favorites. Please try again.",
)


class LibraryToggles:
    def __init__(
        self,
        api: StorefrontApi,
        *,
        cache: Optional[QueryCache] = None,
        notifier: Optional[Notifier] = None,
    ):
        self.api = api
        self.cache = cache if cache is not None else QueryCache()
        self.notifier = notifier or LoggingNotifier()

    async def toggle_cart(self, audiobook_id: str, currently_in_cart: bool) -> ToggleResult:
        audiobook_id = str(audiobook_id)
        call = self.api.remove_from_cart if currently_in_cart else self.api.add_to_cart
        return await self._toggle(
            lambda: call(audiobook_id),
            removing=currently_in_cart,
            copy=_CART,
            keys=(("/api/cart/check", audiobook_id), ("/api/cart",), ("/api/cart/count",)),
        )

    async def toggle_favorite(self, audiobook_id: str, currently_favorite: bool) -> ToggleResult:
        audiobook_id = str(audiobook_id)
        call = self.api.remove_favorite if currently_favorite else self.api.add_favorite
        return await self._toggle(
            lambda: call(audiobook_id),
            removing=currently_favorite,
            copy=_FAVORITES,
            keys=(("/api/audiobooks", audiobook_id, "favorite"), ("/api/library/favorites",)),
        )

    async def _toggle(
        self,
        call: Callable[[], Awaitable[None]],
        *,
        removing: bool,
        copy: _ToggleCopy,
        keys: Tuple[QueryKey, ...],
    ) -> ToggleResult:
        try:
            await call()
        except AuthenticationRequired:
            return self._report(ToggleResult(ToggleOutcome.AUTH_REQUIRED, copy.login))
        except DomainConflict as exc:
            return self._report(ToggleResult(ToggleOutcome.CONFLICT, exc.message))
        except ApiError as exc:
            logger.warning("Toggle failed", extra={"status": exc.status_code, "error": exc.message})
            return self._report(ToggleResult(ToggleOutcome.FAILED, copy.failed))

        self.cache.invalidate(*keys)
        if removing:
            return self._report(ToggleResult(ToggleOutcome.REMOVED, copy.removed))
        return self._report(ToggleResult(ToggleOutcome.ADDED, copy.added))

    def _report(self, result: ToggleResult) -> ToggleResult:
        self.notifier.notify(NoticeLevel.SUCCESS if result.ok else NoticeLevel.ERROR, result.message)
        return result


__all__ = ["LibraryToggles", "ToggleOutcome", "ToggleResult"]
