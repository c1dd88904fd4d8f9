"""Service responsible for computing and caching playback entitlements."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional, Protocol

from ..catalog.models import Audiobook
from .cache import EntitlementCache
from .models import AccessInfo, SubscriptionRecord, UserRole

logger = logging.getLogger("entitlements")


class PurchaseLookup(Protocol):
    """Read access to completed purchases."""

    def has_completed_purchase(self, user_id: str, audiobook_id: str) -> bool:
        ...


class SubscriptionLookup(Protocol):
    """Read access to the newest subscription of a user."""

    def get_current_subscription(self, user_id: str) -> Optional[SubscriptionRecord]:
        ...


def _is_privileged(user: Any, audiobook: Audiobook) -> bool:
    if str(user.id) == audiobook.publisher_id:
        return True
    return getattr(user, "role", None) == UserRole.ADMIN


def resolve_access(
    audiobook: Audiobook,
    user: Optional[Any],
    *,
    has_purchase: bool,
    subscription: Optional[SubscriptionRecord],
    now: Optional[datetime] = None,
) -> AccessInfo:
    """Decide whether ``user`` may play ``audiobook``.

    The function performs no I/O: callers supply whether a completed
    purchase exists and the user's current subscription, if any.  Rules are
    evaluated in order and the first match wins:

    1. free audiobooks (flag set or zero price) are open to everyone,
    2. anonymous visitors get nothing else,
    3. the publisher and administrators always have access,
    4. a completed purchase grants access permanently,
    5. an active subscription grants access to every audiobook.
    """

    if audiobook.is_free or audiobook.price_cents == 0:
        return AccessInfo(has_access=True, is_free=True)

    if user is None:
        return AccessInfo.denied()

    if _is_privileged(user, audiobook):
        return AccessInfo(has_access=True)

    if has_purchase:
        return AccessInfo(has_access=True, is_purchased=True)

    if subscription is not None and subscription.is_active(now):
        return AccessInfo(has_access=True, is_subscriber=True)

    return AccessInfo.denied()


def has_access(
    audiobook: Audiobook,
    user: Optional[Any],
    *,
    has_purchase: bool,
    subscription: Optional[SubscriptionRecord],
    now: Optional[datetime] = None,
) -> bool:
    return resolve_access(
        audiobook, user, has_purchase=has_purchase, subscription=subscription, now=now
    ).has_access


class EntitlementService:
    """Coordinates access lookups, caching and cache invalidation."""

    def __init__(
        self,
        purchase_lookup: PurchaseLookup,
        subscription_lookup: SubscriptionLookup,
        cache: EntitlementCache,
        *,
        clock: Optional[Callable[[], datetime]] = None,
        ttl_seconds: int = 300,
    ) -> None:
        self._purchase_lookup = purchase_lookup
        self._subscription_lookup = subscription_lookup
        self._cache = cache
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._ttl_seconds = ttl_seconds

    def check_access(self, user: Optional[Any], audiobook: Audiobook) -> AccessInfo:
        """Return the access decision for ``user`` on ``audiobook``."""

        if not audiobook.is_priced or user is None or _is_privileged(user, audiobook):
            return resolve_access(audiobook, user, has_purchase=False, subscription=None)

        user_id = str(user.id)
        cache_key = f"access:{user_id}:{audiobook.id}"
        cached = self._cache.get(cache_key)
        if cached is not None:
            return cached

        now = self._clock()
        purchased = self._purchase_lookup.has_completed_purchase(user_id, audiobook.id)
        subscription = None
        if not purchased:
            subscription = self._subscription_lookup.get_current_subscription(user_id)

        decision = resolve_access(
            audiobook,
            user,
            has_purchase=purchased,
            subscription=subscription,
            now=now,
        )

        if self._ttl_seconds > 0:
            expires_at = now + timedelta(seconds=self._ttl_seconds)
            if decision.is_subscriber and subscription and subscription.current_period_end:
                expires_at = min(expires_at, subscription.current_period_end)
            self._cache.set(
                cache_key,
                decision,
                expires_at,
                {f"user:{user_id}", f"audiobook:{audiobook.id}"},
            )
        return decision

    def invalidate_user(self, user_id: str) -> None:
        logger.debug("Invalidating entitlements", extra={"user_id": user_id})
        self._cache.invalidate({f"user:{user_id}"})

    def invalidate_audiobook(self, audiobook_id: str) -> None:
        logger.debug("Invalidating entitlements", extra={"audiobook_id": audiobook_id})
        self._cache.invalidate({f"audiobook:{audiobook_id}"})


__all__ = [
    "EntitlementService",
    "PurchaseLookup",
    "SubscriptionLookup",
    "has_access",
    "resolve_access",
]
