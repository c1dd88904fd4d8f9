"""Checkout gating: a complete billing profile comes before any payment button."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional

from .api import StorefrontApi
from .errors import ApiError, AuthenticationRequired
from .notices import LoggingNotifier, NoticeLevel, Notifier
from .query_cache import QueryCache
from .sdk import SdkLoader
from .widget import PurchaseButton, SubscriptionButton, WidgetHandle

logger = logging.getLogger(__name__)

BILLING_PROFILE_KEY = ("/api/billing-profile",)


@dataclass(frozen=True)
class CheckoutReadiness:
    ready: bool
    message: Optional[str] = None
    missing_fields: List[str] = field(default_factory=list)


class CheckoutGate:
    """Opens payment buttons only for logged-in users with a complete profile."""

    def __init__(
        self,
        api: StorefrontApi,
        loader: SdkLoader,
        *,
        cache: Optional[QueryCache] = None,
        notifier: Optional[Notifier] = None,
        currency: str = "EUR",
    ):
        self.api = api
        self.loader = loader
        self.cache = cache if cache is not None else QueryCache()
        self.notifier = notifier or LoggingNotifier()
        self.currency = currency

    def invalidate_profile(self) -> None:
        """Drop the cached profile; call after the user edits billing details."""

        self.cache.invalidate(BILLING_PROFILE_KEY)

    async def check(self) -> CheckoutReadiness:
        try:
            profile = await self.cache.fetch(BILLING_PROFILE_KEY, self.api.get_billing_profile)
        except AuthenticationRequired:
            return CheckoutReadiness(False, "Log in to continue to checkout")
        except ApiError as exc:
            logger.warning("Billing profile lookup failed", extra={"error": exc.message})
            return CheckoutReadiness(False, "Could not check your billing details. Please try again.")
        if not profile.is_complete:
            # Only a complete profile stays cached so a fix made elsewhere is seen on retry.
            self.invalidate_profile()
            return CheckoutReadiness(
                False,
                "Complete your billing profile before paying",
                list(profile.missing_fields),
            )
        return CheckoutReadiness(True)

    async def _ready(self) -> bool:
        readiness = await self.check()
        if not readiness.ready:
            self.notifier.notify(NoticeLevel.INFO, readiness.message or "Checkout is not available")
        return readiness.ready

    async def open_purchase(self, container: Any, audiobook_id: str, **hooks: Any) -> Optional[WidgetHandle]:
        if not await self._ready():
            return None
        button = PurchaseButton(
            self.api,
            self.loader,
            audiobook_id=audiobook_id,
            cache=self.cache,
            notifier=self.notifier,
            currency=self.currency,
            **hooks,
        )
        return await button.mount(container)

    async def open_subscription(self, container: Any, plan: Any, **hooks: Any) -> Optional[WidgetHandle]:
        if not await self._ready():
            return None
        button = SubscriptionButton(
            self.api,
            self.loader,
            plan=plan,
            cache=self.cache,
            notifier=self.notifier,
            currency=self.currency,
            **hooks,
        )
        return await button.mount(container)


__all__ = ["BILLING_PROFILE_KEY", "CheckoutGate", "CheckoutReadiness"]
