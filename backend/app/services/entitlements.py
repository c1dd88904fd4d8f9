"""Application wiring for entitlement checks."""
from __future__ import annotations

from functools import lru_cache

from ..billing.repository import PostgresBillingRepository
from ..config import get_app_config
from ..entitlements import EntitlementService, InMemoryEntitlementCache


@lru_cache(maxsize=1)
def get_entitlement_cache() -> InMemoryEntitlementCache:
    return InMemoryEntitlementCache()


@lru_cache(maxsize=1)
def get_entitlement_service() -> EntitlementService:
    repository = PostgresBillingRepository()
    return EntitlementService(
        purchase_lookup=repository,
        subscription_lookup=repository,
        cache=get_entitlement_cache(),
        ttl_seconds=get_app_config().entitlement_cache_ttl_seconds,
    )


__all__ = ["get_entitlement_cache", "get_entitlement_service"]
