"""Entitlement rules deciding who may play which audiobook."""

from .cache import EntitlementCache, InMemoryEntitlementCache
from .models import AccessInfo, SubscriptionRecord, SubscriptionStatus, UserRole, can_play_chapter
from .service import (
    EntitlementService,
    PurchaseLookup,
    SubscriptionLookup,
    has_access,
    resolve_access,
)

__all__ = [
    "AccessInfo",
    "EntitlementCache",
    "EntitlementService",
    "InMemoryEntitlementCache",
    "PurchaseLookup",
    "SubscriptionLookup",
    "SubscriptionRecord",
    "SubscriptionStatus",
    "UserRole",
    "can_play_chapter",
    "has_access",
    "resolve_access",
]
