"""Application wiring for the admin back-office."""
from __future__ import annotations

from functools import lru_cache

from ..admin import AdminService, PostgresAdminRepository
from .checkout import get_checkout_service
from .entitlements import get_entitlement_service


@lru_cache(maxsize=1)
def get_admin_service() -> AdminService:
    return AdminService(
        repository=PostgresAdminRepository(),
        entitlement_invalidator=get_entitlement_service(),
        plan_provisioner=get_checkout_service(),
    )


__all__ = ["get_admin_service"]
