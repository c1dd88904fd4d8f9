"""Application wiring for catalog reads."""
from __future__ import annotations

from functools import lru_cache

from ..catalog import CatalogService
from ..catalog.repository import PostgresCatalogRepository
from .entitlements import get_entitlement_service


@lru_cache(maxsize=1)
def get_catalog_service() -> CatalogService:
    return CatalogService(PostgresCatalogRepository(), get_entitlement_service())


__all__ = ["get_catalog_service"]
