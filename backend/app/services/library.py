"""Application wiring for the cart, favorites and library."""
from __future__ import annotations

from functools import lru_cache

from ..billing.repository import PostgresBillingRepository
from ..catalog.repository import PostgresCatalogRepository
from ..config import get_app_config
from ..library import LibraryService, PostgresLibraryRepository


@lru_cache(maxsize=1)
def get_library_service() -> LibraryService:
    return LibraryService(
        repository=PostgresLibraryRepository(),
        catalog=PostgresCatalogRepository(),
        ownership=PostgresBillingRepository(),
        default_currency=get_app_config().default_currency,
    )


__all__ = ["get_library_service"]
