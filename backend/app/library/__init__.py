"""Per-user cart, favorites and purchased library."""

from .models import CartItem, CartSummary, Favorite
from .repository import PostgresLibraryRepository
from .service import AudiobookLookup, LibraryRepository, LibraryService, OwnershipLookup

__all__ = [
    "AudiobookLookup",
    "CartItem",
    "CartSummary",
    "Favorite",
    "LibraryRepository",
    "LibraryService",
    "OwnershipLookup",
    "PostgresLibraryRepository",
]
