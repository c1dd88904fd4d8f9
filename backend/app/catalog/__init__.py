"""Audiobook catalog domain package."""

from .models import Audiobook, Chapter, ContentStatus, Visibility
from .service import AudiobookDetail, CatalogRepository, CatalogService

__all__ = [
    "Audiobook",
    "AudiobookDetail",
    "CatalogRepository",
    "CatalogService",
    "Chapter",
    "ContentStatus",
    "Visibility",
]
