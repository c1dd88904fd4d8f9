"""Domain models for audiobooks and their chapters."""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ContentStatus(str, Enum):
    """Editorial review state shared by audiobooks and chapters."""

    DRAFT = "DRAFT"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class Visibility(str, Enum):
    """Who can discover a piece of content."""

    PRIVATE = "PRIVATE"
    UNLISTED = "UNLISTED"
    PUBLIC = "PUBLIC"


class Audiobook(BaseModel):
    """Catalog entry sold either individually or through a subscription."""

    id: str
    title: str
    author: str
    narrator: Optional[str] = None
    description: str = ""
    cover_art_url: Optional[str] = None
    category: str = "General"
    language: str = "es"
    price_cents: int = Field(default=0, ge=0)
    currency: str = Field(default="EUR", min_length=3, max_length=3)
    is_free: bool = False
    status: ContentStatus = ContentStatus.DRAFT
    visibility: Visibility = Visibility.PRIVATE
    publisher_id: str
    published_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @field_validator("currency")
    @classmethod
    def _normalize_currency(cls, value: str) -> str:
        return value.upper()

    @property
    def is_priced(self) -> bool:
        """``True`` when buying the audiobook would actually charge money."""
        return not self.is_free and self.price_cents > 0

    @property
    def is_listed(self) -> bool:
        return self.status == ContentStatus.APPROVED and self.visibility == Visibility.PUBLIC


class Chapter(BaseModel):
    """Single playable unit of an audiobook."""

    id: str
    audiobook_id: str
    title: str
    chapter_number: int = Field(ge=1)
    audio_url: Optional[str] = None
    duration_seconds: int = Field(default=0, ge=0)
    is_sample: bool = False
    status: ContentStatus = ContentStatus.DRAFT
    visibility: Visibility = Visibility.PRIVATE

    model_config = ConfigDict(populate_by_name=True, frozen=True)


__all__ = ["Audiobook", "Chapter", "ContentStatus", "Visibility"]
