"""Models for the per-user cart and favorites sets."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..catalog.models import Audiobook


class CartItem(BaseModel):
    id: str
    user_id: str
    audiobook_id: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    audiobook: Optional[Audiobook] = None

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class Favorite(BaseModel):
    id: str
    user_id: str
    audiobook_id: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    audiobook: Optional[Audiobook] = None

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class CartSummary(BaseModel):
    """Cart contents with totals computed from current audiobook prices."""

    items: List[CartItem] = Field(default_factory=list)
    total_cents: int = 0
    item_count: int = 0
    currency: str = "EUR"

    model_config = ConfigDict(populate_by_name=True, frozen=True)


__all__ = ["CartItem", "CartSummary", "Favorite"]
