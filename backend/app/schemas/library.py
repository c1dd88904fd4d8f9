"""API schemas for cart, favorites and library endpoints."""
from __future__ import annotations

from typing import List

from pydantic import BaseModel, ConfigDict, Field

from ..catalog import Audiobook
from ..library import CartItem, CartSummary, Favorite


class CartResponse(BaseModel):
    items: List[CartItem]
    total_cents: int = Field(alias="totalCents")
    item_count: int = Field(alias="itemCount")
    currency: str

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_summary(cls, summary: CartSummary) -> "CartResponse":
        return cls(
            items=list(summary.items),
            total_cents=summary.total_cents,
            item_count=summary.item_count,
            currency=summary.currency,
        )


class CartCountResponse(BaseModel):
    item_count: int = Field(alias="itemCount")

    model_config = ConfigDict(populate_by_name=True)


class CartCheckResponse(BaseModel):
    is_in_cart: bool = Field(alias="isInCart")

    model_config = ConfigDict(populate_by_name=True)


class CartItemResponse(BaseModel):
    item: CartItem

    model_config = ConfigDict(populate_by_name=True)


class FavoriteStatusResponse(BaseModel):
    is_favorite: bool = Field(alias="isFavorite")

    model_config = ConfigDict(populate_by_name=True)


class FavoriteListResponse(BaseModel):
    favorites: List[Favorite]

    model_config = ConfigDict(populate_by_name=True)


class LibraryAudiobooksResponse(BaseModel):
    audiobooks: List[Audiobook]

    model_config = ConfigDict(populate_by_name=True)


__all__ = [
    "CartCheckResponse",
    "CartCountResponse",
    "CartItemResponse",
    "CartResponse",
    "FavoriteListResponse",
    "FavoriteStatusResponse",
    "LibraryAudiobooksResponse",
]
