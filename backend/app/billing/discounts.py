"""Discount codes: who may redeem them and how much they take off a cart."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field


class DiscountType(str, Enum):
    PERCENTAGE = "PERCENTAGE"
    FIXED_AMOUNT = "FIXED_AMOUNT"


class DiscountRejected(ValueError):
    """The code exists but cannot be applied to this checkout."""


class DiscountCode(BaseModel):
    """Admin-managed code; ``value`` is a percentage or an amount in cents."""

    id: str
    code: str
    description: Optional[str] = None
    type: DiscountType
    value: int = Field(gt=0)
    min_purchase_cents: int = Field(default=0, ge=0)
    max_uses_total: Optional[int] = Field(default=None, gt=0)
    max_uses_per_user: Optional[int] = Field(default=1, gt=0)
    used_count: int = Field(default=0, ge=0)
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    is_active: bool = True
    applies_to_purchases: bool = True
    applies_to_subscriptions: bool = False
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    def amount_off(self, total_cents: int) -> int:
        if total_cents <= 0:
            return 0
        if self.type == DiscountType.PERCENTAGE:
            # Half-up rounding to the cent.
            return min(total_cents, (total_cents * self.value + 50) // 100)
        return min(total_cents, self.value)


@dataclass(frozen=True)
class DiscountQuote:
    discount: DiscountCode
    total_cents: int
    discount_cents: int

    @property
    def final_cents(self) -> int:
        return self.total_cents - self.discount_cents


def normalize_code(raw: str) -> str:
    return raw.strip().upper()


def check_discount(
    discount: Optional[DiscountCode],
    *,
    total_cents: int,
    uses_by_user: int,
    now: datetime,
    for_subscription: bool = False,
) -> DiscountCode:
    """Return ``discount`` when it can be redeemed, else raise :class:`DiscountRejected`."""

    if discount is None:
        raise DiscountRejected("Discount code not found")
    if not discount.is_active:
        raise DiscountRejected("This discount code is not active")
    if discount.valid_from is not None and now < discount.valid_from:
        raise DiscountRejected("This discount code is not valid yet")
    if discount.valid_until is not None and now > discount.valid_until:
        raise DiscountRejected("This discount code has expired")
    if discount.max_uses_total is not None and discount.used_count >= discount.max_uses_total:
        raise DiscountRejected("This discount code has reached its usage limit")
    if for_subscription and not discount.applies_to_subscriptions:
        raise DiscountRejected("This discount code does not apply to subscriptions")
    if not for_subscription and not discount.applies_to_purchases:
        raise DiscountRejected("This discount code does not apply to purchases")
    if total_cents < discount.min_purchase_cents:
        raise DiscountRejected(f"Minimum purchase for this code is {discount.min_purchase_cents / 100:.2f}")
    if discount.max_uses_per_user is not None and uses_by_user >= discount.max_uses_per_user:
        raise DiscountRejected("You have already used this discount code")
    return discount


def split_discount(prices: Sequence[int], discount_cents: int) -> List[int]:
    """Spread ``discount_cents`` over ``prices`` in proportion to each price.

    Leftover cents go to the items with the largest remainders, so no share
    exceeds its price and the shares always add up to the discount.
    """

    total = sum(prices)
    if total <= 0 or discount_cents <= 0:
        return [0] * len(prices)
    discount_cents = min(discount_cents, total)
    weighted = [discount_cents * price for price in prices]
    shares = [amount // total for amount in weighted]
    leftover = discount_cents - sum(shares)
    by_remainder = sorted(range(len(prices)), key=lambda index: weighted[index] % total, reverse=True)
    for index in by_remainder[:leftover]:
        shares[index] += 1
    return shares


__all__ = [
    "DiscountCode",
    "DiscountQuote",
    "DiscountRejected",
    "DiscountType",
    "check_discount",
    "normalize_code",
    "split_discount",
]
