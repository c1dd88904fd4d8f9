"""API schemas for the signed-in user's billing data."""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from ..billing import BillingProfile, Purchase, SubscriptionPlan


class BillingProfileRequest(BaseModel):
    full_name: str = Field(alias="fullName", min_length=1, max_length=200)
    email: EmailStr
    company_name: Optional[str] = Field(alias="companyName", default=None, max_length=200)
    tax_id: Optional[str] = Field(alias="taxId", default=None, max_length=64)
    address: str = Field(min_length=1, max_length=300)
    address_line_2: Optional[str] = Field(alias="addressLine2", default=None, max_length=300)
    city: str = Field(min_length=1, max_length=120)
    state: Optional[str] = Field(default=None, max_length=120)
    postal_code: str = Field(alias="postalCode", min_length=1, max_length=20)
    country: str = Field(min_length=2, max_length=80)
    phone: Optional[str] = Field(default=None, max_length=40)

    model_config = ConfigDict(populate_by_name=True)

    def to_profile(self, user_id: str) -> BillingProfile:
        return BillingProfile(user_id=user_id, **self.model_dump(by_alias=False))


class BillingProfileResponse(BaseModel):
    full_name: Optional[str] = Field(alias="fullName", default=None)
    email: Optional[str] = None
    company_name: Optional[str] = Field(alias="companyName", default=None)
    tax_id: Optional[str] = Field(alias="taxId", default=None)
    address: Optional[str] = None
    address_line_2: Optional[str] = Field(alias="addressLine2", default=None)
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = Field(alias="postalCode", default=None)
    country: Optional[str] = None
    phone: Optional[str] = None
    updated_at: Optional[datetime] = Field(alias="updatedAt", default=None)
    is_complete: bool = Field(alias="isComplete", default=False)
    missing_fields: List[str] = Field(alias="missingFields", default_factory=list)

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_profile(cls, profile: Optional[BillingProfile]) -> "BillingProfileResponse":
        if profile is None:
            return cls(missing_fields=BillingProfile(user_id="").missing_fields())
        return cls(
            **profile.model_dump(exclude={"user_id"}),
            is_complete=profile.is_complete,
            missing_fields=profile.missing_fields(),
        )


class PurchaseListResponse(BaseModel):
    purchases: List[Purchase]

    model_config = ConfigDict(populate_by_name=True)


class SubscriptionPlanListResponse(BaseModel):
    plans: List[SubscriptionPlan]

    model_config = ConfigDict(populate_by_name=True)


__all__ = [
    "BillingProfileRequest",
    "BillingProfileResponse",
    "PurchaseListResponse",
    "SubscriptionPlanListResponse",
]
