"""Routes exposing the signed-in user's purchases, subscription and billing profile."""
from __future__ import annotations

from fastapi import APIRouter, Depends

from ..schemas.paypal import SubscriptionResponse
from ..schemas.user import (
    BillingProfileRequest,
    BillingProfileResponse,
    PurchaseListResponse,
    SubscriptionPlanListResponse,
)
from ..services.checkout import get_checkout_service
from .catalog import _get_current_user

router = APIRouter(prefix="/api", tags=["user"])


@router.get("/user/purchases", response_model=PurchaseListResponse)
def list_purchases(*, current_user=Depends(_get_current_user)) -> PurchaseListResponse:
    purchases = get_checkout_service().list_user_purchases(str(current_user.id))
    return PurchaseListResponse(purchases=purchases)


@router.get("/user/subscription", response_model=SubscriptionResponse)
def get_subscription(*, current_user=Depends(_get_current_user)) -> SubscriptionResponse:
    subscription = get_checkout_service().get_user_subscription(str(current_user.id))
    return SubscriptionResponse.from_subscription(subscription)


@router.get("/billing-profile", response_model=BillingProfileResponse)
@router.get("/user/billing-profile", response_model=BillingProfileResponse)
def get_billing_profile(*, current_user=Depends(_get_current_user)) -> BillingProfileResponse:
    profile = get_checkout_service().get_billing_profile(str(current_user.id))
    return BillingProfileResponse.from_profile(profile)


@router.post("/billing-profile", response_model=BillingProfileResponse)
@router.post("/user/billing-profile", response_model=BillingProfileResponse)
def save_billing_profile(
    payload: BillingProfileRequest,
    *,
    current_user=Depends(_get_current_user),
) -> BillingProfileResponse:
    """Create or replace the billing profile required before checkout."""
    saved = get_checkout_service().save_billing_profile(payload.to_profile(str(current_user.id)))
    return BillingProfileResponse.from_profile(saved)


@router.get("/subscription-plans", response_model=SubscriptionPlanListResponse)
def list_subscription_plans() -> SubscriptionPlanListResponse:
    return SubscriptionPlanListResponse(plans=get_checkout_service().list_plans(active_only=True))


__all__ = [
    "router",
    "get_billing_profile",
    "get_subscription",
    "list_purchases",
    "list_subscription_plans",
    "save_billing_profile",
]
