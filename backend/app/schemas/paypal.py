"""API schemas for PayPal checkout endpoints."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..billing import (
    CaptureOutcome,
    CreatedOrder,
    DiscountQuote,
    PayPalConfig,
    PayPalEnvironment,
    PayPalWebhookEvent,
    Purchase,
    UserSubscription,
)


class PayPalPublicConfigResponse(BaseModel):
    """Settings the browser needs to load the PayPal SDK."""

    client_id: str = Field(alias="clientId")
    environment: PayPalEnvironment

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_config(cls, config: PayPalConfig) -> "PayPalPublicConfigResponse":
        return cls(client_id=config.client_id, environment=config.environment)


class PayPalStatusResponse(BaseModel):
    configured: bool
    environment: Optional[PayPalEnvironment] = None

    model_config = ConfigDict(populate_by_name=True)


class CreateOrderRequest(BaseModel):
    audiobook_id: str = Field(alias="audiobookId", min_length=1)

    model_config = ConfigDict(populate_by_name=True)


class CreateOrderResponse(BaseModel):
    order_id: str = Field(alias="orderId")
    approval_url: Optional[str] = Field(alias="approvalUrl", default=None)
    purchase_id: Optional[str] = Field(alias="purchaseId", default=None)
    purchase_ids: List[str] = Field(alias="purchaseIds", default_factory=list)
    total_cents: int = Field(alias="totalCents", default=0)
    currency: str = "EUR"
    discount_cents: int = Field(alias="discountCents", default=0)
    discount_code: Optional[str] = Field(alias="discountCode", default=None)

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_created(cls, created: CreatedOrder) -> "CreateOrderResponse":
        return cls(
            order_id=created.order_id,
            approval_url=created.approval_url,
            purchase_id=created.purchase_ids[0] if created.purchase_ids else None,
            purchase_ids=list(created.purchase_ids),
            total_cents=created.total_cents,
            currency=created.currency,
            discount_cents=created.discount_cents,
            discount_code=created.discount_code,
        )


class CartOrderRequest(BaseModel):
    discount_code: Optional[str] = Field(alias="discountCode", default=None, max_length=64)

    model_config = ConfigDict(populate_by_name=True)


class ValidateDiscountRequest(BaseModel):
    code: str = Field(min_length=1, max_length=64)
    total_cents: Optional[int] = Field(alias="totalCents", default=None, ge=0)
    for_subscription: bool = Field(alias="forSubscription", default=False)

    model_config = ConfigDict(populate_by_name=True)


class ValidateDiscountResponse(BaseModel):
    valid: bool
    error: Optional[str] = None
    discount_code: Optional[str] = Field(alias="discountCode", default=None)
    description: Optional[str] = None
    discount_amount_cents: int = Field(alias="discountAmountCents", default=0)
    final_amount_cents: Optional[int] = Field(alias="finalAmountCents", default=None)

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_quote(cls, quote: DiscountQuote) -> "ValidateDiscountResponse":
        return cls(
            valid=True,
            discount_code=quote.discount.code,
            description=quote.discount.description,
            discount_amount_cents=quote.discount_cents,
            final_amount_cents=quote.final_cents,
        )


class CaptureOrderResponse(BaseModel):
    success: bool
    status: str
    order_id: str = Field(alias="orderId")
    already_captured: bool = Field(alias="alreadyCaptured", default=False)
    purchases: List[Purchase] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_outcome(cls, outcome: CaptureOutcome) -> "CaptureOrderResponse":
        return cls(
            success=outcome.success,
            status=outcome.status,
            order_id=outcome.order_id,
            already_captured=outcome.already_captured,
            purchases=list(outcome.purchases),
        )


class CreateSubscriptionRequest(BaseModel):
    plan_id: str = Field(alias="planId", min_length=1)

    model_config = ConfigDict(populate_by_name=True)


class CreateSubscriptionResponse(BaseModel):
    subscription_id: str = Field(alias="subscriptionId")
    approval_url: Optional[str] = Field(alias="approvalUrl", default=None)
    status: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)


class ActivateSubscriptionRequest(BaseModel):
    plan_id: str = Field(alias="planId", min_length=1)

    model_config = ConfigDict(populate_by_name=True)


class CancelSubscriptionRequest(BaseModel):
    # PayPal rejects cancellation reasons longer than 128 characters.
    reason: str = Field(default="Cancelled by user", min_length=1, max_length=128)

    model_config = ConfigDict(populate_by_name=True)


class SubscriptionResponse(BaseModel):
    subscription: Optional[UserSubscription] = None
    is_active: bool = Field(alias="isActive", default=False)

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_subscription(
        cls, subscription: Optional[UserSubscription], *, now: Optional[datetime] = None
    ) -> "SubscriptionResponse":
        return cls(
            subscription=subscription,
            is_active=bool(subscription and subscription.is_active(now)),
        )


class PayPalWebhookPayload(BaseModel):
    """Envelope PayPal posts to the webhook endpoint; unknown keys are kept."""

    id: str = Field(min_length=1)
    event_type: str = Field(min_length=1)
    resource: Dict[str, Any] = Field(default_factory=dict)
    create_time: Optional[datetime] = None

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    def to_event(self) -> PayPalWebhookEvent:
        values: Dict[str, Any] = {
            "event_id": self.id,
            "event_type": self.event_type,
            "resource": self.resource,
        }
        if self.create_time is not None:
            values["received_at"] = self.create_time
        return PayPalWebhookEvent(**values)


__all__ = [
    "ActivateSubscriptionRequest",
    "CancelSubscriptionRequest",
    "CaptureOrderResponse",
    "CartOrderRequest",
    "CreateOrderRequest",
    "CreateOrderResponse",
    "CreateSubscriptionRequest",
    "CreateSubscriptionResponse",
    "PayPalPublicConfigResponse",
    "PayPalStatusResponse",
    "PayPalWebhookPayload",
    "SubscriptionResponse",
    "ValidateDiscountRequest",
    "ValidateDiscountResponse",
]
