"""Domain models for purchases, subscriptions and PayPal checkout."""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..entitlements.models import SubscriptionRecord, SubscriptionStatus


class PurchaseStatus(str, Enum):
    """Lifecycle status of an audiobook purchase."""

    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    REFUNDED = "REFUNDED"
    FAILED = "FAILED"


class PayPalEnvironment(str, Enum):
    SANDBOX = "sandbox"
    PRODUCTION = "production"

    @property
    def api_base_url(self) -> str:
        if self is PayPalEnvironment.PRODUCTION:
            return "https://api-m.paypal.com"
        return "https://api-m.sandbox.paypal.com"


class PayPalWebhookEventType(str, Enum):
    """Webhook event types that the application reacts to."""

    CAPTURE_COMPLETED = "PAYMENT.CAPTURE.COMPLETED"
    CAPTURE_REFUNDED = "PAYMENT.CAPTURE.REFUNDED"
    SUBSCRIPTION_ACTIVATED = "BILLING.SUBSCRIPTION.ACTIVATED"
    SUBSCRIPTION_CANCELLED = "BILLING.SUBSCRIPTION.CANCELLED"
    SUBSCRIPTION_SUSPENDED = "BILLING.SUBSCRIPTION.SUSPENDED"
    SUBSCRIPTION_EXPIRED = "BILLING.SUBSCRIPTION.EXPIRED"


class CheckoutAuditEventType(str, Enum):
    ORDER_CREATED = "order.created"
    ORDER_CAPTURED = "order.captured"
    ORDER_NOT_COMPLETED = "order.not_completed"
    SUBSCRIPTION_ACTIVATED = "subscription.activated"
    SUBSCRIPTION_CANCELED = "subscription.canceled"
    SUBSCRIPTION_STATUS_CHANGED = "subscription.status_changed"
    CAPTURE_REFUNDED = "capture.refunded"
    DUPLICATE_CHARGE = "order.duplicate_charge"


class Purchase(BaseModel):
    """A user's order for one audiobook; COMPLETED rows are permanent grants."""

    id: str
    user_id: str
    audiobook_id: str
    price_paid_cents: int = Field(ge=0)
    currency: str = Field(default="EUR", min_length=3, max_length=3)
    status: PurchaseStatus = PurchaseStatus.PENDING
    paypal_order_id: Optional[str] = None
    paypal_capture_id: Optional[str] = None
    paypal_payer_email: Optional[str] = None
    discount_code_id: Optional[str] = None
    discount_cents: int = Field(default=0, ge=0)
    purchased_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @property
    def is_completed(self) -> bool:
        return self.status == PurchaseStatus.COMPLETED


class SubscriptionPlan(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    price_cents: int = Field(ge=0)
    currency: str = Field(default="EUR", min_length=3, max_length=3)
    interval_months: int = Field(default=1, ge=1)
    trial_days: int = Field(default=0, ge=0)
    paypal_plan_id: Optional[str] = None
    paypal_product_id: Optional[str] = None
    is_active: bool = True

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class UserSubscription(BaseModel):
    """Subscription state synchronized from PayPal."""

    id: str
    user_id: str
    plan_id: str
    status: SubscriptionStatus
    paypal_subscription_id: Optional[str] = None
    current_period_start: datetime
    current_period_end: datetime
    canceled_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    def to_record(self) -> SubscriptionRecord:
        return SubscriptionRecord(
            id=self.id,
            user_id=self.user_id,
            plan_id=self.plan_id,
            status=self.status,
            current_period_end=self.current_period_end,
        )

    def is_active(self, now: Optional[datetime] = None) -> bool:
        return self.to_record().is_active(now)


_REQUIRED_PROFILE_FIELDS: Tuple[str, ...] = (
    "full_name",
    "email",
    "address",
    "city",
    "postal_code",
    "country",
)


class BillingProfile(BaseModel):
    """Identity and address data collected before checkout."""

    user_id: str
    full_name: Optional[str] = None
    email: Optional[str] = None
    company_name: Optional[str] = None
    tax_id: Optional[str] = None
    address: Optional[str] = None
    address_line_2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None
    phone: Optional[str] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    def missing_fields(self) -> List[str]:
        return [
            name
            for name in _REQUIRED_PROFILE_FIELDS
            if not (getattr(self, name) or "").strip()
        ]

    @property
    def is_complete(self) -> bool:
        return not self.missing_fields()


class PayPalConfig(BaseModel):
    """Public PayPal settings managed from the admin back-office."""

    client_id: str
    webhook_id: Optional[str] = None
    environment: PayPalEnvironment = PayPalEnvironment.SANDBOX
    is_active: bool = True

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @field_validator("client_id")
    @classmethod
    def _strip_client_id(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("client_id must not be empty")
        return stripped


class CreatedOrder(BaseModel):
    order_id: str
    approval_url: Optional[str] = None
    purchase_ids: List[str] = Field(default_factory=list)
    total_cents: int = 0
    discount_cents: int = 0
    discount_code: Optional[str] = None
    currency: str = "EUR"

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class CaptureOutcome(BaseModel):
    """Result of capturing an approved PayPal order."""

    success: bool
    status: str
    order_id: str
    already_captured: bool = False
    purchases: List[Purchase] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class PayPalWebhookEvent(BaseModel):
    event_id: str
    event_type: str
    resource: Dict[str, object] = Field(default_factory=dict)
    received_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class CheckoutAuditEvent(BaseModel):
    """Structured audit log entry emitted for checkout changes."""

    event_type: CheckoutAuditEventType
    actor_id: Optional[str] = None
    reference_id: Optional[str] = None
    metadata: Dict[str, str] = Field(default_factory=dict)
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(populate_by_name=True, frozen=True)


__all__ = [
    "BillingProfile",
    "CaptureOutcome",
    "CheckoutAuditEvent",
    "CheckoutAuditEventType",
    "CreatedOrder",
    "PayPalConfig",
    "PayPalEnvironment",
    "PayPalWebhookEvent",
    "PayPalWebhookEventType",
    "Purchase",
    "PurchaseStatus",
    "SubscriptionPlan",
    "SubscriptionStatus",
    "UserSubscription",
]
