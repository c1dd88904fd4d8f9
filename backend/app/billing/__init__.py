"""Billing domain package covering purchases, subscriptions and PayPal checkout."""

from .discounts import DiscountCode, DiscountQuote, DiscountRejected, DiscountType
from .models import (
    BillingProfile,
    CaptureOutcome,
    CheckoutAuditEvent,
    CheckoutAuditEventType,
    CreatedOrder,
    PayPalConfig,
    PayPalEnvironment,
    PayPalWebhookEvent,
    PayPalWebhookEventType,
    Purchase,
    PurchaseStatus,
    SubscriptionPlan,
    UserSubscription,
)
from .paypal import PayPalClient, PayPalError
from .service import (
    BillingRepository,
    CartStore,
    CatalogLookup,
    CheckoutEventLogger,
    CheckoutService,
    EntitlementInvalidator,
    PaymentGateway,
)

__all__ = [
    "BillingProfile",
    "BillingRepository",
    "CaptureOutcome",
    "CartStore",
    "CatalogLookup",
    "CheckoutAuditEvent",
    "CheckoutAuditEventType",
    "CheckoutEventLogger",
    "CheckoutService",
    "CreatedOrder",
    "DiscountCode",
    "DiscountQuote",
    "DiscountRejected",
    "DiscountType",
    "EntitlementInvalidator",
    "PayPalClient",
    "PayPalConfig",
    "PayPalEnvironment",
    "PayPalError",
    "PayPalWebhookEvent",
    "PayPalWebhookEventType",
    "PaymentGateway",
    "Purchase",
    "PurchaseStatus",
    "SubscriptionPlan",
    "UserSubscription",
]
