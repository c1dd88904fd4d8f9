"""Core service coordinating PayPal checkout flows with local state."""
from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Protocol, Sequence, Set, Tuple

from fastapi import status as http_status

from ..catalog.models import Audiobook, ContentStatus
from ..entitlements.models import SubscriptionRecord, SubscriptionStatus
from ..gates import (
    AccessError,
    require_complete_billing_profile,
    require_not_purchased,
    require_priced,
)
from .discounts import (
    DiscountCode,
    DiscountQuote,
    check_discount,
    normalize_code,
    split_discount,
)
from .models import (
    BillingProfile,
    CaptureOutcome,
    CheckoutAuditEvent,
    CheckoutAuditEventType,
    CreatedOrder,
    PayPalConfig,
    PayPalWebhookEvent,
    PayPalWebhookEventType,
    Purchase,
    PurchaseStatus,
    SubscriptionPlan,
    UserSubscription,
)
from .paypal import PayPalError, find_link

logger = logging.getLogger("billing")

_TERMINAL_ORDER_STATUSES = {"VOIDED", "DECLINED"}
_DEFAULT_PERIOD = timedelta(days=30)


class PaymentGateway(Protocol):
    """Subset of the PayPal API used by the checkout service."""

    def create_order(
        self,
        *,
        reference_id: str,
        custom_id: str,
        amount_cents: int,
        currency: str,
        brand_name: str,
        return_url: str,
        cancel_url: str,
        description: Optional[str] = None,
        items: Optional[Sequence[Mapping[str, Any]]] = None,
        discount_cents: int = 0,
    ) -> Dict[str, Any]:
        ...

    def capture_order(self, order_id: str) -> Dict[str, Any]:
        ...

    def get_subscription(self, subscription_id: str) -> Dict[str, Any]:
        ...

    def create_subscription(
        self,
        *,
        plan_id: str,
        custom_id: str,
        brand_name: str,
        return_url: str,
        cancel_url: str,
        subscriber_email: Optional[str] = None,
    ) -> Dict[str, Any]:
        ...

    def cancel_subscription(self, subscription_id: str, reason: str) -> None:
        ...

    def create_product(self, *, name: str, description: Optional[str] = None) -> Dict[str, Any]:
        ...

    def create_plan(
        self,
        *,
        product_id: str,
        name: str,
        price_cents: int,
        currency: str,
        interval_months: int = 1,
        trial_days: int = 0,
        description: Optional[str] = None,
    ) -> Dict[str, Any]:
        ...

    def verify_webhook_signature(
        self,
        *,
        webhook_id: str,
        headers: Mapping[str, str],
        event: Mapping[str, Any],
    ) -> bool:
        ...


class CatalogLookup(Protocol):
    def get_audiobook(self, audiobook_id: str) -> Optional[Audiobook]:
        ...


class CartStore(Protocol):
    """Cart operations the checkout needs (listing and clearing bought items)."""

    def list_cart_audiobooks(self, user_id: str) -> Sequence[Audiobook]:
        ...

    def remove_many(self, user_id: str, audiobook_ids: Iterable[str]) -> int:
        ...


class CheckoutEventLogger(Protocol):
    """Captures structured checkout audit events."""

    def log(self, event: CheckoutAuditEvent) -> None:
        ...


class EntitlementInvalidator(Protocol):
    """Invalidates entitlement caches affected by billing changes."""

    def invalidate_user(self, user_id: str) -> None:
        ...


class BillingRepository(Protocol):
    """Persistence operations required by the checkout service."""

    def create_pending_purchase(
        self,
        *,
        user_id: str,
        audiobook_id: str,
        price_paid_cents: int,
        currency: str,
        paypal_order_id: str,
        discount_code_id: Optional[str] = None,
        discount_cents: int = 0,
    ) -> Purchase:
        ...

    def list_purchases_by_order(self, paypal_order_id: str) -> List[Purchase]:
        ...

    def complete_order(
        self,
        paypal_order_id: str,
        *,
        capture_id: Optional[str],
        payer_email: Optional[str],
        purchased_at: datetime,
    ) -> List[Purchase]:
        ...

    def mark_order_failed(self, paypal_order_id: str) -> int:
        ...

    def has_completed_purchase(self, user_id: str, audiobook_id: str) -> bool:
        ...

    def owned_audiobook_ids(self, user_id: str, audiobook_ids: Iterable[str]) -> Set[str]:
        ...

    def list_user_purchases(self, user_id: str) -> List[Purchase]:
        ...

    def list_purchases(self, *, status: Optional[PurchaseStatus] = None, limit: int = 200) -> List[Purchase]:
        ...

    def delete_pending_purchase(self, purchase_id: str) -> bool:
        ...

    def delete_pending_before(self, cutoff: datetime) -> int:
        ...

    def get_plan(self, plan_id: str) -> Optional[SubscriptionPlan]:
        ...

    def list_plans(self, *, active_only: bool = True) -> List[SubscriptionPlan]:
        ...

    def get_user_subscription(self, user_id: str) -> Optional[UserSubscription]:
        ...

    def get_current_subscription(self, user_id: str) -> Optional[SubscriptionRecord]:
        ...

    def get_subscription_by_paypal_id(self, paypal_subscription_id: str) -> Optional[UserSubscription]:
        ...

    def save_subscription(
        self,
        *,
        user_id: str,
        plan_id: str,
        status: SubscriptionStatus,
        paypal_subscription_id: str,
        current_period_start: datetime,
        current_period_end: datetime,
    ) -> UserSubscription:
        ...

    def update_subscription_status(
        self,
        paypal_subscription_id: str,
        *,
        status: SubscriptionStatus,
        canceled_at: Optional[datetime] = None,
    ) -> Optional[UserSubscription]:
        ...

    def set_payer_id(self, user_id: str, payer_id: str) -> None:
        ...

    def get_billing_profile(self, user_id: str) -> Optional[BillingProfile]:
        ...

    def upsert_billing_profile(self, profile: BillingProfile) -> BillingProfile:
        ...

    def get_paypal_config(self) -> Optional[PayPalConfig]:
        ...

    def save_paypal_config(self, config: PayPalConfig) -> PayPalConfig:
        ...

    def record_webhook_event(self, event: PayPalWebhookEvent) -> bool:
        ...

    def forget_webhook_event(self, event_id: str) -> None:
        ...

    def get_discount_code(self, code: str) -> Optional[DiscountCode]:
        ...

    def count_discount_uses(self, discount_code_id: str, user_id: str) -> int:
        ...

    def record_discount_use(
        self,
        discount_code_id: str,
        *,
        user_id: str,
        paypal_order_id: str,
        discount_cents: int,
    ) -> bool:
        ...


# ``slots`` support for ``dataclass`` was added in Python 3.10. The backend
# can run under Python 3.9 in some environments (e.g., local development), so
# we enable slots conditionally to maintain compatibility while preserving the
# optimization where available.
_dataclass_kwargs = {"slots": True} if sys.version_info >= (3, 10) else {}


@dataclass(**_dataclass_kwargs)
class CheckoutService:
    """Coordinates orders, captures, subscriptions and PayPal webhooks."""

    repository: BillingRepository
    gateway_factory: Callable[[PayPalConfig], PaymentGateway]
    catalog: CatalogLookup
    cart: CartStore
    event_logger: CheckoutEventLogger
    entitlement_invalidator: EntitlementInvalidator
    brand_name: str = "Audivia"
    return_url: str = "http://localhost:5173/checkout/success"
    cancel_url: str = "http://localhost:5173/checkout/cancel"
    pending_max_age_hours: int = 24

    def _now(self) -> datetime:
        return datetime.now(timezone.utc)

    # Configuration ---------------------------------------------------------

    def get_public_config(self) -> Optional[PayPalConfig]:
        return self.repository.get_paypal_config()

    def is_configured(self) -> bool:
        return self.repository.get_paypal_config() is not None

    def save_config(self, config: PayPalConfig) -> PayPalConfig:
        return self.repository.save_paypal_config(config)

    def _gateway(self, config: Optional[PayPalConfig] = None) -> PaymentGateway:
        config = config or self.repository.get_paypal_config()
        if config is None:
            raise AccessError(
                code="paypal_not_configured",
                message="PayPal is not configured",
                status_code=http_status.HTTP_503_SERVICE_UNAVAILABLE,
            )
        return self.gateway_factory(config)

    # One-time purchases ----------------------------------------------------

    def create_order(self, *, user_id: str, audiobook_id: str) -> CreatedOrder:
        audiobook = self.catalog.get_audiobook(audiobook_id)
        if audiobook is None or audiobook.status != ContentStatus.APPROVED:
            raise LookupError("Audiobook not found")

        require_priced(audiobook.is_priced)
        require_not_purchased(self.repository.has_completed_purchase(user_id, audiobook.id))
        require_complete_billing_profile(self.repository.get_billing_profile(user_id))

        order = self._gateway().create_order(
            reference_id=audiobook.id,
            custom_id=user_id,
            amount_cents=audiobook.price_cents,
            currency=audiobook.currency,
            brand_name=self.brand_name,
            return_url=self.return_url,
            cancel_url=self.cancel_url,
            description=audiobook.title,
        )
        order_id = _require_id(order, "order")
        purchase = self.repository.create_pending_purchase(
            user_id=user_id,
            audiobook_id=audiobook.id,
            price_paid_cents=audiobook.price_cents,
            currency=audiobook.currency,
            paypal_order_id=order_id,
        )
        self.event_logger.log(
            CheckoutAuditEvent(
                event_type=CheckoutAuditEventType.ORDER_CREATED,
                actor_id=user_id,
                reference_id=order_id,
                metadata={"audiobook_id": audiobook.id, "amount_cents": str(audiobook.price_cents)},
            )
        )
        return CreatedOrder(
            order_id=order_id,
            approval_url=find_link(order, "approve") or find_link(order, "payer-action"),
            purchase_ids=[purchase.id],
            total_cents=audiobook.price_cents,
            currency=audiobook.currency,
        )

    def _payable_cart(self, user_id: str) -> List[Audiobook]:
        cart_items = list(self.cart.list_cart_audiobooks(user_id))
        owned = self.repository.owned_audiobook_ids(user_id, [book.id for book in cart_items])
        payable = [book for book in cart_items if book.is_priced and book.id not in owned]
        if not payable:
            raise ValueError("Cart is empty")
        if len({book.currency for book in payable}) > 1:
            raise ValueError("Cart items must share a single currency")
        return payable

    def quote_discount(
        self,
        *,
        user_id: str,
        code: str,
        total_cents: Optional[int] = None,
        for_subscription: bool = False,
    ) -> DiscountQuote:
        """Price ``code`` against ``total_cents`` or, when omitted, the user's cart.

        Raises :class:`DiscountRejected` when the code cannot be redeemed.
        """

        if total_cents is None:
            total_cents = sum(book.price_cents for book in self._payable_cart(user_id))
        discount = self.repository.get_discount_code(normalize_code(code))
        uses = self.repository.count_discount_uses(discount.id, user_id) if discount is not None else 0
        discount = check_discount(
            discount,
            total_cents=total_cents,
            uses_by_user=uses,
            now=self._now(),
            for_subscription=for_subscription,
        )
        return DiscountQuote(
            discount=discount,
            total_cents=total_cents,
            discount_cents=discount.amount_off(total_cents),
        )

    def create_cart_order(self, *, user_id: str, discount_code: Optional[str] = None) -> CreatedOrder:
        """Create one PayPal order covering every payable cart item.

        A discount is split across the items so each pending purchase records
        the price the buyer actually pays for it.
        """

        payable = self._payable_cart(user_id)
        currency = payable[0].currency
        require_complete_billing_profile(self.repository.get_billing_profile(user_id))

        subtotal_cents = sum(book.price_cents for book in payable)
        quote: Optional[DiscountQuote] = None
        if discount_code and discount_code.strip():
            quote = self.quote_discount(user_id=user_id, code=discount_code, total_cents=subtotal_cents)
        discount_cents = quote.discount_cents if quote is not None else 0
        total_cents = subtotal_cents - discount_cents
        if total_cents <= 0:
            raise ValueError("Discounted total must be greater than zero")
        shares = split_discount([book.price_cents for book in payable], discount_cents)

        description = f"{len(payable)} audiobook(s) from {self.brand_name}"
        if quote is not None:
            description = f"{description} (code {quote.discount.code})"
        order = self._gateway().create_order(
            reference_id=f"cart-{user_id}",
            custom_id=user_id,
            amount_cents=total_cents,
            currency=currency,
            brand_name=self.brand_name,
            return_url=self.return_url,
            cancel_url=self.cancel_url,
            description=description,
            items=[{"name": book.title, "amount_cents": book.price_cents} for book in payable],
            discount_cents=discount_cents,
        )
        order_id = _require_id(order, "order")
        purchase_ids = [
            self.repository.create_pending_purchase(
                user_id=user_id,
                audiobook_id=book.id,
                price_paid_cents=book.price_cents - share,
                currency=book.currency,
                paypal_order_id=order_id,
                discount_code_id=quote.discount.id if quote is not None else None,
                discount_cents=share,
            ).id
            for book, share in zip(payable, shares)
        ]
        metadata = {"items": str(len(payable)), "amount_cents": str(total_cents)}
        if quote is not None:
            metadata.update(discount_code=quote.discount.code, discount_cents=str(discount_cents))
        self.event_logger.log(
            CheckoutAuditEvent(
                event_type=CheckoutAuditEventType.ORDER_CREATED,
                actor_id=user_id,
                reference_id=order_id,
                metadata=metadata,
            )
        )
        return CreatedOrder(
            order_id=order_id,
            approval_url=find_link(order, "approve") or find_link(order, "payer-action"),
            purchase_ids=purchase_ids,
            total_cents=total_cents,
            currency=currency,
            discount_cents=discount_cents,
            discount_code=quote.discount.code if quote is not None else None,
        )

    def capture_order(self, *, user_id: str, order_id: str) -> CaptureOutcome:
        """Capture an approved order and unlock the purchased audiobooks.

        Capturing an order whose purchases are already completed returns a
        successful outcome without contacting PayPal again.
        """

        purchases = self.repository.list_purchases_by_order(order_id)
        if not purchases:
            raise LookupError("Order not found")
        if any(purchase.user_id != user_id for purchase in purchases):
            raise PermissionError("Cannot capture another user's order")
        if not any(purchase.status == PurchaseStatus.PENDING for purchase in purchases) and any(
            purchase.is_completed for purchase in purchases
        ):
            return CaptureOutcome(
                success=True,
                status="COMPLETED",
                order_id=order_id,
                already_captured=True,
                purchases=purchases,
            )

        result = self._gateway().capture_order(order_id)
        capture_status = str(result.get("status") or "UNKNOWN")
        if capture_status != "COMPLETED":
            if capture_status in _TERMINAL_ORDER_STATUSES:
                self.repository.mark_order_failed(order_id)
            self.event_logger.log(
                CheckoutAuditEvent(
                    event_type=CheckoutAuditEventType.ORDER_NOT_COMPLETED,
                    actor_id=user_id,
                    reference_id=order_id,
                    metadata={"status": capture_status},
                )
            )
            return CaptureOutcome(success=False, status=capture_status, order_id=order_id)

        payer = result.get("payer") if isinstance(result.get("payer"), dict) else {}
        self._complete(order_id, capture_id=_first_capture_id(result), payer_email=payer.get("email_address"))
        if payer.get("payer_id"):
            self.repository.set_payer_id(user_id, str(payer["payer_id"]))

        return CaptureOutcome(
            success=True,
            status=capture_status,
            order_id=order_id,
            purchases=self.repository.list_purchases_by_order(order_id),
        )

    def _complete(self, order_id: str, *, capture_id: Optional[str], payer_email: Optional[str]) -> None:
        """Grant a captured order and report rows PayPal charged but we could not grant."""

        pending = {
            purchase.id
            for purchase in self.repository.list_purchases_by_order(order_id)
            if purchase.status == PurchaseStatus.PENDING
        }
        completed = self.repository.complete_order(
            order_id,
            capture_id=capture_id,
            payer_email=payer_email,
            purchased_at=self._now(),
        )
        duplicates = [
            purchase
            for purchase in self.repository.list_purchases_by_order(order_id)
            if purchase.id in pending and purchase.status == PurchaseStatus.FAILED
        ]
        if duplicates:
            # Charged for an audiobook the buyer already owned; needs a manual refund.
            logger.warning(
                "Captured order contained already owned audiobooks",
                extra={"order_id": order_id, "purchase_ids": [p.id for p in duplicates]},
            )
            self.event_logger.log(
                CheckoutAuditEvent(
                    event_type=CheckoutAuditEventType.DUPLICATE_CHARGE,
                    actor_id=duplicates[0].user_id,
                    reference_id=order_id,
                    metadata={
                        "audiobook_ids": ",".join(p.audiobook_id for p in duplicates),
                        "amount_cents": str(sum(p.price_paid_cents for p in duplicates)),
                    },
                )
            )

        by_user: Dict[str, List[str]] = {}
        for purchase in completed:
            by_user.setdefault(purchase.user_id, []).append(purchase.audiobook_id)
        self._record_discount_uses(order_id, completed)

        for user_id, audiobook_ids in by_user.items():
            self.cart.remove_many(user_id, audiobook_ids)
            self.entitlement_invalidator.invalidate_user(user_id)
            self.event_logger.log(
                CheckoutAuditEvent(
                    event_type=CheckoutAuditEventType.ORDER_CAPTURED,
                    actor_id=user_id,
                    reference_id=order_id,
                    metadata={"audiobook_ids": ",".join(audiobook_ids)},
                )
            )

    def _record_discount_uses(self, order_id: str, completed: Sequence[Purchase]) -> None:
        redeemed: Dict[Tuple[str, str], int] = {}
        for purchase in completed:
            if purchase.discount_code_id:
                key = (purchase.discount_code_id, purchase.user_id)
                redeemed[key] = redeemed.get(key, 0) + purchase.discount_cents
        for (discount_code_id, user_id), discount_cents in redeemed.items():
            self.repository.record_discount_use(
                discount_code_id,
                user_id=user_id,
                paypal_order_id=order_id,
                discount_cents=discount_cents,
            )

    # Library views ---------------------------------------------------------

    def list_user_purchases(self, user_id: str) -> List[Purchase]:
        return self.repository.list_user_purchases(user_id)

    def get_billing_profile(self, user_id: str) -> Optional[BillingProfile]:
        return self.repository.get_billing_profile(user_id)

    def save_billing_profile(self, profile: BillingProfile) -> BillingProfile:
        return self.repository.upsert_billing_profile(profile)

    # Subscriptions ---------------------------------------------------------

    def list_plans(self, *, active_only: bool = True) -> List[SubscriptionPlan]:
        return self.repository.list_plans(active_only=active_only)

    def get_user_subscription(self, user_id: str) -> Optional[UserSubscription]:
        return self.repository.get_user_subscription(user_id)

    def create_subscription(self, *, user_id: str, plan_id: str) -> Dict[str, Optional[str]]:
        """Create a PayPal subscription server-side for redirect based flows."""

        current = self.repository.get_user_subscription(user_id)
        if current is not None and current.is_active(self._now()):
            raise ValueError("You already have an active subscription")

        plan = self._require_plan(plan_id)
        if not plan.paypal_plan_id:
            raise ValueError("Subscription plan is not linked to PayPal")

        result = self._gateway().create_subscription(
            plan_id=plan.paypal_plan_id,
            custom_id=user_id,
            brand_name=self.brand_name,
            return_url=self.return_url,
            cancel_url=self.cancel_url,
        )
        return {
            "subscription_id": _require_id(result, "subscription"),
            "approval_url": find_link(result, "approve"),
            "status": result.get("status"),
        }

    def activate_subscription(self, *, user_id: str, subscription_id: str, plan_id: str) -> UserSubscription:
        existing = self.repository.get_subscription_by_paypal_id(subscription_id)
        if existing is not None:
            if existing.user_id != user_id:
                raise PermissionError("Cannot activate another user's subscription")
            if existing.status == SubscriptionStatus.ACTIVE:
                return existing

        plan = self._require_plan(plan_id)
        details = self._gateway().get_subscription(subscription_id)
        remote_status = str(details.get("status") or "UNKNOWN")
        if remote_status != "ACTIVE":
            raise ValueError(f"Subscription is not active (status {remote_status})")

        custom_id = details.get("custom_id")
        if custom_id and str(custom_id) != user_id:
            raise PermissionError("Cannot activate another user's subscription")
        remote_plan = details.get("plan_id")
        if remote_plan and plan.paypal_plan_id and remote_plan != plan.paypal_plan_id:
            raise ValueError("Subscription does not belong to the selected plan")

        start = _parse_optional_datetime(details.get("start_time")) or self._now()
        billing_info = details.get("billing_info") if isinstance(details.get("billing_info"), dict) else {}
        period_end = _parse_optional_datetime(billing_info.get("next_billing_time")) or start + _DEFAULT_PERIOD

        subscription = self.repository.save_subscription(
            user_id=user_id,
            plan_id=plan.id,
            status=SubscriptionStatus.ACTIVE,
            paypal_subscription_id=subscription_id,
            current_period_start=start,
            current_period_end=period_end,
        )
        self.entitlement_invalidator.invalidate_user(user_id)
        self.event_logger.log(
            CheckoutAuditEvent(
                event_type=CheckoutAuditEventType.SUBSCRIPTION_ACTIVATED,
                actor_id=user_id,
                reference_id=subscription_id,
                metadata={"plan_id": plan.id},
            )
        )
        return subscription

    def cancel_subscription(self, *, user_id: str, subscription_id: str, reason: str) -> UserSubscription:
        subscription = self.repository.get_subscription_by_paypal_id(subscription_id)
        if subscription is None:
            raise LookupError("Subscription not found")
        if subscription.user_id != user_id:
            raise PermissionError("Cannot cancel another user's subscription")
        if subscription.status in {SubscriptionStatus.CANCELED, SubscriptionStatus.EXPIRED}:
            return subscription

        self._gateway().cancel_subscription(subscription_id, reason)
        updated = self.repository.update_subscription_status(
            subscription_id,
            status=SubscriptionStatus.CANCELED,
            canceled_at=self._now(),
        )
        if updated is None:
            raise RuntimeError("Failed to update subscription status")

        self.entitlement_invalidator.invalidate_user(user_id)
        self.event_logger.log(
            CheckoutAuditEvent(
                event_type=CheckoutAuditEventType.SUBSCRIPTION_CANCELED,
                actor_id=user_id,
                reference_id=subscription_id,
                metadata={"reason": reason},
            )
        )
        return updated

    def provision_plan(self, plan: SubscriptionPlan) -> Dict[str, str]:
        """Create the PayPal product and billing plan backing a local plan."""

        gateway = self._gateway()
        product_id = plan.paypal_product_id
        if not product_id:
            product = gateway.create_product(name=plan.name, description=plan.description)
            product_id = _require_id(product, "product")
        remote_plan = gateway.create_plan(
            product_id=product_id,
            name=plan.name,
            price_cents=plan.price_cents,
            currency=plan.currency,
            interval_months=plan.interval_months,
            trial_days=plan.trial_days,
            description=plan.description,
        )
        logger.info("Provisioned PayPal plan", extra={"plan_id": plan.id, "product_id": product_id})
        return {"paypal_product_id": product_id, "paypal_plan_id": _require_id(remote_plan, "plan")}

    def _require_plan(self, plan_id: str) -> SubscriptionPlan:
        plan = self.repository.get_plan(plan_id)
        if plan is None or not plan.is_active:
            raise LookupError("Subscription plan not found")
        return plan

    # Webhooks --------------------------------------------------------------

    def handle_webhook(
        self,
        event: PayPalWebhookEvent,
        *,
        headers: Mapping[str, str],
        raw_event: Mapping[str, Any],
    ) -> bool:
        """Verify and apply a PayPal webhook; returns ``False`` for duplicates."""

        config = self.repository.get_paypal_config()
        if config is None or not config.webhook_id:
            raise AccessError(
                code="webhook_not_configured",
                message="PayPal webhook verification is not configured",
                status_code=http_status.HTTP_503_SERVICE_UNAVAILABLE,
            )
        verified = self._gateway(config).verify_webhook_signature(
            webhook_id=config.webhook_id,
            headers=headers,
            event=raw_event,
        )
        if not verified:
            raise AccessError(
                code="invalid_signature",
                message="Webhook signature verification failed",
                status_code=http_status.HTTP_400_BAD_REQUEST,
            )

        if not self.repository.record_webhook_event(event):
            logger.info("Skipping duplicate PayPal webhook", extra={"event_id": event.event_id})
            return False

        try:
            event_type = PayPalWebhookEventType(event.event_type)
        except ValueError:
            logger.debug("Ignoring PayPal webhook", extra={"event_type": event.event_type})
            return True

        try:
            if event_type == PayPalWebhookEventType.CAPTURE_COMPLETED:
                self._handle_capture_completed(event)
            elif event_type == PayPalWebhookEventType.CAPTURE_REFUNDED:
                self._handle_capture_refunded(event)
            else:
                self._handle_subscription_event(event_type, event)
        except Exception:
            # Unmark so PayPal's redelivery is applied instead of skipped.
            logger.exception("PayPal webhook processing failed", extra={"event_id": event.event_id})
            self.repository.forget_webhook_event(event.event_id)
            raise
        return True

    def _handle_capture_completed(self, event: PayPalWebhookEvent) -> None:
        order_id = _related_order_id(event.resource)
        if not order_id:
            logger.warning("Capture webhook without order id", extra={"event_id": event.event_id})
            return
        capture_id = event.resource.get("id")
        self._complete(order_id, capture_id=str(capture_id) if capture_id else None, payer_email=None)

    def _handle_capture_refunded(self, event: PayPalWebhookEvent) -> None:
        # Completed purchases are permanent grants; refunds are audited only.
        self.event_logger.log(
            CheckoutAuditEvent(
                event_type=CheckoutAuditEventType.CAPTURE_REFUNDED,
                reference_id=_related_order_id(event.resource) or str(event.resource.get("id") or ""),
                metadata={"event_id": event.event_id},
            )
        )

    def _handle_subscription_event(self, event_type: PayPalWebhookEventType, event: PayPalWebhookEvent) -> None:
        subscription_id = event.resource.get("id")
        if not subscription_id:
            raise ValueError("subscription id missing from webhook resource")

        canceled_at: Optional[datetime] = None
        if event_type == PayPalWebhookEventType.SUBSCRIPTION_ACTIVATED:
            new_status = SubscriptionStatus.ACTIVE
        elif event_type == PayPalWebhookEventType.SUBSCRIPTION_EXPIRED:
            new_status = SubscriptionStatus.EXPIRED
        else:
            new_status = SubscriptionStatus.CANCELED
            canceled_at = self._now()

        updated = self.repository.update_subscription_status(
            str(subscription_id), status=new_status, canceled_at=canceled_at
        )
        if updated is None:
            logger.info(
                "Webhook for unknown subscription",
                extra={"subscription_id": subscription_id, "event_type": event_type.value},
            )
            return

        self.entitlement_invalidator.invalidate_user(updated.user_id)
        self.event_logger.log(
            CheckoutAuditEvent(
                event_type=CheckoutAuditEventType.SUBSCRIPTION_STATUS_CHANGED,
                actor_id=updated.user_id,
                reference_id=str(subscription_id),
                metadata={"status": new_status.value, "event_id": event.event_id},
            )
        )

    # Back-office -----------------------------------------------------------

    def list_purchases(self, *, status: Optional[PurchaseStatus] = None) -> List[Purchase]:
        return self.repository.list_purchases(status=status)

    def delete_pending_purchase(self, purchase_id: str) -> None:
        if not self.repository.delete_pending_purchase(purchase_id):
            raise ValueError("Only pending purchases can be deleted")

    def cleanup_pending(self) -> int:
        cutoff = self._now() - timedelta(hours=self.pending_max_age_hours)
        deleted = self.repository.delete_pending_before(cutoff)
        logger.info("Removed stale pending purchases", extra={"deleted": deleted})
        return deleted


def _require_id(payload: Mapping[str, Any], kind: str) -> str:
    identifier = payload.get("id")
    if not identifier:
        raise PayPalError(f"PayPal did not return a {kind} id", details=dict(payload))
    return str(identifier)


def _first_capture_id(result: Mapping[str, Any]) -> Optional[str]:
    try:
        capture = result["purchase_units"][0]["payments"]["captures"][0]
    except (KeyError, IndexError, TypeError):
        return None
    return str(capture.get("id")) if capture.get("id") else None


def _related_order_id(resource: Mapping[str, Any]) -> Optional[str]:
    supplementary = resource.get("supplementary_data")
    if not isinstance(supplementary, dict):
        return None
    related = supplementary.get("related_ids")
    if not isinstance(related, dict):
        return None
    order_id = related.get("order_id")
    return str(order_id) if order_id else None


def _parse_optional_datetime(value: object) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, str):
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    raise TypeError("Unsupported datetime value")


__all__ = [
    "BillingRepository",
    "CartStore",
    "CatalogLookup",
    "CheckoutEventLogger",
    "CheckoutService",
    "EntitlementInvalidator",
    "PaymentGateway",
]
