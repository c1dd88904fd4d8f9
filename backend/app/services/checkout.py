"""Application wiring for PayPal checkout."""
from __future__ import annotations

import logging
from functools import lru_cache

from fastapi import status as http_status

from ..billing import (
    CheckoutAuditEvent,
    CheckoutEventLogger,
    CheckoutService,
    PayPalClient,
    PayPalConfig,
    PayPalEnvironment,
    PaymentGateway,
)
from ..billing.repository import PostgresBillingRepository
from ..catalog.repository import PostgresCatalogRepository
from ..config import get_app_config
from ..gates import AccessError
from ..library import PostgresLibraryRepository
from .entitlements import get_entitlement_service


logger = logging.getLogger("billing")


class LoggingCheckoutEventLogger(CheckoutEventLogger):
    """Event logger forwarding checkout audit events to logging."""

    def log(self, event: CheckoutAuditEvent) -> None:
        logger.info(
            "Checkout event %s reference=%s actor=%s metadata=%s",
            event.event_type.value,
            event.reference_id,
            event.actor_id,
            event.metadata,
        )


@lru_cache(maxsize=4)
def _paypal_client(client_id: str, environment: PayPalEnvironment) -> PayPalClient:
    # One client per credential pair keeps the OAuth token cache warm.
    settings = get_app_config()
    return PayPalClient(
        client_id,
        settings.paypal_client_secret or "",
        environment=environment,
        timeout=settings.paypal_timeout_seconds,
    )


def paypal_gateway(config: PayPalConfig) -> PaymentGateway:
    if not get_app_config().paypal_client_secret:
        logger.error("PAYPAL_CLIENT_SECRET is not set; PayPal calls are disabled")
        raise AccessError(
            code="paypal_not_configured",
            message="PayPal is not configured",
            status_code=http_status.HTTP_503_SERVICE_UNAVAILABLE,
        )
    return _paypal_client(config.client_id, config.environment)


@lru_cache(maxsize=1)
def get_checkout_service() -> CheckoutService:
    settings = get_app_config()
    return CheckoutService(
        repository=PostgresBillingRepository(),
        gateway_factory=paypal_gateway,
        catalog=PostgresCatalogRepository(),
        cart=PostgresLibraryRepository(),
        event_logger=LoggingCheckoutEventLogger(),
        entitlement_invalidator=get_entitlement_service(),
        brand_name=settings.brand_name,
        return_url=settings.checkout_return_url,
        cancel_url=settings.checkout_cancel_url,
        pending_max_age_hours=settings.pending_purchase_max_age_hours,
    )


__all__ = ["LoggingCheckoutEventLogger", "get_checkout_service", "paypal_gateway"]
