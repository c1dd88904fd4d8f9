"""API routes for PayPal orders, captures, subscriptions and webhooks."""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from fastapi.concurrency import run_in_threadpool
from pydantic import ValidationError

from ..schemas.paypal import (
    ActivateSubscriptionRequest,
    CancelSubscriptionRequest,
    CaptureOrderResponse,
    CartOrderRequest,
    CreateOrderRequest,
    CreateOrderResponse,
    CreateSubscriptionRequest,
    CreateSubscriptionResponse,
    PayPalPublicConfigResponse,
    PayPalStatusResponse,
    PayPalWebhookPayload,
    SubscriptionResponse,
)
from ..services.checkout import get_checkout_service
from .catalog import _get_current_user, _service_errors

logger = logging.getLogger("billing")

router = APIRouter(prefix="/api/paypal", tags=["paypal"])


@router.get("/config", response_model=PayPalPublicConfigResponse)
def get_public_config() -> PayPalPublicConfigResponse:
    config = get_checkout_service().get_public_config()
    if config is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="PayPal is not configured")
    return PayPalPublicConfigResponse.from_config(config)


@router.get("/status", response_model=PayPalStatusResponse)
def get_status() -> PayPalStatusResponse:
    config = get_checkout_service().get_public_config()
    return PayPalStatusResponse(
        configured=config is not None,
        environment=config.environment if config is not None else None,
    )


@router.post("/orders", response_model=CreateOrderResponse)
def create_order(
    payload: CreateOrderRequest,
    *,
    current_user=Depends(_get_current_user),
) -> CreateOrderResponse:
    service = get_checkout_service()
    with _service_errors():
        created = service.create_order(user_id=str(current_user.id), audiobook_id=payload.audiobook_id)
    return CreateOrderResponse.from_created(created)


@router.post("/orders/{order_id}/capture", response_model=CaptureOrderResponse)
def capture_order(
    order_id: str,
    *,
    current_user=Depends(_get_current_user),
) -> CaptureOrderResponse:
    service = get_checkout_service()
    with _service_errors():
        outcome = service.capture_order(user_id=str(current_user.id), order_id=order_id)
    return CaptureOrderResponse.from_outcome(outcome)


@router.post("/cart-orders", response_model=CreateOrderResponse)
def create_cart_order(
    payload: Optional[CartOrderRequest] = None,
    *,
    current_user=Depends(_get_current_user),
) -> CreateOrderResponse:
    service = get_checkout_service()
    discount_code = payload.discount_code if payload is not None else None
    with _service_errors():
        created = service.create_cart_order(user_id=str(current_user.id), discount_code=discount_code)
    return CreateOrderResponse.from_created(created)


@router.post("/cart-orders/{order_id}/capture", response_model=CaptureOrderResponse)
def capture_cart_order(
    order_id: str,
    *,
    current_user=Depends(_get_current_user),
) -> CaptureOrderResponse:
    service = get_checkout_service()
    with _service_errors():
        outcome = service.capture_order(user_id=str(current_user.id), order_id=order_id)
    return CaptureOrderResponse.from_outcome(outcome)


@router.post("/subscriptions", response_model=CreateSubscriptionResponse)
def create_subscription(
    payload: CreateSubscriptionRequest,
    *,
    current_user=Depends(_get_current_user),
) -> CreateSubscriptionResponse:
    service = get_checkout_service()
    with _service_errors():
        result = service.create_subscription(user_id=str(current_user.id), plan_id=payload.plan_id)
    return CreateSubscriptionResponse(
        subscription_id=result["subscription_id"],
        approval_url=result.get("approval_url"),
        status=result.get("status"),
    )


@router.post("/subscriptions/{subscription_id}/activate", response_model=SubscriptionResponse)
def activate_subscription(
    subscription_id: str,
    payload: ActivateSubscriptionRequest,
    *,
    current_user=Depends(_get_current_user),
) -> SubscriptionResponse:
    service = get_checkout_service()
    with _service_errors():
        subscription = service.activate_subscription(
            user_id=str(current_user.id),
            subscription_id=subscription_id,
            plan_id=payload.plan_id,
        )
    return SubscriptionResponse.from_subscription(subscription)


@router.post("/subscriptions/{subscription_id}/cancel", response_model=SubscriptionResponse)
def cancel_subscription(
    subscription_id: str,
    payload: CancelSubscriptionRequest,
    *,
    current_user=Depends(_get_current_user),
) -> SubscriptionResponse:
    service = get_checkout_service()
    with _service_errors():
        subscription = service.cancel_subscription(
            user_id=str(current_user.id),
            subscription_id=subscription_id,
            reason=payload.reason,
        )
    return SubscriptionResponse.from_subscription(subscription)


@router.post("/webhook", status_code=status.HTTP_204_NO_CONTENT)
async def receive_webhook(request: Request) -> Response:
    service = get_checkout_service()
    try:
        raw_event = await request.json()
        payload = PayPalWebhookPayload.model_validate(raw_event)
    except (ValueError, ValidationError) as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid webhook payload") from exc

    with _service_errors():
        processed = await run_in_threadpool(
            service.handle_webhook,
            payload.to_event(),
            headers=dict(request.headers),
            raw_event=raw_event,
        )
    if not processed:
        logger.debug("Duplicate PayPal webhook acknowledged", extra={"event_id": payload.id})
    return Response(status_code=status.HTTP_204_NO_CONTENT)


__all__ = [
    "router",
    "activate_subscription",
    "cancel_subscription",
    "capture_cart_order",
    "capture_order",
    "create_cart_order",
    "create_order",
    "create_subscription",
    "get_public_config",
    "get_status",
    "receive_webhook",
]
