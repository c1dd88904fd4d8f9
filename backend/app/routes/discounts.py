"""Discount code lookup for the checkout page."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from ..billing import DiscountRejected
from ..schemas.paypal import ValidateDiscountRequest, ValidateDiscountResponse
from ..services.checkout import get_checkout_service
from .catalog import _get_current_user, _service_errors

logger = logging.getLogger("billing")

router = APIRouter(prefix="/api/discount-codes", tags=["discount-codes"])


@router.post("/validate", response_model=ValidateDiscountResponse)
def validate_discount_code(
    payload: ValidateDiscountRequest,
    *,
    current_user=Depends(_get_current_user),
) -> ValidateDiscountResponse:
    """Preview a code against ``totalCents`` or, when omitted, the caller's cart."""

    service = get_checkout_service()
    with _service_errors():
        try:
            quote = service.quote_discount(
                user_id=str(current_user.id),
                code=payload.code,
                total_cents=payload.total_cents,
                for_subscription=payload.for_subscription,
            )
        except DiscountRejected as exc:
            logger.info("Discount code rejected", extra={"user_id": str(current_user.id), "reason": str(exc)})
            return ValidateDiscountResponse(valid=False, error=str(exc))
    return ValidateDiscountResponse.from_quote(quote)


__all__ = ["router", "validate_discount_code"]
