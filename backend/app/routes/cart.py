"""Routes for the signed-in user's shopping cart."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Response, status

from ..schemas.library import CartCheckResponse, CartCountResponse, CartItemResponse, CartResponse
from ..services.library import get_library_service
from .catalog import _get_current_user, _service_errors

router = APIRouter(prefix="/api/cart", tags=["cart"])


@router.get("", response_model=CartResponse)
def get_cart(*, current_user=Depends(_get_current_user)) -> CartResponse:
    summary = get_library_service().get_cart(str(current_user.id))
    return CartResponse.from_summary(summary)


@router.get("/count", response_model=CartCountResponse)
def get_cart_count(*, current_user=Depends(_get_current_user)) -> CartCountResponse:
    return CartCountResponse(item_count=get_library_service().cart_count(str(current_user.id)))


@router.get("/check/{audiobook_id}", response_model=CartCheckResponse)
def check_cart(audiobook_id: str, *, current_user=Depends(_get_current_user)) -> CartCheckResponse:
    in_cart = get_library_service().is_in_cart(str(current_user.id), audiobook_id)
    return CartCheckResponse(is_in_cart=in_cart)


@router.post("/{audiobook_id}", response_model=CartItemResponse, status_code=status.HTTP_201_CREATED)
def add_to_cart(audiobook_id: str, *, current_user=Depends(_get_current_user)) -> CartItemResponse:
    """Add an audiobook to the cart; adding it twice returns the existing entry."""
    service = get_library_service()
    with _service_errors():
        item = service.add_to_cart(str(current_user.id), audiobook_id)
    return CartItemResponse(item=item)


@router.delete("/{audiobook_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_from_cart(audiobook_id: str, *, current_user=Depends(_get_current_user)) -> Response:
    get_library_service().remove_from_cart(str(current_user.id), audiobook_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("", status_code=status.HTTP_204_NO_CONTENT)
def clear_cart(*, current_user=Depends(_get_current_user)) -> Response:
    get_library_service().clear_cart(str(current_user.id))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


__all__ = [
    "router",
    "add_to_cart",
    "check_cart",
    "clear_cart",
    "get_cart",
    "get_cart_count",
    "remove_from_cart",
]
