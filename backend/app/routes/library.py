"""Routes for favorites and the purchased library."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Response, status

from ..schemas.library import FavoriteListResponse, FavoriteStatusResponse, LibraryAudiobooksResponse
from ..services.library import get_library_service
from .catalog import _get_current_user, _service_errors

router = APIRouter(prefix="/api", tags=["library"])


@router.get("/audiobooks/{audiobook_id}/favorite", response_model=FavoriteStatusResponse)
def get_favorite_status(audiobook_id: str, *, current_user=Depends(_get_current_user)) -> FavoriteStatusResponse:
    is_favorite = get_library_service().is_favorite(str(current_user.id), audiobook_id)
    return FavoriteStatusResponse(is_favorite=is_favorite)


@router.post("/audiobooks/{audiobook_id}/favorite", response_model=FavoriteStatusResponse)
def add_favorite(audiobook_id: str, *, current_user=Depends(_get_current_user)) -> FavoriteStatusResponse:
    service = get_library_service()
    with _service_errors():
        service.add_favorite(str(current_user.id), audiobook_id)
    return FavoriteStatusResponse(is_favorite=True)


@router.delete("/audiobooks/{audiobook_id}/favorite", status_code=status.HTTP_204_NO_CONTENT)
def remove_favorite(audiobook_id: str, *, current_user=Depends(_get_current_user)) -> Response:
    service = get_library_service()
    with _service_errors():
        service.remove_favorite(str(current_user.id), audiobook_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/library/favorites", response_model=FavoriteListResponse)
def list_favorites(*, current_user=Depends(_get_current_user)) -> FavoriteListResponse:
    return FavoriteListResponse(favorites=get_library_service().list_favorites(str(current_user.id)))


@router.get("/library/purchases", response_model=LibraryAudiobooksResponse)
def list_purchased(*, current_user=Depends(_get_current_user)) -> LibraryAudiobooksResponse:
    return LibraryAudiobooksResponse(audiobooks=get_library_service().list_purchased(str(current_user.id)))


__all__ = [
    "router",
    "add_favorite",
    "get_favorite_status",
    "list_favorites",
    "list_purchased",
    "remove_favorite",
]
