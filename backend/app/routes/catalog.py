"""Public catalog routes plus the auth and error helpers shared by the API."""
from __future__ import annotations

import os
from contextlib import contextmanager
from typing import Iterator, Optional

from fastapi import APIRouter, Cookie, Depends, HTTPException, Query, status

from ..billing import PayPalError
from ..catalog import Chapter
from ..gates import AccessError
from ..schemas.catalog import (
    AudiobookDetailResponse,
    AudiobookListResponse,
    ExternalServiceListResponse,
)
from ..services.admin import get_admin_service
from ..services.catalog import get_catalog_service


try:
    from backend import app_context
except ModuleNotFoundError as exc:  # pragma: no cover
    if exc.name != "backend":
        raise
    from ... import app_context  # type: ignore[no-redef]


_SESSION_COOKIE_NAME = os.getenv("SESSION_COOKIE_NAME", "session")


def _get_current_user(
    session_token: Optional[str] = Cookie(None, alias=_SESSION_COOKIE_NAME),
):
    return app_context.get_current_user(session_token=session_token)


def _get_optional_current_user(
    session_token: Optional[str] = Cookie(None, alias=_SESSION_COOKIE_NAME),
):
    return app_context.get_optional_current_user(session_token=session_token)


def _require_admin(current_user=Depends(_get_current_user)):
    return app_context.require_admin(current_user)


@contextmanager
def _service_errors() -> Iterator[None]:
    """Translate service exceptions into HTTP responses at the route boundary."""

    try:
        yield
    except AccessError as exc:
        raise exc.to_http_exception() from exc
    except PayPalError as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={"error": "paypal_error", "message": str(exc), "paypal_status": exc.status_code},
        ) from exc
    except LookupError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


router = APIRouter(prefix="/api", tags=["catalog"])


@router.get("/audiobooks", response_model=AudiobookListResponse)
def list_audiobooks(
    category: Optional[str] = Query(default=None, max_length=100),
    search: Optional[str] = Query(default=None, max_length=200),
    limit: int = Query(default=50, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
) -> AudiobookListResponse:
    service = get_catalog_service()
    audiobooks = service.list_audiobooks(category=category, search=search, limit=limit, offset=offset)
    return AudiobookListResponse(audiobooks=audiobooks)


@router.get("/audiobooks/{audiobook_id}", response_model=AudiobookDetailResponse)
def get_audiobook(
    audiobook_id: str,
    *,
    current_user=Depends(_get_optional_current_user),
) -> AudiobookDetailResponse:
    service = get_catalog_service()
    with _service_errors():
        detail = service.get_audiobook_detail(current_user, audiobook_id)
    return AudiobookDetailResponse.from_detail(detail)


@router.get("/chapters/{chapter_id}", response_model=Chapter)
def get_chapter(
    chapter_id: str,
    *,
    current_user=Depends(_get_optional_current_user),
) -> Chapter:
    service = get_catalog_service()
    with _service_errors():
        return service.get_chapter(current_user, chapter_id)


@router.get("/external-services", response_model=ExternalServiceListResponse)
def list_external_services() -> ExternalServiceListResponse:
    services = get_admin_service().list_external_services(active_only=True)
    return ExternalServiceListResponse(services=services)


__all__ = [
    "router",
    "get_audiobook",
    "get_chapter",
    "list_audiobooks",
    "list_external_services",
]
