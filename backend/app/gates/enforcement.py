"""Helpers for enforcing access rules on API and service layers."""
from __future__ import annotations

from typing import Any, Optional

from fastapi import status

from ..entitlements.models import AccessInfo, UserRole, can_play_chapter
from .exceptions import AccessError, ConflictError


def require_playback(chapter: Any, access: AccessInfo) -> None:
    """Ensure a chapter may be streamed.

    Parameters
    ----------
    chapter:
        The chapter being requested; sample chapters always pass.
    access:
        Decision produced by the entitlement resolver for the chapter's
        audiobook.
    """

    if can_play_chapter(chapter, access):
        return
    raise AccessError(
        code="purchase_required",
        message="Purchase required to access this chapter",
    )


def require_role(user: Any, role: UserRole) -> None:
    if getattr(user, "role", None) != role:
        raise AccessError(
            code="role_required",
            message=f"{role.value.title()} role required",
            detail={"required_role": role.value},
        )


def require_not_purchased(already_purchased: bool) -> None:
    if already_purchased:
        raise ConflictError("already_purchased", "You already own this audiobook")


def require_priced(is_priced: bool) -> None:
    if not is_priced:
        raise AccessError(
            code="free_audiobook",
            message="Free audiobooks do not need to be purchased",
            status_code=status.HTTP_400_BAD_REQUEST,
        )


def require_complete_billing_profile(profile: Optional[Any]) -> None:
    """Block checkout until the billing profile carries every mandatory field."""

    missing = list(profile.missing_fields()) if profile is not None else ["profile"]
    if missing:
        raise ConflictError(
            "billing_profile_incomplete",
            "Complete your billing profile before purchasing",
            detail={"missing_fields": missing},
        )
