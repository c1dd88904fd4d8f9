"""Records managed from the admin back-office."""
from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..entitlements.models import UserRole

_SERVICE_ACCOUNT_FIELDS = ("project_id", "private_key", "client_email")


class AdminUser(BaseModel):
    """User row as shown to administrators; never carries the password hash."""

    id: str
    username: str
    email: str
    role: UserRole = UserRole.LISTENER
    is_active: bool = True
    requires_approval: bool = False
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class ExternalService(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    url: str
    icon_name: str = "ExternalLink"
    sort_order: int = 0
    is_active: bool = True
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class EmailConfig(BaseModel):
    """SMTP settings; at most one row is active at a time."""

    id: str
    smtp_host: str
    smtp_port: int = Field(default=587, ge=1, le=65535)
    smtp_secure: bool = False
    smtp_user: str
    smtp_password: str = Field(repr=False)
    from_email: str
    from_name: str = "Audivia"
    is_active: bool = False
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class DriveConfig(BaseModel):
    """Google Drive storage settings used for cover art and audio uploads."""

    id: str
    service_account_email: str
    service_account_key: str = Field(repr=False)
    folder_id_images: str
    folder_id_audio: str
    is_active: bool = False
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class BulkFailure(BaseModel):
    id: str
    reason: str

    model_config = ConfigDict(frozen=True)


class BulkResult(BaseModel):
    """Per-identifier outcome of a bulk admin operation."""

    success_ids: List[str] = Field(default_factory=list)
    failed: List[BulkFailure] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True, frozen=True)


def parse_service_account_key(raw: str) -> Dict[str, Any]:
    """Decode a Google service account key and check its mandatory fields.

    Raises ``ValueError`` when the text is not a JSON object of type
    ``service_account`` carrying a project id, private key and client email.
    """

    try:
        parsed = json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise ValueError("Invalid service account key JSON") from exc
    if not isinstance(parsed, dict) or parsed.get("type") != "service_account":
        raise ValueError("Invalid service account key JSON")
    if any(not parsed.get(field) for field in _SERVICE_ACCOUNT_FIELDS):
        raise ValueError("Invalid service account key JSON")
    return parsed


__all__ = [
    "AdminUser",
    "BulkFailure",
    "BulkResult",
    "DriveConfig",
    "EmailConfig",
    "ExternalService",
    "parse_service_account_key",
]
