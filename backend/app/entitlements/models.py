"""Domain models for playback entitlement decisions."""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Optional

from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:  # pragma: no cover
    from ..catalog.models import Chapter


class UserRole(str, Enum):
    """Platform roles recognised by the access rules."""

    LISTENER = "LISTENER"
    CREATOR = "CREATOR"
    ADMIN = "ADMIN"


class SubscriptionStatus(str, Enum):
    """Lifecycle states for a user's subscription."""

    ACTIVE = "ACTIVE"
    PAST_DUE = "PAST_DUE"
    CANCELED = "CANCELED"
    EXPIRED = "EXPIRED"


class SubscriptionRecord(BaseModel):
    """Minimal subscription view needed to decide entitlement."""

    id: str
    user_id: str
    plan_id: str
    status: SubscriptionStatus
    current_period_end: Optional[datetime] = None

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    def is_active(self, now: Optional[datetime] = None) -> bool:
        """Return ``True`` while the subscription grants platform-wide access."""

        if self.status != SubscriptionStatus.ACTIVE:
            return False
        if self.current_period_end is None:
            return True
        moment = now or datetime.now(timezone.utc)
        return self.current_period_end > moment


class AccessInfo(BaseModel):
    """Outcome of an entitlement check for one user and one audiobook."""

    has_access: bool = Field(alias="hasAccess")
    is_purchased: bool = Field(default=False, alias="isPurchased")
    is_subscriber: bool = Field(default=False, alias="isSubscriber")
    is_free: bool = Field(default=False, alias="isFree")

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @classmethod
    def denied(cls) -> "AccessInfo":
        return cls(has_access=False)


def can_play_chapter(chapter: Chapter, access: AccessInfo) -> bool:
    """Sample chapters are always playable; the rest follow the audiobook."""

    return chapter.is_sample or access.has_access


__all__ = ["AccessInfo", "SubscriptionRecord", "SubscriptionStatus", "UserRole", "can_play_chapter"]
