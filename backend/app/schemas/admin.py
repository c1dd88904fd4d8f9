"""API schemas for the admin back-office."""
from __future__ import annotations

from datetime import datetime
from typing import Annotated, List, Optional
from uuid import UUID

from pydantic import AfterValidator, BaseModel, ConfigDict, EmailStr, Field, field_validator

from ..admin import AdminUser, BulkFailure, BulkResult, DriveConfig, EmailConfig, ExternalService, parse_service_account_key
from ..billing import DiscountCode, DiscountType, PayPalConfig, PayPalEnvironment, Purchase, SubscriptionPlan
from ..catalog import Audiobook, Chapter, ContentStatus, Visibility
from ..entitlements import UserRole

MAX_BULK_IDS = 50


class BulkIdsRequest(BaseModel):
    ids: List[UUID] = Field(min_length=1, max_length=MAX_BULK_IDS)

    model_config = ConfigDict(populate_by_name=True)

    def id_strings(self) -> List[str]:
        return [str(item) for item in self.ids]


class BulkRoleRequest(BulkIdsRequest):
    role: UserRole


class BulkActiveRequest(BulkIdsRequest):
    is_active: bool = Field(alias="isActive")


class BulkStatusRequest(BulkIdsRequest):
    status: ContentStatus


class BulkResultResponse(BaseModel):
    success_ids: List[str] = Field(alias="successIds")
    failed: List[BulkFailure]

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_result(cls, result: BulkResult) -> "BulkResultResponse":
        return cls(
            success_ids=list(result.success_ids),
            failed=list(result.failed),
        )


# Users ----------------------------------------------------------------------


class UserListResponse(BaseModel):
    users: List[AdminUser]

    model_config = ConfigDict(populate_by_name=True)


class UserRoleRequest(BaseModel):
    role: UserRole


class UserActiveRequest(BaseModel):
    is_active: bool = Field(alias="isActive")

    model_config = ConfigDict(populate_by_name=True)


class UserApprovalRequest(BaseModel):
    requires_approval: bool = Field(alias="requiresApproval")

    model_config = ConfigDict(populate_by_name=True)


# Audiobooks -----------------------------------------------------------------


class AudiobookCreateRequest(BaseModel):
    title: str = Field(min_length=1, max_length=300)
    author: str = Field(min_length=1, max_length=200)
    narrator: Optional[str] = Field(default=None, max_length=200)
    description: str = ""
    cover_art_url: Optional[str] = Field(alias="coverArtUrl", default=None)
    category: str = Field(default="General", min_length=1, max_length=100)
    language: str = Field(default="es", min_length=2, max_length=10)
    price_cents: int = Field(alias="priceCents", default=0, ge=0)
    currency: str = Field(default="EUR", min_length=3, max_length=3)
    is_free: bool = Field(alias="isFree", default=False)
    status: ContentStatus = ContentStatus.DRAFT
    visibility: Visibility = Visibility.PRIVATE
    publisher_id: Optional[str] = Field(alias="publisherId", default=None)

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, value: str) -> str:
        return value.upper()


class AudiobookUpdateRequest(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=300)
    author: Optional[str] = Field(default=None, min_length=1, max_length=200)
    narrator: Optional[str] = Field(default=None, max_length=200)
    description: Optional[str] = None
    cover_art_url: Optional[str] = Field(alias="coverArtUrl", default=None)
    category: Optional[str] = Field(default=None, min_length=1, max_length=100)
    language: Optional[str] = Field(default=None, min_length=2, max_length=10)
    price_cents: Optional[int] = Field(alias="priceCents", default=None, ge=0)
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    is_free: Optional[bool] = Field(alias="isFree", default=None)
    status: Optional[ContentStatus] = None
    visibility: Optional[Visibility] = None

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("currency")
    @classmethod
    def _upper_currency(cls, value: Optional[str]) -> Optional[str]:
        return value.upper() if value else value


class StatusRequest(BaseModel):
    status: ContentStatus


class AudiobookListResponse(BaseModel):
    audiobooks: List[Audiobook]

    model_config = ConfigDict(populate_by_name=True)


# Chapters -------------------------------------------------------------------


class ChapterCreateRequest(BaseModel):
    audiobook_id: UUID = Field(alias="audiobookId")
    title: str = Field(min_length=1, max_length=300)
    chapter_number: int = Field(alias="chapterNumber", ge=1)
    audio_url: Optional[str] = Field(alias="audioUrl", default=None)
    duration_seconds: int = Field(alias="durationSeconds", default=0, ge=0)
    is_sample: bool = Field(alias="isSample", default=False)
    status: ContentStatus = ContentStatus.DRAFT
    visibility: Visibility = Visibility.PRIVATE

    model_config = ConfigDict(populate_by_name=True)


class ChapterUpdateRequest(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=300)
    chapter_number: Optional[int] = Field(alias="chapterNumber", default=None, ge=1)
    audio_url: Optional[str] = Field(alias="audioUrl", default=None)
    duration_seconds: Optional[int] = Field(alias="durationSeconds", default=None, ge=0)
    is_sample: Optional[bool] = Field(alias="isSample", default=None)
    status: Optional[ContentStatus] = None
    visibility: Optional[Visibility] = None

    model_config = ConfigDict(populate_by_name=True)


class ChapterListResponse(BaseModel):
    chapters: List[Chapter]

    model_config = ConfigDict(populate_by_name=True)


# External services ----------------------------------------------------------


class ExternalServiceCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    url: str = Field(min_length=1, max_length=500)
    icon_name: str = Field(alias="iconName", default="ExternalLink", max_length=50)
    sort_order: int = Field(alias="sortOrder", default=0)
    is_active: bool = Field(alias="isActive", default=True)

    model_config = ConfigDict(populate_by_name=True)


class ExternalServiceUpdateRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    url: Optional[str] = Field(default=None, min_length=1, max_length=500)
    icon_name: Optional[str] = Field(alias="iconName", default=None, max_length=50)
    sort_order: Optional[int] = Field(alias="sortOrder", default=None)
    is_active: Optional[bool] = Field(alias="isActive", default=None)

    model_config = ConfigDict(populate_by_name=True)


class ExternalServiceAdminListResponse(BaseModel):
    services: List[ExternalService]

    model_config = ConfigDict(populate_by_name=True)


# Discount codes -------------------------------------------------------------


class DiscountCodeCreateRequest(BaseModel):
    code: str = Field(min_length=1, max_length=64)
    description: Optional[str] = Field(default=None, max_length=500)
    type: DiscountType
    value: int = Field(gt=0)
    min_purchase_cents: int = Field(alias="minPurchaseCents", default=0, ge=0)
    max_uses_total: Optional[int] = Field(alias="maxUsesTotal", default=None, gt=0)
    max_uses_per_user: Optional[int] = Field(alias="maxUsesPerUser", default=1, gt=0)
    valid_from: Optional[datetime] = Field(alias="validFrom", default=None)
    valid_until: Optional[datetime] = Field(alias="validUntil", default=None)
    is_active: bool = Field(alias="isActive", default=True)
    applies_to_purchases: bool = Field(alias="appliesToPurchases", default=True)
    applies_to_subscriptions: bool = Field(alias="appliesToSubscriptions", default=False)

    model_config = ConfigDict(populate_by_name=True)


class DiscountCodeUpdateRequest(BaseModel):
    code: Optional[str] = Field(default=None, min_length=1, max_length=64)
    description: Optional[str] = Field(default=None, max_length=500)
    type: Optional[DiscountType] = None
    value: Optional[int] = Field(default=None, gt=0)
    min_purchase_cents: Optional[int] = Field(alias="minPurchaseCents", default=None, ge=0)
    max_uses_total: Optional[int] = Field(alias="maxUsesTotal", default=None, gt=0)
    max_uses_per_user: Optional[int] = Field(alias="maxUsesPerUser", default=None, gt=0)
    valid_from: Optional[datetime] = Field(alias="validFrom", default=None)
    valid_until: Optional[datetime] = Field(alias="validUntil", default=None)
    is_active: Optional[bool] = Field(alias="isActive", default=None)
    applies_to_purchases: Optional[bool] = Field(alias="appliesToPurchases", default=None)
    applies_to_subscriptions: Optional[bool] = Field(alias="appliesToSubscriptions", default=None)

    model_config = ConfigDict(populate_by_name=True)


class DiscountCodeListResponse(BaseModel):
    discount_codes: List[DiscountCode] = Field(alias="discountCodes")

    model_config = ConfigDict(populate_by_name=True)


# Email configuration --------------------------------------------------------


class EmailConfigCreateRequest(BaseModel):
    smtp_host: str = Field(alias="smtpHost", min_length=1)
    smtp_port: int = Field(alias="smtpPort", default=587, ge=1, le=65535)
    smtp_secure: bool = Field(alias="smtpSecure", default=False)
    smtp_user: str = Field(alias="smtpUser", min_length=1)
    smtp_password: str = Field(alias="smtpPassword", min_length=1, repr=False)
    from_email: EmailStr = Field(alias="fromEmail")
    from_name: str = Field(alias="fromName", default="Audivia", min_length=1)
    is_active: bool = Field(alias="isActive", default=False)

    model_config = ConfigDict(populate_by_name=True)


class EmailConfigUpdateRequest(BaseModel):
    smtp_host: Optional[str] = Field(alias="smtpHost", default=None, min_length=1)
    smtp_port: Optional[int] = Field(alias="smtpPort", default=None, ge=1, le=65535)
    smtp_secure: Optional[bool] = Field(alias="smtpSecure", default=None)
    smtp_user: Optional[str] = Field(alias="smtpUser", default=None, min_length=1)
    smtp_password: Optional[str] = Field(alias="smtpPassword", default=None, min_length=1, repr=False)
    from_email: Optional[EmailStr] = Field(alias="fromEmail", default=None)
    from_name: Optional[str] = Field(alias="fromName", default=None, min_length=1)
    is_active: Optional[bool] = Field(alias="isActive", default=None)

    model_config = ConfigDict(populate_by_name=True)


class EmailConfigView(BaseModel):
    """Email configuration without the SMTP password."""

    id: str
    smtp_host: str = Field(alias="smtpHost")
    smtp_port: int = Field(alias="smtpPort")
    smtp_secure: bool = Field(alias="smtpSecure")
    smtp_user: str = Field(alias="smtpUser")
    from_email: str = Field(alias="fromEmail")
    from_name: str = Field(alias="fromName")
    is_active: bool = Field(alias="isActive")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_config(cls, config: EmailConfig) -> "EmailConfigView":
        return cls(**config.model_dump(exclude={"smtp_password", "updated_at"}))


# Drive configuration --------------------------------------------------------


def _check_service_account_key(value: str) -> str:
    parse_service_account_key(value)
    return value


ServiceAccountKey = Annotated[str, AfterValidator(_check_service_account_key)]


class DriveConfigCreateRequest(BaseModel):
    service_account_email: EmailStr = Field(alias="serviceAccountEmail")
    service_account_key: ServiceAccountKey = Field(alias="serviceAccountKey", repr=False)
    folder_id_images: str = Field(alias="folderIdImages", min_length=1)
    folder_id_audio: str = Field(alias="folderIdAudio", min_length=1)
    is_active: bool = Field(alias="isActive", default=False)

    model_config = ConfigDict(populate_by_name=True)


class DriveConfigUpdateRequest(BaseModel):
    service_account_email: Optional[EmailStr] = Field(alias="serviceAccountEmail", default=None)
    service_account_key: Optional[ServiceAccountKey] = Field(alias="serviceAccountKey", default=None, repr=False)
    folder_id_images: Optional[str] = Field(alias="folderIdImages", default=None, min_length=1)
    folder_id_audio: Optional[str] = Field(alias="folderIdAudio", default=None, min_length=1)
    is_active: Optional[bool] = Field(alias="isActive", default=None)

    model_config = ConfigDict(populate_by_name=True)


class DriveConfigView(BaseModel):
    """Drive configuration without the service account key."""

    id: str
    service_account_email: str = Field(alias="serviceAccountEmail")
    folder_id_images: str = Field(alias="folderIdImages")
    folder_id_audio: str = Field(alias="folderIdAudio")
    is_active: bool = Field(alias="isActive")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_config(cls, config: DriveConfig) -> "DriveConfigView":
        return cls(**config.model_dump(exclude={"service_account_key", "updated_at"}))


# Subscription plans ---------------------------------------------------------


class PlanCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    price_cents: int = Field(alias="priceCents", ge=0)
    currency: str = Field(default="EUR", min_length=3, max_length=3)
    interval_months: int = Field(alias="intervalMonths", default=1, ge=1, le=12)
    trial_days: int = Field(alias="trialDays", default=0, ge=0, le=365)
    paypal_plan_id: Optional[str] = Field(alias="paypalPlanId", default=None)
    paypal_product_id: Optional[str] = Field(alias="paypalProductId", default=None)
    is_active: bool = Field(alias="isActive", default=True)

    model_config = ConfigDict(populate_by_name=True)


class PlanUpdateRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    price_cents: Optional[int] = Field(alias="priceCents", default=None, ge=0)
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    interval_months: Optional[int] = Field(alias="intervalMonths", default=None, ge=1, le=12)
    trial_days: Optional[int] = Field(alias="trialDays", default=None, ge=0, le=365)
    paypal_plan_id: Optional[str] = Field(alias="paypalPlanId", default=None)
    paypal_product_id: Optional[str] = Field(alias="paypalProductId", default=None)
    is_active: Optional[bool] = Field(alias="isActive", default=None)

    model_config = ConfigDict(populate_by_name=True)


class PlanListResponse(BaseModel):
    plans: List[SubscriptionPlan]

    model_config = ConfigDict(populate_by_name=True)


# PayPal and purchases -------------------------------------------------------


class PayPalConfigRequest(BaseModel):
    client_id: str = Field(alias="clientId", min_length=1)
    webhook_id: Optional[str] = Field(alias="webhookId", default=None)
    environment: PayPalEnvironment = PayPalEnvironment.SANDBOX
    is_active: bool = Field(alias="isActive", default=True)

    model_config = ConfigDict(populate_by_name=True)

    def to_config(self) -> PayPalConfig:
        return PayPalConfig(
            client_id=self.client_id,
            webhook_id=self.webhook_id or None,
            environment=self.environment,
            is_active=self.is_active,
        )


class PayPalConfigResponse(BaseModel):
    config: Optional[PayPalConfig] = None

    model_config = ConfigDict(populate_by_name=True)


class PurchaseAdminListResponse(BaseModel):
    purchases: List[Purchase]

    model_config = ConfigDict(populate_by_name=True)


class CleanupResponse(BaseModel):
    deleted: int


__all__ = [
    "AudiobookCreateRequest",
    "AudiobookListResponse",
    "AudiobookUpdateRequest",
    "BulkActiveRequest",
    "BulkIdsRequest",
    "BulkResultResponse",
    "BulkRoleRequest",
    "BulkStatusRequest",
    "ChapterCreateRequest",
    "ChapterListResponse",
    "ChapterUpdateRequest",
    "CleanupResponse",
    "DiscountCodeCreateRequest",
    "DiscountCodeListResponse",
    "DiscountCodeUpdateRequest",
    "DriveConfigCreateRequest",
    "DriveConfigUpdateRequest",
    "DriveConfigView",
    "EmailConfigCreateRequest",
    "EmailConfigUpdateRequest",
    "EmailConfigView",
    "ExternalServiceAdminListResponse",
    "ExternalServiceCreateRequest",
    "ExternalServiceUpdateRequest",
    "MAX_BULK_IDS",
    "PayPalConfigRequest",
    "PayPalConfigResponse",
    "PlanCreateRequest",
    "PlanListResponse",
    "PlanUpdateRequest",
    "PurchaseAdminListResponse",
    "StatusRequest",
    "UserActiveRequest",
    "UserApprovalRequest",
    "UserListResponse",
    "UserRoleRequest",
]
