"""Admin back-office routes; every endpoint requires the ADMIN role."""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from ..admin import AdminUser, ExternalService
from ..billing import DiscountCode, PurchaseStatus, SubscriptionPlan
from ..catalog import Audiobook, Chapter, ContentStatus
from ..entitlements import UserRole
from ..schemas.admin import (
    AudiobookCreateRequest,
    AudiobookListResponse,
    AudiobookUpdateRequest,
    BulkActiveRequest,
    BulkIdsRequest,
    BulkResultResponse,
    BulkRoleRequest,
    BulkStatusRequest,
    ChapterCreateRequest,
    ChapterListResponse,
    ChapterUpdateRequest,
    CleanupResponse,
    DiscountCodeCreateRequest,
    DiscountCodeListResponse,
    DiscountCodeUpdateRequest,
    DriveConfigCreateRequest,
    DriveConfigUpdateRequest,
    DriveConfigView,
    EmailConfigCreateRequest,
    EmailConfigUpdateRequest,
    EmailConfigView,
    ExternalServiceAdminListResponse,
    ExternalServiceCreateRequest,
    ExternalServiceUpdateRequest,
    PayPalConfigRequest,
    PayPalConfigResponse,
    PlanCreateRequest,
    PlanListResponse,
    PlanUpdateRequest,
    PurchaseAdminListResponse,
    StatusRequest,
    UserActiveRequest,
    UserApprovalRequest,
    UserListResponse,
    UserRoleRequest,
)
from ..services.admin import get_admin_service
from ..services.checkout import get_checkout_service
from .catalog import _require_admin, _service_errors

router = APIRouter(prefix="/api/admin", tags=["admin"])


def _no_content() -> Response:
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# Users ----------------------------------------------------------------------


@router.get("/users", response_model=UserListResponse)
def list_users(
    role: Optional[UserRole] = Query(default=None),
    is_active: Optional[bool] = Query(default=None, alias="isActive"),
    *,
    current_user=Depends(_require_admin),
) -> UserListResponse:
    return UserListResponse(users=get_admin_service().list_users(role=role, is_active=is_active))


@router.patch("/users/{user_id}/role", response_model=AdminUser)
def update_user_role(
    user_id: str,
    payload: UserRoleRequest,
    *,
    current_user=Depends(_require_admin),
) -> AdminUser:
    with _service_errors():
        return get_admin_service().update_user_role(str(current_user.id), user_id, payload.role)


@router.patch("/users/{user_id}/active", response_model=AdminUser)
def set_user_active(
    user_id: str,
    payload: UserActiveRequest,
    *,
    current_user=Depends(_require_admin),
) -> AdminUser:
    with _service_errors():
        return get_admin_service().set_user_active(str(current_user.id), user_id, payload.is_active)


@router.patch("/users/{user_id}/approval", response_model=AdminUser)
def set_requires_approval(
    user_id: str,
    payload: UserApprovalRequest,
    *,
    current_user=Depends(_require_admin),
) -> AdminUser:
    with _service_errors():
        return get_admin_service().set_requires_approval(user_id, payload.requires_approval)


@router.post("/users/bulk-update-role", response_model=BulkResultResponse)
def bulk_update_role(payload: BulkRoleRequest, *, current_user=Depends(_require_admin)) -> BulkResultResponse:
    result = get_admin_service().bulk_update_role(str(current_user.id), payload.id_strings(), payload.role)
    return BulkResultResponse.from_result(result)


@router.post("/users/bulk-update-active", response_model=BulkResultResponse)
def bulk_update_active(payload: BulkActiveRequest, *, current_user=Depends(_require_admin)) -> BulkResultResponse:
    result = get_admin_service().bulk_update_active(str(current_user.id), payload.id_strings(), payload.is_active)
    return BulkResultResponse.from_result(result)


@router.post("/users/bulk-delete", response_model=BulkResultResponse)
def bulk_delete_users(payload: BulkIdsRequest, *, current_user=Depends(_require_admin)) -> BulkResultResponse:
    result = get_admin_service().bulk_delete_users(str(current_user.id), payload.id_strings())
    return BulkResultResponse.from_result(result)


# Audiobooks -----------------------------------------------------------------


@router.get("/audiobooks", response_model=AudiobookListResponse)
def list_audiobooks(
    content_status: Optional[ContentStatus] = Query(default=None, alias="status"),
    *,
    current_user=Depends(_require_admin),
) -> AudiobookListResponse:
    return AudiobookListResponse(audiobooks=get_admin_service().list_audiobooks(status=content_status))


@router.post("/audiobooks", response_model=Audiobook, status_code=status.HTTP_201_CREATED)
def create_audiobook(payload: AudiobookCreateRequest, *, current_user=Depends(_require_admin)) -> Audiobook:
    data = payload.model_dump(mode="json", exclude_none=True)
    with _service_errors():
        return get_admin_service().create_audiobook(str(current_user.id), data)


@router.patch("/audiobooks/{audiobook_id}", response_model=Audiobook)
def update_audiobook(
    audiobook_id: str,
    payload: AudiobookUpdateRequest,
    *,
    current_user=Depends(_require_admin),
) -> Audiobook:
    changes = payload.model_dump(mode="json", exclude_unset=True)
    if not changes:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No changes supplied")
    with _service_errors():
        return get_admin_service().update_audiobook(audiobook_id, changes)


@router.delete("/audiobooks/{audiobook_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_audiobook(audiobook_id: str, *, current_user=Depends(_require_admin)) -> Response:
    with _service_errors():
        get_admin_service().delete_audiobook(audiobook_id)
    return _no_content()


@router.patch("/audiobooks/{audiobook_id}/status", response_model=Audiobook)
def update_audiobook_status(
    audiobook_id: str,
    payload: StatusRequest,
    *,
    current_user=Depends(_require_admin),
) -> Audiobook:
    with _service_errors():
        return get_admin_service().update_audiobook_status(audiobook_id, payload.status)


@router.post("/audiobooks/{audiobook_id}/publish", response_model=Audiobook)
def publish_audiobook(audiobook_id: str, *, current_user=Depends(_require_admin)) -> Audiobook:
    with _service_errors():
        return get_admin_service().publish_audiobook(audiobook_id)


@router.post("/audiobooks/{audiobook_id}/unpublish", response_model=Audiobook)
def unpublish_audiobook(audiobook_id: str, *, current_user=Depends(_require_admin)) -> Audiobook:
    with _service_errors():
        return get_admin_service().unpublish_audiobook(audiobook_id)


@router.post("/audiobooks/bulk-update-status", response_model=BulkResultResponse)
def bulk_update_audiobook_status(
    payload: BulkStatusRequest,
    *,
    current_user=Depends(_require_admin),
) -> BulkResultResponse:
    result = get_admin_service().bulk_update_audiobook_status(payload.id_strings(), payload.status)
    return BulkResultResponse.from_result(result)


@router.post("/audiobooks/bulk-delete", response_model=BulkResultResponse)
def bulk_delete_audiobooks(payload: BulkIdsRequest, *, current_user=Depends(_require_admin)) -> BulkResultResponse:
    result = get_admin_service().bulk_delete_audiobooks(payload.id_strings())
    return BulkResultResponse.from_result(result)


# Chapters -------------------------------------------------------------------


@router.get("/chapters", response_model=ChapterListResponse)
def list_chapters(
    audiobook_id: Optional[str] = Query(default=None, alias="audiobookId"),
    *,
    current_user=Depends(_require_admin),
) -> ChapterListResponse:
    return ChapterListResponse(chapters=get_admin_service().list_chapters(audiobook_id=audiobook_id))


@router.get("/audiobooks/{audiobook_id}/chapters", response_model=ChapterListResponse)
def list_audiobook_chapters(audiobook_id: str, *, current_user=Depends(_require_admin)) -> ChapterListResponse:
    return ChapterListResponse(chapters=get_admin_service().list_chapters(audiobook_id=audiobook_id))


@router.post("/chapters", response_model=Chapter, status_code=status.HTTP_201_CREATED)
def create_chapter(payload: ChapterCreateRequest, *, current_user=Depends(_require_admin)) -> Chapter:
    with _service_errors():
        return get_admin_service().create_chapter(payload.model_dump(mode="json"))


@router.patch("/chapters/{chapter_id}", response_model=Chapter)
def update_chapter(
    chapter_id: str,
    payload: ChapterUpdateRequest,
    *,
    current_user=Depends(_require_admin),
) -> Chapter:
    changes = payload.model_dump(mode="json", exclude_unset=True)
    if not changes:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No changes supplied")
    with _service_errors():
        return get_admin_service().update_chapter(chapter_id, changes)


@router.delete("/chapters/{chapter_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_chapter(chapter_id: str, *, current_user=Depends(_require_admin)) -> Response:
    with _service_errors():
        get_admin_service().delete_chapter(chapter_id)
    return _no_content()


@router.post("/chapters/bulk-update-status", response_model=BulkResultResponse)
def bulk_update_chapter_status(
    payload: BulkStatusRequest,
    *,
    current_user=Depends(_require_admin),
) -> BulkResultResponse:
    result = get_admin_service().bulk_update_chapter_status(payload.id_strings(), payload.status)
    return BulkResultResponse.from_result(result)


@router.post("/chapters/bulk-delete", response_model=BulkResultResponse)
def bulk_delete_chapters(payload: BulkIdsRequest, *, current_user=Depends(_require_admin)) -> BulkResultResponse:
    result = get_admin_service().bulk_delete_chapters(payload.id_strings())
    return BulkResultResponse.from_result(result)


# External services ----------------------------------------------------------


@router.get("/external-services", response_model=ExternalServiceAdminListResponse)
def list_external_services(*, current_user=Depends(_require_admin)) -> ExternalServiceAdminListResponse:
    return ExternalServiceAdminListResponse(services=get_admin_service().list_external_services())


@router.post("/external-services", response_model=ExternalService, status_code=status.HTTP_201_CREATED)
def create_external_service(
    payload: ExternalServiceCreateRequest,
    *,
    current_user=Depends(_require_admin),
) -> ExternalService:
    return get_admin_service().create_external_service(payload.model_dump())


@router.patch("/external-services/{service_id}", response_model=ExternalService)
def update_external_service(
    service_id: str,
    payload: ExternalServiceUpdateRequest,
    *,
    current_user=Depends(_require_admin),
) -> ExternalService:
    with _service_errors():
        return get_admin_service().update_external_service(service_id, payload.model_dump(exclude_unset=True))


@router.delete("/external-services/{service_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_external_service(service_id: str, *, current_user=Depends(_require_admin)) -> Response:
    with _service_errors():
        get_admin_service().delete_external_service(service_id)
    return _no_content()


# Discount codes -------------------------------------------------------------


@router.get("/discount-codes", response_model=DiscountCodeListResponse)
def list_discount_codes(*, current_user=Depends(_require_admin)) -> DiscountCodeListResponse:
    return DiscountCodeListResponse(discount_codes=get_admin_service().list_discount_codes())


@router.post("/discount-codes", response_model=DiscountCode, status_code=status.HTTP_201_CREATED)
def create_discount_code(
    payload: DiscountCodeCreateRequest,
    *,
    current_user=Depends(_require_admin),
) -> DiscountCode:
    with _service_errors():
        return get_admin_service().create_discount_code(str(current_user.id), payload.model_dump())


@router.patch("/discount-codes/{discount_id}", response_model=DiscountCode)
def update_discount_code(
    discount_id: str,
    payload: DiscountCodeUpdateRequest,
    *,
    current_user=Depends(_require_admin),
) -> DiscountCode:
    with _service_errors():
        return get_admin_service().update_discount_code(
            str(current_user.id),
            discount_id,
            payload.model_dump(exclude_unset=True),
        )


@router.delete("/discount-codes/{discount_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_discount_code(discount_id: str, *, current_user=Depends(_require_admin)) -> Response:
    with _service_errors():
        get_admin_service().delete_discount_code(discount_id)
    return _no_content()


# Email configuration --------------------------------------------------------


@router.get("/email-configs", response_model=list[EmailConfigView])
def list_email_configs(*, current_user=Depends(_require_admin)) -> list[EmailConfigView]:
    return [EmailConfigView.from_config(config) for config in get_admin_service().list_email_configs()]


@router.post("/email-configs", response_model=EmailConfigView, status_code=status.HTTP_201_CREATED)
def create_email_config(payload: EmailConfigCreateRequest, *, current_user=Depends(_require_admin)) -> EmailConfigView:
    with _service_errors():
        config = get_admin_service().create_email_config(payload.model_dump())
    return EmailConfigView.from_config(config)


@router.patch("/email-configs/{config_id}", response_model=EmailConfigView)
def update_email_config(
    config_id: str,
    payload: EmailConfigUpdateRequest,
    *,
    current_user=Depends(_require_admin),
) -> EmailConfigView:
    with _service_errors():
        config = get_admin_service().update_email_config(config_id, payload.model_dump(exclude_unset=True))
    return EmailConfigView.from_config(config)


@router.delete("/email-configs/{config_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_email_config(config_id: str, *, current_user=Depends(_require_admin)) -> Response:
    with _service_errors():
        get_admin_service().delete_email_config(config_id)
    return _no_content()


@router.post("/email-configs/{config_id}/activate", response_model=EmailConfigView)
def activate_email_config(config_id: str, *, current_user=Depends(_require_admin)) -> EmailConfigView:
    with _service_errors():
        config = get_admin_service().activate_email_config(config_id)
    return EmailConfigView.from_config(config)


# Drive configuration --------------------------------------------------------


@router.get("/drive-configs", response_model=list[DriveConfigView])
def list_drive_configs(*, current_user=Depends(_require_admin)) -> list[DriveConfigView]:
    return [DriveConfigView.from_config(config) for config in get_admin_service().list_drive_configs()]


@router.post("/drive-configs", response_model=DriveConfigView, status_code=status.HTTP_201_CREATED)
def create_drive_config(payload: DriveConfigCreateRequest, *, current_user=Depends(_require_admin)) -> DriveConfigView:
    with _service_errors():
        config = get_admin_service().create_drive_config(payload.model_dump())
    return DriveConfigView.from_config(config)


@router.patch("/drive-configs/{config_id}", response_model=DriveConfigView)
def update_drive_config(
    config_id: str,
    payload: DriveConfigUpdateRequest,
    *,
    current_user=Depends(_require_admin),
) -> DriveConfigView:
    with _service_errors():
        config = get_admin_service().update_drive_config(config_id, payload.model_dump(exclude_unset=True))
    return DriveConfigView.from_config(config)


@router.delete("/drive-configs/{config_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_drive_config(config_id: str, *, current_user=Depends(_require_admin)) -> Response:
    with _service_errors():
        get_admin_service().delete_drive_config(config_id)
    return _no_content()


@router.post("/drive-configs/{config_id}/activate", response_model=DriveConfigView)
def activate_drive_config(config_id: str, *, current_user=Depends(_require_admin)) -> DriveConfigView:
    with _service_errors():
        config = get_admin_service().activate_drive_config(config_id)
    return DriveConfigView.from_config(config)


# Subscription plans ---------------------------------------------------------


@router.get("/subscription-plans", response_model=PlanListResponse)
def list_plans(*, current_user=Depends(_require_admin)) -> PlanListResponse:
    return PlanListResponse(plans=get_admin_service().list_plans())


@router.post("/subscription-plans", response_model=SubscriptionPlan, status_code=status.HTTP_201_CREATED)
def create_plan(payload: PlanCreateRequest, *, current_user=Depends(_require_admin)) -> SubscriptionPlan:
    return get_admin_service().create_plan(payload.model_dump())


@router.patch("/subscription-plans/{plan_id}", response_model=SubscriptionPlan)
def update_plan(
    plan_id: str,
    payload: PlanUpdateRequest,
    *,
    current_user=Depends(_require_admin),
) -> SubscriptionPlan:
    with _service_errors():
        return get_admin_service().update_plan(plan_id, payload.model_dump(exclude_unset=True))


@router.delete("/subscription-plans/{plan_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_plan(plan_id: str, *, current_user=Depends(_require_admin)) -> Response:
    with _service_errors():
        get_admin_service().delete_plan(plan_id)
    return _no_content()


@router.post("/subscription-plans/{plan_id}/paypal", response_model=SubscriptionPlan)
def link_plan_to_paypal(plan_id: str, *, current_user=Depends(_require_admin)) -> SubscriptionPlan:
    """Create the PayPal product and billing plan backing a subscription plan."""
    try:
        with _service_errors():
            return get_admin_service().link_plan_to_paypal(plan_id)
    except RuntimeError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc


# PayPal configuration and purchases -----------------------------------------


@router.get("/paypal-config", response_model=PayPalConfigResponse)
def get_paypal_config(*, current_user=Depends(_require_admin)) -> PayPalConfigResponse:
    return PayPalConfigResponse(config=get_checkout_service().get_public_config())


@router.put("/paypal-config", response_model=PayPalConfigResponse)
def save_paypal_config(payload: PayPalConfigRequest, *, current_user=Depends(_require_admin)) -> PayPalConfigResponse:
    with _service_errors():
        saved = get_checkout_service().save_config(payload.to_config())
    return PayPalConfigResponse(config=saved)


@router.get("/purchases", response_model=PurchaseAdminListResponse)
def list_purchases(
    purchase_status: Optional[PurchaseStatus] = Query(default=None, alias="status"),
    *,
    current_user=Depends(_require_admin),
) -> PurchaseAdminListResponse:
    return PurchaseAdminListResponse(purchases=get_checkout_service().list_purchases(status=purchase_status))


@router.delete("/purchases/{purchase_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_pending_purchase(purchase_id: str, *, current_user=Depends(_require_admin)) -> Response:
    with _service_errors():
        get_checkout_service().delete_pending_purchase(purchase_id)
    return _no_content()


@router.post("/cleanup-pending", response_model=CleanupResponse)
def cleanup_pending(*, current_user=Depends(_require_admin)) -> CleanupResponse:
    return CleanupResponse(deleted=get_checkout_service().cleanup_pending())


__all__ = ["router"]
