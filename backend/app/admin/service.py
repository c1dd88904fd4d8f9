"""Service layer behind the ``/api/admin`` back-office endpoints."""
from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol, Sequence

from ..billing.discounts import DiscountCode, DiscountType, normalize_code
from ..billing.models import SubscriptionPlan
from ..catalog.models import Audiobook, Chapter, ContentStatus, Visibility
from ..entitlements.models import UserRole
from .models import (
    AdminUser,
    BulkFailure,
    BulkResult,
    DriveConfig,
    EmailConfig,
    ExternalService,
    parse_service_account_key,
)

logger = logging.getLogger("admin")


class AdminRepository(Protocol):
    """Persistence operations required by the admin service."""

    def list_users(self, *, role: Optional[UserRole] = None, is_active: Optional[bool] = None) -> List[AdminUser]:
        ...

    def get_user(self, user_id: str) -> Optional[AdminUser]:
        ...

    def count_admins(self) -> int:
        ...

    def update_user(self, user_id: str, changes: Mapping[str, Any]) -> Optional[AdminUser]:
        ...

    def bulk_update_users(self, ids: Iterable[str], changes: Mapping[str, Any]) -> List[str]:
        ...

    def delete_users(self, ids: Iterable[str]) -> List[str]:
        ...

    def list_audiobooks(self, *, status: Optional[ContentStatus] = None) -> List[Audiobook]:
        ...

    def get_audiobook(self, audiobook_id: str) -> Optional[Audiobook]:
        ...

    def create_audiobook(self, data: Mapping[str, Any]) -> Audiobook:
        ...

    def update_audiobook(self, audiobook_id: str, changes: Mapping[str, Any]) -> Optional[Audiobook]:
        ...

    def bulk_update_audiobooks(self, ids: Iterable[str], changes: Mapping[str, Any]) -> List[str]:
        ...

    def delete_audiobooks(self, ids: Iterable[str]) -> List[str]:
        ...

    def list_chapters(self, *, audiobook_id: Optional[str] = None) -> List[Chapter]:
        ...

    def create_chapter(self, data: Mapping[str, Any]) -> Chapter:
        ...

    def update_chapter(self, chapter_id: str, changes: Mapping[str, Any]) -> Optional[Chapter]:
        ...

    def bulk_update_chapters(self, ids: Iterable[str], changes: Mapping[str, Any]) -> List[str]:
        ...

    def delete_chapters(self, ids: Iterable[str]) -> List[str]:
        ...

    def list_external_services(self, *, active_only: bool = False) -> List[ExternalService]:
        ...

    def create_external_service(self, data: Mapping[str, Any]) -> ExternalService:
        ...

    def update_external_service(self, service_id: str, changes: Mapping[str, Any]) -> Optional[ExternalService]:
        ...

    def delete_external_service(self, service_id: str) -> bool:
        ...

    def list_discount_codes(self) -> List[DiscountCode]:
        ...

    def get_discount_code(self, discount_id: str) -> Optional[DiscountCode]:
        ...

    def create_discount_code(self, data: Mapping[str, Any]) -> DiscountCode:
        ...

    def update_discount_code(self, discount_id: str, changes: Mapping[str, Any]) -> Optional[DiscountCode]:
        ...

    def delete_discount_code(self, discount_id: str) -> bool:
        ...

    def list_email_configs(self) -> List[EmailConfig]:
        ...

    def create_email_config(self, data: Mapping[str, Any]) -> EmailConfig:
        ...

    def update_email_config(self, config_id: str, changes: Mapping[str, Any]) -> Optional[EmailConfig]:
        ...

    def delete_email_config(self, config_id: str) -> bool:
        ...

    def activate_email_config(self, config_id: str) -> Optional[EmailConfig]:
        ...

    def list_drive_configs(self) -> List[DriveConfig]:
        ...

    def create_drive_config(self, data: Mapping[str, Any]) -> DriveConfig:
        ...

    def update_drive_config(self, config_id: str, changes: Mapping[str, Any]) -> Optional[DriveConfig]:
        ...

    def delete_drive_config(self, config_id: str) -> bool:
        ...

    def activate_drive_config(self, config_id: str) -> Optional[DriveConfig]:
        ...

    def list_plans(self) -> List[SubscriptionPlan]:
        ...

    def get_plan(self, plan_id: str) -> Optional[SubscriptionPlan]:
        ...

    def create_plan(self, data: Mapping[str, Any]) -> SubscriptionPlan:
        ...

    def update_plan(self, plan_id: str, changes: Mapping[str, Any]) -> Optional[SubscriptionPlan]:
        ...

    def delete_plan(self, plan_id: str) -> bool:
        ...


class EntitlementInvalidator(Protocol):
    def invalidate_user(self, user_id: str) -> None:
        ...

    def invalidate_audiobook(self, audiobook_id: str) -> None:
        ...


class PlanProvisioner(Protocol):
    """Creates the PayPal objects backing a subscription plan."""

    def provision_plan(self, plan: SubscriptionPlan) -> Dict[str, str]:
        ...


def _bulk_result(requested: Sequence[str], succeeded: Iterable[str], reason: str, skipped: Mapping[str, str]) -> BulkResult:
    done = set(succeeded)
    failed = [BulkFailure(id=item, reason=skipped[item]) for item in requested if item in skipped]
    failed.extend(
        BulkFailure(id=item, reason=reason)
        for item in requested
        if item not in done and item not in skipped
    )
    return BulkResult(success_ids=[item for item in requested if item in done], failed=failed)


def _unique(ids: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(ids))


def _found(value, message: str):
    if value is None:
        raise LookupError(message)
    return value


def _clean_discount_fields(data: Mapping[str, Any]) -> Dict[str, Any]:
    cleaned = dict(data)
    if cleaned.get("code") is not None:
        cleaned["code"] = normalize_code(cleaned["code"])
        if not cleaned["code"]:
            raise ValueError("Discount code cannot be blank")
    return cleaned


def _check_discount_fields(fields: Mapping[str, Any]) -> None:
    if DiscountType(fields["type"]) == DiscountType.PERCENTAGE and int(fields["value"]) > 100:
        raise ValueError("Percentage discounts cannot exceed 100")
    valid_from, valid_until = fields.get("valid_from"), fields.get("valid_until")
    if valid_from is not None and valid_until is not None and valid_until <= valid_from:
        raise ValueError("Discount validity must end after it starts")


_dataclass_kwargs = {"slots": True} if sys.version_info >= (3, 10) else {}


@dataclass(**_dataclass_kwargs)
class AdminService:
    """Back-office CRUD with the invariants the raw tables cannot express."""

    repository: AdminRepository
    entitlement_invalidator: EntitlementInvalidator
    plan_provisioner: Optional[PlanProvisioner] = None

    # Users -----------------------------------------------------------------

    def list_users(self, *, role: Optional[UserRole] = None, is_active: Optional[bool] = None) -> List[AdminUser]:
        return self.repository.list_users(role=role, is_active=is_active)

    def update_user_role(self, actor_id: str, user_id: str, role: UserRole) -> AdminUser:
        user = _found(self.repository.get_user(user_id), "User not found")
        if user.role == UserRole.ADMIN and role != UserRole.ADMIN:
            if user_id == actor_id:
                raise ValueError("Cannot remove your own admin role")
            if self.repository.count_admins() <= 1:
                raise ValueError("Cannot demote the last admin")
        updated = _found(self.repository.update_user(user_id, {"role": role}), "User not found")
        self.entitlement_invalidator.invalidate_user(user_id)
        logger.info("Changed user role", extra={"actor_id": actor_id, "user_id": user_id, "role": role.value})
        return updated

    def set_user_active(self, actor_id: str, user_id: str, is_active: bool) -> AdminUser:
        _found(self.repository.get_user(user_id), "User not found")
        if user_id == actor_id and not is_active:
            raise ValueError("Cannot deactivate your own account")
        return _found(self.repository.update_user(user_id, {"is_active": is_active}), "User not found")

    def set_requires_approval(self, user_id: str, requires_approval: bool) -> AdminUser:
        return _found(
            self.repository.update_user(user_id, {"requires_approval": requires_approval}),
            "User not found",
        )

    def bulk_update_role(self, actor_id: str, ids: Sequence[str], role: UserRole) -> BulkResult:
        requested = _unique(ids)
        skipped = {actor_id: "Cannot change your own role"} if role != UserRole.ADMIN and actor_id in requested else {}
        targets = [item for item in requested if item not in skipped]
        updated = self.repository.bulk_update_users(targets, {"role": role}) if targets else []
        for user_id in updated:
            self.entitlement_invalidator.invalidate_user(user_id)
        return _bulk_result(requested, updated, "User not found", skipped)

    def bulk_update_active(self, actor_id: str, ids: Sequence[str], is_active: bool) -> BulkResult:
        requested = _unique(ids)
        skipped = {actor_id: "Cannot deactivate your own account"} if not is_active and actor_id in requested else {}
        targets = [item for item in requested if item not in skipped]
        updated = self.repository.bulk_update_users(targets, {"is_active": is_active}) if targets else []
        return _bulk_result(requested, updated, "User not found", skipped)

    def bulk_delete_users(self, actor_id: str, ids: Sequence[str]) -> BulkResult:
        requested = _unique(ids)
        skipped = {actor_id: "Cannot delete your own account"} if actor_id in requested else {}
        targets = [item for item in requested if item not in skipped]
        deleted = self.repository.delete_users(targets) if targets else []
        logger.info("Bulk deleted users", extra={"actor_id": actor_id, "deleted": len(deleted)})
        return _bulk_result(requested, deleted, "User not found", skipped)

    # Audiobooks ------------------------------------------------------------

    def list_audiobooks(self, *, status: Optional[ContentStatus] = None) -> List[Audiobook]:
        return self.repository.list_audiobooks(status=status)

    def create_audiobook(self, actor_id: str, data: Mapping[str, Any]) -> Audiobook:
        payload = dict(data)
        payload.setdefault("publisher_id", actor_id)
        return self.repository.create_audiobook(payload)

    def update_audiobook(self, audiobook_id: str, changes: Mapping[str, Any]) -> Audiobook:
        updated = _found(self.repository.update_audiobook(audiobook_id, changes), "Audiobook not found")
        self.entitlement_invalidator.invalidate_audiobook(audiobook_id)
        return updated

    def update_audiobook_status(self, audiobook_id: str, status: ContentStatus) -> Audiobook:
        return self.update_audiobook(audiobook_id, {"status": status})

    def publish_audiobook(self, audiobook_id: str) -> Audiobook:
        return self.update_audiobook(
            audiobook_id,
            {"visibility": Visibility.PUBLIC, "published_at": datetime.now(timezone.utc)},
        )

    def unpublish_audiobook(self, audiobook_id: str) -> Audiobook:
        return self.update_audiobook(audiobook_id, {"visibility": Visibility.PRIVATE, "published_at": None})

    def delete_audiobook(self, audiobook_id: str) -> None:
        if not self.repository.delete_audiobooks([audiobook_id]):
            raise LookupError("Audiobook not found")
        self.entitlement_invalidator.invalidate_audiobook(audiobook_id)

    def bulk_update_audiobook_status(self, ids: Sequence[str], status: ContentStatus) -> BulkResult:
        requested = _unique(ids)
        updated = self.repository.bulk_update_audiobooks(requested, {"status": status})
        for audiobook_id in updated:
            self.entitlement_invalidator.invalidate_audiobook(audiobook_id)
        return _bulk_result(requested, updated, "Audiobook not found", {})

    def bulk_delete_audiobooks(self, ids: Sequence[str]) -> BulkResult:
        requested = _unique(ids)
        deleted = self.repository.delete_audiobooks(requested)
        for audiobook_id in deleted:
            self.entitlement_invalidator.invalidate_audiobook(audiobook_id)
        return _bulk_result(requested, deleted, "Audiobook not found", {})

    # Chapters --------------------------------------------------------------

    def list_chapters(self, *, audiobook_id: Optional[str] = None) -> List[Chapter]:
        return self.repository.list_chapters(audiobook_id=audiobook_id)

    def create_chapter(self, data: Mapping[str, Any]) -> Chapter:
        _found(self.repository.get_audiobook(str(data["audiobook_id"])), "Audiobook not found")
        return self.repository.create_chapter(data)

    def update_chapter(self, chapter_id: str, changes: Mapping[str, Any]) -> Chapter:
        if "audiobook_id" in changes:
            _found(self.repository.get_audiobook(str(changes["audiobook_id"])), "Audiobook not found")
        return _found(self.repository.update_chapter(chapter_id, changes), "Chapter not found")

    def delete_chapter(self, chapter_id: str) -> None:
        if not self.repository.delete_chapters([chapter_id]):
            raise LookupError("Chapter not found")

    def bulk_update_chapter_status(self, ids: Sequence[str], status: ContentStatus) -> BulkResult:
        requested = _unique(ids)
        updated = self.repository.bulk_update_chapters(requested, {"status": status})
        return _bulk_result(requested, updated, "Chapter not found", {})

    def bulk_delete_chapters(self, ids: Sequence[str]) -> BulkResult:
        requested = _unique(ids)
        deleted = self.repository.delete_chapters(requested)
        return _bulk_result(requested, deleted, "Chapter not found", {})

    # External services -----------------------------------------------------

    def list_external_services(self, *, active_only: bool = False) -> List[ExternalService]:
        return self.repository.list_external_services(active_only=active_only)

    def create_external_service(self, data: Mapping[str, Any]) -> ExternalService:
        return self.repository.create_external_service(data)

    def update_external_service(self, service_id: str, changes: Mapping[str, Any]) -> ExternalService:
        return _found(self.repository.update_external_service(service_id, changes), "External service not found")

    def delete_external_service(self, service_id: str) -> None:
        if not self.repository.delete_external_service(service_id):
            raise LookupError("External service not found")

    # Discount codes --------------------------------------------------------

    def list_discount_codes(self) -> List[DiscountCode]:
        return self.repository.list_discount_codes()

    def create_discount_code(self, actor_id: str, data: Mapping[str, Any]) -> DiscountCode:
        data = _clean_discount_fields(data)
        _check_discount_fields(data)
        discount = self.repository.create_discount_code(data)
        logger.info("Created discount code", extra={"actor_id": actor_id, "code": discount.code})
        return discount

    def update_discount_code(self, actor_id: str, discount_id: str, changes: Mapping[str, Any]) -> DiscountCode:
        changes = _clean_discount_fields(changes)
        current = _found(self.repository.get_discount_code(discount_id), "Discount code not found")
        _check_discount_fields({**current.model_dump(), **changes})
        discount = _found(self.repository.update_discount_code(discount_id, changes), "Discount code not found")
        logger.info("Updated discount code", extra={"actor_id": actor_id, "code": discount.code})
        return discount

    def delete_discount_code(self, discount_id: str) -> None:
        if not self.repository.delete_discount_code(discount_id):
            raise LookupError("Discount code not found")

    # Email configuration ---------------------------------------------------

    def list_email_configs(self) -> List[EmailConfig]:
        return self.repository.list_email_configs()

    def create_email_config(self, data: Mapping[str, Any]) -> EmailConfig:
        payload = dict(data)
        activate = bool(payload.pop("is_active", False))
        config = self.repository.create_email_config(payload)
        return self.activate_email_config(config.id) if activate else config

    def update_email_config(self, config_id: str, changes: Mapping[str, Any]) -> EmailConfig:
        payload = dict(changes)
        activate = payload.pop("is_active", None)
        if activate is False:
            payload["is_active"] = False
        config = _found(self.repository.update_email_config(config_id, payload), "Email configuration not found")
        return self.activate_email_config(config_id) if activate else config

    def delete_email_config(self, config_id: str) -> None:
        if not self.repository.delete_email_config(config_id):
            raise LookupError("Email configuration not found")

    def activate_email_config(self, config_id: str) -> EmailConfig:
        config = _found(self.repository.activate_email_config(config_id), "Email configuration not found")
        logger.info("Activated email configuration", extra={"config_id": config_id})
        return config

    # Drive configuration ---------------------------------------------------

    def list_drive_configs(self) -> List[DriveConfig]:
        return self.repository.list_drive_configs()

    def create_drive_config(self, data: Mapping[str, Any]) -> DriveConfig:
        payload = dict(data)
        parse_service_account_key(payload["service_account_key"])
        activate = bool(payload.pop("is_active", False))
        config = self.repository.create_drive_config(payload)
        return self.activate_drive_config(config.id) if activate else config

    def update_drive_config(self, config_id: str, changes: Mapping[str, Any]) -> DriveConfig:
        payload = dict(changes)
        if "service_account_key" in payload:
            parse_service_account_key(payload["service_account_key"])
        activate = payload.pop("is_active", None)
        if activate is False:
            payload["is_active"] = False
        config = _found(self.repository.update_drive_config(config_id, payload), "Drive configuration not found")
        return self.activate_drive_config(config_id) if activate else config

    def delete_drive_config(self, config_id: str) -> None:
        if not self.repository.delete_drive_config(config_id):
            raise LookupError("Drive configuration not found")

    def activate_drive_config(self, config_id: str) -> DriveConfig:
        config = _found(self.repository.activate_drive_config(config_id), "Drive configuration not found")
        logger.info("Activated drive configuration", extra={"config_id": config_id})
        return config

    # Subscription plans ----------------------------------------------------

    def list_plans(self) -> List[SubscriptionPlan]:
        return self.repository.list_plans()

    def create_plan(self, data: Mapping[str, Any]) -> SubscriptionPlan:
        return self.repository.create_plan(data)

    def update_plan(self, plan_id: str, changes: Mapping[str, Any]) -> SubscriptionPlan:
        return _found(self.repository.update_plan(plan_id, changes), "Subscription plan not found")

    def delete_plan(self, plan_id: str) -> None:
        if not self.repository.delete_plan(plan_id):
            raise LookupError("Subscription plan not found")

    def link_plan_to_paypal(self, plan_id: str) -> SubscriptionPlan:
        """Create the PayPal product and plan for ``plan_id`` and store their ids."""

        plan = _found(self.repository.get_plan(plan_id), "Subscription plan not found")
        if self.plan_provisioner is None:
            raise RuntimeError("PayPal plan provisioning is not available")
        remote_ids = self.plan_provisioner.provision_plan(plan)
        return self.update_plan(plan_id, remote_ids)


__all__ = ["AdminRepository", "AdminService", "EntitlementInvalidator", "PlanProvisioner"]
