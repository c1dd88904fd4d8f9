"""PostgreSQL persistence for the admin back-office."""
from __future__ import annotations

from enum import Enum
from typing import Any, Callable, Iterable, List, Mapping, Optional, Sequence

import psycopg2.errors

from ..billing.discounts import DiscountCode
from ..billing.models import SubscriptionPlan
from ..billing.repository import row_to_discount_code, row_to_plan
from ..catalog.models import Audiobook, Chapter, ContentStatus
from ..catalog.repository import row_to_audiobook, row_to_chapter
from ..db import PostgresRepository, build_update_clause
from ..gates import ConflictError
from ..entitlements.models import UserRole
from .models import AdminUser, DriveConfig, EmailConfig, ExternalService

_USER_COLUMNS = "id::text AS id, username, email, role, is_active, requires_approval, created_at"

USER_FIELDS = ("role", "is_active", "requires_approval")
AUDIOBOOK_FIELDS = (
    "title",
    "author",
    "narrator",
    "description",
    "cover_art_url",
    "category",
    "language",
    "price_cents",
    "currency",
    "is_free",
    "status",
    "visibility",
    "publisher_id",
    "published_at",
)
CHAPTER_FIELDS = (
    "audiobook_id",
    "title",
    "chapter_number",
    "audio_url",
    "duration_seconds",
    "is_sample",
    "status",
    "visibility",
)
EXTERNAL_SERVICE_FIELDS = ("name", "description", "url", "icon_name", "sort_order", "is_active")
DISCOUNT_CODE_FIELDS = (
    "code",
    "description",
    "type",
    "value",
    "min_purchase_cents",
    "max_uses_total",
    "max_uses_per_user",
    "valid_from",
    "valid_until",
    "is_active",
    "applies_to_purchases",
    "applies_to_subscriptions",
)
EMAIL_CONFIG_FIELDS = (
    "smtp_host",
    "smtp_port",
    "smtp_secure",
    "smtp_user",
    "smtp_password",
    "from_email",
    "from_name",
    "is_active",
)
DRIVE_CONFIG_FIELDS = (
    "service_account_email",
    "service_account_key",
    "folder_id_images",
    "folder_id_audio",
    "is_active",
)
PLAN_FIELDS = (
    "name",
    "description",
    "price_cents",
    "currency",
    "interval_months",
    "trial_days",
    "paypal_plan_id",
    "paypal_product_id",
    "is_active",
)

# Tables whose rows carry an ``updated_at`` column.
_TOUCHED_TABLES = {
    "audiobooks",
    "chapters",
    "external_services",
    "email_config",
    "drive_config",
    "subscription_plans",
    "discount_codes",
}


def _row_to_user(row: dict) -> AdminUser:
    return AdminUser(
        id=str(row["id"]),
        username=row["username"],
        email=row["email"],
        role=UserRole(row["role"]),
        is_active=bool(row["is_active"]),
        requires_approval=bool(row["requires_approval"]),
        created_at=row["created_at"],
    )


def _row_to_external_service(row: dict) -> ExternalService:
    return ExternalService(**{**row, "id": str(row["id"])})


def _row_to_email_config(row: dict) -> EmailConfig:
    return EmailConfig(**{**row, "id": str(row["id"])})


def _row_to_drive_config(row: dict) -> DriveConfig:
    return DriveConfig(**{**row, "id": str(row["id"])})


def _plain(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


class PostgresAdminRepository(PostgresRepository):
    """Generic row CRUD plus the per-entity methods used by ``AdminService``."""

    # Generic helpers -------------------------------------------------------

    def _insert(self, table: str, data: Mapping[str, Any], allowed: Sequence[str], factory: Callable[[dict], Any]):
        columns = [column for column in allowed if column in data]
        placeholders = ", ".join(["%s"] * len(columns))
        with self._cursor() as cursor:
            cursor.execute(
                f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders}) RETURNING *",
                [_plain(data[column]) for column in columns],
            )
            return factory(cursor.fetchone())

    def _update(
        self,
        table: str,
        row_id: str,
        changes: Mapping[str, Any],
        allowed: Sequence[str],
        factory: Callable[[dict], Any],
        *,
        returning: str = "*",
    ):
        clause, params = build_update_clause({k: _plain(v) for k, v in changes.items()}, allowed)
        with self._cursor() as cursor:
            if not clause:
                cursor.execute(f"SELECT {returning} FROM {table} WHERE id::text = %s", (row_id,))
            else:
                if table in _TOUCHED_TABLES:
                    clause = f"{clause}, updated_at = now()"
                cursor.execute(
                    f"UPDATE {table} SET {clause} WHERE id::text = %s RETURNING {returning}",
                    [*params, row_id],
                )
            row = cursor.fetchone()
        return factory(row) if row else None

    def _bulk_update(self, table: str, ids: Iterable[str], changes: Mapping[str, Any], allowed: Sequence[str]) -> List[str]:
        clause, params = build_update_clause({k: _plain(v) for k, v in changes.items()}, allowed)
        if not clause:
            return []
        if table in _TOUCHED_TABLES:
            clause = f"{clause}, updated_at = now()"
        with self._cursor() as cursor:
            cursor.execute(
                f"UPDATE {table} SET {clause} WHERE id::text = ANY(%s) RETURNING id::text AS id",
                [*params, list(ids)],
            )
            return [row["id"] for row in cursor.fetchall()]

    def _delete(self, table: str, ids: Iterable[str]) -> List[str]:
        with self._cursor() as cursor:
            cursor.execute(
                f"DELETE FROM {table} WHERE id::text = ANY(%s) RETURNING id::text AS id",
                (list(ids),),
            )
            return [row["id"] for row in cursor.fetchall()]

    def _activate(self, table: str, row_id: str, factory: Callable[[dict], Any]):
        with self._cursor() as cursor:
            cursor.execute(f"SELECT 1 FROM {table} WHERE id::text = %s", (row_id,))
            if cursor.fetchone() is None:
                return None
            cursor.execute(f"UPDATE {table} SET is_active = FALSE WHERE is_active AND id::text <> %s", (row_id,))
            cursor.execute(
                f"UPDATE {table} SET is_active = TRUE, updated_at = now() WHERE id::text = %s RETURNING *",
                (row_id,),
            )
            return factory(cursor.fetchone())

    def _list(self, sql: str, params: Sequence[Any], factory: Callable[[dict], Any]) -> List[Any]:
        with self._cursor() as cursor:
            cursor.execute(sql, params)
            return [factory(row) for row in cursor.fetchall()]

    # Users -----------------------------------------------------------------

    def list_users(self, *, role: Optional[UserRole] = None, is_active: Optional[bool] = None) -> List[AdminUser]:
        return self._list(
            f"""
            SELECT {_USER_COLUMNS} FROM users
            WHERE (%s::user_role IS NULL OR role = %s::user_role)
              AND (%s::boolean IS NULL OR is_active = %s::boolean)
            ORDER BY created_at DESC
            """,
            (_plain(role), _plain(role), is_active, is_active),
            _row_to_user,
        )

    def get_user(self, user_id: str) -> Optional[AdminUser]:
        rows = self._list(f"SELECT {_USER_COLUMNS} FROM users WHERE id::text = %s", (user_id,), _row_to_user)
        return rows[0] if rows else None

    def count_admins(self) -> int:
        with self._cursor() as cursor:
            cursor.execute("SELECT COUNT(*) AS total FROM users WHERE role = 'ADMIN' AND is_active")
            return int(cursor.fetchone()["total"])

    def update_user(self, user_id: str, changes: Mapping[str, Any]) -> Optional[AdminUser]:
        return self._update("users", user_id, changes, USER_FIELDS, _row_to_user, returning=_USER_COLUMNS)

    def bulk_update_users(self, ids: Iterable[str], changes: Mapping[str, Any]) -> List[str]:
        return self._bulk_update("users", ids, changes, USER_FIELDS)

    def delete_users(self, ids: Iterable[str]) -> List[str]:
        return self._delete("users", ids)

    # Audiobooks ------------------------------------------------------------

    def list_audiobooks(self, *, status: Optional[ContentStatus] = None) -> List[Audiobook]:
        return self._list(
            """
            SELECT * FROM audiobooks
            WHERE (%s::content_status IS NULL OR status = %s::content_status)
            ORDER BY created_at DESC
            """,
            (_plain(status), _plain(status)),
            row_to_audiobook,
        )

    def get_audiobook(self, audiobook_id: str) -> Optional[Audiobook]:
        rows = self._list("SELECT * FROM audiobooks WHERE id::text = %s", (audiobook_id,), row_to_audiobook)
        return rows[0] if rows else None

    def create_audiobook(self, data: Mapping[str, Any]) -> Audiobook:
        return self._insert("audiobooks", data, AUDIOBOOK_FIELDS, row_to_audiobook)

    def update_audiobook(self, audiobook_id: str, changes: Mapping[str, Any]) -> Optional[Audiobook]:
        return self._update("audiobooks", audiobook_id, changes, AUDIOBOOK_FIELDS, row_to_audiobook)

    def bulk_update_audiobooks(self, ids: Iterable[str], changes: Mapping[str, Any]) -> List[str]:
        return self._bulk_update("audiobooks", ids, changes, AUDIOBOOK_FIELDS)

    def delete_audiobooks(self, ids: Iterable[str]) -> List[str]:
        return self._delete("audiobooks", ids)

    # Chapters --------------------------------------------------------------

    def list_chapters(self, *, audiobook_id: Optional[str] = None) -> List[Chapter]:
        return self._list(
            """
            SELECT * FROM chapters
            WHERE (%s::text IS NULL OR audiobook_id::text = %s::text)
            ORDER BY audiobook_id, chapter_number
            """,
            (audiobook_id, audiobook_id),
            row_to_chapter,
        )

    def create_chapter(self, data: Mapping[str, Any]) -> Chapter:
        return self._insert("chapters", data, CHAPTER_FIELDS, row_to_chapter)

    def update_chapter(self, chapter_id: str, changes: Mapping[str, Any]) -> Optional[Chapter]:
        return self._update("chapters", chapter_id, changes, CHAPTER_FIELDS, row_to_chapter)

    def bulk_update_chapters(self, ids: Iterable[str], changes: Mapping[str, Any]) -> List[str]:
        return self._bulk_update("chapters", ids, changes, CHAPTER_FIELDS)

    def delete_chapters(self, ids: Iterable[str]) -> List[str]:
        return self._delete("chapters", ids)

    # External services -----------------------------------------------------

    def list_external_services(self, *, active_only: bool = False) -> List[ExternalService]:
        return self._list(
            "SELECT * FROM external_services WHERE (%s = FALSE OR is_active) ORDER BY sort_order, name",
            (active_only,),
            _row_to_external_service,
        )

    def create_external_service(self, data: Mapping[str, Any]) -> ExternalService:
        return self._insert("external_services", data, EXTERNAL_SERVICE_FIELDS, _row_to_external_service)

    def update_external_service(self, service_id: str, changes: Mapping[str, Any]) -> Optional[ExternalService]:
        return self._update(
            "external_services", service_id, changes, EXTERNAL_SERVICE_FIELDS, _row_to_external_service
        )

    def delete_external_service(self, service_id: str) -> bool:
        return bool(self._delete("external_services", [service_id]))

    # Discount codes --------------------------------------------------------

    def list_discount_codes(self) -> List[DiscountCode]:
        return self._list("SELECT * FROM discount_codes ORDER BY created_at DESC", (), row_to_discount_code)

    def get_discount_code(self, discount_id: str) -> Optional[DiscountCode]:
        rows = self._list("SELECT * FROM discount_codes WHERE id::text = %s", (discount_id,), row_to_discount_code)
        return rows[0] if rows else None

    def create_discount_code(self, data: Mapping[str, Any]) -> DiscountCode:
        try:
            return self._insert("discount_codes", data, DISCOUNT_CODE_FIELDS, row_to_discount_code)
        except psycopg2.errors.UniqueViolation as exc:
            raise ConflictError("discount_code_exists", "A discount code with this code already exists") from exc

    def update_discount_code(self, discount_id: str, changes: Mapping[str, Any]) -> Optional[DiscountCode]:
        try:
            return self._update("discount_codes", discount_id, changes, DISCOUNT_CODE_FIELDS, row_to_discount_code)
        except psycopg2.errors.UniqueViolation as exc:
            raise ConflictError("discount_code_exists", "A discount code with this code already exists") from exc

    def delete_discount_code(self, discount_id: str) -> bool:
        return bool(self._delete("discount_codes", [discount_id]))

    # Email configuration ---------------------------------------------------

    def list_email_configs(self) -> List[EmailConfig]:
        return self._list("SELECT * FROM email_config ORDER BY updated_at DESC", (), _row_to_email_config)

    def create_email_config(self, data: Mapping[str, Any]) -> EmailConfig:
        return self._insert("email_config", data, EMAIL_CONFIG_FIELDS, _row_to_email_config)

    def update_email_config(self, config_id: str, changes: Mapping[str, Any]) -> Optional[EmailConfig]:
        return self._update("email_config", config_id, changes, EMAIL_CONFIG_FIELDS, _row_to_email_config)

    def delete_email_config(self, config_id: str) -> bool:
        return bool(self._delete("email_config", [config_id]))

    def activate_email_config(self, config_id: str) -> Optional[EmailConfig]:
        return self._activate("email_config", config_id, _row_to_email_config)

    # Drive configuration ---------------------------------------------------

    def list_drive_configs(self) -> List[DriveConfig]:
        return self._list("SELECT * FROM drive_config ORDER BY updated_at DESC", (), _row_to_drive_config)

    def create_drive_config(self, data: Mapping[str, Any]) -> DriveConfig:
        return self._insert("drive_config", data, DRIVE_CONFIG_FIELDS, _row_to_drive_config)

    def update_drive_config(self, config_id: str, changes: Mapping[str, Any]) -> Optional[DriveConfig]:
        return self._update("drive_config", config_id, changes, DRIVE_CONFIG_FIELDS, _row_to_drive_config)

    def delete_drive_config(self, config_id: str) -> bool:
        return bool(self._delete("drive_config", [config_id]))

    def activate_drive_config(self, config_id: str) -> Optional[DriveConfig]:
        return self._activate("drive_config", config_id, _row_to_drive_config)

    # Subscription plans ----------------------------------------------------

    def list_plans(self) -> List[SubscriptionPlan]:
        return self._list("SELECT * FROM subscription_plans ORDER BY price_cents", (), row_to_plan)

    def get_plan(self, plan_id: str) -> Optional[SubscriptionPlan]:
        rows = self._list("SELECT * FROM subscription_plans WHERE id::text = %s", (plan_id,), row_to_plan)
        return rows[0] if rows else None

    def create_plan(self, data: Mapping[str, Any]) -> SubscriptionPlan:
        return self._insert("subscription_plans", data, PLAN_FIELDS, row_to_plan)

    def update_plan(self, plan_id: str, changes: Mapping[str, Any]) -> Optional[SubscriptionPlan]:
        return self._update("subscription_plans", plan_id, changes, PLAN_FIELDS, row_to_plan)

    def delete_plan(self, plan_id: str) -> bool:
        return bool(self._delete("subscription_plans", [plan_id]))


__all__ = ["PostgresAdminRepository"]

