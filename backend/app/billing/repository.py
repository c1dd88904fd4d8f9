"""Persistence layer for billing domain objects."""
from __future__ import annotations

from datetime import datetime
from typing import Iterable, List, Optional, Set

import psycopg2.errors

from ..db import PostgresRepository
from ..entitlements.models import SubscriptionRecord, SubscriptionStatus
from ..gates import ConflictError
from .discounts import DiscountCode
from .models import (
    BillingProfile,
    PayPalConfig,
    PayPalEnvironment,
    PayPalWebhookEvent,
    Purchase,
    PurchaseStatus,
    SubscriptionPlan,
    UserSubscription,
)

_PURCHASE_COLUMNS = """
    id::text AS id, user_id::text AS user_id, audiobook_id::text AS audiobook_id,
    price_paid_cents, currency, status, paypal_order_id, paypal_capture_id,
    paypal_payer_email, discount_code_id::text AS discount_code_id, discount_cents,
    purchased_at, created_at
"""

_SUBSCRIPTION_COLUMNS = """
    id::text AS id, user_id::text AS user_id, plan_id::text AS plan_id, status,
    paypal_subscription_id, current_period_start, current_period_end, canceled_at,
    created_at, updated_at
"""

_PLAN_COLUMNS = """
    id::text AS id, name, description, price_cents, currency, interval_months,
    trial_days, paypal_plan_id, paypal_product_id, is_active
"""

_PROFILE_FIELDS = (
    "full_name",
    "email",
    "company_name",
    "tax_id",
    "address",
    "address_line_2",
    "city",
    "state",
    "postal_code",
    "country",
    "phone",
)


def _row_to_purchase(row: dict) -> Purchase:
    return Purchase(
        id=str(row["id"]),
        user_id=str(row["user_id"]),
        audiobook_id=str(row["audiobook_id"]),
        price_paid_cents=int(row["price_paid_cents"]),
        currency=(row.get("currency") or "EUR").strip(),
        status=PurchaseStatus(row["status"]),
        paypal_order_id=row.get("paypal_order_id"),
        paypal_capture_id=row.get("paypal_capture_id"),
        paypal_payer_email=row.get("paypal_payer_email"),
        discount_code_id=row.get("discount_code_id"),
        discount_cents=int(row.get("discount_cents") or 0),
        purchased_at=row.get("purchased_at"),
        created_at=row["created_at"],
    )


def _row_to_subscription(row: dict) -> UserSubscription:
    return UserSubscription(
        id=str(row["id"]),
        user_id=str(row["user_id"]),
        plan_id=str(row["plan_id"]),
        status=SubscriptionStatus(row["status"]),
        paypal_subscription_id=row.get("paypal_subscription_id"),
        current_period_start=row["current_period_start"],
        current_period_end=row["current_period_end"],
        canceled_at=row.get("canceled_at"),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def row_to_plan(row: dict) -> SubscriptionPlan:
    return SubscriptionPlan(
        id=str(row["id"]),
        name=row["name"],
        description=row.get("description"),
        price_cents=int(row["price_cents"]),
        currency=(row.get("currency") or "EUR").strip(),
        interval_months=int(row.get("interval_months") or 1),
        trial_days=int(row.get("trial_days") or 0),
        paypal_plan_id=row.get("paypal_plan_id"),
        paypal_product_id=row.get("paypal_product_id"),
        is_active=bool(row.get("is_active")),
    )


def row_to_discount_code(row: dict) -> DiscountCode:
    return DiscountCode(**{**row, "id": str(row["id"])})


def _row_to_profile(row: dict) -> BillingProfile:
    return BillingProfile(
        user_id=str(row["user_id"]),
        updated_at=row.get("updated_at"),
        **{field: row.get(field) for field in _PROFILE_FIELDS},
    )


class PostgresBillingRepository(PostgresRepository):
    """Concrete repository persisting billing models in PostgreSQL."""

    # Purchases -----------------------------------------------------------------

    def create_pending_purchase(
        self,
        *,
        user_id: str,
        audiobook_id: str,
        price_paid_cents: int,
        currency: str,
        paypal_order_id: str,
        discount_code_id: Optional[str] = None,
        discount_cents: int = 0,
    ) -> Purchase:
        with self._cursor() as cursor:
            cursor.execute(
                f"""
                INSERT INTO audiobook_purchases (
                    user_id, audiobook_id, price_paid_cents, currency, status, paypal_order_id,
                    discount_code_id, discount_cents
                ) VALUES (%s, %s, %s, %s, 'PENDING', %s, %s, %s)
                RETURNING {_PURCHASE_COLUMNS}
                """,
                (user_id, audiobook_id, price_paid_cents, currency, paypal_order_id, discount_code_id, discount_cents),
            )
            row = cursor.fetchone()
        return _row_to_purchase(row)

    def list_purchases_by_order(self, paypal_order_id: str) -> List[Purchase]:
        with self._cursor() as cursor:
            cursor.execute(
                f"""
                SELECT {_PURCHASE_COLUMNS}
                FROM audiobook_purchases
                WHERE paypal_order_id = %s
                ORDER BY created_at ASC
                """,
                (paypal_order_id,),
            )
            rows = cursor.fetchall()
        return [_row_to_purchase(row) for row in rows]

    def complete_order(
        self,
        paypal_order_id: str,
        *,
        capture_id: Optional[str],
        payer_email: Optional[str],
        purchased_at: datetime,
    ) -> List[Purchase]:
        """Flip the PENDING rows of an order to COMPLETED in one transaction.

        Rows already completed are left untouched so concurrent captures and
        webhook deliveries are harmless.  A row whose audiobook the user
        already owns through another order is marked FAILED instead, so the
        rest of a cart order still completes; callers find those rows with
        ``list_purchases_by_order``.
        """

        try:
            with self._cursor() as cursor:
                cursor.execute(
                    f"""
                    UPDATE audiobook_purchases
                    SET status = 'COMPLETED',
                        paypal_capture_id = COALESCE(%s, paypal_capture_id),
                        paypal_payer_email = COALESCE(%s, paypal_payer_email),
                        purchased_at = %s
                    WHERE paypal_order_id = %s AND status = 'PENDING'
                      AND NOT EXISTS (
                        SELECT 1 FROM audiobook_purchases owned
                        WHERE owned.user_id = audiobook_purchases.user_id
                          AND owned.audiobook_id = audiobook_purchases.audiobook_id
                          AND owned.status = 'COMPLETED'
                      )
                    RETURNING {_PURCHASE_COLUMNS}
                    """,
                    (capture_id, payer_email, purchased_at, paypal_order_id),
                )
                rows = cursor.fetchall()
                cursor.execute(
                    """
                    UPDATE audiobook_purchases
                    SET status = 'FAILED', paypal_capture_id = COALESCE(%s, paypal_capture_id)
                    WHERE paypal_order_id = %s AND status = 'PENDING'
                    """,
                    (capture_id, paypal_order_id),
                )
        except psycopg2.errors.UniqueViolation as exc:
            # Only reachable when two orders for the same audiobook complete concurrently.
            raise ConflictError(
                "already_purchased",
                "This audiobook was already purchased",
                detail={"order_id": paypal_order_id},
            ) from exc
        return [_row_to_purchase(row) for row in rows]

    def mark_order_failed(self, paypal_order_id: str) -> int:
        with self._cursor() as cursor:
            cursor.execute(
                """
                UPDATE audiobook_purchases SET status = 'FAILED'
                WHERE paypal_order_id = %s AND status = 'PENDING'
                """,
                (paypal_order_id,),
            )
            return cursor.rowcount

    def has_completed_purchase(self, user_id: str, audiobook_id: str) -> bool:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT 1 FROM audiobook_purchases
                WHERE user_id::text = %s AND audiobook_id::text = %s AND status = 'COMPLETED'
                LIMIT 1
                """,
                (user_id, audiobook_id),
            )
            return cursor.fetchone() is not None

    def owned_audiobook_ids(self, user_id: str, audiobook_ids: Iterable[str]) -> Set[str]:
        ids = list(audiobook_ids)
        if not ids:
            return set()
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT audiobook_id::text AS audiobook_id FROM audiobook_purchases
                WHERE user_id::text = %s AND audiobook_id::text = ANY(%s) AND status = 'COMPLETED'
                """,
                (user_id, ids),
            )
            return {row["audiobook_id"] for row in cursor.fetchall()}

    def list_user_purchases(self, user_id: str) -> List[Purchase]:
        with self._cursor() as cursor:
            cursor.execute(
                f"""
                SELECT {_PURCHASE_COLUMNS}
                FROM audiobook_purchases
                WHERE user_id::text = %s AND status = 'COMPLETED'
                ORDER BY purchased_at DESC NULLS LAST
                """,
                (user_id,),
            )
            rows = cursor.fetchall()
        return [_row_to_purchase(row) for row in rows]

    def list_purchases(self, *, status: Optional[PurchaseStatus] = None, limit: int = 200) -> List[Purchase]:
        with self._cursor() as cursor:
            if status is None:
                cursor.execute(
                    f"SELECT {_PURCHASE_COLUMNS} FROM audiobook_purchases ORDER BY created_at DESC LIMIT %s",
                    (limit,),
                )
            else:
                cursor.execute(
                    f"""
                    SELECT {_PURCHASE_COLUMNS} FROM audiobook_purchases
                    WHERE status = %s ORDER BY created_at DESC LIMIT %s
                    """,
                    (status.value, limit),
                )
            rows = cursor.fetchall()
        return [_row_to_purchase(row) for row in rows]

    def delete_pending_purchase(self, purchase_id: str) -> bool:
        with self._cursor() as cursor:
            cursor.execute(
                "DELETE FROM audiobook_purchases WHERE id::text = %s AND status = 'PENDING'",
                (purchase_id,),
            )
            return cursor.rowcount > 0

    def delete_pending_before(self, cutoff: datetime) -> int:
        with self._cursor() as cursor:
            cursor.execute(
                "DELETE FROM audiobook_purchases WHERE status = 'PENDING' AND created_at < %s",
                (cutoff,),
            )
            return cursor.rowcount

    # Subscriptions -------------------------------------------------------------

    def get_plan(self, plan_id: str) -> Optional[SubscriptionPlan]:
        with self._cursor() as cursor:
            cursor.execute(
                f"SELECT {_PLAN_COLUMNS} FROM subscription_plans WHERE id::text = %s",
                (plan_id,),
            )
            row = cursor.fetchone()
        return row_to_plan(row) if row else None

    def list_plans(self, *, active_only: bool = True) -> List[SubscriptionPlan]:
        with self._cursor() as cursor:
            cursor.execute(
                f"""
                SELECT {_PLAN_COLUMNS} FROM subscription_plans
                WHERE (%s = FALSE OR is_active)
                ORDER BY price_cents ASC
                """,
                (active_only,),
            )
            rows = cursor.fetchall()
        return [row_to_plan(row) for row in rows]

    def get_user_subscription(self, user_id: str) -> Optional[UserSubscription]:
        """Return the user's ACTIVE subscription if any, else the newest one."""

        with self._cursor() as cursor:
            cursor.execute(
                f"""
                SELECT {_SUBSCRIPTION_COLUMNS}
                FROM user_subscriptions
                WHERE user_id::text = %s
                ORDER BY (status = 'ACTIVE') DESC, current_period_end DESC
                LIMIT 1
                """,
                (user_id,),
            )
            row = cursor.fetchone()
        return _row_to_subscription(row) if row else None

    def get_current_subscription(self, user_id: str) -> Optional[SubscriptionRecord]:
        subscription = self.get_user_subscription(user_id)
        return subscription.to_record() if subscription else None

    def get_subscription_by_paypal_id(self, paypal_subscription_id: str) -> Optional[UserSubscription]:
        with self._cursor() as cursor:
            cursor.execute(
                f"SELECT {_SUBSCRIPTION_COLUMNS} FROM user_subscriptions WHERE paypal_subscription_id = %s",
                (paypal_subscription_id,),
            )
            row = cursor.fetchone()
        return _row_to_subscription(row) if row else None

    def save_subscription(
        self,
        *,
        user_id: str,
        plan_id: str,
        status: SubscriptionStatus,
        paypal_subscription_id: str,
        current_period_start: datetime,
        current_period_end: datetime,
    ) -> UserSubscription:
        with self._cursor() as cursor:
            cursor.execute(
                f"""
                INSERT INTO user_subscriptions (
                    user_id, plan_id, status, paypal_subscription_id,
                    current_period_start, current_period_end
                ) VALUES (%s, %s, %s, %s, %s, %s)
                ON CONFLICT (paypal_subscription_id) DO UPDATE SET
                    status = EXCLUDED.status,
                    current_period_start = EXCLUDED.current_period_start,
                    current_period_end = EXCLUDED.current_period_end,
                    updated_at = now()
                RETURNING {_SUBSCRIPTION_COLUMNS}
                """,
                (
                    user_id,
                    plan_id,
                    status.value,
                    paypal_subscription_id,
                    current_period_start,
                    current_period_end,
                ),
            )
            row = cursor.fetchone()
        return _row_to_subscription(row)

    def update_subscription_status(
        self,
        paypal_subscription_id: str,
        *,
        status: SubscriptionStatus,
        canceled_at: Optional[datetime] = None,
    ) -> Optional[UserSubscription]:
        with self._cursor() as cursor:
            cursor.execute(
                f"""
                UPDATE user_subscriptions
                SET status = %s, canceled_at = COALESCE(%s, canceled_at), updated_at = now()
                WHERE paypal_subscription_id = %s
                RETURNING {_SUBSCRIPTION_COLUMNS}
                """,
                (status.value, canceled_at, paypal_subscription_id),
            )
            row = cursor.fetchone()
        return _row_to_subscription(row) if row else None

    # Users, profiles, configuration -------------------------------------------

    def set_payer_id(self, user_id: str, payer_id: str) -> None:
        with self._cursor() as cursor:
            cursor.execute(
                "UPDATE users SET paypal_payer_id = %s WHERE id::text = %s",
                (payer_id, user_id),
            )

    def get_billing_profile(self, user_id: str) -> Optional[BillingProfile]:
        with self._cursor() as cursor:
            cursor.execute(
                "SELECT * FROM billing_profiles WHERE user_id::text = %s",
                (user_id,),
            )
            row = cursor.fetchone()
        return _row_to_profile(row) if row else None

    def upsert_billing_profile(self, profile: BillingProfile) -> BillingProfile:
        values = [getattr(profile, field) for field in _PROFILE_FIELDS]
        columns = ", ".join(_PROFILE_FIELDS)
        placeholders = ", ".join(["%s"] * len(_PROFILE_FIELDS))
        updates = ", ".join(f"{field} = EXCLUDED.{field}" for field in _PROFILE_FIELDS)
        with self._cursor() as cursor:
            cursor.execute(
                f"""
                INSERT INTO billing_profiles (user_id, {columns})
                VALUES (%s, {placeholders})
                ON CONFLICT (user_id) DO UPDATE SET {updates}, updated_at = now()
                RETURNING *
                """,
                (profile.user_id, *values),
            )
            row = cursor.fetchone()
        return _row_to_profile(row)

    def get_paypal_config(self) -> Optional[PayPalConfig]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT client_id, webhook_id, environment, is_active
                FROM paypal_config
                WHERE is_active
                ORDER BY updated_at DESC
                LIMIT 1
                """
            )
            row = cursor.fetchone()
        if not row:
            return None
        return PayPalConfig(
            client_id=row["client_id"],
            webhook_id=row.get("webhook_id"),
            environment=PayPalEnvironment(row["environment"]),
            is_active=bool(row["is_active"]),
        )

    def save_paypal_config(self, config: PayPalConfig) -> PayPalConfig:
        with self._cursor() as cursor:
            cursor.execute("UPDATE paypal_config SET is_active = FALSE WHERE is_active")
            cursor.execute(
                """
                INSERT INTO paypal_config (client_id, webhook_id, environment, is_active)
                VALUES (%s, %s, %s, %s)
                """,
                (config.client_id, config.webhook_id, config.environment.value, config.is_active),
            )
        return config

    def record_webhook_event(self, event: PayPalWebhookEvent) -> bool:
        with self._cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO paypal_webhook_events (event_id, event_type, received_at)
                VALUES (%s, %s, %s)
                ON CONFLICT (event_id) DO NOTHING
                """,
                (event.event_id, event.event_type, event.received_at),
            )
            return cursor.rowcount == 1

    def forget_webhook_event(self, event_id: str) -> None:
        with self._cursor() as cursor:
            cursor.execute("DELETE FROM paypal_webhook_events WHERE event_id = %s", (event_id,))

    # Discount codes ----------------------------------------------------------

    def get_discount_code(self, code: str) -> Optional[DiscountCode]:
        with self._cursor() as cursor:
            cursor.execute("SELECT * FROM discount_codes WHERE code = %s", (code,))
            row = cursor.fetchone()
        return row_to_discount_code(row) if row else None

    def count_discount_uses(self, discount_code_id: str, user_id: str) -> int:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT COUNT(*) AS total FROM discount_code_usage
                WHERE discount_code_id = %s AND user_id = %s
                """,
                (discount_code_id, user_id),
            )
            return int(cursor.fetchone()["total"])

    def record_discount_use(
        self,
        discount_code_id: str,
        *,
        user_id: str,
        paypal_order_id: str,
        discount_cents: int,
    ) -> bool:
        """Count one redemption per order; repeated calls for the same order are ignored."""

        with self._cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO discount_code_usage (discount_code_id, user_id, paypal_order_id, discount_cents)
                VALUES (%s, %s, %s, %s)
                ON CONFLICT (discount_code_id, paypal_order_id) DO NOTHING
                """,
                (discount_code_id, user_id, paypal_order_id, discount_cents),
            )
            if cursor.rowcount != 1:
                return False
            cursor.execute(
                "UPDATE discount_codes SET used_count = used_count + 1 WHERE id = %s",
                (discount_code_id,),
            )
            return True


__all__ = ["PostgresBillingRepository", "row_to_discount_code", "row_to_plan"]
