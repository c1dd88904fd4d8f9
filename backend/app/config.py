"""Application configuration helpers."""
from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Mapping, Optional, Tuple
import os


@dataclass(frozen=True)
class AppConfig:
    """Runtime settings shared by the checkout and catalog services."""

    app_base_url: str
    brand_name: str
    paypal_client_secret: Optional[str]
    paypal_timeout_seconds: float
    entitlement_cache_ttl_seconds: int
    pending_purchase_max_age_hours: int
    default_currency: str
    cors_origins: Tuple[str, ...]

    @property
    def checkout_return_url(self) -> str:
        return f"{self.app_base_url}/checkout/success"

    @property
    def checkout_cancel_url(self) -> str:
        return f"{self.app_base_url}/checkout/cancel"


def _to_bool(value: Optional[str], *, default: bool) -> bool:
    if value is None:
        return default
    lowered = value.strip().lower()
    if lowered in {"1", "true", "yes", "on"}:
        return True
    if lowered in {"0", "false", "no", "off"}:
        return False
    return default


def _to_int(value: Optional[str], *, default: int) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Expected integer value, got {value!r}") from exc


def _to_float(value: Optional[str], *, default: float) -> float:
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Expected float value, got {value!r}") from exc


def _to_list(value: Optional[str], *, default: Tuple[str, ...]) -> Tuple[str, ...]:
    if not value:
        return default
    return tuple(item.strip() for item in value.split(",") if item.strip())


def load_app_config(env: Optional[Mapping[str, str]] = None) -> AppConfig:
    """Load :class:`AppConfig` from environment variables."""

    env_mapping = os.environ if env is None else env

    app_base_url = env_mapping.get("APP_BASE_URL", "http://localhost:5173").rstrip("/")
    brand_name = (env_mapping.get("BRAND_NAME") or "Audivia").strip() or "Audivia"
    paypal_client_secret = env_mapping.get("PAYPAL_CLIENT_SECRET") or None
    paypal_timeout_seconds = max(1.0, _to_float(env_mapping.get("PAYPAL_TIMEOUT_SECONDS"), default=15.0))
    entitlement_cache_ttl_seconds = max(
        0, _to_int(env_mapping.get("ENTITLEMENT_CACHE_TTL_SECONDS"), default=300)
    )
    pending_purchase_max_age_hours = max(
        1, _to_int(env_mapping.get("PENDING_PURCHASE_MAX_AGE_HOURS"), default=24)
    )
    default_currency = (env_mapping.get("DEFAULT_CURRENCY") or "EUR").strip().upper()
    cors_origins = _to_list(env_mapping.get("CORS_ORIGINS"), default=("http://localhost:5173",))

    return AppConfig(
        app_base_url=app_base_url,
        brand_name=brand_name,
        paypal_client_secret=paypal_client_secret,
        paypal_timeout_seconds=paypal_timeout_seconds,
        entitlement_cache_ttl_seconds=entitlement_cache_ttl_seconds,
        pending_purchase_max_age_hours=pending_purchase_max_age_hours,
        default_currency=default_currency,
        cors_origins=cors_origins,
    )


def cookie_secure_default(env: Optional[Mapping[str, str]] = None) -> bool:
    env_mapping = os.environ if env is None else env
    return _to_bool(env_mapping.get("SESSION_COOKIE_SECURE"), default=False)


@lru_cache(maxsize=1)
def get_app_config() -> AppConfig:
    """Process-wide configuration read once from the environment."""

    return load_app_config()


__all__ = ["AppConfig", "cookie_secure_default", "get_app_config", "load_app_config"]
