"""Configuration for the storefront client."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional
import os

PAYPAL_SDK_URL = "https://www.paypal.com/sdk/js"


@dataclass(frozen=True)
class StorefrontConfig:
    api_base_url: str = "http://localhost:8000"
    request_timeout: float = 15.0
    sdk_ready_timeout: float = 5.0
    default_currency: str = "EUR"
    sdk_base_url: str = PAYPAL_SDK_URL


def _to_float(value: Optional[str], *, default: float) -> float:
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Expected float value, got {value!r}") from exc


def load_storefront_config(env: Optional[Mapping[str, str]] = None) -> StorefrontConfig:
    """Load :class:`StorefrontConfig` from ``STOREFRONT_*`` environment variables."""

    env_mapping = os.environ if env is None else env
    return StorefrontConfig(
        api_base_url=env_mapping.get("STOREFRONT_API_BASE_URL", "http://localhost:8000").rstrip("/"),
        request_timeout=max(1.0, _to_float(env_mapping.get("STOREFRONT_REQUEST_TIMEOUT"), default=15.0)),
        sdk_ready_timeout=max(0.1, _to_float(env_mapping.get("STOREFRONT_SDK_READY_TIMEOUT"), default=5.0)),
        default_currency=(env_mapping.get("STOREFRONT_CURRENCY") or "EUR").strip().upper(),
        sdk_base_url=env_mapping.get("STOREFRONT_SDK_URL", PAYPAL_SDK_URL),
    )


__all__ = ["PAYPAL_SDK_URL", "StorefrontConfig", "load_storefront_config"]
