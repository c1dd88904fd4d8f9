"""Async storefront client: PayPal checkout widgets, toggles and query cache."""

from .api import StorefrontApi
from .cancellation import CancellationToken
from .checkout import CheckoutGate, CheckoutReadiness
from .config import StorefrontConfig, load_storefront_config
from .errors import (
    ApiError,
    AuthenticationRequired,
    DomainConflict,
    NotConfigured,
    OperationCancelled,
    ScriptLoadError,
    StorefrontError,
)
from .notices import CollectingNotifier, LoggingNotifier, Notice, NoticeLevel, Notifier
from .query_cache import QueryCache
from .sdk import PaymentPage, ScriptSignature, SdkLoader, SdkMode
from .toggles import LibraryToggles, ToggleOutcome, ToggleResult
from .widget import PurchaseButton, SubscriptionButton, WidgetHandle, WidgetState

__all__ = [
    "ApiError",
    "AuthenticationRequired",
    "CancellationToken",
    "CheckoutGate",
    "CheckoutReadiness",
    "CollectingNotifier",
    "DomainConflict",
    "LibraryToggles",
    "LoggingNotifier",
    "NotConfigured",
    "Notice",
    "NoticeLevel",
    "Notifier",
    "OperationCancelled",
    "PaymentPage",
    "PurchaseButton",
    "QueryCache",
    "ScriptLoadError",
    "ScriptSignature",
    "SdkLoader",
    "SdkMode",
    "StorefrontApi",
    "StorefrontConfig",
    "StorefrontError",
    "SubscriptionButton",
    "ToggleOutcome",
    "ToggleResult",
    "WidgetHandle",
    "WidgetState",
    "load_storefront_config",
]
