"""Error taxonomy for the storefront client."""
from __future__ import annotations

from typing import Any, Dict, Mapping, Optional


class StorefrontError(Exception):
    """Base class for every error raised by the storefront client."""


class ApiError(StorefrontError):
    """The API answered with an error status or could not be reached."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
        detail: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code
        self.detail = detail or {}


class AuthenticationRequired(ApiError):
    """401: the visitor has to log in first."""


class DomainConflict(ApiError):
    """A business rule refused the request, e.g. buying an owned audiobook."""


class NotConfigured(ApiError):
    """PayPal has no server configuration; show a placeholder instead of an error."""


class ScriptLoadError(StorefrontError):
    """The PayPal SDK script failed to load or never initialised."""


class OperationCancelled(StorefrontError):
    """The widget was unmounted while an operation was in flight."""


def error_from_response(status_code: int, payload: Any) -> ApiError:
    """Build the matching :class:`ApiError` subclass for an error response.

    FastAPI puts domain failures under ``detail`` either as a plain string or
    as ``{"error": code, "message": text}``.
    """

    code: Optional[str] = None
    message = f"Request failed with status {status_code}"
    detail: Dict[str, Any] = {}
    raw = payload.get("detail") if isinstance(payload, Mapping) else None
    if isinstance(raw, Mapping):
        detail = dict(raw)
        code = raw.get("error")
        message = raw.get("message") or message
    elif isinstance(raw, str) and raw:
        message = raw

    if status_code == 401:
        return AuthenticationRequired(message, status_code, code, detail)
    if status_code == 409 or (status_code == 400 and code):
        return DomainConflict(message, status_code, code, detail)
    return ApiError(message, status_code, code, detail)


__all__ = [
    "ApiError",
    "AuthenticationRequired",
    "DomainConflict",
    "NotConfigured",
    "OperationCancelled",
    "ScriptLoadError",
    "StorefrontError",
    "error_from_response",
]
