"""Shared application context for reusable dependencies."""
from __future__ import annotations

from typing import Any, Callable, Optional

_get_conn: Optional[Callable[[], Any]] = None
_get_current_user: Optional[Callable[..., Any]] = None
_get_optional_current_user: Optional[Callable[..., Optional[Any]]] = None
_require_admin: Optional[Callable[..., Any]] = None


def configure(
    *,
    get_conn: Callable[[], Any],
    get_current_user: Callable[..., Any],
    get_optional_current_user: Callable[..., Optional[Any]],
    require_admin: Callable[..., Any],
) -> None:
    """Register application-wide dependencies required by modular routers."""

    global _get_conn
    global _get_current_user
    global _get_optional_current_user
    global _require_admin

    _get_conn = get_conn
    _get_current_user = get_current_user
    _get_optional_current_user = get_optional_current_user
    _require_admin = require_admin


def _require(value: Optional[Any], name: str) -> Any:
    if value is None:
        raise RuntimeError(f"Application context has not been configured yet: {name}")
    return value


def get_conn() -> Any:
    conn_factory = _require(_get_conn, "get_conn")
    return conn_factory()


def get_current_user(*args: Any, **kwargs: Any) -> Any:
    dependency = _require(_get_current_user, "get_current_user")
    return dependency(*args, **kwargs)


def get_optional_current_user(*args: Any, **kwargs: Any) -> Optional[Any]:
    dependency = _require(_get_optional_current_user, "get_optional_current_user")
    return dependency(*args, **kwargs)


def require_admin(*args: Any, **kwargs: Any) -> Any:
    dependency = _require(_require_admin, "require_admin")
    return dependency(*args, **kwargs)
