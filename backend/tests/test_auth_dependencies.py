import pathlib
import sys
from datetime import datetime, timedelta
from uuid import uuid4

import pytest
from fastapi import HTTPException


ROOT = pathlib.Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import backend.main as backend_main
from backend.app.entitlements import UserRole


def _user(**overrides):
    fields = dict(
        id=str(uuid4()),
        username="alice",
        email="alice@example.com",
        role=UserRole.LISTENER,
        created_at=datetime.utcnow(),
    )
    fields.update(overrides)
    return backend_main.UserOut(**fields)


def test_get_optional_current_user_missing_cookie_returns_none():
    assert backend_main.get_optional_current_user(None) is None


def test_get_optional_current_user_invalid_token_returns_none():
    assert backend_main.get_optional_current_user("not-a-valid-token") is None


def test_get_optional_current_user_expired_token_returns_none(monkeypatch):
    expired_token = backend_main.create_access_token(
        subject=str(uuid4()), expires_delta=timedelta(minutes=-5)
    )

    def _unexpected_get_user_by_id(_uid: str):
        raise AssertionError("get_user_by_id should not be called for expired tokens")

    monkeypatch.setattr(backend_main, "get_user_by_id", _unexpected_get_user_by_id)

    assert backend_main.get_optional_current_user(expired_token) is None


def test_non_uuid_subject_is_rejected_without_lookup(monkeypatch):
    token = backend_main.create_access_token(subject="42")

    def _unexpected_get_user_by_id(_uid: str):
        raise AssertionError("get_user_by_id should not be called for malformed subjects")

    monkeypatch.setattr(backend_main, "get_user_by_id", _unexpected_get_user_by_id)

    assert backend_main.get_optional_current_user(token) is None


def test_get_optional_current_user_valid_token_returns_user(monkeypatch):
    user = _user()

    monkeypatch.setattr(backend_main, "get_user_by_id", lambda uid: user if uid == user.id else None)

    token = backend_main.create_access_token(subject=user.id)

    assert backend_main.get_optional_current_user(token) is user


def test_inactive_user_is_treated_as_anonymous(monkeypatch):
    user = _user(is_active=False)
    monkeypatch.setattr(backend_main, "get_user_by_id", lambda uid: user)
    token = backend_main.create_access_token(subject=user.id)

    assert backend_main.get_optional_current_user(token) is None
    with pytest.raises(HTTPException) as exc:
        backend_main.get_current_user(token)
    assert exc.value.status_code == 401


def test_require_admin_rejects_listeners():
    with pytest.raises(HTTPException) as exc:
        backend_main.require_admin(_user())

    assert exc.value.status_code == 403
    assert exc.value.detail["error"] == "role_required"


def test_require_admin_accepts_admins():
    admin = _user(role=UserRole.ADMIN)

    assert backend_main.require_admin(admin) is admin
