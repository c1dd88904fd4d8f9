from __future__ import annotations

from types import SimpleNamespace

import pytest

from backend.app.billing.models import BillingProfile
from backend.app.entitlements import AccessInfo, UserRole
from backend.app.gates import (
    AccessError,
    ConflictError,
    require_complete_billing_profile,
    require_not_purchased,
    require_playback,
    require_priced,
    require_role,
)


def test_playback_requires_access_unless_sample() -> None:
    sample = SimpleNamespace(is_sample=True)
    locked = SimpleNamespace(is_sample=False)

    require_playback(locked, AccessInfo(has_access=True))
    require_playback(sample, AccessInfo.denied())

    with pytest.raises(AccessError) as exc:
        require_playback(locked, AccessInfo.denied())

    assert exc.value.code == "purchase_required"
    assert exc.value.status_code == 403


def test_require_role_includes_required_role_in_payload() -> None:
    require_role(SimpleNamespace(role=UserRole.ADMIN), UserRole.ADMIN)

    with pytest.raises(AccessError) as exc:
        require_role(SimpleNamespace(role=UserRole.LISTENER), UserRole.ADMIN)

    assert exc.value.payload["required_role"] == "ADMIN"


def test_already_purchased_is_a_conflict() -> None:
    require_not_purchased(False)

    with pytest.raises(ConflictError) as exc:
        require_not_purchased(True)

    http_exc = exc.value.to_http_exception()
    assert http_exc.status_code == 409
    assert http_exc.detail == {"error": "already_purchased", "message": "You already own this audiobook"}


def test_free_audiobook_cannot_be_bought() -> None:
    with pytest.raises(AccessError) as exc:
        require_priced(False)

    assert exc.value.status_code == 400
    assert exc.value.code == "free_audiobook"


def test_incomplete_billing_profile_lists_missing_fields() -> None:
    profile = BillingProfile(user_id="u1", full_name="Ada Lovelace", email="ada@example.com")

    with pytest.raises(ConflictError) as exc:
        require_complete_billing_profile(profile)

    missing = exc.value.payload["missing_fields"]
    assert "address" in missing and "city" in missing
    assert "full_name" not in missing


def test_missing_billing_profile_blocks_checkout() -> None:
    with pytest.raises(ConflictError) as exc:
        require_complete_billing_profile(None)

    assert exc.value.code == "billing_profile_incomplete"
