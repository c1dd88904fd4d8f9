from __future__ import annotations

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from backend.app.billing import DiscountCode, DiscountRejected, DiscountType
from backend.app.billing.discounts import check_discount, normalize_code, split_discount

NOW = datetime(2026, 10, 1, tzinfo=timezone.utc)


def _code(**overrides) -> DiscountCode:
    data = dict(id="d-1", code="SPRING", type=DiscountType.PERCENTAGE, value=15)
    data.update(overrides)
    return DiscountCode(**data)


def test_percentage_rounds_half_up_to_the_cent():
    assert _code(value=15).amount_off(1099) == 165
    assert _code(value=10).amount_off(995) == 100
    assert _code(value=100).amount_off(1299) == 1299


def test_fixed_amount_never_exceeds_the_total():
    code = _code(type=DiscountType.FIXED_AMOUNT, value=500)

    assert code.amount_off(1299) == 500
    assert code.amount_off(300) == 300
    assert code.amount_off(0) == 0


def test_value_must_be_positive():
    with pytest.raises(ValidationError):
        _code(value=0)


def test_split_is_proportional_and_adds_up():
    shares = split_discount([999, 1500], 250)

    assert shares == [100, 150]
    assert sum(split_discount([333, 333, 334], 100)) == 100


def test_split_never_takes_more_than_an_item_costs():
    shares = split_discount([1, 1, 998], 1000)

    assert shares == [1, 1, 998]
    assert split_discount([500, 500], 0) == [0, 0]


def test_codes_are_compared_upper_case_without_surrounding_space():
    assert normalize_code("  spring25 ") == "SPRING25"


def test_check_discount_accepts_a_redeemable_code():
    code = _code(min_purchase_cents=1000, max_uses_per_user=2)

    assert check_discount(code, total_cents=1000, uses_by_user=1, now=NOW) is code


def test_per_user_limit_can_be_lifted():
    code = _code(max_uses_per_user=None)

    assert check_discount(code, total_cents=500, uses_by_user=40, now=NOW) is code


def test_validity_window_is_inclusive_of_its_bounds():
    code = _code(valid_from=NOW, valid_until=NOW)

    assert check_discount(code, total_cents=500, uses_by_user=0, now=NOW) is code


def test_minimum_purchase_message_shows_the_amount():
    with pytest.raises(DiscountRejected, match="20.00"):
        check_discount(_code(min_purchase_cents=2000), total_cents=1999, uses_by_user=0, now=NOW)
