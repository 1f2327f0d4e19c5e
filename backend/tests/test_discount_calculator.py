"""Tests for reduction arithmetic: rounding, caps and minimums."""

import pytest

from promo_engine.models.discount_code import DiscountKindEnum, DiscountScopeEnum
from promo_engine.services.discount_calculator import calculate_discount
from promo_engine.services.discount_errors import BelowMinimumAmount
from promo_engine.services.discount_rules import DiscountRule, build_scope


def make_rule(kind, value, **kwargs):
    return DiscountRule(code="CALC", title="Calc", kind=kind, value=value, author_id="admin-1", **kwargs)


def test_percent_with_cap():
    result = calculate_discount(make_rule(DiscountKindEnum.PERCENT, 10, maximum_amount=5000), 100000)
    assert result.reduction == 5000
    assert result.final_amount == 95000
    assert result.applies


def test_percent_below_cap():
    result = calculate_discount(make_rule(DiscountKindEnum.PERCENT, 10, maximum_amount=5000), 30000)
    assert result.reduction == 3000


def test_percent_rounds_down():
    # 15% of 999 = 149.85
    result = calculate_discount(make_rule(DiscountKindEnum.PERCENT, 15), 999)
    assert result.reduction == 149
    assert result.final_amount == 850


def test_fractional_percent():
    result = calculate_discount(make_rule(DiscountKindEnum.PERCENT, "12.5"), 1000)
    assert result.reduction == 125


def test_hundred_percent_is_whole_subtotal():
    result = calculate_discount(make_rule(DiscountKindEnum.PERCENT, 100), 4321)
    assert result.reduction == 4321
    assert result.final_amount == 0


def test_fixed_is_clamped_to_subtotal():
    result = calculate_discount(make_rule(DiscountKindEnum.FIXED, 5000), 3000)
    assert result.reduction == 3000
    assert result.final_amount == 0


def test_fixed_ignores_percent_cap():
    result = calculate_discount(make_rule(DiscountKindEnum.FIXED, 5000, maximum_amount=100), 30000)
    assert result.reduction == 5000


def test_below_minimum_gives_no_reduction():
    rule = make_rule(
        DiscountKindEnum.FIXED,
        5000,
        scope=build_scope(DiscountScopeEnum.MINIMUM_AMOUNT),
        minimum_amount=20000,
    )
    result = calculate_discount(rule, 19999)
    assert result.reduction == 0
    assert result.final_amount == 19999
    assert not result.applies
    with pytest.raises(BelowMinimumAmount) as exc:
        result.raise_if_not_applicable()
    assert exc.value.minimum_amount == 20000

    assert calculate_discount(rule, 20000).reduction == 5000


def test_minimum_applies_to_other_scopes_too():
    rule = make_rule(DiscountKindEnum.PERCENT, 10, minimum_amount=1000)
    assert calculate_discount(rule, 999).reason == "BelowMinimumAmount"


def test_zero_subtotal():
    result = calculate_discount(make_rule(DiscountKindEnum.PERCENT, 50), 0)
    assert result.reduction == 0
    assert result.final_amount == 0
