"""Tests for line-item eligibility per scope."""

import pytest

from conftest import cart, course, product
from promo_engine.models.discount_code import AppliesToEnum, DiscountKindEnum, DiscountScopeEnum
from promo_engine.services.discount_errors import ScopeMismatch
from promo_engine.services.discount_rules import DiscountRule, build_scope
from promo_engine.services.scope_matcher import eligible_items, match_scope


def rule_for(scope_type, target_ids=(), applies_to=AppliesToEnum.BOTH, **kwargs):
    return DiscountRule(
        code="TEST",
        title="Test",
        kind=DiscountKindEnum.PERCENT,
        value=10,
        scope=build_scope(scope_type, target_ids),
        applies_to=applies_to,
        author_id="admin-1",
        **kwargs,
    )


MIXED = cart(course("c-1", 40000), course("c-2", 20000), product("p-1", 5000, categories=["books"]))


def test_all_scope_takes_every_item():
    match = match_scope(rule_for(DiscountScopeEnum.ALL), MIXED)
    assert [i.item_id for i in match.eligible_items] == ["c-1", "c-2", "p-1"]
    assert match.subtotal == 65000


def test_specific_courses_only_matches_listed_courses():
    match = match_scope(rule_for(DiscountScopeEnum.SPECIFIC_COURSES, ["c-2", "p-1"]), MIXED)
    # p-1 is a product, so listing its id under a course scope does not match it
    assert [i.item_id for i in match.eligible_items] == ["c-2"]
    assert match.subtotal == 20000


def test_specific_products():
    match = match_scope(rule_for(DiscountScopeEnum.SPECIFIC_PRODUCTS, ["p-1"]), MIXED)
    assert match.subtotal == 5000


def test_categories_match_any_overlap():
    match = match_scope(rule_for(DiscountScopeEnum.CATEGORIES, ["books", "music"]), MIXED)
    assert [i.item_id for i in match.eligible_items] == ["p-1"]


def test_applies_to_filters_before_scope():
    rule = rule_for(DiscountScopeEnum.ALL, applies_to=AppliesToEnum.PRODUCTS_ONLY)
    assert [i.item_id for i in eligible_items(rule, MIXED)] == ["p-1"]

    rule = rule_for(DiscountScopeEnum.CATEGORIES, ["books"], applies_to=AppliesToEnum.COURSES_ONLY)
    with pytest.raises(ScopeMismatch):
        match_scope(rule, MIXED)


def test_quantity_counts_toward_subtotal():
    match = match_scope(rule_for(DiscountScopeEnum.ALL), cart(product("p-1", 2500, quantity=3)))
    assert match.subtotal == 7500


def test_first_purchase():
    rule = rule_for(DiscountScopeEnum.FIRST_PURCHASE)
    assert match_scope(rule, cart(course("c-1", 1000))).subtotal == 1000

    with pytest.raises(ScopeMismatch) as exc:
        match_scope(rule, cart(course("c-1", 1000), has_prior_completed_order=True))
    assert "first purchase" in exc.value.message


def test_minimum_amount_scope_matches_whole_cart():
    rule = rule_for(DiscountScopeEnum.MINIMUM_AMOUNT, minimum_amount=100000)
    assert match_scope(rule, MIXED).subtotal == 65000


def test_nothing_eligible_is_a_mismatch():
    with pytest.raises(ScopeMismatch):
        match_scope(rule_for(DiscountScopeEnum.SPECIFIC_COURSES, ["c-9"]), MIXED)
    with pytest.raises(ScopeMismatch):
        match_scope(rule_for(DiscountScopeEnum.ALL), cart())
