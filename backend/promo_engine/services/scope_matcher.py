from dataclasses import dataclass
from typing import List

from promo_engine.models.discount_code import AppliesToEnum, DiscountScopeEnum
from promo_engine.services.discount_errors import ScopeMismatch
from promo_engine.services.discount_rules import DiscountRule, ItemKindEnum, LineItem, PurchaseContext


@dataclass(frozen=True)
class ScopeMatch:
    eligible_items: List[LineItem]
    subtotal: int


def _applies_to(item: LineItem, applies_to: AppliesToEnum) -> bool:
    if applies_to == AppliesToEnum.COURSES_ONLY:
        return item.kind == ItemKindEnum.COURSE
    if applies_to == AppliesToEnum.PRODUCTS_ONLY:
        return item.kind == ItemKindEnum.PRODUCT
    return True


def eligible_items(rule: DiscountRule, context: PurchaseContext) -> List[LineItem]:
    items = [item for item in context.items if _applies_to(item, rule.applies_to)]
    scope_type = rule.scope_type
    targets = rule.target_ids

    if scope_type == DiscountScopeEnum.SPECIFIC_COURSES:
        return [i for i in items if i.kind == ItemKindEnum.COURSE and i.item_id in targets]
    if scope_type == DiscountScopeEnum.SPECIFIC_PRODUCTS:
        return [i for i in items if i.kind == ItemKindEnum.PRODUCT and i.item_id in targets]
    if scope_type == DiscountScopeEnum.CATEGORIES:
        return [i for i in items if i.category_ids & targets]
    if scope_type == DiscountScopeEnum.FIRST_PURCHASE:
        return [] if context.has_prior_completed_order else items
    # ALL and MINIMUM_AMOUNT; the minimum is enforced by the calculator
    return items


def match_scope(rule: DiscountRule, context: PurchaseContext) -> ScopeMatch:
    """Eligible line items and their subtotal; raises ScopeMismatch when nothing qualifies."""
    items = eligible_items(rule, context)
    if not items:
        if rule.scope_type == DiscountScopeEnum.FIRST_PURCHASE and context.has_prior_completed_order:
            raise ScopeMismatch("This discount code is only valid on your first purchase.")
        raise ScopeMismatch()
    return ScopeMatch(eligible_items=items, subtotal=sum(i.amount for i in items))
