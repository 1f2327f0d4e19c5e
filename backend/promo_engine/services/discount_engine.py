"""
Discount engine entry points used by checkout.

- evaluate(): priced preview of a code against a cart. Read-only, safe to call
  on every cart change, never raises for business-rule failures.
- redeem(): consumes one use of a code for an order. The only mutating entry
  point; idempotent per order id.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Union

from sqlalchemy.orm import Session, sessionmaker

from promo_engine.core.logging_config import get_logger
from promo_engine.models.discount_code import DiscountCode
from promo_engine.services.code_resolver import normalize_code, resolve_code
from promo_engine.services.discount_calculator import calculate_discount
from promo_engine.services.discount_errors import BelowMinimumAmount, CodeNotFound, DiscountError
from promo_engine.services.discount_rules import DiscountRule, LineItem, PurchaseContext
from promo_engine.services.limit_enforcer import enforce_usage_limit
from promo_engine.services.redemption_recorder import RedemptionResult, find_usage, record_redemption
from promo_engine.services.scope_matcher import match_scope

logger = get_logger("discount_engine")


@dataclass(frozen=True)
class EvaluationResult:
    code: str
    eligible_items: List[LineItem]
    subtotal: int
    reduction: int
    final_amount: int
    cart_total: int
    remaining_uses: Optional[int] = None


@dataclass(frozen=True)
class EvaluationError:
    kind: str
    message: str
    details: dict = field(default_factory=dict)

    @classmethod
    def from_exception(cls, exc: DiscountError) -> "EvaluationError":
        details = {}
        if isinstance(exc, BelowMinimumAmount):
            details["minimum_amount"] = exc.minimum_amount
        return cls(kind=exc.kind, message=exc.message, details=details)


def price_redemption(rule: DiscountRule, context: PurchaseContext) -> int:
    """Amount a rule takes off this cart; raises when it does not apply."""
    match = match_scope(rule, context)
    computation = calculate_discount(rule, match.subtotal)
    computation.raise_if_not_applicable()
    return computation.reduction


def evaluate(
    db: Session,
    code: str,
    context: PurchaseContext,
    now: datetime,
) -> Union[EvaluationResult, EvaluationError]:
    try:
        rule = resolve_code(db, code, now)
        match = match_scope(rule, context)
        decision = enforce_usage_limit(db, rule, context.buyer_id, now)
        computation = calculate_discount(rule, match.subtotal)
        computation.raise_if_not_applicable()
    except DiscountError as e:
        logger.debug(f"Evaluate {normalize_code(code)!r} rejected: {e.kind}")
        return EvaluationError.from_exception(e)

    return EvaluationResult(
        code=rule.code,
        eligible_items=match.eligible_items,
        subtotal=computation.subtotal,
        reduction=computation.reduction,
        final_amount=computation.final_amount,
        cart_total=context.total,
        remaining_uses=decision.remaining,
    )


def redeem(
    session_factory: sessionmaker,
    code: str,
    context: PurchaseContext,
    order_id: str,
    user_id: str,
    now: datetime,
) -> RedemptionResult:
    """
    Consume one use of `code` for `order_id`.

    A repeated call for an order that already holds a usage record returns the
    stored result without re-validating, so client retries are safe even after
    the code expired. Raises DiscountError on any failure; callers must not
    finalize the order unless this returns.
    """
    normalized = normalize_code(code)
    db = session_factory()
    try:
        row = db.query(DiscountCode.id).filter(DiscountCode.code == normalized).first()
        if row is None:
            raise CodeNotFound("Please enter a discount code." if not normalized else None)
        existing = find_usage(db, row.id, order_id)
        if existing is not None:
            logger.info(f"Replayed redemption of {normalized} for order {order_id}")
            return RedemptionResult(
                code=normalized,
                order_id=order_id,
                applied_amount=existing.applied_amount,
                usage_record_id=existing.id,
                replayed=True,
            )

        rule = resolve_code(db, normalized, now, use_cache=False)
        price_redemption(rule, context)
    except DiscountError as e:
        logger.info(
            f"Redemption of {normalized!r} for order {order_id} rejected: {e.kind}",
            extra={"discount_code": normalized, "order_id": order_id, "user_id": user_id},
        )
        raise
    finally:
        db.close()

    try:
        return record_redemption(
            session_factory,
            rule.id,
            user_id,
            order_id,
            now,
            price=lambda locked_rule: price_redemption(locked_rule, context),
        )
    except DiscountError as e:
        logger.info(
            f"Redemption of {normalized} for order {order_id} rejected: {e.kind}",
            extra={"discount_code": normalized, "order_id": order_id, "user_id": user_id},
        )
        raise
