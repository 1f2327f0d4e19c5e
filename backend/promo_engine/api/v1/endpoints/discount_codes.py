"""
Discount codes: evaluate and redeem (checkout), and authoring for admins and
course owners.
"""
from datetime import datetime, timezone
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session, sessionmaker

from promo_engine.core.database import get_db, get_session_factory
from promo_engine.models.discount_code import DiscountCode
from promo_engine.api.v1.endpoints.auth import get_current_actor
from promo_engine.schemas.discount_code import (
    DiscountCodeBulkRequest,
    DiscountCodeBulkResponse,
    DiscountCodeDeleteResponse,
    DiscountCodeEvaluateRequest,
    DiscountCodeEvaluateResponse,
    DiscountCodeListResponse,
    DiscountCodeRedeemRequest,
    DiscountCodeRedeemResponse,
    DiscountCodeResponse,
    DiscountCodeWrite,
    DiscountErrorPayload,
    DiscountEvaluation,
)
from promo_engine.services import discount_authoring
from promo_engine.services.discount_authoring import Actor
from promo_engine.services.discount_engine import EvaluationError, evaluate, redeem
from promo_engine.services.limit_enforcer import usage_counts

router = APIRouter()


def get_now() -> datetime:
    return datetime.now(timezone.utc)


def _to_response(row: DiscountCode, usage_count: int = 0) -> DiscountCodeResponse:
    return DiscountCodeResponse.model_validate(row).model_copy(update={"usage_count": usage_count})


@router.post("/evaluate", response_model=DiscountCodeEvaluateResponse)
def evaluate_discount_code(
    body: DiscountCodeEvaluateRequest,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
):
    """
    Price a discount code against the current cart without consuming it.
    Call this whenever the cart changes; business-rule failures come back as
    `error` with a 200 so checkout can show them inline.
    """
    outcome = evaluate(db, body.code, body.context, now)
    if isinstance(outcome, EvaluationError):
        return DiscountCodeEvaluateResponse(
            valid=False,
            error=DiscountErrorPayload(kind=outcome.kind, message=outcome.message, **outcome.details),
        )
    return DiscountCodeEvaluateResponse(
        valid=True,
        result=DiscountEvaluation(
            code=outcome.code,
            eligible_items=outcome.eligible_items,
            subtotal=outcome.subtotal,
            reduction=outcome.reduction,
            final_amount=outcome.final_amount,
            cart_total=outcome.cart_total,
            remaining_uses=outcome.remaining_uses,
        ),
    )


@router.post("/redeem", response_model=DiscountCodeRedeemResponse)
def redeem_discount_code(
    body: DiscountCodeRedeemRequest,
    session_factory: sessionmaker = Depends(get_session_factory),
    actor: Actor = Depends(get_current_actor),
    now: datetime = Depends(get_now),
):
    """
    Consume one use of the code for an order at order confirmation.
    Safe to retry with the same order_id. Any non-200 answer means the order
    must not be finalized with this discount.
    """
    context = body.context.model_copy(update={"buyer_id": actor.user_id})
    result = redeem(session_factory, body.code, context, body.order_id, actor.user_id, now)
    return DiscountCodeRedeemResponse(
        code=result.code,
        order_id=result.order_id,
        applied_amount=result.applied_amount,
        usage_record_id=result.usage_record_id,
        replayed=result.replayed,
    )


@router.get("", response_model=DiscountCodeListResponse)
def list_discount_codes(
    search: str = Query(""),
    page: int = Query(1, ge=1),
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Admins see every code, course owners the codes they authored."""
    result = discount_authoring.list_discount_codes(db, actor, search=search, page=page)
    return DiscountCodeListResponse(
        items=[_to_response(row, count) for row, count in result.items],
        total_items=result.total_items,
        page=result.page,
        page_size=result.page_size,
        stats=result.stats,
    )


@router.post("", response_model=DiscountCodeResponse, status_code=status.HTTP_201_CREATED)
def create_discount_code(
    body: DiscountCodeWrite,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """
    Create a discount code. Course owners may only target courses they teach.

    Example body (percent, admin):
      { "code": "SAVE10", "title": "Ten off", "kind": "PERCENT", "value": 10,
        "maximum_amount": 5000, "usage_limit_type": "TOTAL_LIMIT", "usage_limit": 100 }
    """
    row = discount_authoring.create_discount_code(db, actor, body)
    return _to_response(row)


@router.get("/{code_id}", response_model=DiscountCodeResponse)
def get_discount_code(
    code_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    row = discount_authoring.get_discount_code(db, actor, code_id)
    counts = usage_counts(db, [row.id])
    return _to_response(row, counts[row.id])


@router.put("/{code_id}", response_model=DiscountCodeResponse)
def update_discount_code(
    code_id: int,
    body: DiscountCodeWrite,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    row = discount_authoring.update_discount_code(db, actor, code_id, body)
    counts = usage_counts(db, [row.id])
    return _to_response(row, counts[row.id])


@router.delete("/{code_id}", response_model=DiscountCodeDeleteResponse)
def delete_discount_code(
    code_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Deletes unused codes; codes with redemptions are deactivated instead."""
    deleted = discount_authoring.delete_discount_code(db, actor, code_id)
    return DiscountCodeDeleteResponse(
        message="Discount code deleted." if deleted else "Discount code has redemptions and was deactivated.",
        deleted=deleted,
        deactivated=not deleted,
    )


@router.post("/bulk", response_model=DiscountCodeBulkResponse)
def bulk_discount_codes(
    body: DiscountCodeBulkRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    affected, kept = discount_authoring.bulk_update_discount_codes(db, actor, body.ids, body.action)
    return DiscountCodeBulkResponse(
        message=f"{affected} discount codes {body.action}d.",
        affected=affected,
        deactivated_instead_of_deleted=kept,
    )
