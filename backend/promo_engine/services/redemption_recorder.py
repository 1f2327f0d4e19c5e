"""
The single write path of the usage ledger.

A redemption is keyed by (discount code, order id):

    Unredeemed --redeem--> Committed      one UsageRecord inserted
    Committed  --redeem--> Committed      stored result returned, nothing re-counted
    Unredeemed --redeem--> Rejected       limit check failed, nothing written

The count-check-and-insert runs in one transaction that first takes the
ledger lock for the code: BEGIN IMMEDIATE on SQLite, SELECT ... FOR UPDATE on
the discount_codes row elsewhere. Unique constraints on (code, order) and, for
ONCE_PER_USER codes, (code, user) back this up; when one fires the whole check
is re-run from a fresh read before giving up with UsageLimitExceeded.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session, sessionmaker

from promo_engine.core.config import settings
from promo_engine.core.db_transaction import db_transaction
from promo_engine.core.logging_config import get_logger
from promo_engine.models.discount_code import DiscountCode, UsageLimitTypeEnum
from promo_engine.models.discount_usage import UsageRecord
from promo_engine.services.code_resolver import check_window
from promo_engine.services.discount_errors import CodeNotFound, ServerBusy, UsageLimitExceeded
from promo_engine.services.discount_rules import DiscountRule, as_utc
from promo_engine.services.limit_enforcer import enforce_usage_limit

logger = get_logger("redemption_recorder")

# SQLSTATEs worth a fresh attempt: serialization_failure, deadlock_detected
_RETRYABLE_SQLSTATES = {"40001", "40P01"}
# lock_not_available, query_canceled (statement/lock timeout)
_BUSY_SQLSTATES = {"55P03", "57014"}


@dataclass(frozen=True)
class RedemptionResult:
    code: str
    order_id: str
    applied_amount: int
    usage_record_id: int
    replayed: bool = False


def _sqlstate(exc: OperationalError) -> Optional[str]:
    orig = getattr(exc, "orig", None)
    return getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)


def _is_lock_timeout(exc: OperationalError) -> bool:
    if _sqlstate(exc) in _BUSY_SQLSTATES:
        return True
    return "database is locked" in str(exc.orig).lower()


def _is_serialization_failure(exc: OperationalError) -> bool:
    return _sqlstate(exc) in _RETRYABLE_SQLSTATES


def find_usage(db: Session, code_id: int, order_id: str) -> Optional[UsageRecord]:
    return (
        db.query(UsageRecord)
        .filter(UsageRecord.discount_code_id == code_id, UsageRecord.order_id == order_id)
        .first()
    )


def _lock_code_row(db: Session, code_id: int) -> Optional[DiscountCode]:
    if db.get_bind().dialect.name == "postgresql":
        lock_timeout_ms = int(settings.REDEEM_TIMEOUT_SECONDS * 1000)
        db.execute(text(f"SET LOCAL lock_timeout = {lock_timeout_ms}"))
    return (
        db.query(DiscountCode)
        .filter(DiscountCode.id == code_id)
        .populate_existing()
        .with_for_update()
        .first()
    )


def _to_result(record: UsageRecord, code: str, replayed: bool) -> RedemptionResult:
    return RedemptionResult(
        code=code,
        order_id=record.order_id,
        applied_amount=record.applied_amount,
        usage_record_id=record.id,
        replayed=replayed,
    )


def _redeem_once(
    db: Session,
    code_id: int,
    user_id: str,
    order_id: str,
    now: datetime,
    price: Callable[[DiscountRule], int],
) -> RedemptionResult:
    row = _lock_code_row(db, code_id)
    if row is None:
        raise CodeNotFound()

    existing = find_usage(db, code_id, order_id)
    if existing is not None:
        logger.info(
            f"Replayed redemption of {row.code} for order {order_id}",
            extra={"discount_code": row.code, "order_id": order_id, "usage_record_id": existing.id},
        )
        return _to_result(existing, row.code, replayed=True)

    rule = DiscountRule.from_row(row)
    check_window(rule, now)
    applied_amount = price(rule)
    enforce_usage_limit(db, rule, user_id, now)

    record = UsageRecord(
        discount_code_id=code_id,
        user_id=user_id,
        order_id=order_id,
        applied_amount=applied_amount,
        used_at=as_utc(now),
        once_per_user_key=user_id if rule.usage_limit_type == UsageLimitTypeEnum.ONCE_PER_USER else None,
    )
    db.add(record)
    db.flush()
    logger.info(
        f"Redeemed {rule.code} for order {order_id}: {applied_amount}",
        extra={
            "discount_code": rule.code,
            "order_id": order_id,
            "user_id": user_id,
            "applied_amount": applied_amount,
            "usage_record_id": record.id,
        },
    )
    return _to_result(record, rule.code, replayed=False)


def record_redemption(
    session_factory: sessionmaker,
    code_id: int,
    user_id: str,
    order_id: str,
    now: datetime,
    price: Callable[[DiscountRule], int],
) -> RedemptionResult:
    """
    Commit one use of a code against an order, or return the stored result of
    an earlier commit for the same order.

    `price` recomputes the applied amount from the locked, uncached rule and
    raises when the rule no longer applies. Business failures propagate as
    DiscountError; a lock wait past REDEEM_TIMEOUT_SECONDS becomes ServerBusy.
    """
    attempts = 1 + max(0, settings.REDEEM_CONFLICT_RETRIES)
    for attempt in range(1, attempts + 1):
        try:
            with db_transaction(session_factory=session_factory, immediate=True) as db:
                return _redeem_once(db, code_id, user_id, order_id, now, price)
        except IntegrityError as e:
            logger.warning(
                f"Ledger conflict redeeming code id {code_id} for order {order_id} (attempt {attempt}/{attempts}): {e.orig}",
                extra={"discount_code_id": code_id, "order_id": order_id, "user_id": user_id},
            )
        except OperationalError as e:
            if _is_serialization_failure(e):
                logger.warning(
                    f"Serialization failure redeeming code id {code_id} for order {order_id} (attempt {attempt}/{attempts})",
                    extra={"discount_code_id": code_id, "order_id": order_id},
                )
                continue
            if _is_lock_timeout(e):
                logger.warning(
                    f"Ledger lock timeout redeeming code id {code_id} for order {order_id}",
                    extra={"discount_code_id": code_id, "order_id": order_id},
                )
                raise ServerBusy() from e
            raise

    logger.warning(
        f"Giving up redeeming code id {code_id} for order {order_id} after {attempts} conflicts",
        extra={"discount_code_id": code_id, "order_id": order_id, "user_id": user_id},
    )
    raise UsageLimitExceeded()
