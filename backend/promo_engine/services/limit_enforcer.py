"""
Usage limit policies, evaluated against the discount_usages ledger.

The same functions serve the read-only preview and the redemption
transaction; only the latter's answer is authoritative because it runs while
holding the ledger lock.
"""
from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone
from typing import Dict, Iterable, Optional, Tuple, Type
from zoneinfo import ZoneInfo

from sqlalchemy import func
from sqlalchemy.orm import Session

from promo_engine.core.config import settings
from promo_engine.models.discount_code import UsageLimitTypeEnum
from promo_engine.models.discount_usage import UsageRecord
from promo_engine.services.discount_errors import (
    AlreadyUsedByUser,
    DailyLimitExceeded,
    DiscountError,
    UsageLimitExceeded,
)
from promo_engine.services.discount_rules import DiscountRule, as_utc


@dataclass(frozen=True)
class LimitDecision:
    permitted: bool
    error: Optional[Type[DiscountError]] = None
    used: int = 0
    limit: Optional[int] = None

    @property
    def remaining(self) -> Optional[int]:
        if self.limit is None:
            return None
        return max(0, self.limit - self.used)

    def raise_if_denied(self) -> None:
        if not self.permitted:
            raise self.error()


def day_bounds(now: datetime, tz_name: Optional[str] = None) -> Tuple[datetime, datetime]:
    """UTC start (inclusive) and end (exclusive) of the server-local calendar day containing now."""
    tz = ZoneInfo(tz_name or settings.SERVER_TIMEZONE)
    local_day = as_utc(now).astimezone(tz).date()
    start = datetime.combine(local_day, time.min, tzinfo=tz)
    end = datetime.combine(local_day + timedelta(days=1), time.min, tzinfo=tz)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def count_total_usages(db: Session, code_id: int) -> int:
    return db.query(func.count(UsageRecord.id)).filter(UsageRecord.discount_code_id == code_id).scalar() or 0


def count_user_usages(db: Session, code_id: int, user_id: str) -> int:
    return (
        db.query(func.count(UsageRecord.id))
        .filter(UsageRecord.discount_code_id == code_id, UsageRecord.user_id == user_id)
        .scalar()
        or 0
    )


def count_daily_usages(db: Session, code_id: int, now: datetime) -> int:
    start, end = day_bounds(now)
    return (
        db.query(func.count(UsageRecord.id))
        .filter(
            UsageRecord.discount_code_id == code_id,
            UsageRecord.used_at >= start,
            UsageRecord.used_at < end,
        )
        .scalar()
        or 0
    )


def check_usage_limit(db: Session, rule: DiscountRule, user_id: str, now: datetime) -> LimitDecision:
    policy = rule.usage_limit
    limit_type = rule.usage_limit_type

    if limit_type == UsageLimitTypeEnum.TOTAL_LIMIT:
        used = count_total_usages(db, rule.id)
        return LimitDecision(used < policy.limit, None if used < policy.limit else UsageLimitExceeded, used, policy.limit)

    if limit_type == UsageLimitTypeEnum.ONCE_PER_USER:
        used = count_user_usages(db, rule.id, user_id)
        return LimitDecision(used == 0, None if used == 0 else AlreadyUsedByUser, used, 1)

    if limit_type == UsageLimitTypeEnum.DAILY_LIMIT:
        used = count_daily_usages(db, rule.id, now)
        return LimitDecision(used < policy.limit, None if used < policy.limit else DailyLimitExceeded, used, policy.limit)

    return LimitDecision(True)


def enforce_usage_limit(db: Session, rule: DiscountRule, user_id: str, now: datetime) -> LimitDecision:
    decision = check_usage_limit(db, rule, user_id, now)
    decision.raise_if_denied()
    return decision


def usage_counts(db: Session, code_ids: Iterable[int]) -> Dict[int, int]:
    ids = list(code_ids)
    if not ids:
        return {}
    rows = (
        db.query(UsageRecord.discount_code_id, func.count(UsageRecord.id))
        .filter(UsageRecord.discount_code_id.in_(ids))
        .group_by(UsageRecord.discount_code_id)
        .all()
    )
    counts = {code_id: 0 for code_id in ids}
    counts.update({code_id: count for code_id, count in rows})
    return counts
