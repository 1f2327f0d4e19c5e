from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from promo_engine.core.cache import cache_delete, cache_get, cache_set, discount_cache_key
from promo_engine.core.config import settings
from promo_engine.core.logging_config import get_logger
from promo_engine.models.discount_code import DiscountCode
from promo_engine.services.discount_errors import CodeExpired, CodeInactive, CodeNotFound, CodeNotYetActive
from promo_engine.services.discount_rules import DiscountRule, as_utc

logger = get_logger("code_resolver")


def normalize_code(raw: Optional[str]) -> str:
    return raw.strip().upper() if raw else ""


def load_rule(db: Session, code: str, use_cache: bool = True) -> Optional[DiscountRule]:
    """Fetch the rule for an already-normalized code, or None when it does not exist."""
    key = discount_cache_key(code)
    if use_cache:
        cached = cache_get(key)
        if cached is not None:
            return DiscountRule.model_validate(cached)

    row = db.query(DiscountCode).filter(DiscountCode.code == code).first()
    if row is None:
        return None
    rule = DiscountRule.from_row(row)
    if use_cache:
        cache_set(key, rule.model_dump(mode="json"), settings.DISCOUNT_CACHE_TTL_SECONDS)
    return rule


def invalidate_rule(code: str) -> None:
    cache_delete(discount_cache_key(normalize_code(code)))


def check_window(rule: DiscountRule, now: datetime) -> None:
    """
    Validity checks in the order buyers see them: an expired code reports
    CodeExpired whatever its active flag says.
    """
    now = as_utc(now)
    if rule.valid_until is not None and now > rule.valid_until:
        raise CodeExpired()
    if rule.valid_from is not None and now < rule.valid_from:
        raise CodeNotYetActive()
    if not rule.active:
        raise CodeInactive()


def resolve_code(db: Session, raw_code: Optional[str], now: datetime, use_cache: bool = True) -> DiscountRule:
    code = normalize_code(raw_code)
    if not code:
        raise CodeNotFound("Please enter a discount code.")
    rule = load_rule(db, code, use_cache=use_cache)
    if rule is None:
        logger.info(f"Unknown discount code {code!r}")
        raise CodeNotFound()
    check_window(rule, now)
    return rule
