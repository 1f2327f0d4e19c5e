"""
Authoring of discount codes by admins and course owners.

Both paths share one set of rules; the difference is the author scope:
admins use the whole scope vocabulary, course owners are pinned to
SPECIFIC_COURSES over courses they teach. Ownership can change after a code is
created, so it is checked again on every edit, against the code's author.
"""
from dataclasses import dataclass
from typing import Iterable, List, Optional, Set, Tuple

from pydantic import ValidationError
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from promo_engine.core.config import settings
from promo_engine.core.logging_config import get_logger
from promo_engine.models.course_instructor import CourseInstructor
from promo_engine.models.discount_code import (
    AppliesToEnum,
    AuthorScopeEnum,
    DiscountCode,
    DiscountScopeEnum,
    DiscountTarget,
)
from promo_engine.schemas.discount_code import DiscountCodeWrite
from promo_engine.services.code_resolver import invalidate_rule
from promo_engine.services.discount_errors import (
    DiscountCodeMissing,
    DuplicateDiscountCode,
    InvalidDiscountCode,
    Unauthorized,
)
from promo_engine.services.discount_rules import DiscountRule, build_scope, build_usage_limit
from promo_engine.services.limit_enforcer import usage_counts

logger = get_logger("discount_authoring")


@dataclass(frozen=True)
class Actor:
    user_id: str
    is_admin: bool = False

    @property
    def author_scope(self) -> AuthorScopeEnum:
        return AuthorScopeEnum.ADMIN if self.is_admin else AuthorScopeEnum.OWNER


@dataclass(frozen=True)
class DiscountCodePage:
    items: List[Tuple[DiscountCode, int]]  # (row, usage count)
    total_items: int
    active: int
    page: int
    page_size: int

    @property
    def stats(self) -> List[dict]:
        return [
            {"key": "total", "count": self.total_items},
            {"key": "active", "count": self.active},
            {"key": "inactive", "count": self.total_items - self.active},
        ]


def owned_course_ids(db: Session, user_id: str) -> Set[str]:
    rows = db.query(CourseInstructor.course_id).filter(CourseInstructor.user_id == user_id).all()
    return {course_id for (course_id,) in rows}


def ensure_owns_courses(db: Session, user_id: str, course_ids: Iterable[str]) -> None:
    missing = set(course_ids) - owned_course_ids(db, user_id)
    if missing:
        logger.warning(
            f"Course ownership check failed for user {user_id}: {sorted(missing)}",
            extra={"user_id": user_id, "course_ids": sorted(missing)},
        )
        raise Unauthorized("Access to some of the selected courses is denied.")


def _validation_message(exc: ValidationError) -> str:
    first = exc.errors()[0]
    msg = first.get("msg", "invalid value")
    loc = ".".join(str(p) for p in first.get("loc", ()))
    return f"{loc}: {msg}" if loc else msg


def build_rule(payload: DiscountCodeWrite, author_id: str, author_scope: AuthorScopeEnum) -> DiscountRule:
    scope_type = payload.scope
    applies_to = payload.applies_to
    if author_scope == AuthorScopeEnum.OWNER:
        scope_type = DiscountScopeEnum.SPECIFIC_COURSES
        applies_to = AppliesToEnum.COURSES_ONLY
    try:
        return DiscountRule(
            code=payload.code,
            title=payload.title,
            description=payload.description,
            kind=payload.kind,
            value=payload.value,
            scope=build_scope(scope_type, payload.target_ids),
            applies_to=applies_to,
            minimum_amount=payload.minimum_amount,
            maximum_amount=payload.maximum_amount,
            usage_limit=build_usage_limit(payload.usage_limit_type, payload.usage_limit),
            valid_from=payload.valid_from,
            valid_until=payload.valid_until,
            active=payload.is_active,
            author_id=author_id,
            author_scope=author_scope,
        )
    except ValidationError as e:
        raise InvalidDiscountCode(_validation_message(e)) from e


def _ensure_code_free(db: Session, code: str, exclude_id: Optional[int] = None) -> None:
    query = db.query(DiscountCode.id).filter(func.upper(DiscountCode.code) == code)
    if exclude_id is not None:
        query = query.filter(DiscountCode.id != exclude_id)
    if query.first():
        raise DuplicateDiscountCode(code)


def _sync_targets(row: DiscountCode, target_ids: Iterable[str]) -> None:
    wanted = set(target_ids)
    for target in list(row.targets):
        if target.target_id not in wanted:
            row.targets.remove(target)
    present = row.target_ids
    for target_id in sorted(wanted - present):
        row.targets.append(DiscountTarget(target_id=target_id))


def _apply_rule(row: DiscountCode, rule: DiscountRule) -> None:
    row.code = rule.code
    row.title = rule.title
    row.description = rule.description
    row.kind = rule.kind
    row.value = rule.value
    row.scope = rule.scope_type
    row.applies_to = rule.applies_to
    row.minimum_amount = rule.minimum_amount
    row.maximum_amount = rule.maximum_amount
    row.usage_limit_type = rule.usage_limit_type
    row.usage_limit = getattr(rule.usage_limit, "limit", None)
    row.valid_from = rule.valid_from
    row.valid_until = rule.valid_until
    row.is_active = rule.active
    row.author_id = rule.author_id
    row.author_scope = rule.author_scope
    _sync_targets(row, rule.target_ids)


def _get_for_actor(db: Session, actor: Actor, code_id: int) -> DiscountCode:
    row = db.query(DiscountCode).filter(DiscountCode.id == code_id).first()
    if row is None:
        raise DiscountCodeMissing()
    if not actor.is_admin and row.author_id != actor.user_id:
        raise Unauthorized()
    return row


def get_discount_code(db: Session, actor: Actor, code_id: int) -> DiscountCode:
    return _get_for_actor(db, actor, code_id)


def create_discount_code(db: Session, actor: Actor, payload: DiscountCodeWrite) -> DiscountCode:
    rule = build_rule(payload, author_id=actor.user_id, author_scope=actor.author_scope)
    if rule.author_scope == AuthorScopeEnum.OWNER:
        ensure_owns_courses(db, actor.user_id, rule.target_ids)
    _ensure_code_free(db, rule.code)

    row = DiscountCode()
    _apply_rule(row, rule)
    db.add(row)
    db.commit()
    db.refresh(row)
    invalidate_rule(row.code)
    logger.info(
        f"Discount code {row.code} created by {actor.user_id}",
        extra={"discount_code": row.code, "author_id": actor.user_id, "author_scope": row.author_scope.value},
    )
    return row


def update_discount_code(db: Session, actor: Actor, code_id: int, payload: DiscountCodeWrite) -> DiscountCode:
    row = _get_for_actor(db, actor, code_id)
    previous_code = row.code
    # The code keeps its author; an admin editing an owner's code edits it within the owner's courses
    rule = build_rule(payload, author_id=row.author_id, author_scope=row.author_scope)
    if rule.author_scope == AuthorScopeEnum.OWNER:
        ensure_owns_courses(db, row.author_id, rule.target_ids)
    _ensure_code_free(db, rule.code, exclude_id=row.id)

    _apply_rule(row, rule)
    db.commit()
    db.refresh(row)
    invalidate_rule(previous_code)
    invalidate_rule(row.code)
    logger.info(
        f"Discount code {row.code} updated by {actor.user_id}",
        extra={"discount_code": row.code, "author_id": row.author_id},
    )
    return row


def list_discount_codes(db: Session, actor: Actor, search: str = "", page: int = 1) -> DiscountCodePage:
    page = max(1, page)
    page_size = settings.LIST_PAGE_SIZE
    query = db.query(DiscountCode)
    if not actor.is_admin:
        query = query.filter(DiscountCode.author_id == actor.user_id)
    search = (search or "").strip()
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(DiscountCode.code.ilike(pattern), DiscountCode.title.ilike(pattern)))

    total = query.count()
    active = query.filter(DiscountCode.is_active == True).count()  # noqa: E712
    rows = (
        query.order_by(DiscountCode.created_at.desc(), DiscountCode.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )
    counts = usage_counts(db, [r.id for r in rows])
    return DiscountCodePage(
        items=[(r, counts.get(r.id, 0)) for r in rows],
        total_items=total,
        active=active,
        page=page,
        page_size=page_size,
    )


def _delete_or_deactivate(db: Session, row: DiscountCode, used: int) -> bool:
    """Codes referenced by the ledger are only switched off. Returns True when the row was deleted."""
    if used > 0:
        row.is_active = False
        return False
    db.delete(row)
    return True


def delete_discount_code(db: Session, actor: Actor, code_id: int) -> bool:
    row = _get_for_actor(db, actor, code_id)
    code = row.code
    deleted = _delete_or_deactivate(db, row, usage_counts(db, [row.id])[row.id])
    db.commit()
    invalidate_rule(code)
    logger.info(
        f"Discount code {code} {'deleted' if deleted else 'deactivated'} by {actor.user_id}",
        extra={"discount_code": code, "author_id": actor.user_id},
    )
    return deleted


def bulk_update_discount_codes(db: Session, actor: Actor, ids: List[int], action: str) -> Tuple[int, List[int]]:
    """
    Activate, deactivate or delete several codes at once.

    Returns the number of codes touched and the ids that were deactivated
    because usage records reference them when deletion was requested.
    """
    wanted = set(ids)
    query = db.query(DiscountCode).filter(DiscountCode.id.in_(wanted))
    if not actor.is_admin:
        query = query.filter(DiscountCode.author_id == actor.user_id)
    rows = query.all()
    if len(rows) != len(wanted):
        raise Unauthorized("Access to some of the selected discount codes is denied.")

    kept: List[int] = []
    if action == "delete":
        counts = usage_counts(db, [r.id for r in rows])
        for row in rows:
            if not _delete_or_deactivate(db, row, counts[row.id]):
                kept.append(row.id)
    elif action in ("activate", "deactivate"):
        for row in rows:
            row.is_active = action == "activate"
    else:
        raise InvalidDiscountCode(f"Unknown bulk action '{action}'")

    codes = [row.code for row in rows]
    db.commit()
    for code in codes:
        invalidate_rule(code)
    logger.info(
        f"Bulk {action} of {len(rows)} discount codes by {actor.user_id}",
        extra={"action": action, "discount_codes": codes, "author_id": actor.user_id},
    )
    return len(rows), kept
