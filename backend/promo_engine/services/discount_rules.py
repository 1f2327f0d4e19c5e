"""
Typed view of discount codes and purchase contexts.

The discount_codes table stores scope and usage limit as flat columns; here
they become tagged unions so every variant carries exactly the data it needs
(target ids for the targeted scopes, n for the counted limits) and an invalid
combination cannot be constructed.
"""
import enum
from datetime import datetime, timezone
from decimal import Decimal
from typing import Annotated, FrozenSet, Iterable, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from promo_engine.models.discount_code import (
    AppliesToEnum,
    AuthorScopeEnum,
    DiscountCode,
    DiscountKindEnum,
    DiscountScopeEnum,
    UsageLimitTypeEnum,
)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; everything stored is UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


# ---------------------------------------------------------------------------
# Scope
# ---------------------------------------------------------------------------

class AllScope(_Frozen):
    type: Literal["ALL"] = "ALL"


class SpecificCoursesScope(_Frozen):
    type: Literal["SPECIFIC_COURSES"] = "SPECIFIC_COURSES"
    target_ids: FrozenSet[str] = Field(min_length=1)


class SpecificProductsScope(_Frozen):
    type: Literal["SPECIFIC_PRODUCTS"] = "SPECIFIC_PRODUCTS"
    target_ids: FrozenSet[str] = Field(min_length=1)


class CategoriesScope(_Frozen):
    type: Literal["CATEGORIES"] = "CATEGORIES"
    target_ids: FrozenSet[str] = Field(min_length=1)


class FirstPurchaseScope(_Frozen):
    type: Literal["FIRST_PURCHASE"] = "FIRST_PURCHASE"


class MinimumAmountScope(_Frozen):
    type: Literal["MINIMUM_AMOUNT"] = "MINIMUM_AMOUNT"


Scope = Annotated[
    Union[
        AllScope,
        SpecificCoursesScope,
        SpecificProductsScope,
        CategoriesScope,
        FirstPurchaseScope,
        MinimumAmountScope,
    ],
    Field(discriminator="type"),
]

_TARGETED_SCOPES = {
    DiscountScopeEnum.SPECIFIC_COURSES: SpecificCoursesScope,
    DiscountScopeEnum.SPECIFIC_PRODUCTS: SpecificProductsScope,
    DiscountScopeEnum.CATEGORIES: CategoriesScope,
}
_UNTARGETED_SCOPES = {
    DiscountScopeEnum.ALL: AllScope,
    DiscountScopeEnum.FIRST_PURCHASE: FirstPurchaseScope,
    DiscountScopeEnum.MINIMUM_AMOUNT: MinimumAmountScope,
}


def build_scope(scope_type: DiscountScopeEnum, target_ids: Iterable[str] = ()):
    scope_type = DiscountScopeEnum(scope_type)
    if scope_type in _TARGETED_SCOPES:
        return _TARGETED_SCOPES[scope_type](target_ids=frozenset(target_ids))
    return _UNTARGETED_SCOPES[scope_type]()


# ---------------------------------------------------------------------------
# Usage limit policy
# ---------------------------------------------------------------------------

class UnlimitedPolicy(_Frozen):
    type: Literal["UNLIMITED"] = "UNLIMITED"


class TotalLimitPolicy(_Frozen):
    type: Literal["TOTAL_LIMIT"] = "TOTAL_LIMIT"
    limit: int = Field(ge=1)


class OncePerUserPolicy(_Frozen):
    type: Literal["ONCE_PER_USER"] = "ONCE_PER_USER"


class DailyLimitPolicy(_Frozen):
    type: Literal["DAILY_LIMIT"] = "DAILY_LIMIT"
    limit: int = Field(ge=1)


UsageLimitPolicy = Annotated[
    Union[UnlimitedPolicy, TotalLimitPolicy, OncePerUserPolicy, DailyLimitPolicy],
    Field(discriminator="type"),
]


def build_usage_limit(limit_type: UsageLimitTypeEnum, limit: Optional[int] = None):
    limit_type = UsageLimitTypeEnum(limit_type)
    if limit_type == UsageLimitTypeEnum.TOTAL_LIMIT:
        return TotalLimitPolicy(limit=limit)
    if limit_type == UsageLimitTypeEnum.DAILY_LIMIT:
        return DailyLimitPolicy(limit=limit)
    if limit_type == UsageLimitTypeEnum.ONCE_PER_USER:
        return OncePerUserPolicy()
    return UnlimitedPolicy()


# ---------------------------------------------------------------------------
# Discount rule
# ---------------------------------------------------------------------------

class DiscountRule(_Frozen):
    id: Optional[int] = None
    code: str
    title: str
    description: Optional[str] = None
    kind: DiscountKindEnum
    value: Decimal = Field(gt=0)
    scope: Scope = AllScope()
    applies_to: AppliesToEnum = AppliesToEnum.BOTH
    minimum_amount: Optional[int] = Field(default=None, ge=0)
    maximum_amount: Optional[int] = Field(default=None, ge=0)
    usage_limit: UsageLimitPolicy = UnlimitedPolicy()
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    active: bool = True
    author_id: str
    author_scope: AuthorScopeEnum = AuthorScopeEnum.ADMIN

    @field_validator("code")
    @classmethod
    def code_trim_upper(cls, v: str) -> str:
        v = v.strip().upper() if v else ""
        if not v:
            raise ValueError("code is required")
        return v

    @field_validator("valid_from", "valid_until")
    @classmethod
    def window_in_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return as_utc(v)

    @model_validator(mode="after")
    def check_combination(self) -> "DiscountRule":
        if self.kind == DiscountKindEnum.PERCENT and self.value > 100:
            raise ValueError("value for percent must be in (0, 100]")
        if self.scope_type == DiscountScopeEnum.MINIMUM_AMOUNT and self.minimum_amount is None:
            raise ValueError("MINIMUM_AMOUNT scope requires minimum_amount")
        if self.valid_from and self.valid_until and self.valid_until < self.valid_from:
            raise ValueError("valid_until must not be before valid_from")
        if self.author_scope == AuthorScopeEnum.OWNER:
            if self.scope_type != DiscountScopeEnum.SPECIFIC_COURSES:
                raise ValueError("course owners may only create SPECIFIC_COURSES codes")
            if self.applies_to != AppliesToEnum.COURSES_ONLY:
                raise ValueError("course owner codes apply to courses only")
        return self

    @property
    def scope_type(self) -> DiscountScopeEnum:
        return DiscountScopeEnum(self.scope.type)

    @property
    def usage_limit_type(self) -> UsageLimitTypeEnum:
        return UsageLimitTypeEnum(self.usage_limit.type)

    @property
    def target_ids(self) -> FrozenSet[str]:
        return getattr(self.scope, "target_ids", frozenset())

    @classmethod
    def from_row(cls, row: DiscountCode) -> "DiscountRule":
        return cls(
            id=row.id,
            code=row.code,
            title=row.title,
            description=row.description,
            kind=row.kind,
            value=row.value,
            scope=build_scope(row.scope, row.target_ids),
            applies_to=row.applies_to,
            minimum_amount=row.minimum_amount,
            maximum_amount=row.maximum_amount,
            usage_limit=build_usage_limit(row.usage_limit_type, row.usage_limit),
            valid_from=row.valid_from,
            valid_until=row.valid_until,
            active=row.is_active,
            author_id=row.author_id,
            author_scope=row.author_scope,
        )


# ---------------------------------------------------------------------------
# Purchase context
# ---------------------------------------------------------------------------

class ItemKindEnum(str, enum.Enum):
    COURSE = "course"
    PRODUCT = "product"


class LineItem(_Frozen):
    item_id: str
    kind: ItemKindEnum
    category_ids: FrozenSet[str] = frozenset()
    unit_amount: int = Field(ge=0)
    quantity: int = Field(default=1, ge=1)

    @property
    def amount(self) -> int:
        return self.unit_amount * self.quantity


class PurchaseContext(_Frozen):
    buyer_id: str
    items: List[LineItem] = Field(default_factory=list)
    has_prior_completed_order: bool = False

    @property
    def total(self) -> int:
        return sum(item.amount for item in self.items)
