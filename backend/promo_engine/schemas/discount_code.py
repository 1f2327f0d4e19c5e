from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import List, Literal, Optional
from datetime import datetime
from decimal import Decimal

from promo_engine.models.discount_code import (
    AppliesToEnum,
    AuthorScopeEnum,
    DiscountKindEnum,
    DiscountScopeEnum,
    UsageLimitTypeEnum,
)
from promo_engine.services.discount_rules import LineItem, PurchaseContext


def _trim_upper(v: str) -> str:
    return v.strip().upper() if v else ""


# ---------------------------------------------------------------------------
# Checkout
# ---------------------------------------------------------------------------

class DiscountCodeEvaluateRequest(BaseModel):
    code: str
    context: PurchaseContext

    @field_validator("code")
    @classmethod
    def code_trim_upper(cls, v: str) -> str:
        return _trim_upper(v)


class DiscountErrorPayload(BaseModel):
    kind: str
    message: str
    minimum_amount: Optional[int] = None


class DiscountEvaluation(BaseModel):
    code: str
    eligible_items: List[LineItem]
    subtotal: int
    reduction: int
    final_amount: int
    cart_total: int
    remaining_uses: Optional[int] = None


class DiscountCodeEvaluateResponse(BaseModel):
    valid: bool
    result: Optional[DiscountEvaluation] = None
    error: Optional[DiscountErrorPayload] = None


class DiscountCodeRedeemRequest(BaseModel):
    code: str
    order_id: str = Field(min_length=1, max_length=64)
    context: PurchaseContext

    @field_validator("code")
    @classmethod
    def code_trim_upper(cls, v: str) -> str:
        return _trim_upper(v)


class DiscountCodeRedeemResponse(BaseModel):
    code: str
    order_id: str
    applied_amount: int
    usage_record_id: int
    replayed: bool = False


# ---------------------------------------------------------------------------
# Authoring
# ---------------------------------------------------------------------------

class DiscountCodeWrite(BaseModel):
    code: str = Field(min_length=3, max_length=50)  # e.g. SAVE10, WELCOME100
    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    kind: DiscountKindEnum
    value: Decimal  # (0, 100] for PERCENT, amount for FIXED
    scope: DiscountScopeEnum = DiscountScopeEnum.ALL  # forced to SPECIFIC_COURSES for course owners
    applies_to: AppliesToEnum = AppliesToEnum.BOTH
    target_ids: List[str] = Field(default_factory=list)  # course/product/category ids for targeted scopes
    minimum_amount: Optional[int] = None
    maximum_amount: Optional[int] = None
    usage_limit_type: UsageLimitTypeEnum = UsageLimitTypeEnum.UNLIMITED
    usage_limit: Optional[int] = None  # n for TOTAL_LIMIT / DAILY_LIMIT
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    is_active: bool = True

    @field_validator("code")
    @classmethod
    def code_trim_upper(cls, v: str) -> str:
        return _trim_upper(v)

    @field_validator("target_ids")
    @classmethod
    def targets_trimmed(cls, v: List[str]) -> List[str]:
        return sorted({t.strip() for t in v if t and t.strip()})


class DiscountCodeResponse(BaseModel):
    id: int
    code: str
    title: str
    description: Optional[str]
    kind: DiscountKindEnum
    value: Decimal
    scope: DiscountScopeEnum
    applies_to: AppliesToEnum
    target_ids: List[str]
    minimum_amount: Optional[int]
    maximum_amount: Optional[int]
    usage_limit_type: UsageLimitTypeEnum
    usage_limit: Optional[int]
    valid_from: Optional[datetime]
    valid_until: Optional[datetime]
    is_active: bool
    author_id: str
    author_scope: AuthorScopeEnum
    created_at: Optional[datetime]
    updated_at: Optional[datetime]
    usage_count: int = 0

    model_config = ConfigDict(from_attributes=True)

    @field_validator("target_ids", mode="before")
    @classmethod
    def targets_sorted(cls, v) -> List[str]:
        return sorted(v)


class DiscountCodeStat(BaseModel):
    key: str
    count: int


class DiscountCodeListResponse(BaseModel):
    items: List[DiscountCodeResponse]
    total_items: int
    page: int
    page_size: int
    stats: List[DiscountCodeStat]


class DiscountCodeBulkRequest(BaseModel):
    ids: List[int] = Field(min_length=1)
    action: Literal["activate", "deactivate", "delete"]


class DiscountCodeBulkResponse(BaseModel):
    message: str
    affected: int
    deactivated_instead_of_deleted: List[int] = Field(default_factory=list)


class DiscountCodeDeleteResponse(BaseModel):
    message: str
    deleted: bool
    deactivated: bool
