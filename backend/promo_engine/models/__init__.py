from promo_engine.models.discount_code import (
    DiscountCode,
    DiscountTarget,
    DiscountKindEnum,
    DiscountScopeEnum,
    AppliesToEnum,
    UsageLimitTypeEnum,
    AuthorScopeEnum,
)
from promo_engine.models.discount_usage import UsageRecord
from promo_engine.models.course_instructor import CourseInstructor

__all__ = [
    "DiscountCode",
    "DiscountTarget",
    "DiscountKindEnum",
    "DiscountScopeEnum",
    "AppliesToEnum",
    "UsageLimitTypeEnum",
    "AuthorScopeEnum",
    "UsageRecord",
    "CourseInstructor",
]
