from sqlalchemy import (
    Column,
    Integer,
    String,
    DateTime,
    Boolean,
    ForeignKey,
    Numeric,
    UniqueConstraint,
    Enum as SQLEnum,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import enum
from promo_engine.core.database import Base


class DiscountKindEnum(str, enum.Enum):
    PERCENT = "PERCENT"   # value is in (0, 100]
    FIXED = "FIXED"       # value is an amount in the smallest currency unit


class DiscountScopeEnum(str, enum.Enum):
    ALL = "ALL"
    SPECIFIC_COURSES = "SPECIFIC_COURSES"
    SPECIFIC_PRODUCTS = "SPECIFIC_PRODUCTS"
    CATEGORIES = "CATEGORIES"
    FIRST_PURCHASE = "FIRST_PURCHASE"
    MINIMUM_AMOUNT = "MINIMUM_AMOUNT"


class AppliesToEnum(str, enum.Enum):
    COURSES_ONLY = "COURSES_ONLY"
    PRODUCTS_ONLY = "PRODUCTS_ONLY"
    BOTH = "BOTH"


class UsageLimitTypeEnum(str, enum.Enum):
    UNLIMITED = "UNLIMITED"
    TOTAL_LIMIT = "TOTAL_LIMIT"
    ONCE_PER_USER = "ONCE_PER_USER"
    DAILY_LIMIT = "DAILY_LIMIT"


class AuthorScopeEnum(str, enum.Enum):
    ADMIN = "ADMIN"   # full scope vocabulary
    OWNER = "OWNER"   # course owner: SPECIFIC_COURSES over courses they teach


def _enum_column(enum_cls, **kwargs):
    return Column(
        SQLEnum(enum_cls, values_callable=lambda x: [e.value for e in x], native_enum=False, length=32),
        **kwargs,
    )


class DiscountCode(Base):
    __tablename__ = "discount_codes"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(64), unique=True, nullable=False, index=True)  # stored upper-case, e.g. SAVE10
    title = Column(String(255), nullable=False)
    description = Column(String(1000), nullable=True)
    kind = _enum_column(DiscountKindEnum, nullable=False)
    value = Column(Numeric(12, 2), nullable=False)
    scope = _enum_column(DiscountScopeEnum, nullable=False, default=DiscountScopeEnum.ALL)
    applies_to = _enum_column(AppliesToEnum, nullable=False, default=AppliesToEnum.BOTH)
    minimum_amount = Column(Integer, nullable=True)  # floor on eligible subtotal
    maximum_amount = Column(Integer, nullable=True)  # ceiling on a percent reduction
    usage_limit_type = _enum_column(UsageLimitTypeEnum, nullable=False, default=UsageLimitTypeEnum.UNLIMITED)
    usage_limit = Column(Integer, nullable=True)  # n for TOTAL_LIMIT / DAILY_LIMIT
    valid_from = Column(DateTime(timezone=True), nullable=True)  # None = open start
    valid_until = Column(DateTime(timezone=True), nullable=True)  # None = no expiry
    is_active = Column(Boolean, default=True, nullable=False)
    author_id = Column(String(64), nullable=False, index=True)
    author_scope = _enum_column(AuthorScopeEnum, nullable=False, default=AuthorScopeEnum.ADMIN)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    targets = relationship(
        "DiscountTarget",
        back_populates="discount_code",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    usages = relationship("UsageRecord", back_populates="discount_code")

    @property
    def target_ids(self) -> set:
        return {t.target_id for t in self.targets}


class DiscountTarget(Base):
    """Course, product or category id a scoped code is restricted to."""
    __tablename__ = "discount_code_targets"
    __table_args__ = (
        UniqueConstraint("discount_code_id", "target_id", name="uq_discount_code_targets_code_target"),
    )

    id = Column(Integer, primary_key=True, index=True)
    discount_code_id = Column(Integer, ForeignKey("discount_codes.id", ondelete="CASCADE"), nullable=False, index=True)
    target_id = Column(String(64), nullable=False)

    discount_code = relationship("DiscountCode", back_populates="targets")
