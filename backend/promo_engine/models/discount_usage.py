from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import relationship
from promo_engine.core.database import Base


class UsageRecord(Base):
    """
    One redemption of a discount code against one order.

    Rows are append-only: the engine inserts them and never updates or deletes
    them. once_per_user_key holds the user id only for ONCE_PER_USER codes so
    the unique constraint below enforces one use per user for those codes and
    stays out of the way (NULLs never collide) for every other policy.
    """
    __tablename__ = "discount_usages"
    __table_args__ = (
        UniqueConstraint("discount_code_id", "order_id", name="uq_discount_usages_code_order"),
        UniqueConstraint("discount_code_id", "once_per_user_key", name="uq_discount_usages_code_once_user"),
        Index("ix_discount_usages_code_used_at", "discount_code_id", "used_at"),
        Index("ix_discount_usages_code_user", "discount_code_id", "user_id"),
    )

    id = Column(Integer, primary_key=True, index=True)
    discount_code_id = Column(Integer, ForeignKey("discount_codes.id", ondelete="RESTRICT"), nullable=False)
    user_id = Column(String(64), nullable=False)
    order_id = Column(String(64), nullable=False)
    applied_amount = Column(Integer, nullable=False)
    used_at = Column(DateTime(timezone=True), nullable=False)
    once_per_user_key = Column(String(64), nullable=True)

    discount_code = relationship("DiscountCode", back_populates="usages")
