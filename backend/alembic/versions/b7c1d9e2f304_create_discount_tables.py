"""create discount tables

Revision ID: b7c1d9e2f304
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "b7c1d9e2f304"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "discount_codes",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("code", sa.String(length=64), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.String(length=1000), nullable=True),
        sa.Column("kind", sa.String(length=32), nullable=False),
        sa.Column("value", sa.Numeric(12, 2), nullable=False),
        sa.Column("scope", sa.String(length=32), nullable=False),
        sa.Column("applies_to", sa.String(length=32), nullable=False),
        sa.Column("minimum_amount", sa.Integer(), nullable=True),
        sa.Column("maximum_amount", sa.Integer(), nullable=True),
        sa.Column("usage_limit_type", sa.String(length=32), nullable=False),
        sa.Column("usage_limit", sa.Integer(), nullable=True),
        sa.Column("valid_from", sa.DateTime(timezone=True), nullable=True),
        sa.Column("valid_until", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("author_id", sa.String(length=64), nullable=False),
        sa.Column("author_scope", sa.String(length=32), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_discount_codes_code"), "discount_codes", ["code"], unique=True)
    op.create_index(op.f("ix_discount_codes_id"), "discount_codes", ["id"], unique=False)
    op.create_index(op.f("ix_discount_codes_author_id"), "discount_codes", ["author_id"], unique=False)

    op.create_table(
        "discount_code_targets",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("discount_code_id", sa.Integer(), nullable=False),
        sa.Column("target_id", sa.String(length=64), nullable=False),
        sa.ForeignKeyConstraint(["discount_code_id"], ["discount_codes.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("discount_code_id", "target_id", name="uq_discount_code_targets_code_target"),
    )
    op.create_index(op.f("ix_discount_code_targets_id"), "discount_code_targets", ["id"], unique=False)
    op.create_index(
        op.f("ix_discount_code_targets_discount_code_id"), "discount_code_targets", ["discount_code_id"], unique=False
    )

    op.create_table(
        "discount_usages",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("discount_code_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("order_id", sa.String(length=64), nullable=False),
        sa.Column("applied_amount", sa.Integer(), nullable=False),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("once_per_user_key", sa.String(length=64), nullable=True),
        sa.ForeignKeyConstraint(["discount_code_id"], ["discount_codes.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("discount_code_id", "order_id", name="uq_discount_usages_code_order"),
        sa.UniqueConstraint("discount_code_id", "once_per_user_key", name="uq_discount_usages_code_once_user"),
    )
    op.create_index(op.f("ix_discount_usages_id"), "discount_usages", ["id"], unique=False)
    op.create_index("ix_discount_usages_code_used_at", "discount_usages", ["discount_code_id", "used_at"], unique=False)
    op.create_index("ix_discount_usages_code_user", "discount_usages", ["discount_code_id", "user_id"], unique=False)

    op.create_table(
        "course_instructors",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("course_id", sa.String(length=64), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("is_primary", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("course_id", "user_id", name="uq_course_instructors_course_user"),
    )
    op.create_index(op.f("ix_course_instructors_id"), "course_instructors", ["id"], unique=False)
    op.create_index(op.f("ix_course_instructors_course_id"), "course_instructors", ["course_id"], unique=False)
    op.create_index(op.f("ix_course_instructors_user_id"), "course_instructors", ["user_id"], unique=False)


def downgrade() -> None:
    op.drop_index(op.f("ix_course_instructors_user_id"), table_name="course_instructors")
    op.drop_index(op.f("ix_course_instructors_course_id"), table_name="course_instructors")
    op.drop_index(op.f("ix_course_instructors_id"), table_name="course_instructors")
    op.drop_table("course_instructors")
    op.drop_index("ix_discount_usages_code_user", table_name="discount_usages")
    op.drop_index("ix_discount_usages_code_used_at", table_name="discount_usages")
    op.drop_index(op.f("ix_discount_usages_id"), table_name="discount_usages")
    op.drop_table("discount_usages")
    op.drop_index(op.f("ix_discount_code_targets_discount_code_id"), table_name="discount_code_targets")
    op.drop_index(op.f("ix_discount_code_targets_id"), table_name="discount_code_targets")
    op.drop_table("discount_code_targets")
    op.drop_index(op.f("ix_discount_codes_author_id"), table_name="discount_codes")
    op.drop_index(op.f("ix_discount_codes_id"), table_name="discount_codes")
    op.drop_index(op.f("ix_discount_codes_code"), table_name="discount_codes")
    op.drop_table("discount_codes")
