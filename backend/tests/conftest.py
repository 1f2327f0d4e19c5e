"""Pytest configuration for promo engine tests."""

import os
import tempfile

# Keep the app's default database and log files out of the source tree
_TMP = tempfile.mkdtemp(prefix="promo_engine_tests_")
os.environ.setdefault("DATABASE_PATH", os.path.join(_TMP, "app.db"))
os.environ.setdefault("PROMO_ENGINE_LOG_DIR", os.path.join(_TMP, "logs"))

from datetime import datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy.orm import sessionmaker

from promo_engine.core.cache import CACHE_PREFIX_DISCOUNT_CODES, cache_delete_pattern
from promo_engine.core.database import Base, make_engine, make_session_factory
from promo_engine.core.security import create_access_token
from promo_engine.models import (
    CourseInstructor,
    DiscountCode,
    DiscountKindEnum,
    DiscountTarget,
)
from promo_engine.services.discount_rules import ItemKindEnum, LineItem, PurchaseContext

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(scope="function", autouse=True)
def _clear_discount_cache():
    """Resolved codes are cached in-process; never let one test see another's rows."""
    cache_delete_pattern(CACHE_PREFIX_DISCOUNT_CODES)
    yield
    cache_delete_pattern(CACHE_PREFIX_DISCOUNT_CODES)


@pytest.fixture
def engine(tmp_path):
    """File-backed SQLite so concurrent redemptions exercise real locking."""
    eng = make_engine(f"sqlite:///{tmp_path / 'promo.db'}")
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def db(engine):
    """
    Session for seeding and assertions. Objects stay loaded after commit so
    tests can read ids without opening a new read transaction.
    """
    session = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)()
    yield session
    session.close()


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def make_code(db):
    def _make(code="SAVE10", kind=DiscountKindEnum.PERCENT, value=10, target_ids=(), **kwargs):
        kwargs.setdefault("title", code.title())
        kwargs.setdefault("author_id", "admin-1")
        row = DiscountCode(code=code, kind=kind, value=Decimal(str(value)), **kwargs)
        for target_id in target_ids:
            row.targets.append(DiscountTarget(target_id=target_id))
        db.add(row)
        db.commit()
        return row

    return _make


@pytest.fixture
def add_instructor(db):
    def _add(course_id, user_id, is_primary=True):
        db.add(CourseInstructor(course_id=course_id, user_id=user_id, is_primary=is_primary))
        db.commit()

    return _add


def course(item_id, amount, quantity=1, categories=()):
    return LineItem(
        item_id=item_id,
        kind=ItemKindEnum.COURSE,
        unit_amount=amount,
        quantity=quantity,
        category_ids=frozenset(categories),
    )


def product(item_id, amount, quantity=1, categories=()):
    return LineItem(
        item_id=item_id,
        kind=ItemKindEnum.PRODUCT,
        unit_amount=amount,
        quantity=quantity,
        category_ids=frozenset(categories),
    )


def cart(*items, buyer_id="buyer-1", has_prior_completed_order=False):
    return PurchaseContext(
        buyer_id=buyer_id,
        items=list(items),
        has_prior_completed_order=has_prior_completed_order,
    )


def bearer(user_id, *roles):
    token = create_access_token({"sub": user_id, "roles": list(roles)})
    return {"Authorization": f"Bearer {token}"}
