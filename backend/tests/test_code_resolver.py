"""Tests for code lookup, normalization and the validity window."""

from datetime import timedelta

import pytest

from promo_engine.services.code_resolver import check_window, normalize_code, resolve_code
from promo_engine.services.discount_errors import CodeExpired, CodeInactive, CodeNotFound, CodeNotYetActive


def test_normalize_code_trims_and_uppercases():
    assert normalize_code("  save10 ") == "SAVE10"
    assert normalize_code("") == ""
    assert normalize_code(None) == ""


def test_resolve_is_case_insensitive(db, make_code, now):
    make_code("SAVE10")
    rule = resolve_code(db, " save10", now)
    assert rule.code == "SAVE10"


def test_unknown_code(db, now):
    with pytest.raises(CodeNotFound):
        resolve_code(db, "NOPE", now)


def test_empty_code_is_not_found(db, now):
    with pytest.raises(CodeNotFound) as exc:
        resolve_code(db, "   ", now)
    assert exc.value.message == "Please enter a discount code."


def test_inactive_code(db, make_code, now):
    make_code("PAUSED", is_active=False)
    with pytest.raises(CodeInactive):
        resolve_code(db, "PAUSED", now)


def test_not_yet_active(db, make_code, now):
    make_code("SOON", valid_from=now + timedelta(days=1))
    with pytest.raises(CodeNotYetActive):
        resolve_code(db, "SOON", now)


def test_expired_regardless_of_active_flag(db, make_code, now):
    make_code("OLD", valid_until=now - timedelta(seconds=1), is_active=False)
    with pytest.raises(CodeExpired):
        resolve_code(db, "OLD", now)


def test_window_bounds_are_inclusive(db, make_code, now):
    make_code("EDGE", valid_from=now, valid_until=now)
    rule = resolve_code(db, "EDGE", now)
    check_window(rule, now)


def test_cached_rule_survives_round_trip(db, make_code, now):
    make_code("CACHED", target_ids=["c-1", "c-2"], scope="SPECIFIC_COURSES")
    first = resolve_code(db, "CACHED", now)
    second = resolve_code(db, "CACHED", now)
    assert second == first
    assert second.target_ids == frozenset({"c-1", "c-2"})


def test_uncached_read_sees_row_changes(db, make_code, now):
    row = make_code("FLIP")
    resolve_code(db, "FLIP", now)

    row.is_active = False
    db.commit()

    # cached copy still says active
    resolve_code(db, "FLIP", now)
    with pytest.raises(CodeInactive):
        resolve_code(db, "FLIP", now, use_cache=False)
