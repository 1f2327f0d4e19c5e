"""
HTTP tests for /api/v1/discount-codes.

The app runs against the per-test SQLite database through dependency
overrides; tokens are minted locally with the app's secret.
"""

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from conftest import bearer
from promo_engine.api.v1.endpoints import discount_codes
from promo_engine.core.database import get_db, get_session_factory
from promo_engine.main import app
from promo_engine.models import UsageLimitTypeEnum, UsageRecord
from promo_engine.services.discount_errors import ServerBusy

BASE = "/api/v1/discount-codes"
ADMIN = bearer("admin-1", "admin")
BUYER = bearer("buyer-1")
INSTRUCTOR = bearer("instructor-1", "instructor")


def context(amount=100000, buyer_id="buyer-1", **kwargs):
    return {
        "buyer_id": buyer_id,
        "items": [{"item_id": "c-1", "kind": "course", "unit_amount": amount}],
        **kwargs,
    }


@pytest.fixture
def client(session_factory, now):
    def override_get_db():
        db = session_factory()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[discount_codes.get_now] = lambda: now
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


# ---------------------------------------------------------------------------
# Checkout
# ---------------------------------------------------------------------------

def test_evaluate_valid_code(client, make_code):
    make_code("SAVE10", maximum_amount=5000)
    response = client.post(f"{BASE}/evaluate", json={"code": "save10", "context": context()})

    assert response.status_code == 200
    body = response.json()
    assert body["valid"] is True
    assert body["error"] is None
    assert body["result"]["reduction"] == 5000
    assert body["result"]["final_amount"] == 95000
    assert body["result"]["eligible_items"][0]["item_id"] == "c-1"


def test_evaluate_failure_is_a_value(client, make_code):
    make_code("BIG", kind="FIXED", value=1000, scope="MINIMUM_AMOUNT", minimum_amount=200000)
    response = client.post(f"{BASE}/evaluate", json={"code": "BIG", "context": context()})

    assert response.status_code == 200
    body = response.json()
    assert body["valid"] is False
    assert body["result"] is None
    assert body["error"]["kind"] == "BelowMinimumAmount"
    assert body["error"]["minimum_amount"] == 200000


def test_evaluate_validates_the_body(client):
    response = client.post(f"{BASE}/evaluate", json={"code": "SAVE10"})
    assert response.status_code == 422


def test_redeem_requires_a_token(client, make_code):
    make_code("SAVE10")
    response = client.post(f"{BASE}/redeem", json={"code": "SAVE10", "order_id": "o-1", "context": context()})
    assert response.status_code == 401


def test_redeem_uses_the_token_identity(client, make_code, session_factory):
    make_code("SAVE10")
    body = {"code": "SAVE10", "order_id": "o-1", "context": context(buyer_id="someone-else")}

    first = client.post(f"{BASE}/redeem", json=body, headers=BUYER)
    assert first.status_code == 200
    assert first.json()["applied_amount"] == 10000
    assert first.json()["replayed"] is False

    with session_factory() as s:
        record = s.get(UsageRecord, first.json()["usage_record_id"])
        assert record.user_id == "buyer-1"

    again = client.post(f"{BASE}/redeem", json=body, headers=BUYER)
    assert again.status_code == 200
    assert again.json()["replayed"] is True
    assert again.json()["usage_record_id"] == first.json()["usage_record_id"]


def test_redeem_business_error(client, make_code):
    make_code("ONE", usage_limit_type=UsageLimitTypeEnum.TOTAL_LIMIT, usage_limit=1)
    client.post(f"{BASE}/redeem", json={"code": "ONE", "order_id": "o-1", "context": context()}, headers=BUYER)

    response = client.post(
        f"{BASE}/redeem",
        json={"code": "ONE", "order_id": "o-2", "context": context()},
        headers=bearer("buyer-2"),
    )
    assert response.status_code == 409
    assert response.json()["detail"]["kind"] == "UsageLimitExceeded"


def test_redeem_unknown_code(client):
    response = client.post(
        f"{BASE}/redeem", json={"code": "NOSUCH", "order_id": "o-1", "context": context()}, headers=BUYER
    )
    assert response.status_code == 404
    assert response.json()["detail"]["kind"] == "CodeNotFound"


def test_server_busy_asks_client_to_retry(client, monkeypatch):
    def busy(*args, **kwargs):
        raise ServerBusy()

    monkeypatch.setattr(discount_codes, "redeem", busy)
    response = client.post(
        f"{BASE}/redeem", json={"code": "SAVE10", "order_id": "o-1", "context": context()}, headers=BUYER
    )
    assert response.status_code == 503
    assert response.headers["Retry-After"] == "1"
    assert response.json()["detail"]["kind"] == "ServerBusy"


# ---------------------------------------------------------------------------
# Authoring
# ---------------------------------------------------------------------------

def test_admin_crud(client):
    created = client.post(
        BASE,
        json={"code": "spring", "title": "Spring", "kind": "PERCENT", "value": 15, "maximum_amount": 3000},
        headers=ADMIN,
    )
    assert created.status_code == 201
    code = created.json()
    assert code["code"] == "SPRING"
    assert Decimal(str(code["value"])) == 15
    assert code["author_scope"] == "ADMIN"
    assert code["usage_count"] == 0

    fetched = client.get(f"{BASE}/{code['id']}", headers=ADMIN)
    assert fetched.status_code == 200
    assert fetched.json()["title"] == "Spring"

    updated = client.put(
        f"{BASE}/{code['id']}",
        json={"code": "SPRING", "title": "Spring sale", "kind": "FIXED", "value": 500},
        headers=ADMIN,
    )
    assert updated.status_code == 200
    assert updated.json()["kind"] == "FIXED"

    listed = client.get(BASE, headers=ADMIN, params={"search": "sale"})
    assert listed.status_code == 200
    assert [item["code"] for item in listed.json()["items"]] == ["SPRING"]
    assert listed.json()["page_size"] == 12

    deleted = client.delete(f"{BASE}/{code['id']}", headers=ADMIN)
    assert deleted.status_code == 200
    assert deleted.json()["deleted"] is True
    assert client.get(f"{BASE}/{code['id']}", headers=ADMIN).status_code == 404


def test_duplicate_code(client):
    body = {"code": "TWICE", "title": "Twice", "kind": "FIXED", "value": 100}
    assert client.post(BASE, json=body, headers=ADMIN).status_code == 201
    response = client.post(BASE, json={**body, "code": "twice"}, headers=ADMIN)
    assert response.status_code == 400
    assert response.json()["detail"]["kind"] == "DuplicateDiscountCode"


def test_invalid_rule_is_a_bad_request(client):
    response = client.post(
        BASE, json={"code": "TOOMUCH", "title": "Too much", "kind": "PERCENT", "value": 120}, headers=ADMIN
    )
    assert response.status_code == 400
    assert response.json()["detail"]["kind"] == "InvalidDiscountCode"


def test_owner_is_limited_to_own_courses(client, add_instructor):
    add_instructor("c-1", "instructor-1")
    body = {"code": "MINE", "title": "Mine", "kind": "PERCENT", "value": 10, "target_ids": ["c-1"]}

    created = client.post(BASE, json=body, headers=INSTRUCTOR)
    assert created.status_code == 201
    assert created.json()["scope"] == "SPECIFIC_COURSES"
    assert created.json()["applies_to"] == "COURSES_ONLY"

    foreign = client.post(BASE, json={**body, "code": "THEIRS", "target_ids": ["c-2"]}, headers=INSTRUCTOR)
    assert foreign.status_code == 403
    assert foreign.json()["detail"]["kind"] == "Unauthorized"

    other = client.get(f"{BASE}/{created.json()['id']}", headers=bearer("instructor-2"))
    assert other.status_code == 403


def test_bulk_deactivate(client):
    ids = []
    for code in ("AAA", "BBB"):
        response = client.post(BASE, json={"code": code, "title": code, "kind": "FIXED", "value": 100}, headers=ADMIN)
        ids.append(response.json()["id"])

    response = client.post(f"{BASE}/bulk", json={"ids": ids, "action": "deactivate"}, headers=ADMIN)
    assert response.status_code == 200
    assert response.json()["affected"] == 2
    assert response.json()["message"] == "2 discount codes deactivated."

    listed = client.get(BASE, headers=ADMIN).json()
    assert {s["key"]: s["count"] for s in listed["stats"]}["inactive"] == 2


def test_bulk_rejects_unknown_action(client):
    response = client.post(f"{BASE}/bulk", json={"ids": [1], "action": "archive"}, headers=ADMIN)
    assert response.status_code == 422
