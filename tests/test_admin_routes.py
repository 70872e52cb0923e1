from datetime import datetime, timedelta

import pytest

from extensions import db
from models import Category, PoupejaUser, Subscription, Transaction

from conftest import ADMIN_ID, USER_ID


def _transaction_payload(**overrides):
    payload = {
        "user_id": USER_ID,
        "type": "expense",
        "amount": -150.75,
        "conta": "Nubank",
        "category_id": "cat-mercado",
        "description": "Supermercado",
        "date": "2026-10-01T12:00:00Z",
        "reference_code": 10000123,
        "status": "pending",
    }
    payload.update(overrides)
    return payload


def _seed_category():
    db.session.add(Category(id="cat-mercado", name="Mercado", type="expense", icon="cart", color="#FF9800"))
    db.session.commit()


def test_preflight_returns_empty_body_with_cors_headers(client):
    resp = client.open("/functions/v1/create-transaction-admin", method="OPTIONS")

    assert resp.status_code == 200
    assert resp.data == b""
    assert resp.headers["Access-Control-Allow-Origin"] == "*"
    assert resp.headers["Access-Control-Allow-Headers"] == "authorization, x-client-info, apikey, content-type"


ADMIN_FUNCTIONS = (
    ("/functions/v1/create-transaction-admin", _transaction_payload()),
    ("/functions/v1/update-transaction-admin", {"id": "x", "update": {"status": "paid"}}),
    ("/functions/v1/admin-get-all-users", {}),
)


@pytest.mark.parametrize("path, body", ADMIN_FUNCTIONS)
@pytest.mark.parametrize("headers", [{}, {"Authorization": "Bearer not-a-session"}, {"Authorization": "Basic abc"}])
def test_admin_functions_without_session_are_401_and_write_nothing(client, path, body, headers):
    resp = client.post(path, json=body, headers=headers)

    assert resp.status_code == 401
    assert resp.get_json()["kind"] == "unauthorized"
    assert "success" not in resp.get_json()
    assert Transaction.query.count() == 0
    assert PoupejaUser.query.count() == 0


def test_non_admin_is_403_and_writes_nothing(client, user_headers):
    for path, body in ADMIN_FUNCTIONS:
        resp = client.post(path, json=body, headers=user_headers)
        assert resp.status_code == 403
        assert "Admin access required" in resp.get_json()["error"]

    assert Transaction.query.count() == 0


def test_admin_create_inserts_one_row_and_returns_it_with_category(client, admin_headers):
    _seed_category()

    resp = client.post("/functions/v1/create-transaction-admin", json=_transaction_payload(), headers=admin_headers)

    assert resp.status_code == 200
    body = resp.get_json()
    assert body["success"] is True
    assert Transaction.query.count() == 1

    persisted = db.session.get(Transaction, body["data"]["id"])
    assert body["data"] == persisted.to_dict()
    assert body["data"]["amount"] == -150.75
    assert body["data"]["reference_code"] == 10000123
    assert body["data"]["category"] == {
        "id": "cat-mercado", "name": "Mercado", "icon": "cart", "color": "#FF9800", "type": "expense",
    }


def test_admin_create_without_payload_is_500(client, admin_headers):
    resp = client.post("/functions/v1/create-transaction-admin", headers=admin_headers)

    assert resp.status_code == 500
    assert resp.get_json() == {"success": False, "error": "Transaction data is required"}


def test_admin_create_with_unknown_field_fails_without_writing(client, admin_headers):
    resp = client.post(
        "/functions/v1/create-transaction-admin",
        json=_transaction_payload(nao_existe="x"),
        headers=admin_headers,
    )

    assert resp.status_code == 500
    body = resp.get_json()
    assert body["success"] is False
    assert body["error"].startswith("Failed to insert transaction")
    assert Transaction.query.count() == 0


def test_admin_create_missing_required_column_is_500(client, admin_headers):
    payload = _transaction_payload()
    del payload["user_id"]

    resp = client.post("/functions/v1/create-transaction-admin", json=payload, headers=admin_headers)

    assert resp.status_code == 500
    assert Transaction.query.count() == 0


def _create(client, admin_headers):
    resp = client.post("/functions/v1/create-transaction-admin", json=_transaction_payload(), headers=admin_headers)
    return resp.get_json()["data"]["id"]


def test_admin_update_changes_row(client, admin_headers):
    transaction_id = _create(client, admin_headers)

    resp = client.post(
        "/functions/v1/update-transaction-admin",
        json={"id": transaction_id, "update": {"status": "paid", "amount": -99.9}},
        headers=admin_headers,
    )

    assert resp.status_code == 200
    data = resp.get_json()["data"]
    assert data["status"] == "paid"
    assert data["amount"] == -99.9
    assert db.session.get(Transaction, transaction_id).status == "paid"


def test_admin_update_is_idempotent(client, admin_headers):
    transaction_id = _create(client, admin_headers)
    body = {"id": transaction_id, "update": {"status": "paid", "description": "Mercado do mês"}}

    first = client.post("/functions/v1/update-transaction-admin", json=body, headers=admin_headers)
    second = client.post("/functions/v1/update-transaction-admin", json=body, headers=admin_headers)

    assert first.status_code == second.status_code == 200
    assert first.get_json()["data"] == second.get_json()["data"]
    assert Transaction.query.count() == 1


def test_admin_update_requires_id_and_update(client, admin_headers):
    resp = client.post("/functions/v1/update-transaction-admin", json={"id": "abc"}, headers=admin_headers)

    assert resp.status_code == 500
    assert resp.get_json()["error"] == "Both id and update payload are required"


def test_admin_update_unknown_id_is_500(client, admin_headers):
    resp = client.post(
        "/functions/v1/update-transaction-admin",
        json={"id": "does-not-exist", "update": {"status": "paid"}},
        headers=admin_headers,
    )

    assert resp.status_code == 500
    assert resp.get_json()["success"] is False


def test_admin_update_cannot_overwrite_id(client, admin_headers):
    transaction_id = _create(client, admin_headers)

    resp = client.post(
        "/functions/v1/update-transaction-admin",
        json={"id": transaction_id, "update": {"id": "hijack"}},
        headers=admin_headers,
    )

    assert resp.status_code == 500
    assert db.session.get(Transaction, transaction_id) is not None


def test_admin_get_all_users_merges_subscriptions(client, admin_headers):
    now = datetime.utcnow()
    db.session.add_all([
        PoupejaUser(id=USER_ID, name="Cliente", email="cliente@appfinanceiro.com", created_at=now - timedelta(days=2)),
        PoupejaUser(id=ADMIN_ID, name="Admin", email="admin@appfinanceiro.com", created_at=now),
    ])
    db.session.commit()
    db.session.add(Subscription(
        user_id=USER_ID, status="active", plan_type="monthly",
        current_period_end=now + timedelta(days=20), cancel_at_period_end=True,
    ))
    db.session.commit()

    resp = client.get("/functions/v1/admin-get-all-users", headers=admin_headers)

    assert resp.status_code == 200
    body = resp.get_json()
    assert body["success"] is True
    assert body["total"] == 2
    newest, oldest = body["users"]
    assert newest["id"] == ADMIN_ID
    assert newest["status"] == "Sem assinatura"
    assert newest["plan_type"] is None
    assert newest["cancel_at_period_end"] is False
    assert oldest["id"] == USER_ID
    assert oldest["status"] == "active"
    assert oldest["plan_type"] == "monthly"
    assert oldest["cancel_at_period_end"] is True


def test_create_admin_client_creates_profile_and_subscription(client, admin_headers, fake_auth):
    resp = client.post(
        "/functions/v1/create-admin-client",
        json={"name": "Maria", "phone": "+5511999990000", "email": "maria@example.com",
              "expirationDate": "2027-01-31T00:00:00Z"},
        headers=admin_headers,
    )

    assert resp.status_code == 200
    body = resp.get_json()
    assert body["success"] is True
    user_id = body["user"]["id"]
    assert fake_auth.created[0][0] == "maria@example.com"
    assert fake_auth.created[0][1].startswith("temp")

    subscription = Subscription.query.filter_by(user_id=user_id).one()
    assert subscription.status == "active"
    assert subscription.plan_type == "basic"
    assert subscription.current_period_end == datetime(2027, 1, 31)


def test_create_admin_client_auth_failure_is_400(client, admin_headers, fake_auth):
    fake_auth.fail_create = True

    resp = client.post("/functions/v1/create-admin-client", json={"email": "dup@example.com"}, headers=admin_headers)

    assert resp.status_code == 400
    assert resp.get_json()["success"] is False
    assert PoupejaUser.query.count() == 0


def test_create_admin_client_requires_email(client, admin_headers):
    resp = client.post("/functions/v1/create-admin-client", json={"name": "Sem email"}, headers=admin_headers)

    assert resp.status_code == 400


def test_impersonate_user_returns_magic_link(client, admin_headers, fake_auth):
    resp = client.post("/functions/v1/impersonate-user", json={"email": "maria@example.com"}, headers=admin_headers)

    assert resp.status_code == 200
    body = resp.get_json()
    assert body["success"] is True
    assert body["loginUrl"] == fake_auth.links["maria@example.com"]


def test_impersonate_user_requires_email(client, admin_headers):
    resp = client.post("/functions/v1/impersonate-user", json={}, headers=admin_headers)

    assert resp.status_code == 400
    assert resp.get_json()["kind"] == "validation"
