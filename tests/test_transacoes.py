from datetime import datetime

import pytest
import requests

from extensions import db
from models import Category, ReferenceCode, ScheduledTransaction, Transaction
from modulos.App_financeiro import api

from conftest import USER_ID


def test_create_transaction_requires_auth(client):
    resp = client.post("/functions/v1/create-transaction", json={"type": "expense", "amount": 10, "date": "2026-10-01"})

    assert resp.status_code == 401
    assert Transaction.query.count() == 0


def test_create_transaction_claims_reference_code(client, user_headers):
    db.session.add(Category(id="cat-salario", name="Salário", type="income"))
    db.session.commit()

    resp = client.post(
        "/functions/v1/create-transaction",
        json={"type": "income", "amount": 5000, "date": "2026-10-05T09:00:00Z",
              "category": "Salário", "description": "Salário outubro"},
        headers=user_headers,
    )

    assert resp.status_code == 201
    data = resp.get_json()["data"]
    assert data["user_id"] == USER_ID
    assert data["category_id"] == "cat-salario"
    assert 10_000_001 <= data["reference_code"] <= 10_000_100
    assert db.session.get(ReferenceCode, data["reference_code"]).origem == "poupeja_transactions"


def test_create_transaction_falls_back_to_default_category(client, user_headers):
    resp = client.post(
        "/functions/v1/create-transaction",
        json={"type": "expense", "amount": "-35.90", "date": "2026-10-05", "category_id": "nao-existe"},
        headers=user_headers,
    )

    assert resp.status_code == 201
    assert resp.get_json()["data"]["category_id"] == "other-expense"


def test_create_transaction_validates_required_fields(client, user_headers):
    resp = client.post("/functions/v1/create-transaction", json={"type": "expense"}, headers=user_headers)

    assert resp.status_code == 400
    assert "amount" in resp.get_json()["error"]
    assert Transaction.query.count() == 0
    assert ReferenceCode.query.count() == 0


def test_next_transaction_code_is_above_existing(client, user_headers):
    db.session.add(Transaction(user_id=USER_ID, type="expense", amount=1, reference_code=10_500_000))
    db.session.commit()

    resp = client.post(
        "/functions/v1/create-transaction",
        json={"type": "expense", "amount": 1, "date": "2026-10-05"},
        headers=user_headers,
    )

    assert 10_500_001 <= resp.get_json()["data"]["reference_code"] <= 10_500_100


def test_installments_share_one_reference_code(client, user_headers):
    resp = client.post(
        "/functions/v1/create-scheduled-transaction",
        json={"type": "expense", "amount": 300, "scheduledDate": "2026-01-31T10:00:00Z",
              "description": "Notebook", "recurrence": "installments", "installments": 3},
        headers=user_headers,
    )

    assert resp.status_code == 201
    items = resp.get_json()["items"]
    assert [i["description"] for i in items] == ["Notebook (1/3)", "Notebook (2/3)", "Notebook (3/3)"]
    assert [i["parcela"] for i in items] == ["1", "2", "3"]
    assert {i["recurrence"] for i in items} == {"unica"}
    assert len({i["reference_code"] for i in items}) == 1
    assert [i["scheduled_date"] for i in items] == [
        "2026-01-31T10:00:00", "2026-02-28T10:00:00", "2026-03-31T10:00:00",
    ]
    assert ScheduledTransaction.query.count() == 3
    assert ReferenceCode.query.count() == 1


def test_scheduled_recurrence_is_stored_in_portuguese(client, user_headers):
    resp = client.post(
        "/functions/v1/create-scheduled-transaction",
        json={"type": "expense", "amount": 120, "scheduledDate": "2026-11-10", "recurrence": "monthly"},
        headers=user_headers,
    )

    assert resp.status_code == 201
    data = resp.get_json()["data"]
    assert data["recurrence"] == "mensal"
    assert data["category_id"] == "other-expense"


def test_reminder_schedule_has_no_category(client, user_headers):
    resp = client.post(
        "/functions/v1/create-scheduled-transaction",
        json={"type": "lembrete", "amount": 0, "scheduledDate": "2026-11-10"},
        headers=user_headers,
    )

    assert resp.status_code == 201
    assert resp.get_json()["data"]["category_id"] is None


@pytest.mark.parametrize("payload", [
    {"installments": 200000, "recurrence": "installments"},
    {"installments": -3},
    {"installments": "muitas"},
    {"scheduledDate": 10 ** 20},
    {"scheduledDate": "9999-06-10", "recurrence": "installments", "installments": 12},
    {"amount": "NaN"},
])
def test_scheduled_transaction_rejects_bad_input_before_claiming_code(client, user_headers, payload):
    body = {"type": "expense", "amount": 50, "scheduledDate": "2026-11-10", **payload}

    resp = client.post("/functions/v1/create-scheduled-transaction", json=body, headers=user_headers)

    assert resp.status_code == 400
    assert resp.get_json()["kind"] == "validation"
    assert ReferenceCode.query.count() == 0
    assert ScheduledTransaction.query.count() == 0


def test_scheduled_non_string_recurrence_is_kept_as_text(client, user_headers):
    resp = client.post(
        "/functions/v1/create-scheduled-transaction",
        json={"type": "expense", "amount": 50, "scheduledDate": "2026-11-10", "recurrence": 5},
        headers=user_headers,
    )

    assert resp.status_code == 201
    assert resp.get_json()["data"]["recurrence"] == "5"


def test_create_transaction_rejects_out_of_range_timestamp(client, user_headers):
    resp = client.post(
        "/functions/v1/create-transaction",
        json={"type": "expense", "amount": 10, "date": 10 ** 20},
        headers=user_headers,
    )

    assert resp.status_code == 400
    assert Transaction.query.count() == 0


def _transaction(user_id):
    tx = Transaction(user_id=user_id, type="expense", amount=80, date=datetime(2026, 10, 1), status="pending")
    db.session.add(tx)
    db.session.commit()
    return tx.id


def test_mark_as_paid_by_owner(client, user_headers):
    transaction_id = _transaction(USER_ID)

    resp = client.post("/functions/v1/mark-as-paid", json={"transactionId": transaction_id}, headers=user_headers)

    assert resp.status_code == 200
    body = resp.get_json()
    assert body["transaction"]["status"] == "paid"
    assert db.session.get(Transaction, transaction_id).status == "paid"


def test_mark_as_paid_by_admin_for_other_user(client, admin_headers):
    transaction_id = _transaction(USER_ID)

    resp = client.post("/functions/v1/mark-as-paid", json={"transactionId": transaction_id}, headers=admin_headers)

    assert resp.status_code == 200


def test_mark_as_paid_rejects_other_users(client, user_headers):
    transaction_id = _transaction("someone-else")

    resp = client.post("/functions/v1/mark-as-paid", json={"transactionId": transaction_id}, headers=user_headers)

    assert resp.status_code == 403
    assert db.session.get(Transaction, transaction_id).status == "pending"


def test_mark_as_paid_errors(client, user_headers):
    missing = client.post("/functions/v1/mark-as-paid", json={}, headers=user_headers)
    unknown = client.post("/functions/v1/mark-as-paid", json={"transactionId": "nope"}, headers=user_headers)

    assert missing.status_code == 400
    assert unknown.status_code == 404


class _RespostaWebhook:
    def __init__(self, status_code, reason="OK"):
        self.status_code = status_code
        self.reason = reason
        self.ok = status_code < 400


def test_zapier_webhook_requires_url(client, user_headers):
    resp = client.post("/functions/v1/trigger-zapier-webhook", json={"transactionData": {}}, headers=user_headers)

    assert resp.status_code == 400
    assert resp.get_json() == {"error": "Webhook URL is required"}


def test_zapier_webhook_requires_auth(client, monkeypatch):
    chamadas = []
    monkeypatch.setattr(api.requests, "post", lambda *a, **kw: chamadas.append(a))

    resp = client.post("/functions/v1/trigger-zapier-webhook", json={"webhookUrl": "https://hooks.zapier.com/x"})

    assert resp.status_code == 401
    assert chamadas == []


def test_zapier_webhook_relays_transaction(client, user_headers, monkeypatch):
    chamadas = []

    def post(url, json=None, timeout=None):
        chamadas.append((url, json, timeout))
        return _RespostaWebhook(200)

    monkeypatch.setattr(api.requests, "post", post)

    resp = client.post(
        "/functions/v1/trigger-zapier-webhook",
        json={"webhookUrl": "https://hooks.zapier.com/hooks/catch/1/abc",
              "transactionData": {"type": "expense", "amount": 99.9, "description": "Luz", "phone": "+5511999999999"}},
        headers=user_headers,
    )

    assert resp.status_code == 200
    assert resp.get_json() == {"success": True, "message": "Webhook triggered successfully"}
    url, payload, timeout = chamadas[0]
    assert url == "https://hooks.zapier.com/hooks/catch/1/abc"
    assert payload["triggered_from"] == "PoupeJa_App"
    assert payload["transaction"]["amount"] == 99.9
    assert payload["transaction"]["phone"] == "+5511999999999"
    assert timeout == 10


def test_zapier_webhook_passes_upstream_status_through(client, user_headers, monkeypatch):
    monkeypatch.setattr(api.requests, "post", lambda *a, **kw: _RespostaWebhook(410, "Gone"))

    resp = client.post(
        "/functions/v1/trigger-zapier-webhook",
        json={"webhookUrl": "https://hooks.zapier.com/hooks/catch/1/abc"},
        headers=user_headers,
    )

    assert resp.status_code == 410
    assert resp.get_json() == {"error": "Failed to trigger webhook", "status": 410, "statusText": "Gone"}


def test_zapier_webhook_connection_error_is_500(client, user_headers, monkeypatch):
    def post(*args, **kwargs):
        raise requests.ConnectionError("dns failure")

    monkeypatch.setattr(api.requests, "post", post)

    resp = client.post(
        "/functions/v1/trigger-zapier-webhook",
        json={"webhookUrl": "https://hooks.zapier.com/hooks/catch/1/abc"},
        headers=user_headers,
    )

    assert resp.status_code == 500
    assert resp.get_json()["error"] == "Internal server error"


def test_zapier_webhook_rejects_non_http_url(client, user_headers):
    resp = client.post(
        "/functions/v1/trigger-zapier-webhook",
        json={"webhookUrl": "file:///etc/passwd"},
        headers=user_headers,
    )

    assert resp.status_code == 400
