"""
Integration tests for the Bank Ledger API
Tests end-to-end workflows using FastAPI TestClient
"""

import pytest
from fastapi.testclient import TestClient

from bank_ledger.api import create_app
from bank_ledger.api.dependencies import LedgerSystem, get_ledger_system
from bank_ledger.config import LedgerConfig
from bank_ledger.storage import InMemoryStorage
from bank_ledger.audit import AuditEventType


ADMIN = {"X-Actor-Id": "admin-1", "X-Admin": "true"}
ALICE = {"X-Actor-Id": "alice"}


@pytest.fixture
def system():
    """In-memory ledger system for each test"""
    return LedgerSystem(config=LedgerConfig(storage_backend="memory"), storage=InMemoryStorage())


@pytest.fixture
def client(system):
    app = create_app()
    app.dependency_overrides[get_ledger_system] = lambda: system
    return TestClient(app)


def open_account(client, user_id="alice", balance="1000.00", **fields):
    payload = {"user_id": user_id, "initial_balance": balance}
    payload.update(fields)
    r = client.post("/accounts", json=payload, headers=ADMIN)
    assert r.status_code == 201, r.text
    return r.json()


class TestHealthEndpoints:
    """Test basic health and root endpoints"""

    def test_health(self, client):
        r = client.get("/health")
        assert r.status_code == 200
        assert r.json()["status"] == "healthy"

    def test_root(self, client):
        r = client.get("/")
        assert r.status_code == 200
        data = r.json()
        assert data["name"] == "Bank Ledger API"
        assert "accounts" in data["endpoints"]


class TestUserEndpoints:

    def test_create_and_get_user(self, client):
        r = client.post("/users", json={"user_id": "alice", "full_name": "Alice Smith"},
                        headers=ALICE)
        assert r.status_code == 201
        user = r.json()

        r = client.get(f"/users/{user['id']}")
        assert r.status_code == 200
        assert r.json()["full_name"] == "Alice Smith"
        assert r.json()["accounts"] == []

    def test_duplicate_user_conflicts(self, client):
        client.post("/users", json={"user_id": "alice"}, headers=ALICE)
        r = client.post("/users", json={"user_id": "alice"}, headers=ALICE)
        assert r.status_code == 409

    def test_admin_user_requires_admin(self, client):
        r = client.post("/users", json={"user_id": "mallory", "is_admin": True}, headers=ALICE)
        assert r.status_code == 403

    def test_missing_user(self, client):
        assert client.get("/users/nope").status_code == 404

    def test_delete_user_cascades(self, client):
        account = open_account(client)
        user = client.get("/users", headers=ADMIN).json()["users"][0]

        r = client.delete(f"/users/{user['id']}", headers=ADMIN)
        assert r.status_code == 200
        assert r.json()["accounts_removed"] == 1
        assert client.get(f"/accounts/{account['id']}").status_code == 404


class TestAccountEndpoints:

    def test_create_requires_admin(self, client):
        r = client.post("/accounts", json={"user_id": "alice"}, headers=ALICE)
        assert r.status_code == 403
        r = client.post("/accounts", json={"user_id": "alice"})
        assert r.status_code == 403

    def test_create_and_get(self, client):
        account = open_account(client, display_name="Alice Smith", account_number="12345678")
        assert account["balance"] == "1000.00"
        assert account["display_balance"] == "$1,000.00"
        assert account["masked_number"] == "****5678"

        r = client.get(f"/accounts/{account['id']}")
        assert r.status_code == 200
        assert r.json()["display_name"] == "Alice Smith"

    def test_duplicate_number_conflicts(self, client):
        open_account(client, account_number="12345678")
        r = client.post("/accounts", json={"user_id": "bob", "account_number": "12345678"},
                        headers=ADMIN)
        assert r.status_code == 409

    def test_unsupported_currency(self, client):
        r = client.post("/accounts", json={"user_id": "alice", "currency": "XYZ"}, headers=ADMIN)
        assert r.status_code == 400

    def test_missing_account(self, client):
        assert client.get("/accounts/nope").status_code == 404
        assert client.get("/accounts/nope/transactions").status_code == 404

    def test_history(self, client):
        account = open_account(client)
        client.post("/transactions/deposit", headers=ALICE, json={
            "account_id": account["id"], "amount": "500", "description": "Payroll"
        })
        client.post("/transactions/withdraw", headers=ALICE, json={
            "account_id": account["id"], "amount": "20", "description": "ATM"
        })

        r = client.get(f"/accounts/{account['id']}/transactions")
        assert [t["description"] for t in r.json()["transactions"]] == ["ATM", "Payroll"]

        r = client.get(f"/accounts/{account['id']}/transactions",
                       params={"direction": "debit"})
        rows = r.json()["transactions"]
        assert len(rows) == 1
        assert rows[0]["display_amount"] == "-$20.00"

        r = client.get(f"/accounts/{account['id']}/transactions", params={"q": "pay"})
        assert [t["description"] for t in r.json()["transactions"]] == ["Payroll"]

        r = client.get(f"/accounts/{account['id']}/transactions",
                       params={"direction": "sideways"})
        assert r.status_code == 422

    def test_delete_account(self, client):
        account = open_account(client)
        client.post("/transactions/deposit", headers=ALICE,
                    json={"account_id": account["id"], "amount": "5"})

        assert client.delete(f"/accounts/{account['id']}", headers=ALICE).status_code == 403
        r = client.delete(f"/accounts/{account['id']}", headers=ADMIN)
        assert r.status_code == 200
        assert r.json()["records_removed"] == 1
        assert client.get(f"/accounts/{account['id']}").status_code == 404


class TestTransactionEndpoints:

    def test_deposit_and_withdraw(self, client):
        account = open_account(client)
        r = client.post("/transactions/deposit", headers=ALICE,
                        json={"account_id": account["id"], "amount": "500"})
        assert r.status_code == 200
        assert r.json()["balance"] == "1500.00"
        assert r.json()["transaction"]["is_positive"] is True

        r = client.post("/transactions/withdraw", headers=ALICE,
                        json={"account_id": account["id"], "amount": "2000"})
        assert r.status_code == 400
        assert "Insufficient funds" in r.json()["detail"]

    def test_invalid_amount(self, client):
        account = open_account(client)
        r = client.post("/transactions/deposit", headers=ALICE,
                        json={"account_id": account["id"], "amount": "-5"})
        assert r.status_code == 400

    @pytest.mark.parametrize("amount", ["12abc", "1e3", "1" + "0" * 27])
    def test_malformed_or_oversized_amount_leaves_balance(self, client, amount):
        account = open_account(client)
        r = client.post("/transactions/deposit", headers=ALICE,
                        json={"account_id": account["id"], "amount": amount})
        assert r.status_code == 400
        assert client.get(f"/accounts/{account['id']}").json()["balance"] == "1000.00"

    def test_unknown_account(self, client):
        r = client.post("/transactions/deposit", headers=ALICE,
                        json={"account_id": "missing", "amount": "5"})
        assert r.status_code == 404

    def test_internal_and_external_transfer(self, client, system):
        source = open_account(client)
        destination = open_account(client, user_id="bob", balance="0")

        r = client.post("/transactions/transfer", headers=ALICE, json={
            "from_account_id": source["id"], "to_account_id": destination["id"], "amount": "100"
        })
        assert r.status_code == 200
        assert client.get(f"/accounts/{destination['id']}").json()["balance"] == "100.00"

        r = client.post("/transactions/transfer", headers=ALICE, json={
            "from_account_id": source["id"], "to_account_id": "987654321", "amount": "50",
            "recipient": {"name": "Acme Corp", "bank_name": "Acme Bank"}
        })
        record = r.json()["transaction"]
        assert record["to_account_id"] is None
        assert record["recipient"]["account_number"] == "987654321"
        assert client.get(f"/accounts/{source['id']}").json()["balance"] == "850.00"

        r = client.get(f"/transactions/{record['id']}")
        assert r.status_code == 200
        assert r.json()["recipient"]["name"] == "Acme Corp"

    def test_unknown_transaction(self, client):
        assert client.get("/transactions/missing").status_code == 404

    def test_correlation_id_reaches_audit_trail(self, client, system):
        account = open_account(client)
        headers = dict(ALICE, **{"X-Correlation-Id": "corr-42"})
        client.post("/transactions/deposit", headers=headers,
                    json={"account_id": account["id"], "amount": "1"})

        event = system.audit_trail.get_events_by_type(AuditEventType.DEPOSIT_POSTED)[0]
        assert event.correlation_id == "corr-42"
        assert event.user_id == "alice"


class TestAdminEndpoints:

    def test_adjust_with_deductions(self, client):
        account = open_account(client)
        r = client.post(f"/admin/accounts/{account['id']}/adjust", headers=ADMIN,
                        json={"amount": "1000", "description": "Bonus"})
        assert r.status_code == 200
        data = r.json()
        assert (data["tax"], data["fee"], data["net"]) == ("20.00", "5.00", "975.00")
        assert data["balance"] == "1975.00"
        assert [t["is_positive"] for t in data["transactions"]] == [True, False, False]

    def test_adjust_overrides_and_toggles(self, client):
        account = open_account(client, balance="0")
        r = client.post(f"/admin/accounts/{account['id']}/adjust", headers=ADMIN, json={
            "amount": "100", "tax_rate": "10", "apply_fee": False, "is_invisible": True
        })
        data = r.json()
        assert (data["tax"], data["fee"], data["net"]) == ("10.00", "0.00", "90.00")
        assert all(t["is_visible"] is False for t in data["transactions"])
        r = client.get(f"/accounts/{account['id']}/transactions")
        assert r.json()["transactions"] == []

    def test_adjust_rejects_bad_rate(self, client):
        account = open_account(client)
        r = client.post(f"/admin/accounts/{account['id']}/adjust", headers=ADMIN,
                        json={"amount": "100", "tax_rate": "lots"})
        assert r.status_code == 400

    @pytest.mark.parametrize("field, value", [
        ("tax_rate", "-50"), ("fee_rate", "-1"), ("min_fee", "-1.50"), ("max_fee", "-25")
    ])
    def test_adjust_rejects_negative_deductions(self, client, field, value):
        account = open_account(client)
        r = client.post(f"/admin/accounts/{account['id']}/adjust", headers=ADMIN,
                        json={"amount": "100", field: value})
        assert r.status_code == 400
        assert client.get(f"/accounts/{account['id']}").json()["balance"] == "1000.00"

    def test_admin_routes_require_admin(self, client):
        account = open_account(client)
        r = client.post(f"/admin/accounts/{account['id']}/deduct", headers=ALICE,
                        json={"amount": "1"})
        assert r.status_code == 403
        assert client.get("/admin/transactions/pending", headers=ALICE).status_code == 403

    def test_deduct(self, client):
        account = open_account(client, balance="100.00")
        r = client.post(f"/admin/accounts/{account['id']}/deduct", headers=ADMIN,
                        json={"amount": "40"})
        assert r.status_code == 200
        assert r.json()["balance"] == "60.00"
        assert r.json()["transaction"]["recipient"]["name"] == "Trusted Admin"

        r = client.post(f"/admin/accounts/{account['id']}/deduct", headers=ADMIN,
                        json={"amount": "60.01"})
        assert r.status_code == 400

    def test_pending_approval_flow(self, client):
        source = open_account(client)
        destination = open_account(client, user_id="bob", balance="0")

        r = client.post("/transactions/pending", headers=ALICE, json={
            "from_account_id": source["id"], "to_account_id": destination["id"],
            "amount": "300", "description": "Large transfer"
        })
        assert r.status_code == 202
        pending_id = r.json()["transaction"]["id"]
        assert client.get(f"/accounts/{source['id']}").json()["balance"] == "1000.00"

        r = client.get("/admin/transactions/pending", headers=ADMIN)
        assert [t["id"] for t in r.json()["transactions"]] == [pending_id]

        r = client.post(f"/admin/transactions/{pending_id}/approve", headers=ADMIN)
        assert r.status_code == 200
        assert r.json()["status"] == "completed"
        assert r.json()["approved_by"] == "admin-1"
        assert client.get(f"/accounts/{source['id']}").json()["balance"] == "700.00"
        assert client.get(f"/accounts/{destination['id']}").json()["balance"] == "300.00"

        r = client.post(f"/admin/transactions/{pending_id}/approve", headers=ADMIN)
        assert r.status_code == 409
        assert client.get(f"/accounts/{source['id']}").json()["balance"] == "700.00"

    def test_reject(self, client):
        source = open_account(client)
        r = client.post("/transactions/pending", headers=ALICE,
                        json={"from_account_id": source["id"], "amount": "10"})
        pending_id = r.json()["transaction"]["id"]

        r = client.post(f"/admin/transactions/{pending_id}/reject", headers=ADMIN,
                        json={"approver_id": "reviewer-7"})
        assert r.status_code == 200
        assert r.json()["status"] == "rejected"
        assert r.json()["approved_by"] == "reviewer-7"
        assert client.post("/admin/transactions/missing/reject", headers=ADMIN).status_code == 404

    def test_audit_verify(self, client):
        open_account(client)
        r = client.get("/admin/audit/verify", headers=ADMIN)
        assert r.status_code == 200
        assert r.json()["valid"] is True
        assert r.json()["total_events"] == 2
