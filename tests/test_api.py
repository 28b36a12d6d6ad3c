"""
Integration tests for the banking operations API
Tests end-to-end workflows using FastAPI TestClient
"""

import pytest
from datetime import datetime, timezone, timedelta
from fastapi.testclient import TestClient

from bank_ops.api import create_app
from bank_ops.api.auth import BankingSystem, get_banking_system
from bank_ops.config import BankOpsConfig
from bank_ops.errors import StorageTimeoutError
from bank_ops.roles import Role
from bank_ops.users import ScryptCredentialVerifier


class FakeClock:

    def __init__(self):
        self.now = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now


@pytest.fixture
def system():
    """In-memory banking system with a bootstrap analyst"""
    banking_system = BankingSystem(BankOpsConfig(database_url="memory://", _env_file=None))
    banking_system.users.verifier = ScryptCredentialVerifier(n=2 ** 4)
    banking_system.transfers.clock = FakeClock()
    banking_system.analyst = banking_system.users.create_user(
        identification="EMP003", full_name="Paula Rios", email="paula@bank.example",
        phone="6015550103", address="Carrera 7 # 32-16", role=Role.INTERNAL_ANALYST, password="analyst1"
    )
    yield banking_system
    banking_system.close()


@pytest.fixture
def client(system):
    """Test client bound to the in-memory system"""
    app = create_app()
    app.dependency_overrides[get_banking_system] = lambda: system
    return TestClient(app)


def create_user(client, actor_id, identification, role, **overrides):
    payload = {
        "actor_id": actor_id,
        "identification": identification,
        "full_name": f"User {identification}",
        "email": f"{identification.lower()}@example.com",
        "phone": "3001234567",
        "address": "Calle 10 # 5-20",
        "role": role,
        "password": "secret1",
    }
    payload.update(overrides)
    return client.post("/users", json=payload)


@pytest.fixture
def bank(client, system):
    """Company with an employee, a supervisor and two funded accounts"""
    analyst_id = system.analyst.id
    ids = {"analyst": analyst_id}
    for name, identification, role in [
        ("company", "NIT900123456", "company_client"),
        ("employee", "CC1010", "company_employee"),
        ("supervisor", "CC2020", "company_supervisor"),
        ("teller", "EMP001", "teller"),
    ]:
        r = create_user(client, analyst_id, identification, role, company_id="acme")
        assert r.status_code == 201
        ids[name] = r.json()["user_id"]

    for name in ["b", "c"]:
        r = client.post("/accounts", json={
            "actor_id": ids["teller"],
            "owner_id": "NIT900123456",
            "account_type": "corporate",
            "currency": "COP"
        })
        assert r.status_code == 201
        ids[name] = r.json()["account_number"]

    system.accounts.adjust_balance(ids["b"], "10000000")
    return ids


def balance(client, account_number):
    return client.get(f"/accounts/{account_number}").json()["balance"]


class TestStoreBusy:

    def test_lock_timeout_is_503(self, client, system, monkeypatch):
        def locked():
            raise StorageTimeoutError("Could not lock bank_ops.db: database is locked")

        monkeypatch.setattr(system.transfers, "sweep_expired", locked)
        r = client.post("/transfers/sweep-expired")

        assert r.status_code == 503
        assert r.json()["error"] == "StorageTimeoutError"


class TestHealthEndpoints:
    """Test basic health and root endpoints"""

    def test_health(self, client):
        r = client.get("/health")
        assert r.status_code == 200
        assert r.json()["status"] == "healthy"

    def test_root(self, client):
        r = client.get("/")
        assert r.status_code == 200
        assert "transfers" in r.json()["endpoints"]


class TestAuthAndUsers:

    def test_login(self, client):
        r = client.post("/auth/login", json={"identification": "EMP003", "password": "analyst1"})
        assert r.status_code == 200
        user = r.json()["user"]
        assert user["role"] == "internal_analyst"
        assert "password_hash" not in user

    def test_login_wrong_password(self, client):
        r = client.post("/auth/login", json={"identification": "EMP003", "password": "wrong"})
        assert r.status_code == 401

    def test_create_and_get_user(self, client, system):
        r = create_user(client, system.analyst.id, "CC12345678", "person_client", birth_date="1990-04-02")
        assert r.status_code == 201

        r = client.get("/users/CC12345678")
        assert r.status_code == 200
        assert r.json()["birth_date"] == "1990-04-02"
        assert client.get("/users/CC000").status_code == 404

    def test_duplicate_user(self, client, system):
        create_user(client, system.analyst.id, "CC12345678", "person_client")
        r = create_user(client, system.analyst.id, "CC12345678", "person_client")
        assert r.status_code == 409

    def test_input_validation(self, client, system):
        assert create_user(client, system.analyst.id, "CC1", "person_client", email="nope").status_code == 422
        assert create_user(client, system.analyst.id, "CC1", "person_client", phone="123").status_code == 422
        assert create_user(client, system.analyst.id, "CC1", "janitor").status_code == 422
        # System role passes schema validation but not the registry
        r = create_user(client, system.analyst.id, "CC1", "system")
        assert r.status_code == 422
        assert r.json()["error"] == "ValidationError"

    def test_permissions(self, client, bank):
        r = create_user(client, bank["teller"], "CC5555", "person_client")
        assert r.status_code == 403

        r = create_user(client, "unknown-user", "CC5555", "person_client")
        assert r.status_code == 404

    def test_blocked_actor(self, client, bank):
        r = client.put(f"/users/{bank['teller']}/status", json={"actor_id": bank["analyst"], "status": "blocked"})
        assert r.status_code == 200

        r = client.post("/accounts", json={
            "actor_id": bank["teller"], "owner_id": "NIT900123456", "account_type": "savings"
        })
        assert r.status_code == 409

    def test_company_users(self, client, bank):
        r = client.get("/users/company/acme")
        assert len(r.json()["users"]) == 4


class TestClientEndpoints:

    def test_register_person(self, client, bank):
        r = client.post("/clients/persons", json={
            "actor_id": bank["teller"],
            "user_id": bank["employee"],
            "full_name": "Luis Perez",
            "identification": "CC1010",
            "email": "luis@acme.example",
            "phone": "3105550000",
            "birth_date": "1985-11-20",
            "address": "Calle 80 # 20-10"
        })
        assert r.status_code == 201
        assert client.get("/clients/persons/CC1010").json()["full_name"] == "Luis Perez"

    def test_register_company(self, client, bank):
        payload = {
            "actor_id": bank["teller"],
            "user_id": bank["company"],
            "legal_name": "Acme Colombia SAS",
            "tax_id": "NIT900123456",
            "email": "finanzas@acme.example",
            "phone": "6017001000",
            "address": "Avenida 68 # 10-50",
            "legal_representative_id": "CC2020"
        }
        assert client.post("/clients/companies", json=payload).status_code == 201
        assert client.post("/clients/companies", json=payload).status_code == 409
        assert len(client.get("/clients/companies").json()["companies"]) == 1


class TestAccountEndpoints:

    def test_account_details(self, client, bank):
        r = client.get(f"/accounts/{bank['b']}")
        assert r.status_code == 200
        data = r.json()
        assert data["balance"] == "10000000.00"
        assert data["currency"] == "COP"
        assert data["status"] == "active"

    def test_open_for_unknown_owner(self, client, bank):
        r = client.post("/accounts", json={
            "actor_id": bank["teller"], "owner_id": "CC999999", "account_type": "savings"
        })
        assert r.status_code == 404

    def test_employee_cannot_open_accounts(self, client, bank):
        r = client.post("/accounts", json={
            "actor_id": bank["employee"], "owner_id": "NIT900123456", "account_type": "savings"
        })
        assert r.status_code == 403

    def test_status_and_history(self, client, bank):
        r = client.put(f"/accounts/{bank['c']}/status", json={"actor_id": bank["teller"], "status": "blocked"})
        assert r.status_code == 200
        assert r.json()["status"] == "blocked"

        history = client.get(f"/accounts/{bank['c']}/history").json()["entries"]
        assert [e["operation_type"] for e in history] == ["account_opened", "account_status_changed"]

    def test_list_by_owner(self, client, bank):
        assert len(client.get("/accounts/owner/NIT900123456").json()["accounts"]) == 2
        assert client.get("/accounts/9999999999").status_code == 404


class TestTransferFlow:
    """End-to-end transfer approval workflow"""

    def create(self, client, bank, amount, is_corporate=True, actor="employee"):
        return client.post("/transfers", json={
            "actor_id": bank[actor],
            "source_account": bank["b"],
            "destination_account": bank["c"],
            "amount": amount,
            "is_corporate": is_corporate
        })

    def test_immediate_transfer(self, client, bank):
        r = self.create(client, bank, "5000000")
        assert r.status_code == 201
        assert r.json()["status"] == "executed"
        assert balance(client, bank["b"]) == "5000000.00"
        assert balance(client, bank["c"]) == "5000000.00"

    def test_hold_and_approve(self, client, bank):
        r = self.create(client, bank, "6000000")
        transfer_id = r.json()["transfer_id"]
        assert r.json()["status"] == "pending_approval"
        assert balance(client, bank["b"]) == "10000000.00"

        pending = client.get("/transfers/pending").json()["transfers"]
        assert [t["id"] for t in pending] == [transfer_id]

        r = client.post(f"/transfers/{transfer_id}/approve", json={"actor_id": bank["supervisor"]})
        assert r.status_code == 200
        assert r.json()["status"] == "executed"
        assert balance(client, bank["b"]) == "4000000.00"
        assert balance(client, bank["c"]) == "6000000.00"

        entries = client.get(f"/audit/product/{transfer_id}").json()["entries"]
        assert [e["operation_type"] for e in entries] == ["transfer_held", "transfer_approved"]

    def test_employee_cannot_approve(self, client, bank):
        transfer_id = self.create(client, bank, "6000000").json()["transfer_id"]
        r = client.post(f"/transfers/{transfer_id}/approve", json={"actor_id": bank["employee"]})
        assert r.status_code == 403

    def test_expired_approval(self, client, system, bank):
        transfer_id = self.create(client, bank, "6000000").json()["transfer_id"]
        system.transfers.clock.now += timedelta(minutes=61)

        r = client.post(f"/transfers/{transfer_id}/approve", json={"actor_id": bank["supervisor"]})

        assert r.status_code == 410
        assert r.json()["error"] == "ExpiredError"
        assert client.get(f"/transfers/{transfer_id}").json()["status"] == "expired"

    def test_reject(self, client, bank):
        transfer_id = self.create(client, bank, "6000000").json()["transfer_id"]
        r = client.post(f"/transfers/{transfer_id}/reject", json={
            "actor_id": bank["supervisor"], "reason": "Beneficiary not verified"
        })
        assert r.status_code == 200
        assert client.get(f"/transfers/{transfer_id}").json()["rejection_reason"] == "Beneficiary not verified"

        r = client.post(f"/transfers/{transfer_id}/approve", json={"actor_id": bank["supervisor"]})
        assert r.status_code == 409

    def test_sweep(self, client, system, bank):
        self.create(client, bank, "6000000")
        self.create(client, bank, "7000000")
        system.transfers.clock.now += timedelta(hours=2)

        assert client.post("/transfers/sweep-expired").json() == {"expired": 2}
        assert client.post("/transfers/sweep-expired").json() == {"expired": 0}

    def test_business_errors(self, client, bank):
        assert self.create(client, bank, "10000001", is_corporate=False).status_code == 409

        r = client.post("/transfers", json={
            "actor_id": bank["employee"], "source_account": bank["b"],
            "destination_account": bank["b"], "amount": "10"
        })
        assert r.status_code == 422

        r = client.post("/transfers", json={
            "actor_id": bank["employee"], "source_account": "0000000000",
            "destination_account": bank["c"], "amount": "10"
        })
        assert r.status_code == 404

    def test_schema_validation(self, client, bank):
        assert self.create(client, bank, "0").status_code == 422
        assert self.create(client, bank, "-5").status_code == 422
        r = self.create(client, bank, "5000000.004")
        assert r.status_code == 422
        assert r.json()["detail"][0]["loc"][-1] == "amount"
        assert client.get("/transfers/pending").json()["transfers"] == []
        assert balance(client, bank["b"]) == "10000000.00"
        assert client.get("/transfers/missing").status_code == 404

    def test_transfer_listings(self, client, bank):
        self.create(client, bank, "100", is_corporate=False)
        assert len(client.get(f"/transfers/account/{bank['c']}").json()["transfers"]) == 1
        assert len(client.get(f"/transfers/creator/{bank['employee']}").json()["transfers"]) == 1
        assert len(client.get(f"/accounts/{bank['b']}/transfers").json()["transfers"]) == 1


class TestLoanFlow:
    """End-to-end loan workflow"""

    def apply(self, client, bank):
        r = client.post("/loans", json={
            "actor_id": bank["teller"],
            "applicant_id": "NIT900123456",
            "loan_type": "corporate",
            "requested_amount": "1000000",
            "term_months": 36
        })
        assert r.status_code == 201
        return r.json()["loan_id"]

    def test_approve_and_disburse(self, client, bank):
        loan_id = self.apply(client, bank)

        r = client.post(f"/loans/{loan_id}/approve", json={
            "actor_id": bank["analyst"], "approved_amount": "1000000", "interest_rate": "14.5"
        })
        assert r.status_code == 200

        r = client.post(f"/loans/{loan_id}/disburse", json={
            "actor_id": bank["analyst"], "destination_account": bank["c"]
        })
        assert r.status_code == 200
        assert r.json()["status"] == "disbursed"
        assert balance(client, bank["c"]) == "1000000.00"

        loan = client.get(f"/loans/{loan_id}").json()
        assert loan["approved_amount"] == "1000000.00"
        assert loan["interest_rate"] == "14.50"

    def test_disburse_in_underwriting(self, client, bank):
        loan_id = self.apply(client, bank)
        r = client.post(f"/loans/{loan_id}/disburse", json={
            "actor_id": bank["analyst"], "destination_account": bank["c"]
        })
        assert r.status_code == 409

    def test_reject(self, client, bank):
        loan_id = self.apply(client, bank)

        short = client.post(f"/loans/{loan_id}/reject", json={"actor_id": bank["analyst"], "reason": "no"})
        assert short.status_code == 422

        r = client.post(f"/loans/{loan_id}/reject", json={
            "actor_id": bank["analyst"], "reason": "Debt ratio too high"
        })
        assert r.status_code == 200
        assert client.get("/loans/pending").json()["loans"] == []

    def test_sub_cent_amounts_refused(self, client, bank):
        loan_id = self.apply(client, bank)
        r = client.post(f"/loans/{loan_id}/approve", json={
            "actor_id": bank["analyst"], "approved_amount": "999999.999", "interest_rate": "14.5"
        })
        assert r.status_code == 422
        assert client.get(f"/loans/{loan_id}").json()["status"] == "underwriting"

    def test_only_analysts_decide(self, client, bank):
        loan_id = self.apply(client, bank)
        r = client.post(f"/loans/{loan_id}/approve", json={
            "actor_id": bank["teller"], "approved_amount": "1000", "interest_rate": "10"
        })
        assert r.status_code == 403

    def test_listings(self, client, bank):
        self.apply(client, bank)
        assert len(client.get("/loans").json()["loans"]) == 1
        assert len(client.get("/loans/applicant/NIT900123456").json()["loans"]) == 1
        assert client.get("/loans/missing").status_code == 404


class TestAuditEndpoints:

    def test_listing_and_integrity(self, client, bank):
        r = client.get("/audit", params={"operation_type": "account_opened"})
        assert r.status_code == 200
        assert len(r.json()["entries"]) == 2

        integrity = client.get("/audit/integrity").json()
        assert integrity["valid"]
        assert integrity["total_entries"] == r.json()["total"]

    def test_get_entry(self, client, bank):
        entry = client.get("/audit", params={"limit": 1}).json()["entries"][0]
        assert client.get(f"/audit/{entry['id']}").json()["sequence"] == entry["sequence"]
        assert client.get("/audit/missing").status_code == 404


class TestProductEndpoints:

    def test_catalog(self, client):
        products = client.get("/products").json()["products"]
        assert "CTA-AHO" in [p["product_code"] for p in products]

        loans = client.get("/products", params={"category": "loans"}).json()["products"]
        assert all(p["requires_approval"] for p in loans)

    def test_get_product(self, client):
        assert client.get("/products/PRE-PER").json()["category"] == "loans"
        assert client.get("/products/XYZ").status_code == 404
