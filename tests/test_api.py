import uuid

import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient

from artplim.core.security import require_permission
from artplim.main import app
from artplim.models.user import User, UserRole
from artplim.routers import auth as auth_router


@pytest.fixture(scope="module")
def client():
    with TestClient(app) as c:
        yield c


def _auth_header(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def _register(client, company_name: str = "Grafica Central") -> dict:
    email = f"owner-{uuid.uuid4().hex[:8]}@graficacentral.com.br"
    resp = client.post(
        "/auth/register",
        json={"company_name": company_name, "name": "Owner", "email": email, "password": "secret123"},
    )
    assert resp.status_code == 201
    token_resp = client.post("/auth/token", data={"username": email, "password": "secret123"})
    assert token_resp.status_code == 200
    return _auth_header(token_resp.json()["access_token"])


def _create(client, headers, **overrides) -> dict:
    body = {
        "type": "EXPENSE",
        "amount": 150,
        "description": "Vinyl roll",
        "due_date": "2024-01-10",
    }
    body.update(overrides)
    resp = client.post("/financial/transactions", json=body, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_register_login_and_me(client):
    email = f"login-{uuid.uuid4().hex[:8]}@graficacentral.com.br"
    resp = client.post(
        "/auth/register",
        json={"company_name": "Print Shop", "name": "Ana", "email": email, "password": "secret123"},
    )
    assert resp.status_code == 201
    assert resp.json()["role"] == "ADMIN"

    dup = client.post(
        "/auth/register",
        json={"company_name": "Print Shop", "name": "Ana", "email": email, "password": "secret123"},
    )
    assert dup.status_code == 409

    bad = client.post("/auth/login", json={"email": email, "password": "wrong-pass"})
    assert bad.status_code == 401

    ok = client.post("/auth/login", json={"email": email, "password": "secret123"})
    assert ok.status_code == 200
    assert "access_token" in ok.cookies

    me = client.get("/auth/me")
    assert me.status_code == 200
    assert me.json()["email"] == email

    client.post("/auth/logout")
    client.cookies.clear()


def test_requests_without_token_are_rejected(client):
    client.cookies.clear()
    assert client.get("/financial/transactions").status_code == 401
    assert client.get("/financial/transactions", headers=_auth_header("not-a-jwt")).status_code == 401


def test_create_and_get_entry(client):
    headers = _register(client)
    created = _create(client, headers, status="PAID", notes="roll for banners")

    assert created["status"] == "PENDING"
    assert created["amount"] == "150.00"
    assert created["category"] == "General"
    assert created["category_color"] == "#6B7280"
    assert created["installments"] == 1

    resp = client.get(f"/financial/transactions/{created['id']}", headers=headers)
    assert resp.status_code == 200
    assert resp.json()["notes"] == "roll for banners"


@pytest.mark.parametrize("amount", [0, "1e25", "12345678901234567.00"])
def test_create_rejects_invalid_payload(client, amount):
    headers = _register(client)
    resp = client.post(
        "/financial/transactions",
        json={"type": "EXPENSE", "amount": amount, "description": "Free", "due_date": "2024-01-10"},
        headers=headers,
    )
    assert resp.status_code == 422


def test_paid_date_cannot_precede_creation(client):
    headers = _register(client)
    backdated = client.post(
        "/financial/transactions",
        json={"type": "EXPENSE", "amount": 10, "description": "Old bill", "due_date": "2024-01-10", "paid_date": "1999-01-01"},
        headers=headers,
    )
    assert backdated.status_code == 400

    entry = _create(client, headers)
    url = f"/financial/transactions/{entry['id']}"
    assert client.post(f"{url}/pay", json={"paid_date": "1999-01-01"}, headers=headers).status_code == 400
    assert client.patch(url, json={"paid_date": "1999-01-01"}, headers=headers).status_code == 400
    assert client.get(url, headers=headers).json()["status"] == "PENDING"


def test_concurrent_registration_of_same_email_is_a_conflict(client, monkeypatch):
    email = f"race-{uuid.uuid4().hex[:8]}@graficacentral.com.br"
    body = {"company_name": "Print Shop", "name": "Ana", "email": email, "password": "secret123"}
    assert client.post("/auth/register", json=body).status_code == 201

    # Simulate the other request losing the race: the lookup sees no user yet.
    async def not_found(session, email):
        return None

    monkeypatch.setattr(auth_router, "_find_user_by_email", not_found)
    resp = client.post("/auth/register", json=body)
    assert resp.status_code == 409
    assert resp.json()["detail"] == "Email already registered"


def test_list_paginates_and_filters(client):
    headers = _register(client)
    for amount in (10, 20, 30):
        _create(client, headers, amount=amount)
    _create(client, headers, type="INCOME", amount=500, description="Banner order")

    resp = client.get(
        "/financial/transactions",
        params={"type": "EXPENSE", "limit": 2, "sort_by": "amount", "sort_order": "asc"},
        headers=headers,
    )
    assert resp.status_code == 200
    body = resp.json()
    assert [e["amount"] for e in body["data"]] == ["10.00", "20.00"]
    assert body["pagination"] == {"total": 3, "total_pages": 2, "page": 1, "limit": 2}

    search = client.get("/financial/transactions", params={"search": "banner"}, headers=headers)
    assert [e["description"] for e in search.json()["data"]] == ["Banner order"]

    day = client.get(
        "/financial/transactions",
        params={"start_date": "2024-01-10", "end_date": "2024-01-10"},
        headers=headers,
    )
    assert day.json()["pagination"]["total"] == 4


def test_list_rejects_out_of_range_limit(client):
    headers = _register(client)
    assert client.get("/financial/transactions", params={"limit": 101}, headers=headers).status_code == 422
    assert client.get("/financial/transactions", params={"page": 0}, headers=headers).status_code == 422


def test_other_company_cannot_see_or_touch_entry(client):
    owner = _register(client, "Company A")
    intruder = _register(client, "Company B")
    entry = _create(client, owner)
    url = f"/financial/transactions/{entry['id']}"

    assert client.get(url, headers=intruder).status_code == 404
    assert client.patch(url, json={"notes": "mine now"}, headers=intruder).status_code == 404
    assert client.delete(url, headers=intruder).status_code == 404
    assert client.get("/financial/transactions", headers=intruder).json()["pagination"]["total"] == 0

    assert client.get(url, headers=owner).json()["notes"] is None


def test_patch_pay_and_delete(client):
    headers = _register(client)
    entry = _create(client, headers)
    url = f"/financial/transactions/{entry['id']}"

    assert client.patch(url, json={}, headers=headers).status_code == 400

    patched = client.patch(url, json={"amount": "99.90", "notes": ""}, headers=headers)
    assert patched.status_code == 200
    assert patched.json()["amount"] == "99.90"
    assert patched.json()["notes"] == ""
    assert patched.json()["description"] == "Vinyl roll"

    paid = client.post(f"{url}/pay", json={"paid_date": "2099-01-11T12:00:00Z"}, headers=headers)
    assert paid.status_code == 200
    assert paid.json()["status"] == "PAID"
    assert paid.json()["paid_date"].startswith("2099-01-11T12:00:00")

    again = client.post(f"{url}/pay", json={}, headers=headers)
    assert again.status_code == 400

    assert client.delete(url, headers=headers).status_code == 204
    assert client.get(url, headers=headers).status_code == 404
    assert client.delete(url, headers=headers).status_code == 404


def test_stats_and_cash_flow(client):
    headers = _register(client)
    _create(client, headers, type="INCOME", amount=100, due_date="2024-01-10")
    _create(client, headers, type="EXPENSE", amount=40, due_date="2024-01-10", category="Ink")

    stats = client.get("/financial/stats", headers=headers)
    assert stats.status_code == 200
    assert stats.json()["pending_income"] == "100.00"
    assert stats.json()["pending_expense"] == "40.00"
    assert stats.json()["top_expense_categories"][0]["category_name"] == "Ink"

    flow = client.get(
        "/financial/cash-flow",
        params={"start_date": "2024-01-01", "end_date": "2024-01-31"},
        headers=headers,
    )
    assert flow.status_code == 200
    assert flow.json() == [
        {
            "day": "2024-01-10",
            "income": "100.00",
            "expense": "40.00",
            "balance": "60.00",
            "cumulative_balance": "60.00",
        }
    ]

    assert client.get("/financial/stats", params={"start_date": "soon"}, headers=headers).status_code == 400


def test_viewer_cannot_create():
    viewer = User(
        id=uuid.uuid4(),
        company_id=uuid.uuid4(),
        email="viewer@graficacentral.com.br",
        name="Viewer",
        hashed_password="x",
        role=UserRole.VIEWER,
    )
    with pytest.raises(HTTPException) as excinfo:
        require_permission("financial:create")(viewer)
    assert excinfo.value.status_code == 403

    assert require_permission("financial:read")(viewer) is viewer
