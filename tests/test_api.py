import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database import Base, get_db
from main import app
from security import issue_user_token


def _client(with_tables: bool = True) -> TestClient:
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    if with_tables:
        Base.metadata.create_all(engine)
    TestingSession = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

    def override_get_db():
        db = TestingSession()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    return TestClient(app)


@pytest.fixture(autouse=True)
def _reset_overrides():
    yield
    app.dependency_overrides.clear()


def _auth(user_id: str = "user-1") -> dict[str, str]:
    return {"Authorization": f"Bearer {issue_user_token(user_id)}"}


def test_health_is_public() -> None:
    response = _client().get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_requires_bearer_token() -> None:
    client = _client()

    assert client.get("/api/analytics/overview").status_code == 401
    bad = client.get(
        "/api/analytics/overview", headers={"Authorization": "Bearer nope"}
    )
    assert bad.status_code == 401


def test_transactions_flow_through_analytics() -> None:
    client = _client()
    headers = _auth()

    for payload in [
        {"type": "income", "amount": 1000, "category": "Salary", "date": "2024-06-01T09:00:00"},
        {"type": "expense", "amount": 300, "category": "food", "date": "2024-06-02T12:00:00"},
    ]:
        assert client.post("/api/transactions", json=payload, headers=headers).status_code == 201

    trend = client.get("/api/analytics/monthly-trend", headers=headers)
    assert trend.status_code == 200
    assert trend.json() == [{"month": "Jun 2024", "income": 1000.0, "expenses": 300.0}]

    spending = client.get(
        "/api/analytics/category-spending",
        params={"start": "2024-06-01T00:00:00", "end": "2024-06-30T23:59:59"},
        headers=headers,
    )
    assert [item["category"] for item in spending.json()] == ["Food"]

    overview = client.get(
        "/api/analytics/overview",
        params={"start": "2024-06-01T00:00:00", "end": "2024-06-30T23:59:59"},
        headers=headers,
    ).json()
    assert overview["health_grade"] == "A+"
    assert overview["monthly_growth"] is None

    listing = client.get(
        "/api/transactions", params={"date_range": "all", "type": "expense"}, headers=headers
    ).json()
    assert listing["total_count"] == 2
    assert listing["filtered_count"] == 1
    assert listing["items"][0]["category"] == "Food"

    other_user = client.get("/api/analytics/monthly-trend", headers=_auth("user-2"))
    assert other_user.json() == []


def test_invalid_window_is_rejected() -> None:
    client = _client()
    headers = _auth()

    inverted = client.get(
        "/api/dashboard",
        params={"start": "2024-06-30T00:00:00", "end": "2024-06-01T00:00:00"},
        headers=headers,
    )
    garbage = client.get(
        "/api/analytics/overview", params={"start": "yesterday"}, headers=headers
    )

    assert inverted.status_code == 400
    assert garbage.status_code == 400


def test_dashboard_reports_section_errors_when_store_is_down() -> None:
    client = _client(with_tables=False)
    headers = _auth()

    response = client.get("/api/dashboard", headers=headers)

    assert response.status_code == 200
    body = response.json()
    assert body["overview"]["error"] == "Transaction store is unavailable"
    assert body["overview"]["data"]["health_grade"] == "F"
    assert body["category_spending"]["data"] == []
    assert body["stats"]["data"]["total_balance"] == 0
    assert client.get("/api/analytics/overview", headers=headers).status_code == 503


def test_quick_action_and_notifications() -> None:
    client = _client()
    headers = _auth()

    card = client.post(
        "/api/cards", json={"last4": "4242", "expiry_date": "09/29"}, headers=headers
    ).json()
    client.post("/api/profile/transaction-pin", json={"pin": "1234"}, headers=headers)

    top_up = client.post(
        "/api/actions/top-up",
        json={"amount": 5000, "pin": "1234", "card_id": card["id"], "method": "bank"},
        headers=headers,
    )
    assert top_up.status_code == 201
    assert top_up.json()["card_balance"] == 5000
    assert top_up.json()["transaction"]["reference"].startswith("TOP-")

    refused = client.post(
        "/api/actions/send-money",
        json={
            "amount": 9000,
            "pin": "1234",
            "card_id": card["id"],
            "account_number": "0123456789",
            "bank_name": "GTBank",
        },
        headers=headers,
    )
    assert refused.status_code == 400
    assert refused.json()["detail"] == "Insufficient card balance"

    missing = client.post(
        "/api/actions/top-up",
        json={"amount": 500, "pin": "1234", "card_id": 999},
        headers=headers,
    )
    assert missing.status_code == 404

    assert client.get("/api/notifications/unread-count", headers=headers).json() == {
        "count": 1
    }
    stats = client.get("/api/analytics/dashboard-stats", headers=headers).json()
    assert stats["total_balance"] == 5000
    assert stats["balance_reconciled"] is True
