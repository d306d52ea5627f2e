"""End-to-end payment link flow through the HTTP API."""

from datetime import datetime, timedelta, timezone
from pathlib import Path

from fastapi.testclient import TestClient
from sqlalchemy import create_engine, func, select, update
from sqlalchemy.orm import sessionmaker

from paylink.core.security import get_password_hash
from paylink.db import session as db_session
from paylink.db.base import Base
from paylink.main import app
from paylink.models import AuditLog, Order, User


def _prepare_db(tmp_path: Path, monkeypatch):
    engine = create_engine(f"sqlite:///{tmp_path / 'payment_flow.db'}", connect_args={"check_same_thread": False})
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)
    monkeypatch.setattr(db_session, "engine", engine)
    monkeypatch.setattr(db_session, "SessionLocal", testing_session_local)
    return testing_session_local


def _seed_users(session_local) -> None:
    with session_local() as db:
        db.add_all(
            [
                User(username="admin", password_hash=get_password_hash("admin-pass"), role="admin", is_active=True),
                User(username="merchant", password_hash=get_password_hash("merchant-pass"), role="merchant", is_active=True),
                User(username="viewer", password_hash=get_password_hash("viewer-pass"), role="viewer", is_active=True),
            ]
        )
        db.commit()


def _csrf(client: TestClient) -> str:
    existing = client.cookies.get("csrf-token")
    if existing:
        return existing
    response = client.get("/api/v1/auth/csrf")
    assert response.status_code == 200
    return response.json()["csrfToken"]


def _login(client: TestClient, username: str, password: str) -> dict[str, str]:
    token = _csrf(client)
    response = client.post(
        "/api/v1/auth/login",
        json={"username": username, "password": password},
        headers={"x-csrf-token": token},
    )
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['accessToken']}", "x-csrf-token": token}


def _parse(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _create_order(client: TestClient, headers: dict[str, str]) -> dict:
    response = client.post(
        "/api/v1/orders",
        json={"amount": 100, "merchantName": "Acme", "vpa": "acme@upi"},
        headers=headers,
    )
    assert response.status_code == 201, response.text
    return response.json()


def test_create_submit_utr_and_complete(tmp_path: Path, monkeypatch) -> None:
    session_local = _prepare_db(tmp_path, monkeypatch)
    _seed_users(session_local)

    with TestClient(app) as client:
        merchant = _login(client, "merchant", "merchant-pass")
        admin = _login(client, "admin", "admin-pass")

        created = _create_order(client, merchant)
        assert created["status"] == "pending"
        assert created["amount"] == 100
        assert _parse(created["expiresAt"]) - _parse(created["createdAt"]) == timedelta(minutes=9)
        assert abs(_parse(created["expiresAt"]) - (datetime.now(timezone.utc) + timedelta(minutes=9))) < timedelta(seconds=30)
        assert set(created["upiLinks"]) == {"standard", "gpay", "phonepe", "paytm", "bhim"}
        order_id = created["orderId"]

        csrf = _csrf(client)
        submit = client.post(
            f"/api/v1/orders/{order_id}/utr",
            json={"utr": "123456789012"},
            headers={"x-csrf-token": csrf},
        )
        assert submit.status_code == 200, submit.text
        assert submit.json()["status"] == "pending-verification"
        assert submit.headers["X-RateLimit-Limit"] == "5"

        decided = client.put(
            f"/api/v1/orders/{order_id}/status",
            json={"status": "completed", "reason": "Verified in bank statement"},
            headers=admin,
        )
        assert decided.status_code == 200, decided.text
        assert decided.json()["status"] == "completed"
        assert decided.json()["verifiedBy"] is not None

        again = client.post(
            f"/api/v1/orders/{order_id}/utr",
            json={"utr": "123456789099"},
            headers={"x-csrf-token": csrf},
        )
        assert again.status_code == 409
        assert again.json()["code"] == "CONFLICT_ERROR"

    with session_local() as db:
        actions = db.scalars(select(AuditLog.action).where(AuditLog.target_id == order_id)).all()
        assert sorted(actions) == sorted(
            ["order_created", "utr_submitted", "order_status_updated", "order_status_updated"]
        )


def test_public_view_reports_expiry(tmp_path: Path, monkeypatch) -> None:
    session_local = _prepare_db(tmp_path, monkeypatch)
    _seed_users(session_local)

    with TestClient(app) as client:
        merchant = _login(client, "merchant", "merchant-pass")
        order_id = _create_order(client, merchant)["orderId"]

        live = client.get(f"/api/v1/orders/{order_id}")
        assert live.status_code == 200
        assert live.json()["canSubmitUTR"] is True
        assert 0 < live.json()["timeRemaining"] <= 9 * 60
        assert set(live.json()["appStoreUrls"]) == {"gpay", "phonepe", "paytm", "bhim"}
        assert live.json()["appStoreUrls"]["gpay"]["android"].startswith("https://play.google.com")

        with session_local() as db:
            db.execute(
                update(Order)
                .where(Order.order_id == order_id)
                .values(expires_at=datetime.now(timezone.utc) - timedelta(seconds=1))
            )
            db.commit()

        expired = client.get(f"/api/v1/orders/{order_id}")
        assert expired.status_code == 200
        body = expired.json()
        assert body["status"] == "expired"
        assert body["canSubmitUTR"] is False
        assert body["timeRemaining"] == 0

        submit = client.post(
            f"/api/v1/orders/{order_id}/utr",
            json={"utr": "123456789012"},
            headers={"x-csrf-token": merchant["x-csrf-token"]},
        )
        assert submit.status_code == 409

    with session_local() as db:
        expiry_audits = db.scalar(
            select(func.count(AuditLog.id)).where(
                AuditLog.target_id == order_id,
                AuditLog.action == "order_status_updated",
                AuditLog.performed_by == "system",
            )
        )
        assert expiry_audits == 1


def test_unknown_order_returns_generic_404(tmp_path: Path, monkeypatch) -> None:
    _prepare_db(tmp_path, monkeypatch)

    with TestClient(app) as client:
        response = client.get("/api/v1/orders/UPI0000000000000XXXXX")
        malformed = client.get("/api/v1/orders/upi-1%27%20OR%201=1")

    assert response.status_code == 404
    assert response.json() == {"error": "Order not found", "code": "NOT_FOUND_ERROR"}
    assert malformed.status_code == 404
    assert malformed.json() == response.json()


def test_mutation_without_csrf_token_is_rejected(tmp_path: Path, monkeypatch) -> None:
    session_local = _prepare_db(tmp_path, monkeypatch)
    _seed_users(session_local)

    with TestClient(app) as client:
        merchant = _login(client, "merchant", "merchant-pass")
        response = client.post(
            "/api/v1/orders",
            json={"amount": 100, "merchantName": "Acme", "vpa": "acme@upi"},
            headers={"Authorization": merchant["Authorization"]},
        )

    assert response.status_code == 403
    assert response.json()["code"] == "CSRF_TOKEN_INVALID"
    with session_local() as db:
        assert db.scalar(select(func.count(Order.id))) == 0


def test_create_requires_authentication_and_capability(tmp_path: Path, monkeypatch) -> None:
    session_local = _prepare_db(tmp_path, monkeypatch)
    _seed_users(session_local)

    with TestClient(app) as client:
        csrf = _csrf(client)
        anonymous = client.post(
            "/api/v1/orders",
            json={"amount": 100, "merchantName": "Acme", "vpa": "acme@upi"},
            headers={"x-csrf-token": csrf},
        )
        assert anonymous.status_code == 401
        assert anonymous.json()["code"] == "AUTHENTICATION_ERROR"

        viewer = _login(client, "viewer", "viewer-pass")
        forbidden = client.post(
            "/api/v1/orders",
            json={"amount": 100, "merchantName": "Acme", "vpa": "acme@upi"},
            headers=viewer,
        )
        assert forbidden.status_code == 403
        assert forbidden.json()["code"] == "AUTHORIZATION_ERROR"


def test_invalid_order_payload_is_400(tmp_path: Path, monkeypatch) -> None:
    session_local = _prepare_db(tmp_path, monkeypatch)
    _seed_users(session_local)

    with TestClient(app) as client:
        merchant = _login(client, "merchant", "merchant-pass")
        too_large = client.post(
            "/api/v1/orders",
            json={"amount": 100001, "merchantName": "Acme", "vpa": "acme@upi"},
            headers=merchant,
        )
        missing_field = client.post("/api/v1/orders", json={"amount": 10}, headers=merchant)

    assert too_large.status_code == 400
    assert too_large.json()["code"] == "VALIDATION_ERROR"
    assert missing_field.status_code == 400
    assert missing_field.json()["code"] == "VALIDATION_ERROR"


def test_order_creation_is_rate_limited(tmp_path: Path, monkeypatch) -> None:
    session_local = _prepare_db(tmp_path, monkeypatch)
    _seed_users(session_local)

    with TestClient(app) as client:
        merchant = _login(client, "merchant", "merchant-pass")
        for _ in range(10):
            _create_order(client, merchant)
        limited = client.post(
            "/api/v1/orders",
            json={"amount": 100, "merchantName": "Acme", "vpa": "acme@upi"},
            headers=merchant,
        )

    assert limited.status_code == 429
    assert limited.json()["code"] == "RATE_LIMIT_EXCEEDED"
    assert int(limited.headers["Retry-After"]) > 0
    assert limited.headers["X-RateLimit-Remaining"] == "0"
    with session_local() as db:
        assert db.scalar(select(func.count(Order.id))) == 10


def test_merchant_lists_own_orders_and_stats(tmp_path: Path, monkeypatch) -> None:
    session_local = _prepare_db(tmp_path, monkeypatch)
    _seed_users(session_local)

    with TestClient(app) as client:
        merchant = _login(client, "merchant", "merchant-pass")
        admin = _login(client, "admin", "admin-pass")
        _create_order(client, merchant)
        _create_order(client, admin)

        own = client.get("/api/v1/orders", headers=merchant)
        everything = client.get("/api/v1/orders?limit=1", headers=admin)
        stats = client.get("/api/v1/orders/stats", headers=merchant)
        too_big = client.get("/api/v1/orders?limit=101", headers=admin)

    assert own.status_code == 200
    assert own.json()["pagination"]["total"] == 1
    assert own.json()["orders"][0]["canSubmitUTR"] is True
    assert everything.json()["pagination"] == {"page": 1, "limit": 1, "total": 2, "pages": 2}
    assert stats.json()["total"] == 1
    assert stats.json()["byStatus"]["pending"] == 1
    assert too_big.status_code == 400


def test_admin_expire_sweep(tmp_path: Path, monkeypatch) -> None:
    session_local = _prepare_db(tmp_path, monkeypatch)
    _seed_users(session_local)

    with TestClient(app) as client:
        merchant = _login(client, "merchant", "merchant-pass")
        admin = _login(client, "admin", "admin-pass")
        order_id = _create_order(client, merchant)["orderId"]
        with session_local() as db:
            db.execute(
                update(Order)
                .where(Order.order_id == order_id)
                .values(expires_at=datetime.now(timezone.utc) - timedelta(minutes=1))
            )
            db.commit()

        denied = client.post("/api/v1/orders/expire", headers=merchant)
        swept = client.post("/api/v1/orders/expire", headers=admin)

    assert denied.status_code == 403
    assert swept.status_code == 200
    assert swept.json() == {"expired": [order_id], "count": 1}
