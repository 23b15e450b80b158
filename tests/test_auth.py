"""
Test cases for authentication endpoints.
"""
from datetime import datetime, timedelta

from fastapi.testclient import TestClient

from recovery_portal.config.settings import settings
from recovery_portal.models import AuditLog, AuditAction, UserStatus
from tests.helpers import login, PASSWORD


def test_health_endpoint(client: TestClient):
    """Test the health check endpoint."""
    response = client.get("/api/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"


def test_login_sets_session_cookie(client: TestClient, client_user, db_session):
    """Test a successful login starts a cookie session and is audited."""
    response = login(client, client_user.email)
    data = response.json()
    assert data["user"]["email"] == client_user.email
    assert data["user"]["organisation_name"] == "Acme Lending Ltd"
    assert settings.session_cookie_name in response.cookies
    assert db_session.query(AuditLog).filter(AuditLog.action == AuditAction.LOGIN.value).count() == 1


def test_login_invalid_credentials(client: TestClient, client_user):
    """Test login with invalid credentials."""
    response = client.post(
        "/api/auth/login",
        json={"email": client_user.email, "password": "WrongPassword1"}
    )
    assert response.status_code == 401
    assert "Invalid email or password" in response.json()["detail"]


def test_login_unknown_user(client: TestClient):
    response = client.post("/api/auth/login", json={"email": "nobody@example.com", "password": PASSWORD})
    assert response.status_code == 401


def test_login_missing_fields(client: TestClient):
    """Test login with missing required fields."""
    response = client.post("/api/auth/login", json={"email": "client@example.com"})
    assert response.status_code == 422


def test_suspended_user_cannot_login(client: TestClient, make_user, organisation):
    make_user("suspended@example.com", organisation, status=UserStatus.SUSPENDED)
    response = client.post("/api/auth/login", json={"email": "suspended@example.com", "password": PASSWORD})
    assert response.status_code == 401
    assert "suspended" in response.json()["detail"]


def test_protected_endpoint_without_session(client: TestClient):
    """Test accessing protected endpoint without a session."""
    response = client.get("/api/auth/user")
    assert response.status_code == 401


def test_bearer_token_accepted(client: TestClient, client_user):
    token = login(client, client_user.email).json()["access_token"]
    client.cookies.clear()
    response = client.get("/api/auth/user", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 200
    assert response.json()["id"] == client_user.id


def test_idle_session_expires(as_client: TestClient, client_user, db_session):
    """Test that a session idle for longer than the timeout answers 401."""
    client_user.last_activity = datetime.utcnow() - timedelta(hours=2)
    db_session.commit()
    response = as_client.get("/api/auth/user")
    assert response.status_code == 401
    assert "inactivity" in response.json()["detail"]


def test_session_info(as_client: TestClient):
    response = as_client.get("/api/auth/session-info")
    assert response.status_code == 200
    data = response.json()
    assert data["session_timeout_seconds"] == 900
    assert data["warning_threshold"] == 60
    assert 0 < data["remaining_seconds"] <= 900


def test_logout_clears_session(as_client: TestClient):
    response = as_client.post("/api/auth/logout")
    assert response.status_code == 200
    assert as_client.get("/api/auth/user").status_code == 401


def test_logout_without_session(client: TestClient):
    """Test logout is accepted even without a session so idle logout always succeeds."""
    response = client.post("/api/auth/logout")
    assert response.status_code == 200


def test_change_password(as_client: TestClient, client_user):
    response = as_client.post("/api/auth/change-password", json={
        "current_password": PASSWORD, "new_password": "NewPassword456"
    })
    assert response.status_code == 200
    as_client.cookies.clear()
    login(as_client, client_user.email, "NewPassword456")


def test_change_password_rejects_weak_password(as_client: TestClient):
    response = as_client.post("/api/auth/change-password", json={
        "current_password": PASSWORD, "new_password": "short"
    })
    assert response.status_code == 422


def test_change_password_wrong_current(as_client: TestClient):
    response = as_client.post("/api/auth/change-password", json={
        "current_password": "NotMyPassword1", "new_password": "NewPassword456"
    })
    assert response.status_code == 400
