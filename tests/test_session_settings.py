"""
Test cases for the admin-managed idle timeout settings.
"""
from fastapi.testclient import TestClient

from recovery_portal.models import AuditLog, AuditAction


def test_public_settings_for_any_user(as_client: TestClient):
    response = as_client.get("/api/session-settings/public")
    assert response.status_code == 200
    assert response.json() == {
        "enable_session_management": True,
        "session_timeout_seconds": 900,
        "session_warning_seconds": 60,
        "warning_at_seconds": 840,
    }


def test_public_settings_require_session(client: TestClient):
    assert client.get("/api/session-settings/public").status_code == 401


def test_settings_admin_only(as_client: TestClient):
    assert as_client.get("/api/session-settings").status_code == 403
    assert as_client.put("/api/session-settings", json={
        "session_timeout_seconds": 600, "session_warning_seconds": 30
    }).status_code == 403


def test_update_settings(as_admin: TestClient, admin_user, db_session):
    response = as_admin.put("/api/session-settings", json={
        "session_timeout_seconds": 600, "session_warning_seconds": 30
    })
    assert response.status_code == 200
    data = response.json()
    assert data["session_timeout_seconds"] == 600
    assert data["updated_by"] == admin_user.id

    info = as_admin.get("/api/auth/session-info").json()
    assert info["session_timeout_seconds"] == 600
    assert info["warning_threshold"] == 30

    entry = db_session.query(AuditLog).filter(
        AuditLog.action == AuditAction.SESSION_SETTINGS_UPDATED.value
    ).one()
    assert "session_timeout_seconds: 900 -> 600" in entry.description


def test_update_settings_validation(as_admin: TestClient):
    too_short = {"session_timeout_seconds": 30, "session_warning_seconds": 10}
    assert as_admin.put("/api/session-settings", json=too_short).status_code == 422
    warning_too_long = {"session_timeout_seconds": 300, "session_warning_seconds": 300}
    assert as_admin.put("/api/session-settings", json=warning_too_long).status_code == 422
