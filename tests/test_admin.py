"""
Test cases for admin user, organisation and case management.
"""
from fastapi.testclient import TestClient

from recovery_portal.models import AuditLog, AuditAction, Case, CaseActivity, Payment, User
from recovery_portal.utils.auth import verify_password
from tests.helpers import login


def test_admin_routes_refuse_clients(as_client: TestClient):
    assert as_client.get("/api/admin/users").status_code == 403
    assert as_client.get("/api/admin/stats").status_code == 403
    assert as_client.post("/api/admin/organisations", json={"name": "Mine"}).status_code == 403


def test_create_user_with_temporary_password(as_admin: TestClient, organisation, db_session):
    response = as_admin.post("/api/admin/users", json={
        "email": "New.User@Example.com", "first_name": "New", "last_name": "User",
        "organisation_id": organisation.id,
    })
    assert response.status_code == 201, response.text
    data = response.json()
    assert data["user"]["email"] == "new.user@example.com"
    assert data["user"]["must_change_password"] is True
    assert data["user"]["organisation_name"] == "Acme Lending Ltd"

    user = db_session.query(User).filter(User.email == "new.user@example.com").one()
    assert verify_password(data["temporary_password"], user.password_hash)
    assert db_session.query(AuditLog).filter(AuditLog.action == AuditAction.ACCOUNT_CREATED.value).count() == 1


def test_create_user_rules(as_admin: TestClient, client_user, organisation):
    duplicate = as_admin.post("/api/admin/users", json={
        "email": client_user.email, "organisation_id": organisation.id
    })
    assert duplicate.status_code == 400
    homeless = as_admin.post("/api/admin/users", json={"email": "nobody@example.com"})
    assert homeless.status_code == 400
    unknown_org = as_admin.post("/api/admin/users", json={"email": "x@example.com", "organisation_id": "missing"})
    assert unknown_org.status_code == 400


def test_assign_organisation(as_admin: TestClient, client_user, make_organisation):
    other = make_organisation("Other Org")
    response = as_admin.put(f"/api/admin/users/{client_user.id}/organisation", json={"organisation_id": other.id})
    assert response.status_code == 200
    assert response.json()["organisation_name"] == "Other Org"

    removed = as_admin.put(f"/api/admin/users/{client_user.id}/organisation", json={"organisation_id": None})
    assert removed.status_code == 400


def test_admin_role_changes(as_admin: TestClient, admin_user, client_user):
    granted = as_admin.put(f"/api/admin/users/{client_user.id}/admin", json={"is_admin": True})
    assert granted.json()["is_admin"] is True
    revoked = as_admin.put(f"/api/admin/users/{client_user.id}/admin", json={"is_admin": False})
    assert revoked.json()["is_admin"] is False

    own = as_admin.put(f"/api/admin/users/{admin_user.id}/admin", json={"is_admin": False})
    assert own.status_code == 400


def test_suspend_and_reactivate_user(client: TestClient, admin_user, client_user):
    login(client, admin_user.email)
    response = client.put(f"/api/admin/users/{client_user.id}/status", params={"user_status": "suspended"})
    assert response.json()["status"] == "suspended"
    assert client.put(f"/api/admin/users/{client_user.id}/status", params={"user_status": "gone"}).status_code == 400
    assert client.put(f"/api/admin/users/{admin_user.id}/status", params={"user_status": "suspended"}).status_code == 400

    refused = client.post("/api/auth/login", json={"email": client_user.email, "password": "Password123"})
    assert refused.status_code == 401

    client.put(f"/api/admin/users/{client_user.id}/status", params={"user_status": "active"})
    login(client, client_user.email)


def test_list_users(as_admin: TestClient, client_user, organisation):
    emails = [user["email"] for user in as_admin.get("/api/admin/users").json()]
    assert emails == ["admin@example.com", "client@example.com"]
    scoped = as_admin.get("/api/admin/users", params={"organisation_id": organisation.id}).json()
    assert [user["email"] for user in scoped] == ["client@example.com"]
    searched = as_admin.get("/api/admin/users", params={"search": "casey"}).json()
    assert [user["email"] for user in searched] == ["client@example.com"]


def test_organisations(as_admin: TestClient, organisation, client_user, make_case):
    make_case(organisation)
    created = as_admin.post("/api/admin/organisations", json={"name": "Beta Finance", "contact_email": "ops@beta.example"})
    assert created.status_code == 201
    assert created.json()["user_count"] == 0

    listed = {item["name"]: item for item in as_admin.get("/api/admin/organisations").json()}
    assert listed["Acme Lending Ltd"]["user_count"] == 1
    assert listed["Acme Lending Ltd"]["case_count"] == 1
    assert "Beta Finance" in listed

    duplicate = as_admin.post("/api/admin/organisations", json={"name": "acme lending ltd"})
    assert duplicate.status_code == 400


def test_archive_and_unarchive_case(client: TestClient, admin_user, client_user, make_case, organisation, db_session):
    case = make_case(organisation)
    login(client, admin_user.email)
    archived = client.post(f"/api/admin/cases/{case.id}/archive").json()
    assert archived == {"message": f"Case {case.account_number} archived", "case_id": case.id, "is_archived": True}

    login(client, client_user.email)
    assert client.get(f"/api/cases/{case.id}").status_code == 404

    login(client, admin_user.email)
    assert client.get("/api/admin/cases", params={"include_archived": "true"}).json()["total"] == 1
    client.post(f"/api/admin/cases/{case.id}/unarchive")

    login(client, client_user.email)
    assert client.get(f"/api/cases/{case.id}").status_code == 200
    types = {activity.activity_type for activity in db_session.query(CaseActivity).all()}
    assert {"case_archived", "case_unarchived"} <= types


def test_delete_case_removes_children(as_admin: TestClient, make_case, organisation, db_session):
    case = make_case(organisation, payments=[(100, None)])
    response = as_admin.delete(f"/api/admin/cases/{case.id}")
    assert response.status_code == 200
    db_session.expire_all()
    assert db_session.query(Case).count() == 0
    assert db_session.query(Payment).count() == 0
    assert as_admin.delete(f"/api/admin/cases/{case.id}").status_code == 404


def test_delete_case_activity(as_admin: TestClient, make_case, organisation, db_session):
    case = make_case(organisation)
    activity = CaseActivity.record(db_session, case_id=case.id, activity_type="note", description="Called debtor")
    db_session.commit()

    assert as_admin.delete(f"/api/admin/cases/other/activities/{activity.id}").status_code == 404
    response = as_admin.delete(f"/api/admin/cases/{case.id}/activities/{activity.id}")
    assert response.status_code == 200
    db_session.expire_all()
    assert db_session.get(CaseActivity, activity.id) is None


def test_admin_stats(as_admin: TestClient, client_user, make_case, organisation):
    make_case(organisation, payments=[(200, None)])
    make_case(organisation, is_archived=True)
    stats = as_admin.get("/api/admin/stats").json()
    assert stats["total_users"] == 2
    assert stats["admin_users"] == 1
    assert stats["total_organisations"] == 1
    assert stats["total_cases"] == 2
    assert stats["archived_cases"] == 1
    assert stats["active_cases"] == 1
    assert stats["total_outstanding"] == 800.0
    assert stats["total_payments"] == 1


def test_audit_logs(client: TestClient, admin_user, client_user):
    login(client, client_user.email)
    login(client, admin_user.email)
    logs = client.get("/api/admin/audit-logs", params={"action": "login"}).json()
    assert {log["user_email"] for log in logs} == {"client@example.com", "admin@example.com"}
    mine = client.get("/api/admin/audit-logs", params={"user_id": client_user.id}).json()
    assert all(log["user_id"] == client_user.id for log in mine)
