"""
Test cases for document upload, listing, download and deletion.
"""
from fastapi.testclient import TestClient

from recovery_portal.models import AuditLog, AuditAction, Document
from tests.helpers import login


def upload(client, name="invoice.pdf", content=b"%PDF-1.4 invoice", case_id=None):
    data = {"case_id": case_id} if case_id else {}
    return client.post("/api/documents/upload", data=data, files={"file": (name, content, "application/pdf")})


def test_documents_require_authentication(client: TestClient):
    assert client.get("/api/documents").status_code == 401
    assert upload(client).status_code == 401
    assert client.get("/api/documents/1/download").status_code == 401
    assert client.delete("/api/documents/1").status_code == 401


def test_upload_and_download_round_trip(as_client: TestClient, make_case, organisation, db_session):
    case = make_case(organisation)
    response = upload(as_client, case_id=case.id)
    assert response.status_code == 201, response.text
    document = response.json()
    assert document["case_id"] == case.id
    assert document["file_size"] == len(b"%PDF-1.4 invoice")

    stored = db_session.get(Document, document["id"])
    assert stored.is_encrypted
    assert stored.file_hash

    download = as_client.get(f"/api/documents/{document['id']}/download")
    assert download.status_code == 200
    assert download.content == b"%PDF-1.4 invoice"
    assert db_session.query(AuditLog).filter(AuditLog.action == AuditAction.FILE_DOWNLOADED.value).count() == 1


def test_upload_rejects_disallowed_type(as_client: TestClient):
    response = upload(as_client, name="payload.exe")
    assert response.status_code == 400
    assert "not allowed" in response.json()["detail"]


def test_upload_rejects_empty_file(as_client: TestClient):
    assert upload(as_client, content=b"").status_code == 400


def test_list_documents_search(as_client: TestClient, make_case, organisation):
    case = make_case(organisation, account_number="ACC-2025-424242")
    upload(as_client, name="invoice.pdf", case_id=case.id)
    upload(as_client, name="contract.pdf")

    names = [item["file_name"] for item in as_client.get("/api/documents").json()]
    assert sorted(names) == ["contract.pdf", "invoice.pdf"]
    by_account = as_client.get("/api/documents", params={"search": "424242"}).json()
    assert [item["file_name"] for item in by_account] == ["invoice.pdf"]
    by_case = as_client.get("/api/documents", params={"case_id": case.id}).json()
    assert [item["file_name"] for item in by_case] == ["invoice.pdf"]


def test_documents_hidden_from_other_organisations(client: TestClient, make_user, make_organisation, client_user):
    login(client, client_user.email)
    document_id = upload(client).json()["id"]

    outsider = make_user("outsider@example.com", make_organisation("Other Org"))
    login(client, outsider.email)
    assert client.get("/api/documents").json() == []
    assert client.get(f"/api/documents/{document_id}/download").status_code == 404


def test_missing_stored_file_is_not_found(as_client: TestClient, storage, db_session):
    document_id = upload(as_client).json()["id"]
    document = db_session.get(Document, document_id)
    storage.delete(document.storage_type, document.file_path, document.s3_key)
    assert as_client.get(f"/api/documents/{document_id}/download").status_code == 404


def test_only_uploader_or_admin_deletes(client: TestClient, make_user, organisation, client_user, admin_user,
                                        make_case, db_session):
    case = make_case(organisation)
    colleague = make_user("colleague@example.com", organisation)

    login(client, client_user.email)
    document_id = upload(client, case_id=case.id).json()["id"]

    login(client, colleague.email)
    assert client.delete(f"/api/documents/{document_id}").status_code == 403

    login(client, client_user.email)
    response = client.delete(f"/api/documents/{document_id}")
    assert response.status_code == 200
    assert response.json() == {"message": "Document deleted successfully", "case_id": case.id}
    assert db_session.get(Document, document_id) is None

    login(client, client_user.email)
    other_id = upload(client).json()["id"]
    login(client, admin_user.email)
    assert client.delete(f"/api/documents/{other_id}").status_code == 200
