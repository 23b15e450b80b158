"""
Test cases for messaging: JSON and multipart sends, visibility, read tracking and attachments.
"""
from fastapi.testclient import TestClient

from recovery_portal.models import Document, Message, MessageView, Notification
from tests.helpers import login


def test_send_message_json(as_client: TestClient, client_user, admin_user, db_session):
    response = as_client.post("/api/messages", json={"subject": "Hello", "content": "First message"})
    assert response.status_code == 201, response.text
    data = response.json()
    assert data["recipient_type"] == "organisation"
    assert data["recipient_id"] == client_user.organisation_id
    assert data["sender_name"] == "Casey Client"
    assert data["has_attachment"] is False
    assert db_session.query(Notification).filter(Notification.user_id == admin_user.id).count() == 1


def test_send_message_multipart_with_attachment(as_client: TestClient, make_case, organisation, db_session):
    case = make_case(organisation)
    response = as_client.post(
        "/api/messages",
        data={"subject": "Evidence", "content": "See attached", "case_id": case.id},
        files={"attachment": ("letter.pdf", b"%PDF-1.4 letter", "application/pdf")},
    )
    assert response.status_code == 201, response.text
    data = response.json()
    assert data["recipient_type"] == "case"
    assert data["case_account_number"] == case.account_number
    assert data["attachment_file_name"] == "letter.pdf"
    assert data["has_attachment"] is True

    # Case-linked attachments are filed with the case documents too
    documents = db_session.query(Document).filter(Document.case_id == case.id).all()
    assert [document.file_name for document in documents] == ["letter.pdf"]
    message = db_session.get(Message, data["id"])
    assert message.attachment_document_id == documents[0].id

    download = as_client.get(f"/api/messages/{data['id']}/download")
    assert download.status_code == 200
    assert download.content == b"%PDF-1.4 letter"
    assert 'filename="letter.pdf"' in download.headers["content-disposition"]


def test_send_message_rejects_bad_attachment(as_client: TestClient, db_session):
    response = as_client.post(
        "/api/messages",
        data={"subject": "Evidence", "content": "See attached"},
        files={"attachment": ("script.exe", b"MZ", "application/octet-stream")},
    )
    assert response.status_code == 400
    assert db_session.query(Message).count() == 0


def test_send_message_validation(as_client: TestClient):
    assert as_client.post("/api/messages", json={"subject": "", "content": "x"}).status_code == 422
    assert as_client.post("/api/messages", json={
        "subject": "Hi", "content": "x", "recipient_type": "everyone"
    }).status_code == 422


def test_client_cannot_message_other_organisation_user(as_client: TestClient, make_user, make_organisation):
    stranger = make_user("stranger@example.com", make_organisation("Other Org"))
    response = as_client.post("/api/messages", json={
        "subject": "Hi", "content": "x", "recipient_type": "user", "recipient_id": stranger.id
    })
    assert response.status_code == 403


def test_client_cannot_post_to_other_organisations_case(as_client: TestClient, make_case, make_organisation):
    case = make_case(make_organisation("Other Org"))
    response = as_client.post("/api/messages", json={"subject": "Hi", "content": "x", "case_id": case.id})
    assert response.status_code == 404


def test_message_list_visibility_and_filters(client: TestClient, make_user, make_organisation, organisation,
                                            client_user, admin_user):
    other_user = make_user("other@example.com", make_organisation("Other Org"))

    login(client, other_user.email)
    client.post("/api/messages", json={"subject": "Not yours", "content": "private"})

    login(client, admin_user.email)
    client.post("/api/messages", json={
        "subject": "Payment plan", "content": "Proposal attached", "recipient_id": organisation.id
    })

    login(client, client_user.email)
    client.post("/api/messages", json={"subject": "Question", "content": "When is the hearing?"})

    data = client.get("/api/messages").json()
    assert sorted(item["subject"] for item in data["items"]) == ["Payment plan", "Question"]

    assert [item["subject"] for item in client.get("/api/messages", params={"search": "hearing"}).json()["items"]] == ["Question"]
    assert [item["subject"] for item in client.get("/api/messages", params={"sender": "ada"}).json()["items"]] == ["Payment plan"]

    login(client, admin_user.email)
    assert client.get("/api/messages").json()["total"] == 3


def test_mark_read_records_view(client: TestClient, organisation, client_user, admin_user, db_session):
    login(client, admin_user.email)
    message_id = client.post("/api/messages", json={
        "subject": "Update", "content": "News", "recipient_id": organisation.id
    }).json()["id"]

    login(client, client_user.email)
    response = client.post(f"/api/messages/{message_id}/read")
    assert response.status_code == 200
    assert response.json()["is_read"] is True
    client.post(f"/api/messages/{message_id}/read")
    assert db_session.query(MessageView).filter(MessageView.message_id == message_id).count() == 1


def test_sender_reading_own_message_is_not_a_view(as_client: TestClient, db_session):
    message_id = as_client.post("/api/messages", json={"subject": "Mine", "content": "x"}).json()["id"]
    response = as_client.post(f"/api/messages/{message_id}/read")
    assert response.json()["is_read"] is False
    assert db_session.query(MessageView).count() == 0


def test_download_without_attachment(as_client: TestClient):
    message_id = as_client.post("/api/messages", json={"subject": "Mine", "content": "x"}).json()["id"]
    assert as_client.get(f"/api/messages/{message_id}/download").status_code == 404


def test_admin_deletes_message(client: TestClient, make_case, organisation, client_user, admin_user, db_session):
    case = make_case(organisation)
    login(client, client_user.email)
    message_id = client.post("/api/messages", json={"subject": "Hi", "content": "x", "case_id": case.id}).json()["id"]

    assert client.delete(f"/api/admin/messages/{message_id}").status_code == 403

    login(client, admin_user.email)
    response = client.delete(f"/api/admin/messages/{message_id}")
    assert response.status_code == 200
    assert response.json()["case_id"] == case.id
    assert db_session.get(Message, message_id) is None
