"""
Test cases for the portal client: query cache, toasts, 401 handling and cache invalidation.
"""
import asyncio
import json

import httpx
import pytest

from recovery_portal.client.api import PortalClient, PortalError, case_key, key_to_path
from recovery_portal.client.cache import QueryCache
from recovery_portal.client.notifier import Notifier


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class Recorder:
    """Mock API that records requests and answers from a route table"""

    def __init__(self, routes=None):
        self.requests = []
        self.routes = routes or {}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        answer = self.routes.get((request.method, request.url.path))
        if callable(answer):
            return answer(request)
        if answer is None:
            return httpx.Response(200, json={"ok": True})
        status_code, body = answer
        return httpx.Response(status_code, json=body)


def make_client(recorder, **kwargs):
    return PortalClient(base_url="http://portal.test", transport=httpx.MockTransport(recorder), **kwargs)


def seed_cache(cache):
    for key in [("/api/messages",), ("/api/messages", (("page", 2),)), ("/api/documents",), ("/api/cases",),
                ("/api/cases", "c1", "messages"), ("/api/cases", "c1", "documents"),
                ("/api/cases", "c2", "messages"), ("/api/dashboard",)]:
        cache.set(key, {"cached": True})


def test_cache_goes_stale():
    clock = FakeClock()
    cache = QueryCache(stale_time=300, clock=clock)
    cache.set(("/api/cases",), [1])
    assert cache.get(("/api/cases",)) == [1]
    clock.now = 301
    assert cache.get(("/api/cases",)) is None
    assert ("/api/cases",) not in cache


def test_cache_invalidate_removes_prefix_matches_only():
    cache = QueryCache()
    seed_cache(cache)
    dropped = cache.invalidate(("/api/cases", "c1"))
    assert sorted(dropped) == [("/api/cases", "c1", "documents"), ("/api/cases", "c1", "messages")]
    assert ("/api/cases", "c2", "messages") in cache
    assert ("/api/cases",) in cache


def test_key_to_path():
    assert key_to_path(("/api/cases",)) == "/api/cases"
    assert key_to_path(case_key("c1", "messages")) == "/api/cases/c1/messages"


def test_notifier_subscribe_and_unsubscribe():
    notifier = Notifier()
    seen = []
    unsubscribe = notifier.subscribe(seen.append)
    notifier.toast("Saved")
    unsubscribe()
    notifier.error("Error", "Broken")
    assert [toast.title for toast in seen] == ["Saved"]
    assert notifier.last.variant == "destructive"
    assert len(notifier.history) == 2


def test_query_serves_fresh_cache():
    recorder = Recorder({("GET", "/api/cases"): (200, {"items": []})})

    async def run():
        async with make_client(recorder) as client:
            first = await client.query(("/api/cases",), {"page": 1})
            second = await client.query(("/api/cases",), {"page": 1})
            await client.query(("/api/cases",), {"page": 2})
            return first, second

    first, second = asyncio.run(run())
    assert first == second == {"items": []}
    assert len(recorder.requests) == 2
    assert recorder.requests[1].url.params["page"] == "2"


def test_unauthorized_toasts_and_redirects_after_delay():
    recorder = Recorder({("GET", "/api/cases"): (401, {"detail": "Not authenticated"})})
    redirects = []

    async def run():
        async with make_client(recorder, on_unauthorized=lambda: redirects.append("/login"),
                               unauthorized_delay=0.01) as client:
            client.cache.set(("/api/messages",), ["stale"])
            with pytest.raises(PortalError) as excinfo:
                await client.query(("/api/cases",))
            assert redirects == []
            await client.wait_for_redirect()
            return client, excinfo.value

    client, error = asyncio.run(run())
    assert error.status_code == 401
    assert redirects == ["/login"]
    assert client.notifier.last.title == "Unauthorized"
    assert client.cache.keys() == []


def test_other_errors_raise_generic_toast():
    recorder = Recorder({("GET", "/api/cases/missing"): (404, {"detail": "Case not found"})})

    async def run():
        async with make_client(recorder) as client:
            with pytest.raises(PortalError) as excinfo:
                await client.request("GET", "/api/cases/missing")
            return client, excinfo.value

    client, error = asyncio.run(run())
    assert error.status_code == 404
    assert client.notifier.last.title == "Error"
    assert client.notifier.last.description == "Case not found"
    assert len(recorder.requests) == 1


def test_unreachable_server():
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    async def run():
        async with make_client(refuse) as client:
            with pytest.raises(PortalError) as excinfo:
                await client.request("GET", "/api/cases")
            return excinfo.value

    assert asyncio.run(run()).status_code == 0


def test_message_without_attachment_sent_as_json():
    recorder = Recorder({("POST", "/api/messages"): (201, {"id": "m1"})})

    async def run():
        async with make_client(recorder) as client:
            await client.send_message("Hello", "Body", case_id="c1")

    asyncio.run(run())
    request = recorder.requests[0]
    assert request.headers["content-type"] == "application/json"
    assert json.loads(request.content) == {
        "subject": "Hello", "content": "Body", "recipient_type": "organisation", "case_id": "c1",
    }


def test_message_with_attachment_sent_as_multipart():
    recorder = Recorder({("POST", "/api/messages"): (201, {"id": "m1"})})

    async def run():
        async with make_client(recorder) as client:
            await client.send_message("Hello", "Body", attachment=("letter.pdf", b"%PDF-1.4", "application/pdf"))

    asyncio.run(run())
    request = recorder.requests[0]
    assert request.headers["content-type"].startswith("multipart/form-data")
    body = request.read()
    assert b'name="attachment"; filename="letter.pdf"' in body
    assert b'name="subject"' in body


def test_send_message_invalidates_lists():
    recorder = Recorder({("POST", "/api/messages"): (201, {"id": "m1"})})

    async def run():
        async with make_client(recorder) as client:
            seed_cache(client.cache)
            await client.send_message("Hello", "Body", case_id="c1")
            return client.cache.keys()

    remaining = asyncio.run(run())
    assert sorted(remaining) == [("/api/dashboard",)]


def test_delete_message_invalidates_exactly_messages_and_case_messages():
    recorder = Recorder({("DELETE", "/api/admin/messages/m1"): (200, {"message": "deleted", "case_id": "c1"})})

    async def run():
        async with make_client(recorder) as client:
            seed_cache(client.cache)
            await client.delete_message("m1")
            return client.cache.keys()

    remaining = set(asyncio.run(run()))
    assert remaining == {("/api/documents",), ("/api/cases",), ("/api/cases", "c1", "documents"),
                         ("/api/cases", "c2", "messages"), ("/api/dashboard",)}


def test_delete_document_invalidates_exactly_documents_and_case_documents():
    recorder = Recorder({("DELETE", "/api/documents/d1"): (200, {"message": "deleted", "case_id": "c1"})})

    async def run():
        async with make_client(recorder) as client:
            seed_cache(client.cache)
            await client.delete_document("d1")
            return client.cache.keys()

    remaining = set(asyncio.run(run()))
    assert remaining == {("/api/messages",), ("/api/messages", (("page", 2),)), ("/api/cases",),
                         ("/api/cases", "c1", "messages"), ("/api/cases", "c2", "messages"), ("/api/dashboard",)}


def test_create_case_with_files_uses_case_data_field():
    recorder = Recorder({("POST", "/api/cases"): (201, {"id": "c9"})})

    async def run():
        async with make_client(recorder) as client:
            await client.create_case({"debtor_name": "Smith", "original_amount": "100.00"},
                                     files=[("invoice.pdf", b"%PDF-1.4", "application/pdf")])

    asyncio.run(run())
    body = recorder.requests[0].read()
    assert b'name="case_data"' in body
    assert b'name="files"; filename="invoice.pdf"' in body


def test_export_report_filename_from_header():
    def export(request):
        return httpx.Response(200, content=b"PK", headers={
            "content-disposition": 'attachment; filename="case-summary-report-2025-03-31.xlsx"'})

    recorder = Recorder({("GET", "/api/reports/case-summary/export"): export})

    async def run():
        async with make_client(recorder) as client:
            return await client.export_report("case-summary", date_from="2025-01-01")

    filename, content = asyncio.run(run())
    assert filename == "case-summary-report-2025-03-31.xlsx"
    assert content == b"PK"
    assert recorder.requests[0].url.params["date_from"] == "2025-01-01"


def test_logout_clears_cache_even_when_session_expired():
    recorder = Recorder({("POST", "/api/auth/logout"): (401, {"detail": "Not authenticated"})})

    async def run():
        async with make_client(recorder) as client:
            client.cache.set(("/api/cases",), [1])
            with pytest.raises(PortalError):
                await client.logout()
            return client.cache.keys()

    assert asyncio.run(run()) == []
