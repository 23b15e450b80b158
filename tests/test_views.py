"""
Test cases for the shared case and message list views.
"""
import asyncio

import httpx
import pytest

from recovery_portal.client.api import PortalClient
from recovery_portal.client.views import ADMIN_FEATURES, CLIENT_FEATURES, CaseListView, MessagesView
from recovery_portal.services.exports import ExportError


def page_payload(request):
    page = int(request.url.params.get("page", 1))
    return httpx.Response(200, json={
        "items": [{"id": f"c{page}"}], "page": page, "page_size": 20, "total": 45,
        "page_count": 3, "start_index": (page - 1) * 20 + 1, "end_index": min(page * 20, 45),
    })


def make_client(handler):
    return PortalClient(base_url="http://portal.test", transport=httpx.MockTransport(handler))


def test_case_list_paging_and_filters():
    seen = []

    def handler(request):
        seen.append(dict(request.url.params))
        return page_payload(request)

    async def run():
        async with make_client(handler) as client:
            view = CaseListView(client)
            await view.load()
            await view.go_to(3)
            summary = view.summary
            has_next = view.has_next
            view.set_search("smith")
            await view.load()
            return view, summary, has_next

    view, summary, has_next = asyncio.run(run())
    assert summary == "Showing 41 to 45 of 45"
    assert not has_next
    assert view.page == 1
    assert seen[0]["status"] == "active"
    assert seen[-1]["search"] == "smith"
    assert "organisation_id" not in seen[-1]


def test_client_view_has_no_organisation_filter_or_export():
    async def run():
        async with make_client(page_payload) as client:
            view = CaseListView(client, CLIENT_FEATURES)
            with pytest.raises(PermissionError):
                view.set_organisation("org-1")
            with pytest.raises(PermissionError):
                await view.export()

    asyncio.run(run())


def test_admin_export_requires_date_range():
    async def run():
        async with make_client(page_payload) as client:
            view = CaseListView(client, ADMIN_FEATURES)
            with pytest.raises(ExportError):
                await view.export()
            return client.notifier.last

    toast = asyncio.run(run())
    assert toast.title == "Date range required"


def test_admin_export_passes_filters():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, content=b"PK", headers={
            "content-disposition": 'attachment; filename="case-summary-report-2025-03-31.xlsx"'})

    async def run():
        async with make_client(handler) as client:
            view = CaseListView(client, ADMIN_FEATURES)
            view.set_organisation("org-1")
            view.set_date_range(date_from="2025-01-01")
            return await view.export()

    filename, _ = asyncio.run(run())
    assert filename == "case-summary-report-2025-03-31.xlsx"
    assert seen[0].url.path == "/api/reports/case-summary/export"
    assert dict(seen[0].url.params) == {"date_from": "2025-01-01", "organisation_id": "org-1"}


def test_messages_view_delete_only_for_admin():
    deleted = []

    def handler(request):
        if request.method == "DELETE":
            deleted.append(request.url.path)
            return httpx.Response(200, json={"message": "Message deleted successfully", "case_id": None})
        return httpx.Response(200, json={"items": [], "page": 1, "page_size": 20, "total": 0, "page_count": 0})

    async def run():
        async with make_client(handler) as client:
            client_view = MessagesView(client)
            assert not client_view.can_delete
            with pytest.raises(PermissionError):
                await client_view.delete({"id": "m1"})
            admin_view = MessagesView(client, ADMIN_FEATURES)
            await admin_view.delete({"id": "m1"})
            return admin_view

    view = asyncio.run(run())
    assert deleted == ["/api/admin/messages/m1"]
    assert view.summary == "No results"


def test_messages_view_filters_reset_page():
    seen = []

    def handler(request):
        seen.append(dict(request.url.params))
        return httpx.Response(200, json={"items": [], "page": 1, "page_size": 20, "total": 0, "page_count": 0})

    async def run():
        async with make_client(handler) as client:
            view = MessagesView(client)
            view.page = 4
            view.set_filters(sender="ada", case="ACC-2025")
            await view.load()
            view.clear_filters()
            await view.load()
            return view

    view = asyncio.run(run())
    assert view.page == 1
    assert seen[0] == {"page": "1", "page_size": "20", "sender": "ada", "case": "ACC-2025"}
    assert seen[1] == {"page": "1", "page_size": "20"}
