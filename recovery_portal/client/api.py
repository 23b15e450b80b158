"""
Async client for the portal API, used by the portal views.

Every request goes through ``PortalClient.request``: a 401 raises an
"Unauthorized" toast and, after a short delay, calls ``on_unauthorized`` so
the caller can send the user back to the login route. Any other failure
raises a generic error toast and ``PortalError``. Failed requests are not
retried.
"""
import asyncio
import json
import logging
from decimal import Decimal
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional, Tuple, Union

import httpx

from .cache import QueryCache, QueryKey
from .notifier import Notifier

logger = logging.getLogger(__name__)

# (filename, content, content_type)
UploadTuple = Tuple[str, bytes, str]

MESSAGES = ("/api/messages",)
DOCUMENTS = ("/api/documents",)
CASES = ("/api/cases",)
PAYMENTS = ("/api/payments",)
DASHBOARD = ("/api/dashboard",)
REPORTS = ("/api/reports",)


class PortalError(Exception):
    """Raised when the API answers with an error or cannot be reached."""

    def __init__(self, status_code: int, detail: str):
        super().__init__(f"{status_code}: {detail}")
        self.status_code = status_code
        self.detail = detail


def key_to_path(key: QueryKey) -> str:
    """("/api/cases", "c1", "messages") -> "/api/cases/c1/messages" """
    return "/".join(str(segment).strip("/") if index else str(segment).rstrip("/")
                    for index, segment in enumerate(key))


def case_key(case_id: str, sub_list: str) -> QueryKey:
    return ("/api/cases", case_id, sub_list)


def _error_detail(response: httpx.Response) -> str:
    try:
        detail = response.json().get("detail")
    except (ValueError, AttributeError):
        detail = None
    if isinstance(detail, list):
        detail = "; ".join(str(item.get("msg", item)) if isinstance(item, dict) else str(item) for item in detail)
    return detail or response.reason_phrase or "Request failed"


def _json_ready(data: Dict[str, Any]) -> Dict[str, Any]:
    return {key: str(value) if isinstance(value, Decimal) else value for key, value in data.items()}


class PortalClient:
    """Fetch-through cache plus the mutations the portal performs"""

    def __init__(
        self,
        base_url: str = "",
        notifier: Optional[Notifier] = None,
        cache: Optional[QueryCache] = None,
        on_unauthorized: Optional[Callable[[], Union[None, Awaitable[None]]]] = None,
        unauthorized_delay: float = 0.5,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 30.0,
    ):
        self.notifier = notifier or Notifier()
        self.cache = cache or QueryCache()
        self.on_unauthorized = on_unauthorized
        self.unauthorized_delay = unauthorized_delay
        self._http = httpx.AsyncClient(base_url=base_url, transport=transport, timeout=timeout)
        self._redirect_task: Optional[asyncio.Task] = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    async def aclose(self):
        await self._http.aclose()

    async def _redirect_later(self):
        await asyncio.sleep(self.unauthorized_delay)
        result = self.on_unauthorized()
        if asyncio.iscoroutine(result):
            await result

    def _handle_unauthorized(self):
        self.notifier.error("Unauthorized", "Your session has expired. Please log in again.")
        self.cache.clear()
        if self.on_unauthorized and (self._redirect_task is None or self._redirect_task.done()):
            self._redirect_task = asyncio.ensure_future(self._redirect_later())

    async def wait_for_redirect(self):
        """Wait for a pending unauthorized redirect, if one was scheduled"""
        if self._redirect_task is not None:
            await self._redirect_task

    async def request(self, method: str, path: str, *, raw: bool = False, **kwargs) -> Any:
        """Send a request; JSON is decoded unless raw is set"""
        try:
            response = await self._http.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.warning("%s %s failed: %s", method, path, e)
            self.notifier.error("Error", "Could not reach the server. Please try again.")
            raise PortalError(0, str(e)) from e

        if response.status_code == 401:
            self._handle_unauthorized()
            raise PortalError(401, _error_detail(response))
        if response.is_error:
            detail = _error_detail(response)
            self.notifier.error("Error", detail)
            raise PortalError(response.status_code, detail)

        if raw:
            return response
        if not response.content:
            return None
        return response.json()

    async def query(self, key: QueryKey, params: Optional[Dict[str, Any]] = None) -> Any:
        """GET the resource named by key, serving a fresh cached copy when there is one"""
        cache_key = tuple(key) + ((tuple(sorted(params.items())),) if params else ())
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached
        result = await self.request("GET", key_to_path(key), params=params)
        self.cache.set(cache_key, result)
        return result

    def invalidate(self, *keys: QueryKey) -> None:
        for key in keys:
            self.cache.invalidate(key)

    # Session

    async def login(self, email: str, password: str) -> dict:
        result = await self.request("POST", "/api/auth/login", json={"email": email, "password": password})
        self.cache.clear()
        return result

    async def logout(self) -> None:
        try:
            await self.request("POST", "/api/auth/logout")
        finally:
            self.cache.clear()

    async def session_settings(self) -> dict:
        return await self.request("GET", "/api/session-settings/public")

    # Cases

    async def create_case(self, case_data: Dict[str, Any], files: Iterable[UploadTuple] = ()) -> dict:
        """JSON without files, multipart with a case_data field when files are attached"""
        files = list(files)
        if files:
            result = await self.request(
                "POST", "/api/cases",
                data={"case_data": json.dumps(_json_ready(case_data))},
                files=[("files", upload) for upload in files],
            )
        else:
            result = await self.request("POST", "/api/cases", json=_json_ready(case_data))
        self.invalidate(CASES, DOCUMENTS, DASHBOARD)
        return result

    async def record_payment(self, case_id: str, amount: Union[Decimal, float, str], **fields) -> dict:
        payload = _json_ready({"amount": amount, **fields})
        result = await self.request("POST", f"/api/cases/{case_id}/payments", json=payload)
        self.invalidate(CASES, PAYMENTS, DASHBOARD, REPORTS)
        return result

    # Messages

    async def send_message(
        self,
        subject: str,
        content: str,
        case_id: Optional[str] = None,
        recipient_type: str = "organisation",
        recipient_id: Optional[str] = None,
        attachment: Optional[UploadTuple] = None,
    ) -> dict:
        """JSON body without an attachment, multipart form with one"""
        fields = {"subject": subject, "content": content, "recipient_type": recipient_type}
        if case_id:
            fields["case_id"] = case_id
        if recipient_id:
            fields["recipient_id"] = recipient_id

        if attachment is None:
            result = await self.request("POST", "/api/messages", json=fields)
        else:
            result = await self.request("POST", "/api/messages", data=fields, files={"attachment": attachment})

        self.invalidate(MESSAGES, DOCUMENTS, CASES)
        if case_id:
            self.invalidate(case_key(case_id, "messages"))
        return result

    async def mark_message_read(self, message_id: str) -> dict:
        result = await self.request("POST", f"/api/messages/{message_id}/read")
        self.invalidate(MESSAGES)
        return result

    async def delete_message(self, message_id: str, case_id: Optional[str] = None) -> dict:
        result = await self.request("DELETE", f"/api/admin/messages/{message_id}")
        case_id = case_id or (result or {}).get("case_id")
        self.invalidate(MESSAGES)
        if case_id:
            self.invalidate(case_key(case_id, "messages"))
        return result

    # Documents

    async def upload_document(self, upload: UploadTuple, case_id: Optional[str] = None) -> dict:
        data = {"case_id": case_id} if case_id else {}
        result = await self.request("POST", "/api/documents/upload", data=data, files={"file": upload})
        self.invalidate(DOCUMENTS)
        if case_id:
            self.invalidate(case_key(case_id, "documents"))
        return result

    async def delete_document(self, document_id: str, case_id: Optional[str] = None) -> dict:
        result = await self.request("DELETE", f"/api/documents/{document_id}")
        case_id = case_id or (result or {}).get("case_id")
        self.invalidate(DOCUMENTS)
        if case_id:
            self.invalidate(case_key(case_id, "documents"))
        return result

    async def download_document(self, document_id: str) -> bytes:
        response = await self.request("GET", f"/api/documents/{document_id}/download", raw=True)
        return response.content

    # Reports

    async def export_report(self, report_name: str, **params) -> Tuple[str, bytes]:
        """Excel workbook for a report; returns (filename, content)"""
        response = await self.request("GET", f"/api/reports/{report_name}/export", params=params, raw=True)
        disposition = response.headers.get("content-disposition", "")
        filename = disposition.split("filename=")[-1].strip('"') if "filename=" in disposition else f"{report_name}.xlsx"
        return filename, response.content

    async def print_report(self, report_name: str, **params) -> str:
        response = await self.request("GET", f"/api/reports/{report_name}/print", params=params, raw=True)
        return response.text

    async def print_case(self, case_id: str) -> str:
        response = await self.request("GET", f"/api/cases/{case_id}/print", raw=True)
        return response.text
