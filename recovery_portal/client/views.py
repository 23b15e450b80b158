"""
List views shared by the client and admin portals.

One view per concern; what differs between the portals is switched on by
``ViewFeatures`` rather than by separate view classes.
"""
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from .api import PortalClient
from ..services.exports import ExportError, require_date_bound


@dataclass(frozen=True)
class ViewFeatures:
    admin_delete: bool = False
    organisation_filter: bool = False
    export: bool = False


CLIENT_FEATURES = ViewFeatures()
ADMIN_FEATURES = ViewFeatures(admin_delete=True, organisation_filter=True, export=True)


class _PagedView:
    endpoint: Tuple[str, ...] = ()

    def __init__(self, client: PortalClient, features: ViewFeatures = CLIENT_FEATURES, page_size: int = 20):
        self.client = client
        self.features = features
        self.page = 1
        self.page_size = page_size
        self.data: Dict[str, Any] = {}

    def params(self) -> Dict[str, Any]:
        return {"page": self.page, "page_size": self.page_size}

    async def load(self) -> Dict[str, Any]:
        params = {key: value for key, value in self.params().items() if value not in (None, "")}
        self.data = await self.client.query(self.endpoint, params)
        self.page = self.data.get("page", self.page)
        return self.data

    def _filter_changed(self):
        self.page = 1

    @property
    def items(self) -> List[dict]:
        return self.data.get("items", [])

    @property
    def page_count(self) -> int:
        return self.data.get("page_count", 0)

    @property
    def has_next(self) -> bool:
        return self.page < self.page_count

    @property
    def has_previous(self) -> bool:
        return self.page > 1

    async def next_page(self):
        if self.has_next:
            self.page += 1
            await self.load()

    async def previous_page(self):
        if self.has_previous:
            self.page -= 1
            await self.load()

    async def go_to(self, page: int):
        self.page = max(1, page)
        await self.load()

    @property
    def summary(self) -> str:
        """e.g. 'Showing 21 to 40 of 45'"""
        total = self.data.get("total", 0)
        if not total:
            return "No results"
        return f"Showing {self.data.get('start_index', 0)} to {self.data.get('end_index', 0)} of {total}"


class CaseListView(_PagedView):
    """Case list with free-text search, status, stage and (admin) organisation filters"""

    endpoint = ("/api/cases",)

    def __init__(self, client: PortalClient, features: ViewFeatures = CLIENT_FEATURES, page_size: int = 20):
        super().__init__(client, features, page_size)
        self.search = ""
        self.status = "active"
        self.stage = "all"
        self.organisation_id: Optional[str] = None
        self.include_archived = False
        self.date_from: Optional[str] = None
        self.date_to: Optional[str] = None

    def params(self) -> Dict[str, Any]:
        params = super().params()
        params.update(search=self.search, status=self.status, stage=self.stage)
        if self.features.organisation_filter:
            params["organisation_id"] = self.organisation_id
            if self.include_archived:
                params["include_archived"] = "true"
        return params

    def set_search(self, term: str):
        self.search = term or ""
        self._filter_changed()

    def set_status(self, status: str):
        self.status = status or "active"
        self._filter_changed()

    def set_stage(self, stage: str):
        self.stage = stage or "all"
        self._filter_changed()

    def set_organisation(self, organisation_id: Optional[str]):
        if not self.features.organisation_filter:
            raise PermissionError("Organisation filter is not available in this view")
        self.organisation_id = organisation_id or None
        self._filter_changed()

    def set_date_range(self, date_from: Optional[str] = None, date_to: Optional[str] = None):
        self.date_from = date_from or None
        self.date_to = date_to or None

    async def export(self, report_name: str = "case-summary") -> Tuple[str, bytes]:
        """Download the Excel export; needs the export feature and at least one date bound"""
        if not self.features.export:
            raise PermissionError("Export is not available in this view")
        try:
            require_date_bound(self.date_from, self.date_to)
        except ExportError as e:
            self.client.notifier.error("Date range required", str(e))
            raise
        params = {"date_from": self.date_from, "date_to": self.date_to}
        if self.features.organisation_filter and self.organisation_id:
            params["organisation_id"] = self.organisation_id
        return await self.client.export_report(
            report_name, **{key: value for key, value in params.items() if value}
        )


class MessagesView(_PagedView):
    """Message list with text, date, sender and case filters"""

    endpoint = ("/api/messages",)

    def __init__(self, client: PortalClient, features: ViewFeatures = CLIENT_FEATURES, page_size: int = 20):
        super().__init__(client, features, page_size)
        self.search = ""
        self.date_from: Optional[str] = None
        self.date_to: Optional[str] = None
        self.sender = ""
        self.case = ""

    def params(self) -> Dict[str, Any]:
        params = super().params()
        params.update(search=self.search, date_from=self.date_from, date_to=self.date_to,
                      sender=self.sender, case=self.case)
        return params

    def set_filters(self, **filters):
        for name in ("search", "date_from", "date_to", "sender", "case"):
            if name in filters:
                setattr(self, name, filters[name])
        self._filter_changed()

    def clear_filters(self):
        self.search, self.date_from, self.date_to, self.sender, self.case = "", None, None, "", ""
        self._filter_changed()

    @property
    def can_delete(self) -> bool:
        return self.features.admin_delete

    async def delete(self, message: dict) -> None:
        if not self.can_delete:
            raise PermissionError("Deleting messages is not available in this view")
        await self.client.delete_message(message["id"], message.get("case_id"))
        await self.load()
