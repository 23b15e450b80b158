"""Search, filter, pagination and badge derivation for case and message lists."""
from __future__ import annotations

import math
from dataclasses import dataclass, field as dataclass_field
from typing import Any, Iterable, List, Mapping, Optional, Sequence

from .financials import is_closed
from .records import field, text, within_range

CASE_SEARCH_FIELDS = ("case_name", "account_number", "debtor_email", "organisation_name")
ALL = "all"


def _needle(term: Optional[str]) -> str:
    return (term or "").strip().lower()


def matches_search(case: Any, term: Optional[str]) -> bool:
    needle = _needle(term)
    if not needle:
        return True
    fields = list(CASE_SEARCH_FIELDS)
    # The debtor name stands in for a missing case name
    if not text(case, "case_name").strip():
        fields.append("debtor_name")
    return any(needle in text(case, name).lower() for name in fields)


def normalise_stage(stage: Any) -> str:
    return "".join(ch for ch in str(stage or "").lower() if ch not in "_- ")


def matches_status(case: Any, status: Optional[str]) -> bool:
    wanted = _needle(status)
    if not wanted or wanted == ALL:
        return True
    closed = is_closed(field(case, "status"))
    if wanted == "closed":
        return closed
    if wanted == "active":
        return not closed
    return text(case, "status").strip().lower() == wanted


def matches_stage(case: Any, stage: Optional[str]) -> bool:
    wanted = _needle(stage)
    if not wanted or wanted == ALL:
        return True
    return normalise_stage(field(case, "stage")) == normalise_stage(wanted)


def matches_organisation(case: Any, organisation_id: Optional[str]) -> bool:
    if not organisation_id or organisation_id == ALL:
        return True
    return field(case, "organisation_id") == organisation_id


def filter_cases(
    cases: Iterable[Any],
    search: Optional[str] = None,
    status: Optional[str] = ALL,
    stage: Optional[str] = ALL,
    organisation_id: Optional[str] = None,
) -> List[Any]:
    """Apply the case list filters.

    A non-blank search term replaces the status and stage filters entirely;
    the organisation filter always applies.
    """
    result = []
    searching = bool(_needle(search))
    for case in cases:
        if not matches_organisation(case, organisation_id):
            continue
        if searching:
            if matches_search(case, search):
                result.append(case)
            continue
        if matches_status(case, status) and matches_stage(case, stage):
            result.append(case)
    return result


@dataclass
class Page:
    items: List[Any] = dataclass_field(default_factory=list)
    page: int = 1
    page_size: int = 20
    total: int = 0
    page_count: int = 0

    @property
    def start_index(self) -> int:
        """1-based index of the first item shown, 0 for an empty page"""
        if not self.items:
            return 0
        return (self.page - 1) * self.page_size + 1

    @property
    def end_index(self) -> int:
        if not self.items:
            return 0
        return self.start_index + len(self.items) - 1

    @property
    def has_next(self) -> bool:
        return self.page < self.page_count

    @property
    def has_previous(self) -> bool:
        return self.page > 1


def paginate(items: Sequence[Any], page: int = 1, page_size: int = 20) -> Page:
    """Slice one page out of a filtered list, clamping the page number into range"""
    if page_size < 1:
        raise ValueError("page_size must be at least 1")
    items = list(items)
    total = len(items)
    page_count = math.ceil(total / page_size)
    current = min(max(int(page or 1), 1), max(page_count, 1))
    offset = (current - 1) * page_size
    return Page(
        items=items[offset:offset + page_size],
        page=current,
        page_size=page_size,
        total=total,
        page_count=page_count,
    )


@dataclass(frozen=True)
class Badge:
    label: str
    colour: str


STAGE_BADGES = {
    "initialcontact": Badge("Pre-Legal", "blue"),
    "prelegal": Badge("Pre-Legal", "blue"),
    "claim": Badge("Claim", "yellow"),
    "judgment": Badge("Judgment", "orange"),
    "judgement": Badge("Judgment", "orange"),
    "enforcement": Badge("Enforcement", "red"),
    "paymentplan": Badge("Payment Plan", "purple"),
    "paid": Badge("Paid", "green"),
    "legalaction": Badge("Legal Action", "red"),
}
CLOSED_BADGE = Badge("Closed", "gray")


def stage_badge(status: Any, stage: Any) -> Badge:
    if is_closed(status):
        return CLOSED_BADGE
    known = STAGE_BADGES.get(normalise_stage(stage))
    if known:
        return known
    raw = str(stage or "").replace("_", " ").replace("-", " ").strip()
    return Badge(raw.title() if raw else "Active", "gray")


def status_badge(status: Any) -> Badge:
    value = str(status or "").strip().lower()
    if value in ("closed", "resolved"):
        return Badge("Closed", "gray")
    if value == "new matter":
        return Badge("New Matter", "blue")
    if value == "new":
        return Badge("New", "blue")
    if not value or value == "active":
        return Badge("Active", "green")
    return Badge(value.title(), "yellow")


def normalise_debtor_type(value: Any) -> str:
    raw = str(value or "").strip().lower().replace("-", "_").replace(" ", "_")
    if raw in ("company_and_individual", "company_&_individual", "company_individual", "both"):
        return "company_and_individual"
    if raw in ("company", "limited_company", "ltd"):
        return "company"
    if raw in ("sole_trader", "soletrader"):
        return "sole_trader"
    return "individual"


def debtor_type_label(value: Any) -> str:
    return {
        "individual": "Individual",
        "company": "Company",
        "sole_trader": "Sole Trader",
        "company_and_individual": "Company & Individual",
    }[normalise_debtor_type(value)]


def _message_case_terms(message: Any, cases: Optional[Mapping[str, Any]]) -> List[str]:
    case_id = field(message, "case_id")
    if not case_id:
        return []
    case = (cases or {}).get(case_id) or field(message, "case")
    terms = [str(case_id)]
    if case is not None:
        terms += [text(case, "account_number"), text(case, "case_name"), text(case, "debtor_name")]
    terms += [text(message, "case_account_number"), text(message, "case_name")]
    return [term.lower() for term in terms if term]


def filter_messages(
    messages: Iterable[Any],
    search: Optional[str] = None,
    date_from: Any = None,
    date_to: Any = None,
    sender: Optional[str] = None,
    case_term: Optional[str] = None,
    cases: Optional[Mapping[str, Any]] = None,
) -> List[Any]:
    """Narrow a message list by text, inclusive date range, sender and linked case"""
    search_needle = _needle(search)
    sender_needle = _needle(sender)
    case_needle = _needle(case_term)
    result = []
    for message in messages:
        if search_needle and not (
            search_needle in text(message, "subject").lower()
            or search_needle in text(message, "content").lower()
        ):
            continue
        if not within_range(field(message, "created_at"), date_from, date_to):
            continue
        if sender_needle and not (
            sender_needle in text(message, "sender_name").lower()
            or sender_needle in text(message, "sender_email").lower()
        ):
            continue
        if case_needle and not any(case_needle in term for term in _message_case_terms(message, cases)):
            continue
        result.append(message)
    return result
