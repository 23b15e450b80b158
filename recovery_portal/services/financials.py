"""Derived financial figures for cases and case portfolios."""
from __future__ import annotations

from dataclasses import asdict, dataclass, field as dataclass_field
from decimal import Decimal
from typing import Any, Dict, Iterable, List

from .records import ZERO, field, money, text, to_decimal

CLOSED_STATUSES = ("closed", "resolved")
NEW_MATTER_STATUSES = ("new matter", "new")

BAND_HIGH = "high"
BAND_MEDIUM = "medium"
BAND_LOW = "low"
BAND_NONE = "none"


def is_closed(status: Any) -> bool:
    return str(status or "").strip().lower() in CLOSED_STATUSES


def status_bucket(status: Any) -> str:
    """Collapse free-text statuses into closed / new matter / active"""
    value = str(status or "").strip().lower()
    if value in CLOSED_STATUSES:
        return "closed"
    if value in NEW_MATTER_STATUSES:
        return "new matter"
    return "active"


def sum_payments(payments: Iterable[Any]) -> Decimal:
    return sum((to_decimal(field(payment, "amount")) for payment in payments or ()), ZERO)


def total_payments(case: Any) -> Decimal:
    """Recovered so far: the precomputed total when present, else the sum of the payments list"""
    precomputed = field(case, "total_payments")
    if precomputed is not None and precomputed != "":
        return to_decimal(precomputed)
    return sum_payments(field(case, "payments", ()))


def outstanding_amount(case: Any) -> Decimal:
    """Authoritative outstanding balance.

    A stored outstanding amount is trusted verbatim; only when the record has
    none is it derived as original minus payments received.
    """
    stored = field(case, "outstanding_amount")
    if stored is not None and stored != "":
        return to_decimal(stored)
    return to_decimal(field(case, "original_amount")) - total_payments(case)


def total_debt(case: Any) -> Decimal:
    return (
        to_decimal(field(case, "original_amount"))
        + to_decimal(field(case, "costs_added"))
        + to_decimal(field(case, "interest_added"))
        + to_decimal(field(case, "fees_added"))
    )


def recovery_rate(total_recovered: Any, total_original: Any) -> float:
    """Percentage recovered, capped at 100 and 0 when nothing was owed"""
    original = to_decimal(total_original)
    if original <= 0:
        return 0.0
    rate = to_decimal(total_recovered) / original * 100
    return float(round(min(max(rate, ZERO), Decimal("100")), 2))


def case_recovery_rate(case: Any) -> float:
    return recovery_rate(total_payments(case), field(case, "original_amount"))


def recovery_band(rate: float) -> str:
    if rate >= 90:
        return BAND_HIGH
    if rate >= 50:
        return BAND_MEDIUM
    if rate > 0:
        return BAND_LOW
    return BAND_NONE


@dataclass
class BucketTotals:
    count: int = 0
    recovered: Decimal = ZERO


@dataclass
class PortfolioSummary:
    """Totals across a list of cases."""

    case_count: int = 0
    total_original: Decimal = ZERO
    total_costs: Decimal = ZERO
    total_interest: Decimal = ZERO
    total_fees: Decimal = ZERO
    total_debt: Decimal = ZERO
    total_recovered: Decimal = ZERO
    total_outstanding: Decimal = ZERO
    recovery_rate: float = 0.0
    by_status: Dict[str, BucketTotals] = dataclass_field(default_factory=lambda: {
        "active": BucketTotals(), "closed": BucketTotals(), "new matter": BucketTotals(),
    })
    by_band: Dict[str, int] = dataclass_field(default_factory=lambda: {
        BAND_HIGH: 0, BAND_MEDIUM: 0, BAND_LOW: 0, BAND_NONE: 0,
    })

    def as_dict(self) -> dict:
        return asdict(self)


def summarise_cases(cases: Iterable[Any]) -> PortfolioSummary:
    summary = PortfolioSummary()
    for case in cases:
        recovered = total_payments(case)
        summary.case_count += 1
        summary.total_original += to_decimal(field(case, "original_amount"))
        summary.total_costs += to_decimal(field(case, "costs_added"))
        summary.total_interest += to_decimal(field(case, "interest_added"))
        summary.total_fees += to_decimal(field(case, "fees_added"))
        summary.total_debt += total_debt(case)
        summary.total_recovered += recovered
        summary.total_outstanding += outstanding_amount(case)

        bucket = summary.by_status[status_bucket(field(case, "status"))]
        bucket.count += 1
        bucket.recovered += recovered

        summary.by_band[recovery_band(case_recovery_rate(case))] += 1

    summary.recovery_rate = recovery_rate(summary.total_recovered, summary.total_original)
    for name in ("total_original", "total_costs", "total_interest", "total_fees",
                 "total_debt", "total_recovered", "total_outstanding"):
        setattr(summary, name, money(getattr(summary, name)))
    return summary


def case_financials(case: Any) -> dict:
    """Per-case derived figures as served alongside case records"""
    rate = case_recovery_rate(case)
    return {
        "total_payments": money(total_payments(case)),
        "outstanding_amount": money(outstanding_amount(case)),
        "total_debt": money(total_debt(case)),
        "recovery_rate": rate,
        "recovery_band": recovery_band(rate),
    }


def recovery_rows(cases: Iterable[Any]) -> List[dict]:
    rows = []
    for case in cases:
        row = {
            "id": field(case, "id"),
            "account_number": text(case, "account_number"),
            "case_name": text(case, "case_name") or text(case, "debtor_name"),
            "organisation_name": text(case, "organisation_name"),
            "status": text(case, "status"),
            "stage": text(case, "stage"),
            "original_amount": money(field(case, "original_amount")),
        }
        row.update(case_financials(case))
        rows.append(row)
    return rows
