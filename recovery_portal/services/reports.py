"""Aggregate reports over cases and payments.

Every report takes already-loaded records and returns plain dicts, so the API
can serve them as JSON and the export service can turn them into sheets or a
printable page without touching the database again.
"""
from __future__ import annotations

import calendar
from collections import OrderedDict
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Iterable, List, Optional

from .case_search import debtor_type_label, stage_badge
from .financials import (
    case_financials,
    is_closed,
    outstanding_amount,
    recovery_rows,
    status_bucket,
    summarise_cases,
    total_payments,
)
from .records import ZERO, coerce_datetime, field, money, text, to_decimal, within_range

NOT_SPECIFIED = "Not Specified"


def dashboard_stats(cases: Iterable[Any]) -> dict:
    """Headline figures: open/closed counts, outstanding and recovered on open cases; archived cases never count"""
    active = closed = 0
    outstanding = recovered = ZERO
    for case in cases:
        if field(case, "is_archived", False):
            continue
        if is_closed(field(case, "status")):
            closed += 1
            continue
        active += 1
        outstanding += outstanding_amount(case)
        recovered += total_payments(case)
    return {
        "active_cases": active,
        "closed_cases": closed,
        "total_cases": active + closed,
        "total_outstanding": money(outstanding),
        "total_recovery": money(recovered),
    }


def filter_cases_by_created(cases: Iterable[Any], date_from: Any = None, date_to: Any = None) -> List[Any]:
    return [case for case in cases if within_range(field(case, "created_at"), date_from, date_to)]


def recovery_analysis(cases: Iterable[Any]) -> dict:
    cases = list(cases)
    summary = summarise_cases(cases)
    rows = recovery_rows(cases)
    rows.sort(key=lambda row: row["recovery_rate"], reverse=True)
    return {"summary": summary.as_dict(), "cases": rows}


def payment_date(payment: Any) -> Optional[datetime]:
    return coerce_datetime(field(payment, "payment_date")) or coerce_datetime(field(payment, "created_at"))


def payment_row(payment: Any) -> dict:
    case = field(payment, "case")
    return {
        "id": field(payment, "id"),
        "case_id": field(payment, "case_id"),
        "account_number": text(case, "account_number") or text(payment, "account_number"),
        "case_name": (text(case, "case_name") or text(case, "debtor_name")) if case is not None else text(payment, "case_name"),
        "amount": money(field(payment, "amount")),
        "payment_date": payment_date(payment),
        "payment_method": text(payment, "payment_method").strip() or NOT_SPECIFIED,
        "reference": text(payment, "reference"),
        "notes": text(payment, "notes"),
    }


def payment_performance(payments: Iterable[Any], now: Optional[datetime] = None) -> dict:
    """Totals, rolling windows, method breakdown and monthly trend of payments"""
    now = now or datetime.utcnow()
    rows = [payment_row(payment) for payment in payments]
    rows.sort(key=lambda row: row["payment_date"] or datetime.min, reverse=True)

    total = sum((row["amount"] for row in rows), ZERO)
    windows = {30: ZERO, 60: ZERO, 90: ZERO}
    by_method = OrderedDict()
    by_month = {}

    for row in rows:
        when = row["payment_date"]
        if when is not None:
            for days in windows:
                if when >= now - timedelta(days=days):
                    windows[days] += row["amount"]
            key = (when.year, when.month)
            bucket = by_month.setdefault(key, {"total": ZERO, "count": 0})
            bucket["total"] += row["amount"]
            bucket["count"] += 1

        method = by_method.setdefault(row["payment_method"], {"total": ZERO, "count": 0})
        method["total"] += row["amount"]
        method["count"] += 1

    count = len(rows)
    methods = [
        {
            "method": name,
            "total": money(values["total"]),
            "count": values["count"],
            "percentage": float(round(values["total"] / total * 100, 2)) if total > 0 else 0.0,
        }
        for name, values in sorted(by_method.items(), key=lambda item: item[1]["total"], reverse=True)
    ]
    trends = [
        {
            "month": f"{calendar.month_abbr[month]} {year}",
            "key": f"{year:04d}-{month:02d}",
            "total": money(values["total"]),
            "count": values["count"],
        }
        for (year, month), values in sorted(by_month.items())
    ]
    return {
        "total_amount": money(total),
        "payment_count": count,
        "average_payment": money(total / count) if count else money(ZERO),
        "last_30_days": money(windows[30]),
        "last_60_days": money(windows[60]),
        "last_90_days": money(windows[90]),
        "by_method": methods,
        "monthly_trends": trends,
        "payments": rows,
    }


def month_bounds(year: int, month: int):
    if not 1 <= month <= 12:
        raise ValueError(f"Invalid month: {month}")
    start = datetime(year, month, 1)
    last_day = calendar.monthrange(year, month)[1]
    end = datetime(year, month, last_day, 23, 59, 59, 999999)
    return start, end


def parse_month(value: str):
    """Parse 'YYYY-MM' into (year, month)"""
    try:
        year_text, month_text = value.strip().split("-")
        year, month = int(year_text), int(month_text)
    except (AttributeError, ValueError):
        raise ValueError(f"Month must be formatted YYYY-MM, got {value!r}")
    month_bounds(year, month)
    return year, month


def _case_row(case: Any) -> dict:
    row = {
        "id": field(case, "id"),
        "account_number": text(case, "account_number"),
        "case_name": text(case, "case_name") or text(case, "debtor_name"),
        "debtor_name": text(case, "debtor_name"),
        "organisation_name": text(case, "organisation_name"),
        "status": text(case, "status"),
        "stage": stage_badge(field(case, "status"), field(case, "stage")).label,
        "original_amount": money(field(case, "original_amount")),
        "created_at": coerce_datetime(field(case, "created_at")),
        "updated_at": coerce_datetime(field(case, "updated_at")),
    }
    row.update(case_financials(case))
    return row


def monthly_statement(cases: Iterable[Any], year: int, month: int) -> dict:
    """New cases, payments received and cases closed within one calendar month"""
    start, end = month_bounds(year, month)
    new_cases, closed_cases, payments = [], [], []

    for case in cases:
        created = coerce_datetime(field(case, "created_at"))
        if created is not None and start <= created <= end:
            new_cases.append(_case_row(case))
        updated = coerce_datetime(field(case, "updated_at"))
        if is_closed(field(case, "status")) and updated is not None and start <= updated <= end:
            closed_cases.append(_case_row(case))
        for payment in field(case, "payments", ()) or ():
            when = payment_date(payment)
            if when is not None and start <= when <= end:
                row = payment_row(payment)
                row["account_number"] = row["account_number"] or text(case, "account_number")
                row["case_name"] = row["case_name"] or text(case, "case_name") or text(case, "debtor_name")
                payments.append(row)

    payments.sort(key=lambda row: row["payment_date"])
    payments_total = sum((row["amount"] for row in payments), ZERO)
    new_value = sum((row["original_amount"] for row in new_cases), ZERO)
    return {
        "period": f"{calendar.month_name[month]} {year}",
        "period_start": start,
        "period_end": end,
        "new_cases": new_cases,
        "payments": payments,
        "closed_cases": closed_cases,
        "totals": {
            "new_cases_count": len(new_cases),
            "new_cases_value": money(new_value),
            "payments_count": len(payments),
            "payments_total": money(payments_total),
            "closed_cases_count": len(closed_cases),
        },
    }


def case_summary(cases: Iterable[Any]) -> dict:
    """Counts by status bucket, stage and debtor type with portfolio totals"""
    cases = list(cases)
    by_status, by_stage, by_debtor_type = {}, {}, {}
    for case in cases:
        bucket = status_bucket(field(case, "status"))
        by_status[bucket] = by_status.get(bucket, 0) + 1
        stage = stage_badge(field(case, "status"), field(case, "stage")).label
        by_stage[stage] = by_stage.get(stage, 0) + 1
        debtor = debtor_type_label(field(case, "debtor_type"))
        by_debtor_type[debtor] = by_debtor_type.get(debtor, 0) + 1

    return {
        "summary": summarise_cases(cases).as_dict(),
        "by_status": by_status,
        "by_stage": dict(sorted(by_stage.items())),
        "by_debtor_type": dict(sorted(by_debtor_type.items())),
        "cases": [_case_row(case) for case in cases],
    }


def case_statement(case: Any, activities: Iterable[Any] = ()) -> dict:
    """Single-case statement used by the print view"""
    payments = [payment_row(payment) for payment in field(case, "payments", ()) or ()]
    payments.sort(key=lambda row: row["payment_date"] or datetime.min)
    return {
        "case": _case_row(case),
        "debtor": {
            "name": text(case, "debtor_name"),
            "email": text(case, "debtor_email"),
            "phone": text(case, "debtor_phone"),
            "address": text(case, "debtor_address"),
            "type": debtor_type_label(field(case, "debtor_type")),
        },
        "charges": {
            "original_amount": money(field(case, "original_amount")),
            "costs_added": money(field(case, "costs_added")),
            "interest_added": money(field(case, "interest_added")),
            "fees_added": money(field(case, "fees_added")),
        },
        "payments": payments,
        "activities": [
            {
                "activity_type": text(activity, "activity_type"),
                "description": text(activity, "description"),
                "created_at": coerce_datetime(field(activity, "created_at")),
            }
            for activity in activities
        ],
    }


def to_float(value: Any) -> float:
    if isinstance(value, Decimal):
        return float(value)
    return float(to_decimal(value))
