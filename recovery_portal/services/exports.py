"""Spreadsheet and printable exports of the portal reports."""
from __future__ import annotations

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Iterable, List, Optional, Sequence

from tablib import Databook, Dataset

from ..utils.report_template_engine import ReportTemplateEngine, template_engine
from .records import range_end, range_start

logger = logging.getLogger(__name__)

XLSX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

REPORT_TITLES = {
    "recovery-analysis": "Recovery Analysis",
    "payment-performance": "Payment Performance",
    "case-summary": "Case Summary",
    "monthly-statement": "Monthly Statement",
    "case-statement": "Case Statement",
}


class ExportError(Exception):
    """Raised when an export cannot be produced from the given inputs."""


def require_date_bound(date_from: Any = None, date_to: Any = None) -> None:
    """Spreadsheet exports need at least one usable end of the reporting period"""
    for label, value, parse in (("start", date_from, range_start), ("end", date_to, range_end)):
        if value not in (None, "") and parse(value) is None:
            raise ExportError(f"Invalid {label} date: {value}")
    if range_start(date_from) is None and range_end(date_to) is None:
        raise ExportError("Select a start or end date before exporting to Excel")


def export_filename(report: str, extension: str, today: Optional[date] = None) -> str:
    """e.g. payment-performance-report-2025-03-31.xlsx"""
    today = today or date.today()
    return f"{report}-report-{today.isoformat()}.{extension}"


def _cell(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, datetime):
        return value.strftime("%d/%m/%Y")
    if isinstance(value, date):
        return value.strftime("%d/%m/%Y")
    return value


def build_sheet(title: str, headers: Sequence[str], rows: Iterable[Sequence[Any]]) -> Dataset:
    dataset = Dataset(title=title[:31])
    dataset.headers = list(headers)
    for row in rows:
        dataset.append([_cell(value) for value in row])
    return dataset


def _summary_sheet(pairs: Iterable[Sequence[Any]]) -> Dataset:
    return build_sheet("Summary", ["Metric", "Value"], pairs)


def recovery_analysis_book(report: dict) -> Databook:
    summary = report["summary"]
    pairs = [
        ("Cases", summary["case_count"]),
        ("Total original debt", summary["total_original"]),
        ("Costs added", summary["total_costs"]),
        ("Interest added", summary["total_interest"]),
        ("Fees added", summary["total_fees"]),
        ("Total debt", summary["total_debt"]),
        ("Total recovered", summary["total_recovered"]),
        ("Total outstanding", summary["total_outstanding"]),
        ("Recovery rate (%)", summary["recovery_rate"]),
    ]
    for name, bucket in summary["by_status"].items():
        pairs.append((f"{name.title()} cases", bucket["count"]))
        pairs.append((f"{name.title()} recovered", bucket["recovered"]))
    cases = build_sheet(
        "Case Details",
        ["Account Number", "Case", "Organisation", "Status", "Stage", "Original Amount",
         "Total Debt", "Recovered", "Outstanding", "Recovery Rate (%)", "Band"],
        (
            (row["account_number"], row["case_name"], row["organisation_name"], row["status"], row["stage"],
             row["original_amount"], row["total_debt"], row["total_payments"], row["outstanding_amount"],
             row["recovery_rate"], row["recovery_band"])
            for row in report["cases"]
        ),
    )
    return Databook([_summary_sheet(pairs), cases])


def payment_performance_book(report: dict) -> Databook:
    summary = _summary_sheet([
        ("Total received", report["total_amount"]),
        ("Number of payments", report["payment_count"]),
        ("Average payment", report["average_payment"]),
        ("Last 30 days", report["last_30_days"]),
        ("Last 60 days", report["last_60_days"]),
        ("Last 90 days", report["last_90_days"]),
    ])
    details = build_sheet(
        "Payment Details",
        ["Date", "Account Number", "Case", "Amount", "Method", "Reference", "Notes"],
        (
            (row["payment_date"], row["account_number"], row["case_name"], row["amount"],
             row["payment_method"], row["reference"], row["notes"])
            for row in report["payments"]
        ),
    )
    methods = build_sheet(
        "Payment Methods",
        ["Method", "Payments", "Total", "Share (%)"],
        ((row["method"], row["count"], row["total"], row["percentage"]) for row in report["by_method"]),
    )
    trends = build_sheet(
        "Monthly Trends",
        ["Month", "Payments", "Total"],
        ((row["month"], row["count"], row["total"]) for row in report["monthly_trends"]),
    )
    return Databook([summary, details, methods, trends])


def case_summary_book(report: dict) -> Databook:
    summary = report["summary"]
    pairs: List[Sequence[Any]] = [
        ("Cases", summary["case_count"]),
        ("Total debt", summary["total_debt"]),
        ("Total recovered", summary["total_recovered"]),
        ("Total outstanding", summary["total_outstanding"]),
    ]
    pairs += [(f"Status: {name.title()}", count) for name, count in report["by_status"].items()]
    pairs += [(f"Stage: {name}", count) for name, count in report["by_stage"].items()]
    pairs += [(f"Debtor type: {name}", count) for name, count in report["by_debtor_type"].items()]
    cases = build_sheet(
        "Case Details",
        ["Account Number", "Case", "Debtor", "Organisation", "Status", "Stage", "Original Amount",
         "Recovered", "Outstanding", "Created"],
        (
            (row["account_number"], row["case_name"], row["debtor_name"], row["organisation_name"], row["status"],
             row["stage"], row["original_amount"], row["total_payments"], row["outstanding_amount"], row["created_at"])
            for row in report["cases"]
        ),
    )
    return Databook([_summary_sheet(pairs), cases])


def monthly_statement_book(report: dict) -> Databook:
    totals = report["totals"]
    summary = _summary_sheet([
        ("Period", report["period"]),
        ("New cases", totals["new_cases_count"]),
        ("New case value", totals["new_cases_value"]),
        ("Payments received", totals["payments_count"]),
        ("Payments total", totals["payments_total"]),
        ("Cases closed", totals["closed_cases_count"]),
    ])
    new_cases = build_sheet(
        "New Cases",
        ["Account Number", "Case", "Opened", "Original Amount"],
        ((row["account_number"], row["case_name"], row["created_at"], row["original_amount"])
         for row in report["new_cases"]),
    )
    payments = build_sheet(
        "Payments",
        ["Date", "Account Number", "Method", "Reference", "Amount"],
        ((row["payment_date"], row["account_number"], row["payment_method"], row["reference"], row["amount"])
         for row in report["payments"]),
    )
    closed = build_sheet(
        "Closed Cases",
        ["Account Number", "Case", "Recovered", "Outstanding"],
        ((row["account_number"], row["case_name"], row["total_payments"], row["outstanding_amount"])
         for row in report["closed_cases"]),
    )
    return Databook([summary, new_cases, payments, closed])


BOOK_BUILDERS = {
    "recovery-analysis": recovery_analysis_book,
    "payment-performance": payment_performance_book,
    "case-summary": case_summary_book,
    "monthly-statement": monthly_statement_book,
}


def export_xlsx(report_name: str, report: dict, date_from: Any = None, date_to: Any = None) -> bytes:
    """Build the workbook for a report; refuses to run without a date bound"""
    require_date_bound(date_from, date_to)
    try:
        builder = BOOK_BUILDERS[report_name]
    except KeyError:
        raise ExportError(f"Unknown report: {report_name}")
    book = builder(report)
    logger.info("Exporting %s workbook with %s sheets", report_name, len(book.sheets()))
    return book.export("xlsx")


PRINT_TEMPLATES = {
    "recovery-analysis": "recovery_analysis.html",
    "payment-performance": "payment_performance.html",
    "case-summary": "case_summary.html",
    "monthly-statement": "monthly_statement.html",
    "case-statement": "case_statement.html",
}


def render_print(report_name: str, report: dict, engine: ReportTemplateEngine = None, **context) -> str:
    """Render a self-contained printable HTML page for a report"""
    engine = engine or template_engine
    template = PRINT_TEMPLATES.get(report_name)
    if template is None:
        raise ExportError(f"Unknown report: {report_name}")
    page_context = dict(report)
    page_context.setdefault("title", REPORT_TITLES[report_name])
    page_context.update(context)
    html = engine.render_template(template, page_context)
    if html is None:
        raise ExportError(f"Could not render {report_name} for printing")
    return html
