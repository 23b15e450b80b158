from fastapi import APIRouter, Depends, HTTPException, status, Request
from fastapi.responses import HTMLResponse, Response
from sqlalchemy.orm import Session, joinedload
from typing import Optional
from datetime import datetime

from ..config.database import get_db
from ..config.settings import settings
from ..config.logging import get_logger, log_report_operation
from ..models import User, Case, Organisation, AuditLog, AuditAction
from ..services.exports import (
    XLSX_CONTENT_TYPE, REPORT_TITLES, ExportError, export_filename, export_xlsx, render_print
)
from ..services.reports import (
    case_summary, filter_cases_by_created, monthly_statement, parse_month,
    payment_performance, recovery_analysis
)
from ..services.records import coerce_datetime, within_range
from ..utils.auth import get_client_ip_address
from .auth import get_current_user

router = APIRouter()
logger = get_logger('reports')

REPORT_NAMES = ("recovery-analysis", "payment-performance", "case-summary", "monthly-statement")


class ReportRequest:
    """Query parameters shared by every report and its export/print variants"""

    def __init__(
        self,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
        month: Optional[str] = None,
        organisation_id: Optional[str] = None,
    ):
        self.date_from = date_from
        self.date_to = date_to
        self.month = month
        self.organisation_id = organisation_id
        for label, value in (("date_from", date_from), ("date_to", date_to)):
            if value and coerce_datetime(value) is None:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=f"{label} must be an ISO date such as 2025-03-31"
                )


def _report_cases(db: Session, user: User, organisation_id: Optional[str]):
    query = db.query(Case).options(joinedload(Case.organisation), joinedload(Case.payments))
    if user.is_admin:
        if organisation_id:
            query = query.filter(Case.organisation_id == organisation_id)
    else:
        query = query.filter(Case.organisation_id == user.organisation_id, Case.is_archived.is_(False))
    return query.all()


def build_report(report_name: str, params: ReportRequest, user: User, db: Session) -> dict:
    """Run one of the named reports over the cases visible to the user"""
    if report_name not in REPORT_NAMES:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Report not found")
    cases = _report_cases(db, user, params.organisation_id)

    if report_name == "recovery-analysis":
        return recovery_analysis(filter_cases_by_created(cases, params.date_from, params.date_to))
    if report_name == "case-summary":
        return case_summary(filter_cases_by_created(cases, params.date_from, params.date_to))
    if report_name == "payment-performance":
        payments = [
            payment for case in cases for payment in case.payments
            if within_range(payment.payment_date, params.date_from, params.date_to)
        ]
        return payment_performance(payments)

    if params.month:
        try:
            year, month = parse_month(params.month)
        except ValueError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    else:
        today = datetime.utcnow()
        year, month = today.year, today.month
    return monthly_statement(cases, year, month)


def _organisation_name(db: Session, user: User, params: ReportRequest) -> Optional[str]:
    if user.is_admin:
        if not params.organisation_id:
            return "All organisations"
        organisation = db.get(Organisation, params.organisation_id)
        return organisation.name if organisation else None
    return user.organisation_name


def _date_bounds(report_name: str, report: dict, params: ReportRequest):
    """A monthly statement is bounded by its month"""
    if report_name == "monthly-statement":
        return report["period_start"], report["period_end"]
    return params.date_from, params.date_to


def _audit_export(db: Session, request: Request, user: User, report_name: str, export_format: str):
    AuditLog.log_action(
        db,
        action=AuditAction.DATA_EXPORT,
        user_id=user.id,
        organisation_id=user.organisation_id,
        resource_type="report",
        resource_id=report_name,
        details={"format": export_format},
        ip_address=get_client_ip_address(request),
    )
    db.commit()


@router.get("/{report_name}")
async def get_report(
    report_name: str,
    params: ReportRequest = Depends(),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Report data as JSON for the on-screen view"""
    return build_report(report_name, params, current_user, db)


@router.get("/{report_name}/export")
async def export_report(
    report_name: str,
    request: Request,
    params: ReportRequest = Depends(),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Download the report as an Excel workbook"""
    report = build_report(report_name, params, current_user, db)
    date_from, date_to = _date_bounds(report_name, report, params)
    try:
        content = export_xlsx(report_name, report, date_from, date_to)
    except ExportError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    _audit_export(db, request, current_user, report_name, "xlsx")
    log_report_operation(report_name, "xlsx", current_user.id, len(report.get("cases") or report.get("payments") or []))
    filename = export_filename(report_name, "xlsx")
    return Response(
        content=content,
        media_type=XLSX_CONTENT_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'}
    )


@router.get("/{report_name}/print", response_class=HTMLResponse)
async def print_report(
    report_name: str,
    request: Request,
    params: ReportRequest = Depends(),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Self-contained printable HTML for the report"""
    report = build_report(report_name, params, current_user, db)
    date_from, date_to = _date_bounds(report_name, report, params)
    try:
        html = render_print(
            report_name,
            report,
            title=REPORT_TITLES[report_name],
            app_name=settings.app_name,
            organisation_name=_organisation_name(db, current_user, params),
            date_from=date_from,
            date_to=date_to,
        )
    except ExportError as e:
        logger.error("Print view for %s failed: %s", report_name, e)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to render report")

    _audit_export(db, request, current_user, report_name, "print")
    log_report_operation(report_name, "print", current_user.id)
    return HTMLResponse(content=html)
