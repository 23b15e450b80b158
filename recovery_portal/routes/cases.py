from fastapi import APIRouter, Depends, HTTPException, status, Request, UploadFile, File, Query
from fastapi.responses import HTMLResponse
from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload
from pydantic import ValidationError
from typing import Dict, List, Optional
from datetime import datetime, timedelta
from decimal import Decimal
import json

from ..config.database import get_db
from ..config.settings import settings
from ..config.logging import log_case_operation, get_logger
from ..models import (
    User, Case, CaseActivity, Payment, Message, Document, Organisation,
    AuditLog, AuditAction, Notification, NotificationType, generate_account_number
)
from ..schemas.case import (
    CaseCreate, CaseResponse, CaseDetailResponse, CaseListResponse, ActivityResponse,
    PaymentCreate, PaymentResponse, case_to_response, case_to_detail
)
from ..schemas.common import PageResponse
from ..schemas.document import DocumentResponse, document_to_response
from ..schemas.message import MessageResponse, message_to_response
from ..services.case_search import filter_cases, paginate
from ..services.document_service import DocumentService, PendingUpload, read_upload, admins_and_members
from ..services.exports import ExportError, render_print
from ..services.reports import case_statement
from ..utils.auth import get_client_ip_address
from ..utils.document_storage import DocumentStorage, StorageError, get_document_storage
from ..utils.file_utils import FileValidationError
from .auth import get_current_user, get_current_admin

router = APIRouter()
logger = get_logger('cases')


def visible_cases_query(db: Session, user: User, include_archived: bool = False):
    """Cases the user may see; archived cases only for admins who ask for them"""
    query = db.query(Case).options(joinedload(Case.organisation), joinedload(Case.payments))
    if not user.is_admin:
        query = query.filter(Case.organisation_id == user.organisation_id)
    if not (user.is_admin and include_archived):
        query = query.filter(Case.is_archived.is_(False))
    return query


def get_case_for_user(db: Session, case_id: str, user: User) -> Case:
    """Load a case or 404 when it does not exist or is not visible to the user"""
    case = db.get(Case, case_id)
    if not case or not user.can_access_organisation(case.organisation_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Case not found")
    if case.is_archived and not user.is_admin:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Case not found")
    return case


def last_activity_times(db: Session, cases: List[Case]) -> Dict[str, datetime]:
    """Latest of case update, newest message and newest activity, per case"""
    ids = [case.id for case in cases]
    if not ids:
        return {}
    latest = {case.id: case.updated_at or case.created_at for case in cases}
    for model in (Message, CaseActivity):
        rows = (
            db.query(model.case_id, func.max(model.created_at))
            .filter(model.case_id.in_(ids))
            .group_by(model.case_id)
            .all()
        )
        for case_id, when in rows:
            if when and (latest.get(case_id) is None or when > latest[case_id]):
                latest[case_id] = when
    return latest


def _unique_account_number(db: Session) -> str:
    now = datetime.utcnow()
    for attempt in range(20):
        candidate = generate_account_number(now + timedelta(milliseconds=attempt))
        if not db.query(Case.id).filter(Case.account_number == candidate).first():
            return candidate
    raise HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Could not allocate an account number"
    )


async def _parse_case_submission(request: Request):
    """Accept either a JSON body or a multipart form with a case_data JSON field plus files"""
    content_type = request.headers.get("content-type", "")
    uploads = []
    if content_type.startswith("multipart/form-data"):
        form = await request.form()
        raw = form.get("case_data") or form.get("caseData")
        if not raw:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="case_data is required")
        try:
            data = json.loads(raw)
        except (TypeError, ValueError):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="case_data must be valid JSON")
        uploads = [item for item in form.getlist("files") if hasattr(item, "filename") and item.filename]
    else:
        try:
            data = await request.json()
        except ValueError:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Request body must be valid JSON")

    try:
        case_in = CaseCreate.model_validate(data)
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=json.loads(e.json(include_url=False))
        )
    return case_in, uploads


@router.get("", response_model=CaseListResponse)
async def list_cases(
    search: Optional[str] = None,
    status_filter: str = Query("active", alias="status"),
    stage: str = "all",
    organisation_id: Optional[str] = None,
    include_archived: bool = False,
    page: int = 1,
    page_size: Optional[int] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """List the user's cases, most recently active first, filtered and paginated"""
    cases = visible_cases_query(db, current_user, include_archived).all()
    activity = last_activity_times(db, cases)
    cases.sort(key=lambda case: activity.get(case.id) or datetime.min, reverse=True)

    filtered = filter_cases(
        cases,
        search=search,
        status=status_filter,
        stage=stage,
        organisation_id=organisation_id if current_user.is_admin else None,
    )
    size = settings.cases_page_size if page_size is None else page_size
    if size < 1 or size > 200:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="page_size must be between 1 and 200")
    result = paginate(filtered, page, size)
    items = [case_to_response(case, activity.get(case.id)) for case in result.items]
    return PageResponse[CaseResponse].from_page(result, items)


@router.post("", response_model=CaseDetailResponse, status_code=status.HTTP_201_CREATED)
async def create_case(
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    storage: DocumentStorage = Depends(get_document_storage)
):
    """Submit a new case, optionally with supporting documents"""
    case_in, uploads = await _parse_case_submission(request)

    if current_user.is_admin:
        organisation_id = case_in.organisation_id or current_user.organisation_id
    else:
        organisation_id = current_user.organisation_id
    if not organisation_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="An organisation is required to submit a case"
        )
    if not db.get(Organisation, organisation_id):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Organisation not found")

    if case_in.account_number:
        if db.query(Case.id).filter(Case.account_number == case_in.account_number).first():
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"Account number {case_in.account_number} already exists"
            )
        account_number = case_in.account_number
    else:
        account_number = _unique_account_number(db)

    # Validate every file before anything is written
    try:
        pending: List[PendingUpload] = [await read_upload(upload) for upload in uploads]
    except FileValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    data = case_in.model_dump(exclude={"organisation_id", "account_number"})
    case = Case(account_number=account_number, organisation_id=organisation_id, **data)
    db.add(case)
    db.flush()

    CaseActivity.record(
        db,
        case_id=case.id,
        activity_type="case_created",
        description=f"Case submitted for {case.debtor_name}",
        performed_by=current_user.id,
    )

    service = DocumentService(db, storage)
    try:
        for upload in pending:
            await service.store(upload, organisation_id, case, current_user)
    except StorageError as e:
        db.rollback()
        logger.error("Case submission failed while storing documents: %s", e)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to store uploaded documents"
        )

    Notification.notify_users(
        db,
        db.query(User).filter(User.is_admin.is_(True)).all(),
        type=NotificationType.CASE_CREATED,
        title="New case submitted",
        message=f"{current_user.full_name} submitted {account_number} ({case.debtor_name})",
        case_id=case.id,
        exclude_user_id=current_user.id,
    )
    AuditLog.log_action(
        db,
        action=AuditAction.CASE_CREATED,
        user_id=current_user.id,
        organisation_id=organisation_id,
        resource_type="case",
        resource_id=case.id,
        case_id=case.id,
        description=f"Case {account_number} created with {len(pending)} document(s)",
        ip_address=get_client_ip_address(request),
    )
    db.commit()
    db.refresh(case)

    log_case_operation("create", case.id, current_user.id,
                       f"account={account_number} documents={len(pending)}",
                       get_client_ip_address(request))
    return case_to_detail(case)


@router.get("/{case_id}", response_model=CaseDetailResponse)
async def get_case(
    case_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    case = get_case_for_user(db, case_id, current_user)
    return case_to_detail(case, last_activity_times(db, [case]).get(case.id))


@router.get("/{case_id}/activities", response_model=List[ActivityResponse])
async def get_case_activities(
    case_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    case = get_case_for_user(db, case_id, current_user)
    return [ActivityResponse.from_model(activity) for activity in case.activities]


@router.get("/{case_id}/messages", response_model=List[MessageResponse])
async def get_case_messages(
    case_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    case = get_case_for_user(db, case_id, current_user)
    messages = (
        db.query(Message)
        .filter(Message.case_id == case.id)
        .order_by(Message.created_at.desc())
        .all()
    )
    return [message_to_response(message) for message in messages]


@router.get("/{case_id}/documents", response_model=List[DocumentResponse])
async def get_case_documents(
    case_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    case = get_case_for_user(db, case_id, current_user)
    documents = (
        db.query(Document)
        .filter(Document.case_id == case.id)
        .order_by(Document.created_at.desc())
        .all()
    )
    return [document_to_response(document) for document in documents]


@router.post("/{case_id}/documents", response_model=List[DocumentResponse], status_code=status.HTTP_201_CREATED)
async def upload_case_documents(
    case_id: str,
    request: Request,
    files: List[UploadFile] = File(...),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    storage: DocumentStorage = Depends(get_document_storage)
):
    """Attach one or more documents to a case"""
    case = get_case_for_user(db, case_id, current_user)
    try:
        pending = [await read_upload(upload) for upload in files]
    except FileValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    service = DocumentService(db, storage)
    try:
        documents = [await service.store(item, case.organisation_id, case, current_user) for item in pending]
    except StorageError as e:
        db.rollback()
        logger.error("Document upload failed for case %s: %s", case.id, e)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to store document")

    for document in documents:
        AuditLog.log_action(
            db,
            action=AuditAction.FILE_UPLOADED,
            user_id=current_user.id,
            organisation_id=case.organisation_id,
            resource_type="document",
            resource_id=document.id,
            case_id=case.id,
            filename=document.file_name,
            ip_address=get_client_ip_address(request),
        )
    db.commit()
    return [document_to_response(document) for document in documents]


@router.get("/{case_id}/payments", response_model=List[PaymentResponse])
async def get_case_payments(
    case_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    case = get_case_for_user(db, case_id, current_user)
    return [PaymentResponse.from_model(payment) for payment in case.payments]


@router.post("/{case_id}/payments", response_model=PaymentResponse, status_code=status.HTTP_201_CREATED)
async def record_payment(
    case_id: str,
    payment_in: PaymentCreate,
    request: Request,
    current_admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    """Record a payment received against a case (admin only)"""
    case = get_case_for_user(db, case_id, current_admin)
    payment = Payment(
        case_id=case.id,
        organisation_id=case.organisation_id,
        amount=payment_in.amount,
        payment_date=payment_in.payment_date or datetime.utcnow(),
        payment_method=payment_in.payment_method,
        reference=payment_in.reference,
        notes=payment_in.notes,
        recorded_by=current_admin.id,
    )
    db.add(payment)
    db.flush()

    # A stored balance stays authoritative, so keep it in step with the payment
    if case.outstanding_amount is not None:
        case.outstanding_amount = max(case.outstanding_amount - payment_in.amount, Decimal("0"))

    CaseActivity.record(
        db,
        case_id=case.id,
        activity_type="payment_recorded",
        description=f"Payment of £{payment_in.amount:,.2f} recorded",
        performed_by=current_admin.id,
    )
    Notification.notify_users(
        db,
        db.query(User).filter(User.organisation_id == case.organisation_id).all(),
        type=NotificationType.PAYMENT_RECORDED,
        title="Payment received",
        message=f"A payment of £{payment_in.amount:,.2f} was received on {case.account_number}",
        case_id=case.id,
        data={"payment_id": payment.id},
    )
    AuditLog.log_action(
        db,
        action=AuditAction.PAYMENT_RECORDED,
        user_id=current_admin.id,
        organisation_id=case.organisation_id,
        resource_type="payment",
        resource_id=payment.id,
        case_id=case.id,
        details={"amount": str(payment_in.amount)},
        ip_address=get_client_ip_address(request),
    )
    db.commit()
    db.refresh(payment)
    log_case_operation("payment", case.id, current_admin.id, f"amount={payment_in.amount}")
    return PaymentResponse.from_model(payment)


@router.get("/{case_id}/print", response_class=HTMLResponse)
async def print_case_statement(
    case_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Printable statement for a single case, opened in a new tab"""
    case = get_case_for_user(db, case_id, current_user)
    statement = case_statement(case, case.activities)
    try:
        html = render_print(
            "case-statement",
            statement,
            title=f"Case Statement: {case.display_name}",
            app_name=settings.app_name,
        )
    except ExportError as e:
        logger.error("Case statement render failed for %s: %s", case.id, e)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to generate statement")
    return HTMLResponse(content=html)
