from fastapi import APIRouter, Depends, HTTPException, status, Query, Request
from sqlalchemy import func
from sqlalchemy.orm import Session
from pydantic import BaseModel, EmailStr, Field
from typing import List, Optional
from datetime import datetime

from ..config.database import get_db
from ..config.logging import get_logger, log_case_operation, log_message_operation, log_document_operation
from ..models import (
    User, UserStatus, Organisation, Case, CaseActivity, Message, Document, Payment,
    AuditLog, AuditAction
)
from ..schemas.case import CaseListResponse
from ..schemas.common import Money
from ..services.document_service import DocumentService
from ..services.reports import dashboard_stats
from ..utils.auth import hash_password, generate_temporary_password, get_client_ip_address
from ..utils.document_storage import DocumentStorage, StorageError, get_document_storage
from .auth import get_current_admin, UserResponse, user_to_response
from .cases import list_cases

router = APIRouter()
logger = get_logger('admin')


class CreateUserRequest(BaseModel):
    email: EmailStr
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    organisation_id: Optional[str] = None
    is_admin: bool = False


class CreateUserResponse(BaseModel):
    user: UserResponse
    temporary_password: str


class AssignOrganisationRequest(BaseModel):
    organisation_id: Optional[str] = None


class AdminRoleRequest(BaseModel):
    is_admin: bool


class OrganisationCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    contact_email: Optional[EmailStr] = None
    contact_phone: Optional[str] = None
    address: Optional[str] = None


class OrganisationResponse(BaseModel):
    id: str
    name: str
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None
    address: Optional[str] = None
    user_count: int = 0
    case_count: int = 0
    created_at: datetime


class AdminStatsResponse(BaseModel):
    total_users: int
    admin_users: int
    total_organisations: int
    total_cases: int
    active_cases: int
    closed_cases: int
    archived_cases: int
    total_outstanding: Money
    total_recovery: Money
    total_payments: int
    total_messages: int
    total_documents: int


class AuditLogResponse(BaseModel):
    id: str
    action: str
    user_id: Optional[str] = None
    user_email: Optional[str] = None
    organisation_id: Optional[str] = None
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None
    case_id: Optional[str] = None
    description: Optional[str] = None
    ip_address: Optional[str] = None
    success: bool
    created_at: datetime


def _get_user(db: Session, user_id: str) -> User:
    user = db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


def _get_case(db: Session, case_id: str) -> Case:
    case = db.get(Case, case_id)
    if not case:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Case not found")
    return case


def _require_organisation(db: Session, organisation_id: Optional[str]) -> Optional[Organisation]:
    if not organisation_id:
        return None
    organisation = db.get(Organisation, organisation_id)
    if not organisation:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Organisation not found")
    return organisation


def _organisation_response(organisation: Organisation, user_count: int = 0, case_count: int = 0) -> OrganisationResponse:
    return OrganisationResponse(
        id=organisation.id,
        name=organisation.name,
        contact_email=organisation.contact_email,
        contact_phone=organisation.contact_phone,
        address=organisation.address,
        user_count=user_count,
        case_count=case_count,
        created_at=organisation.created_at,
    )


# Users

@router.get("/users", response_model=List[UserResponse])
async def list_users(
    organisation_id: Optional[str] = None,
    search: Optional[str] = None,
    current_admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    """List portal users, optionally for one organisation"""
    query = db.query(User)
    if organisation_id:
        query = query.filter(User.organisation_id == organisation_id)
    needle = (search or "").strip().lower()
    users = query.order_by(User.email).all()
    if needle:
        users = [user for user in users if needle in user.email.lower() or needle in user.full_name.lower()]
    return [user_to_response(user) for user in users]


@router.post("/users", response_model=CreateUserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    user_in: CreateUserRequest,
    request: Request,
    current_admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    """Create a user with a temporary password they must change on first login"""
    email = user_in.email.lower()
    if db.query(User).filter(User.email == email).first():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="User with this email already exists"
        )
    _require_organisation(db, user_in.organisation_id)
    if not user_in.is_admin and not user_in.organisation_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Client users must belong to an organisation"
        )

    temporary_password = generate_temporary_password()
    user = User(
        email=email,
        first_name=user_in.first_name,
        last_name=user_in.last_name,
        phone=user_in.phone,
        organisation_id=user_in.organisation_id,
        is_admin=user_in.is_admin,
        status=UserStatus.ACTIVE,
        password_hash=hash_password(temporary_password),
        must_change_password=True,
    )
    db.add(user)
    db.flush()
    AuditLog.log_action(
        db,
        action=AuditAction.ACCOUNT_CREATED,
        user_id=current_admin.id,
        organisation_id=user.organisation_id,
        resource_type="user",
        resource_id=user.id,
        description=f"Account created for {email} by {current_admin.email}",
        ip_address=get_client_ip_address(request),
    )
    db.commit()
    db.refresh(user)
    logger.info("User %s created by admin %s", user.id, current_admin.id)
    return CreateUserResponse(user=user_to_response(user), temporary_password=temporary_password)


@router.put("/users/{user_id}/organisation", response_model=UserResponse)
async def assign_user_organisation(
    user_id: str,
    assignment: AssignOrganisationRequest,
    request: Request,
    current_admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    """Move a user into an organisation (or out of one, for admins)"""
    user = _get_user(db, user_id)
    organisation = _require_organisation(db, assignment.organisation_id)
    if organisation is None and not user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Client users must belong to an organisation"
        )

    previous = user.organisation_id
    user.organisation_id = organisation.id if organisation else None
    AuditLog.log_action(
        db,
        action=AuditAction.USER_ASSIGNED,
        user_id=current_admin.id,
        organisation_id=user.organisation_id,
        resource_type="user",
        resource_id=user.id,
        details={"from": previous, "to": user.organisation_id},
        ip_address=get_client_ip_address(request),
    )
    db.commit()
    db.refresh(user)
    return user_to_response(user)


@router.put("/users/{user_id}/admin", response_model=UserResponse)
async def set_user_admin(
    user_id: str,
    role: AdminRoleRequest,
    request: Request,
    current_admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    """Grant or revoke admin rights"""
    user = _get_user(db, user_id)
    if user.id == current_admin.id and not role.is_admin:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="You cannot remove your own admin access"
        )
    if not role.is_admin and not user.organisation_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Assign the user to an organisation before removing admin access"
        )

    user.is_admin = role.is_admin
    AuditLog.log_action(
        db,
        action=AuditAction.USER_ROLE_CHANGED,
        user_id=current_admin.id,
        organisation_id=user.organisation_id,
        resource_type="user",
        resource_id=user.id,
        description=f"{'Granted' if role.is_admin else 'Revoked'} admin access for {user.email}",
        ip_address=get_client_ip_address(request),
    )
    db.commit()
    db.refresh(user)
    return user_to_response(user)


@router.put("/users/{user_id}/status", response_model=UserResponse)
async def update_user_status(
    user_id: str,
    request: Request,
    user_status: str = Query(...),
    current_admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    """Suspend or reactivate a user"""
    if user_status not in ('active', 'suspended'):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Status must be 'active' or 'suspended'"
        )
    user = _get_user(db, user_id)
    if user.id == current_admin.id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="You cannot suspend your own account"
        )

    user.status = UserStatus(user_status)
    AuditLog.log_action(
        db,
        action=AuditAction.ACCOUNT_UPDATED,
        user_id=current_admin.id,
        organisation_id=user.organisation_id,
        resource_type="user",
        resource_id=user.id,
        description=f"Account {user_status} by admin {current_admin.email} for user {user.email}",
        ip_address=get_client_ip_address(request),
    )
    db.commit()
    db.refresh(user)
    return user_to_response(user)


# Organisations

@router.get("/organisations", response_model=List[OrganisationResponse])
async def list_organisations(
    current_admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    user_counts = dict(db.query(User.organisation_id, func.count(User.id)).group_by(User.organisation_id).all())
    case_counts = dict(db.query(Case.organisation_id, func.count(Case.id)).group_by(Case.organisation_id).all())
    return [
        _organisation_response(organisation, user_counts.get(organisation.id, 0), case_counts.get(organisation.id, 0))
        for organisation in db.query(Organisation).order_by(Organisation.name).all()
    ]


@router.post("/organisations", response_model=OrganisationResponse, status_code=status.HTTP_201_CREATED)
async def create_organisation(
    organisation_in: OrganisationCreate,
    request: Request,
    current_admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    name = organisation_in.name.strip()
    if db.query(Organisation).filter(func.lower(Organisation.name) == name.lower()).first():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="An organisation with this name already exists"
        )
    organisation = Organisation(
        name=name,
        contact_email=organisation_in.contact_email,
        contact_phone=organisation_in.contact_phone,
        address=organisation_in.address,
    )
    db.add(organisation)
    db.flush()
    AuditLog.log_action(
        db,
        action=AuditAction.ORGANISATION_CREATED,
        user_id=current_admin.id,
        organisation_id=organisation.id,
        resource_type="organisation",
        resource_id=organisation.id,
        description=f"Organisation {name} created",
        ip_address=get_client_ip_address(request),
    )
    db.commit()
    db.refresh(organisation)
    return _organisation_response(organisation)


# Cases

@router.get("/cases", response_model=CaseListResponse)
async def list_all_cases(
    search: Optional[str] = None,
    status_filter: str = Query("active", alias="status"),
    stage: str = "all",
    organisation_id: Optional[str] = None,
    include_archived: bool = False,
    page: int = 1,
    page_size: Optional[int] = None,
    current_admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    """Every organisation's cases, with archived cases on request"""
    return await list_cases(
        search=search,
        status_filter=status_filter,
        stage=stage,
        organisation_id=organisation_id,
        include_archived=include_archived,
        page=page,
        page_size=page_size,
        current_user=current_admin,
        db=db,
    )


def _set_archived(db: Session, case: Case, admin: User, archived: bool, request: Request) -> dict:
    case.is_archived = archived
    case.archived_at = datetime.utcnow() if archived else None
    case.archived_by = admin.id if archived else None
    CaseActivity.record(
        db,
        case_id=case.id,
        activity_type="case_archived" if archived else "case_unarchived",
        description=f"Case {'archived' if archived else 'restored'} by {admin.full_name}",
        performed_by=admin.id,
    )
    AuditLog.log_action(
        db,
        action=AuditAction.CASE_ARCHIVED if archived else AuditAction.CASE_UNARCHIVED,
        user_id=admin.id,
        organisation_id=case.organisation_id,
        resource_type="case",
        resource_id=case.id,
        case_id=case.id,
        ip_address=get_client_ip_address(request),
    )
    db.commit()
    log_case_operation("archive" if archived else "unarchive", case.id, admin.id)
    return {"message": f"Case {case.account_number} {'archived' if archived else 'restored'}",
            "case_id": case.id, "is_archived": archived}


@router.post("/cases/{case_id}/archive")
async def archive_case(
    case_id: str,
    request: Request,
    current_admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    """Hide a case from its organisation without deleting it"""
    return _set_archived(db, _get_case(db, case_id), current_admin, True, request)


@router.post("/cases/{case_id}/unarchive")
async def unarchive_case(
    case_id: str,
    request: Request,
    current_admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    return _set_archived(db, _get_case(db, case_id), current_admin, False, request)


def _delete_message_attachment(storage: DocumentStorage, message: Message) -> None:
    if message.has_attachment:
        storage.delete(message.attachment_storage_type or "local", message.attachment_file_path,
                       message.attachment_s3_key)


@router.delete("/cases/{case_id}")
async def delete_case(
    case_id: str,
    request: Request,
    current_admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db),
    storage: DocumentStorage = Depends(get_document_storage)
):
    """Permanently delete a case with its payments, messages, documents and activity"""
    case = _get_case(db, case_id)
    account_number, organisation_id = case.account_number, case.organisation_id

    try:
        for document in list(case.documents):
            storage.delete(document.storage_type, document.file_path, document.s3_key)
        for message in case.messages:
            _delete_message_attachment(storage, message)
    except StorageError as e:
        logger.error("Stored files for case %s could not be removed: %s", case_id, e)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to delete case files")

    db.delete(case)
    AuditLog.log_action(
        db,
        action=AuditAction.CASE_DELETED,
        user_id=current_admin.id,
        organisation_id=organisation_id,
        resource_type="case",
        resource_id=case_id,
        case_id=case_id,
        description=f"Case {account_number} deleted",
        ip_address=get_client_ip_address(request),
    )
    db.commit()
    log_case_operation("delete", case_id, current_admin.id, account_number)
    return {"message": f"Case {account_number} deleted successfully"}


@router.delete("/cases/{case_id}/activities/{activity_id}")
async def delete_case_activity(
    case_id: str,
    activity_id: str,
    request: Request,
    current_admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    activity = db.get(CaseActivity, activity_id)
    if not activity or activity.case_id != case_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Activity not found")
    organisation_id = activity.case.organisation_id
    db.delete(activity)
    AuditLog.log_action(
        db,
        action=AuditAction.CASE_ACTIVITY_DELETED,
        user_id=current_admin.id,
        organisation_id=organisation_id,
        resource_type="case_activity",
        resource_id=activity_id,
        case_id=case_id,
        ip_address=get_client_ip_address(request),
    )
    db.commit()
    return {"message": "Activity deleted successfully"}


# Messages and documents

@router.delete("/messages/{message_id}")
async def delete_message(
    message_id: str,
    request: Request,
    current_admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db),
    storage: DocumentStorage = Depends(get_document_storage)
):
    message = db.get(Message, message_id)
    if not message:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Message not found")
    case_id, organisation_id = message.case_id, message.organisation_id

    try:
        _delete_message_attachment(storage, message)
    except StorageError as e:
        logger.error("Attachment for message %s could not be removed: %s", message_id, e)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to delete message")

    db.delete(message)
    AuditLog.log_action(
        db,
        action=AuditAction.MESSAGE_DELETED,
        user_id=current_admin.id,
        organisation_id=organisation_id,
        resource_type="message",
        resource_id=message_id,
        case_id=case_id,
        ip_address=get_client_ip_address(request),
    )
    db.commit()
    log_message_operation("delete", message_id, current_admin.id)
    return {"message": "Message deleted successfully", "case_id": case_id}


@router.delete("/documents/{document_id}")
async def delete_document(
    document_id: str,
    request: Request,
    current_admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db),
    storage: DocumentStorage = Depends(get_document_storage)
):
    document = db.get(Document, document_id)
    if not document:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Document not found")
    case_id, organisation_id, file_name = document.case_id, document.organisation_id, document.file_name

    try:
        DocumentService(db, storage).delete(document)
    except StorageError as e:
        logger.error("Stored file for document %s could not be removed: %s", document_id, e)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to delete document")

    AuditLog.log_action(
        db,
        action=AuditAction.FILE_DELETED,
        user_id=current_admin.id,
        organisation_id=organisation_id,
        resource_type="document",
        resource_id=document_id,
        case_id=case_id,
        filename=file_name,
        ip_address=get_client_ip_address(request),
    )
    db.commit()
    log_document_operation("delete", document_id, current_admin.id, file_name)
    return {"message": "Document deleted successfully", "case_id": case_id}


# Overview

@router.get("/stats", response_model=AdminStatsResponse)
async def get_admin_stats(
    current_admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    """Portal-wide figures across every organisation"""
    cases = db.query(Case).all()
    stats = dashboard_stats(cases)
    return AdminStatsResponse(
        total_users=db.query(User).count(),
        admin_users=db.query(User).filter(User.is_admin.is_(True)).count(),
        total_organisations=db.query(Organisation).count(),
        total_cases=len(cases),
        active_cases=stats["active_cases"],
        closed_cases=stats["closed_cases"],
        archived_cases=sum(1 for case in cases if case.is_archived),
        total_outstanding=stats["total_outstanding"],
        total_recovery=stats["total_recovery"],
        total_payments=db.query(Payment).count(),
        total_messages=db.query(Message).count(),
        total_documents=db.query(Document).count(),
    )


@router.get("/audit-logs", response_model=List[AuditLogResponse])
async def get_audit_logs(
    action: Optional[str] = None,
    user_id: Optional[str] = None,
    limit: int = 100,
    current_admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    """Most recent audit entries, newest first"""
    query = db.query(AuditLog)
    if action:
        query = query.filter(AuditLog.action == action)
    if user_id:
        query = query.filter(AuditLog.user_id == user_id)
    logs = query.order_by(AuditLog.created_at.desc()).limit(max(1, min(limit, 500))).all()
    return [
        AuditLogResponse(
            id=log.id,
            action=log.action,
            user_id=log.user_id,
            user_email=log.user.email if log.user else None,
            organisation_id=log.organisation_id,
            resource_type=log.resource_type,
            resource_id=log.resource_id,
            case_id=log.case_id,
            description=log.description,
            ip_address=log.ip_address,
            success=bool(log.success),
            created_at=log.created_at,
        )
        for log in logs
    ]
