from fastapi import APIRouter, Depends, HTTPException, status, Request, UploadFile, File, Form
from fastapi.responses import Response
from sqlalchemy.orm import Session, joinedload
from typing import List, Optional

from ..config.database import get_db
from ..config.logging import get_logger, log_document_operation
from ..models import User, Case, Document, AuditLog, AuditAction
from ..schemas.document import DocumentResponse, document_to_response
from ..services.document_service import DocumentService, read_upload
from ..utils.auth import get_client_ip_address
from ..utils.document_storage import DocumentStorage, StorageError, get_document_storage
from ..utils.file_utils import FileValidationError
from .auth import get_current_user
from .cases import get_case_for_user

router = APIRouter()
logger = get_logger('documents')


def document_visible_to(document: Document, user: User) -> bool:
    if user.is_admin:
        return True
    if document.organisation_id != user.organisation_id:
        return False
    return document.case is None or not document.case.is_archived


def get_document_for_user(db: Session, document_id: str, user: User) -> Document:
    document = db.get(Document, document_id)
    if not document or not document_visible_to(document, user):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Document not found")
    return document


@router.get("", response_model=List[DocumentResponse])
async def list_documents(
    case_id: Optional[str] = None,
    search: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Documents the user can see, newest first"""
    query = db.query(Document).options(joinedload(Document.case), joinedload(Document.uploader))
    if not current_user.is_admin:
        query = query.filter(Document.organisation_id == current_user.organisation_id)
    if case_id:
        query = query.filter(Document.case_id == case_id)
    documents = [
        document for document in query.order_by(Document.created_at.desc()).all()
        if document_visible_to(document, current_user)
    ]
    needle = (search or "").strip().lower()
    if needle:
        documents = [
            document for document in documents
            if needle in document.file_name.lower()
            or (document.case is not None and needle in document.case.account_number.lower())
        ]
    return [document_to_response(document) for document in documents]


@router.post("/upload", response_model=DocumentResponse, status_code=status.HTTP_201_CREATED)
async def upload_document(
    request: Request,
    file: UploadFile = File(...),
    case_id: Optional[str] = Form(None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    storage: DocumentStorage = Depends(get_document_storage)
):
    """Upload a document for the user's organisation, optionally linked to a case"""
    case: Optional[Case] = get_case_for_user(db, case_id, current_user) if case_id else None
    organisation_id = case.organisation_id if case else current_user.organisation_id
    if not organisation_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Documents without a case must belong to an organisation"
        )

    try:
        pending = await read_upload(file)
    except FileValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    try:
        document = await DocumentService(db, storage).store(pending, organisation_id, case, current_user)
    except StorageError as e:
        db.rollback()
        logger.error("Document upload failed: %s", e)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to store document")

    ip_address = get_client_ip_address(request)
    AuditLog.log_action(
        db,
        action=AuditAction.FILE_UPLOADED,
        user_id=current_user.id,
        organisation_id=organisation_id,
        resource_type="document",
        resource_id=document.id,
        case_id=document.case_id,
        filename=document.file_name,
        description=f"Uploaded {document.file_name}",
        ip_address=ip_address,
    )
    db.commit()
    db.refresh(document)
    log_document_operation("upload", document.id, current_user.id,
                           f"{document.file_name} ({document.file_size} bytes)", ip_address)
    return document_to_response(document)


@router.get("/{document_id}/download")
async def download_document(
    document_id: str,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    storage: DocumentStorage = Depends(get_document_storage)
):
    """Download a document, decrypting it when stored encrypted"""
    document = get_document_for_user(db, document_id, current_user)
    try:
        content = await DocumentService(db, storage).read(document)
    except StorageError as e:
        logger.error("Document %s unavailable: %s", document.id, e)
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File content not found in storage")

    ip_address = get_client_ip_address(request)
    AuditLog.log_action(
        db,
        action=AuditAction.FILE_DOWNLOADED,
        user_id=current_user.id,
        organisation_id=document.organisation_id,
        resource_type="document",
        resource_id=document.id,
        case_id=document.case_id,
        filename=document.file_name,
        ip_address=ip_address,
    )
    db.commit()
    log_document_operation("download", document.id, current_user.id, document.file_name, ip_address)
    return Response(
        content=content,
        media_type=document.file_type or "application/octet-stream",
        headers={"Content-Disposition": f'attachment; filename="{document.file_name}"'}
    )


@router.delete("/{document_id}")
async def delete_document(
    document_id: str,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    storage: DocumentStorage = Depends(get_document_storage)
):
    """Delete a document. Admins may delete any; others only what they uploaded"""
    document = get_document_for_user(db, document_id, current_user)
    if not current_user.is_admin and document.uploaded_by != current_user.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the uploader or an admin can delete this document"
        )

    file_name, case_id, organisation_id = document.file_name, document.case_id, document.organisation_id
    try:
        DocumentService(db, storage).delete(document)
    except StorageError as e:
        logger.error("Stored file for document %s could not be removed: %s", document_id, e)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to delete document")

    ip_address = get_client_ip_address(request)
    AuditLog.log_action(
        db,
        action=AuditAction.FILE_DELETED,
        user_id=current_user.id,
        organisation_id=organisation_id,
        resource_type="document",
        resource_id=document_id,
        case_id=case_id,
        filename=file_name,
        ip_address=ip_address,
    )
    db.commit()
    log_document_operation("delete", document_id, current_user.id, file_name, ip_address)
    return {"message": "Document deleted successfully", "case_id": case_id}
