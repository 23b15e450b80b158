from fastapi import APIRouter, Depends, HTTPException, status, Request
from fastapi.responses import Response
from sqlalchemy.orm import Session, joinedload
from pydantic import ValidationError
from typing import Optional
import json

from ..config.database import get_db
from ..config.settings import settings
from ..config.logging import get_logger, log_message_operation
from ..models import (
    User, Case, CaseActivity, Message, MessageView, Organisation, AuditLog, AuditAction,
    Notification, NotificationType
)
from ..schemas.message import MessageCreate, MessageResponse, MessageListResponse, message_to_response
from ..services.case_search import filter_messages, paginate
from ..services.document_service import DocumentService, read_upload, admins_and_members
from ..utils.auth import get_client_ip_address
from ..utils.document_storage import DocumentStorage, StorageError, get_document_storage
from ..utils.file_utils import FileValidationError
from .auth import get_current_user
from .cases import get_case_for_user

router = APIRouter()
logger = get_logger('messages')


def message_visible_to(message: Message, user: User) -> bool:
    """Admins see every message; others see their organisation's conversations and messages addressed to them"""
    if user.is_admin:
        return True
    if message.case is not None and message.case.is_archived:
        return False
    if message.recipient_type == "user":
        return user.id in (message.recipient_id, message.sender_id)
    return user.organisation_id is not None and message.organisation_id == user.organisation_id


def get_message_for_user(db: Session, message_id: str, user: User) -> Message:
    message = db.get(Message, message_id)
    if not message or not message_visible_to(message, user):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Message not found")
    return message


async def _parse_message_submission(request: Request):
    """JSON when there is no attachment, multipart form with an `attachment` file when there is"""
    content_type = request.headers.get("content-type", "")
    attachment = None
    if content_type.startswith("multipart/form-data"):
        form = await request.form()
        data = {
            key: form.get(key)
            for key in ("subject", "content", "case_id", "recipient_type", "recipient_id")
            if form.get(key) is not None
        }
        upload = form.get("attachment")
        if upload is not None and hasattr(upload, "filename") and upload.filename:
            attachment = upload
    else:
        try:
            data = await request.json()
        except ValueError:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Request body must be valid JSON")

    try:
        message_in = MessageCreate.model_validate(data)
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=json.loads(e.json(include_url=False))
        )
    return message_in, attachment


def _resolve_recipient(db: Session, message_in: MessageCreate, sender: User, case: Optional[Case]):
    """Work out (recipient_type, recipient_id, organisation_id) for a new message"""
    if case is not None:
        return "case", case.id, case.organisation_id

    if message_in.recipient_type == "user":
        recipient = db.get(User, message_in.recipient_id) if message_in.recipient_id else None
        if not recipient:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Recipient not found")
        if not sender.is_admin and not (recipient.is_admin or recipient.organisation_id == sender.organisation_id):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You cannot message this user")
        return "user", recipient.id, recipient.organisation_id or sender.organisation_id

    # Organisation conversations; non-admins always write to their own
    organisation_id = message_in.recipient_id if sender.is_admin else sender.organisation_id
    if not organisation_id or not db.get(Organisation, organisation_id):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Organisation not found")
    return "organisation", organisation_id, organisation_id


@router.get("", response_model=MessageListResponse)
async def list_messages(
    search: Optional[str] = None,
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
    sender: Optional[str] = None,
    case: Optional[str] = None,
    page: int = 1,
    page_size: Optional[int] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Messages visible to the user, newest first, with text, date, sender and case filters"""
    messages = (
        db.query(Message)
        .options(joinedload(Message.sender).joinedload(User.organisation), joinedload(Message.case))
        .order_by(Message.created_at.desc())
        .all()
    )
    visible = [message for message in messages if message_visible_to(message, current_user)]
    filtered = filter_messages(visible, search=search, date_from=date_from, date_to=date_to,
                               sender=sender, case_term=case)

    size = settings.messages_page_size if page_size is None else page_size
    if size < 1 or size > 200:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="page_size must be between 1 and 200")
    result = paginate(filtered, page, size)
    items = [message_to_response(message) for message in result.items]
    return MessageListResponse.from_page(result, items)


@router.post("", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
async def send_message(
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    storage: DocumentStorage = Depends(get_document_storage)
):
    """Send a message, optionally linked to a case and carrying one attachment"""
    message_in, attachment = await _parse_message_submission(request)
    case = get_case_for_user(db, message_in.case_id, current_user) if message_in.case_id else None
    recipient_type, recipient_id, organisation_id = _resolve_recipient(db, message_in, current_user, case)

    pending = None
    if attachment is not None:
        try:
            pending = await read_upload(attachment)
        except FileValidationError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    message = Message(
        sender_id=current_user.id,
        recipient_type=recipient_type,
        recipient_id=recipient_id,
        case_id=case.id if case else None,
        subject=message_in.subject.strip(),
        content=message_in.content,
    )

    if pending is not None:
        try:
            stored = await storage.save(
                pending.content,
                pending.filename,
                organisation_id=organisation_id,
                case_id=case.id if case else None,
                content_type=pending.content_type,
            )
            message.attachment_file_name = stored.file_name
            message.attachment_file_path = stored.file_path
            message.attachment_s3_key = stored.s3_key
            message.attachment_storage_type = stored.storage_type
            message.attachment_file_size = stored.file_size
            message.attachment_file_type = stored.file_type
            message.attachment_encryption_key = stored.encryption_key

            # Attachments on case messages are filed with the case documents as well
            if case is not None:
                document = await DocumentService(db, storage).store(pending, organisation_id, case, current_user)
                message.attachment_document_id = document.id
        except StorageError as e:
            db.rollback()
            logger.error("Message attachment could not be stored: %s", e)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Failed to store attachment"
            )

    db.add(message)
    db.flush()

    if case is not None:
        CaseActivity.record(
            db,
            case_id=case.id,
            activity_type="message_sent",
            description=f"Message sent: {message.subject}",
            performed_by=current_user.id,
        )

    if recipient_type == "user":
        recipients = [db.get(User, recipient_id)]
        if not current_user.is_admin:
            recipients += db.query(User).filter(User.is_admin.is_(True)).all()
    else:
        recipients = admins_and_members(db, organisation_id)
    Notification.notify_users(
        db,
        recipients,
        type=NotificationType.NEW_MESSAGE,
        title=f"New message: {message.subject}",
        message=f"{current_user.full_name} sent a message" + (f" about {case.account_number}" if case else ""),
        case_id=message.case_id,
        data={"message_id": message.id},
        exclude_user_id=current_user.id,
    )
    AuditLog.log_action(
        db,
        action=AuditAction.MESSAGE_SENT,
        user_id=current_user.id,
        organisation_id=organisation_id,
        resource_type="message",
        resource_id=message.id,
        case_id=message.case_id,
        filename=message.attachment_file_name,
        ip_address=get_client_ip_address(request),
    )
    db.commit()
    db.refresh(message)

    log_message_operation("send", message.id, current_user.id,
                          f"recipient={recipient_type}:{recipient_id} attachment={message.has_attachment}",
                          get_client_ip_address(request))
    return message_to_response(message)


@router.post("/{message_id}/read", response_model=MessageResponse)
async def mark_message_read(
    message_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    message = get_message_for_user(db, message_id, current_user)
    if message.sender_id != current_user.id:
        seen = (
            db.query(MessageView)
            .filter(MessageView.message_id == message.id, MessageView.user_id == current_user.id)
            .first()
        )
        if not seen:
            db.add(MessageView(message_id=message.id, user_id=current_user.id))
        message.is_read = True
        db.commit()
        db.refresh(message)
    return message_to_response(message)


@router.get("/{message_id}/download")
async def download_attachment(
    message_id: str,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    storage: DocumentStorage = Depends(get_document_storage)
):
    """Download a message's attachment"""
    message = get_message_for_user(db, message_id, current_user)
    if not message.has_attachment:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Message has no attachment")

    try:
        content = await storage.read(
            message.attachment_storage_type or "local",
            message.attachment_file_path,
            message.attachment_s3_key,
            message.attachment_encryption_key,
        )
    except StorageError as e:
        logger.error("Attachment for message %s unavailable: %s", message.id, e)
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Attachment not found in storage")

    AuditLog.log_action(
        db,
        action=AuditAction.FILE_DOWNLOADED,
        user_id=current_user.id,
        organisation_id=message.organisation_id,
        resource_type="message",
        resource_id=message.id,
        case_id=message.case_id,
        filename=message.attachment_file_name,
        ip_address=get_client_ip_address(request),
    )
    db.commit()
    return Response(
        content=content,
        media_type=message.attachment_file_type or "application/octet-stream",
        headers={"Content-Disposition": f'attachment; filename="{message.attachment_file_name}"'}
    )
