"""Stores uploaded documents and records them against cases."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy.orm import Session

from ..models import Case, CaseActivity, Document, Notification, NotificationType, User
from ..utils.document_storage import DocumentStorage, StoredFile
from ..utils.file_utils import validate_upload, sanitise_filename

logger = logging.getLogger(__name__)


@dataclass
class PendingUpload:
    """An upload read into memory and validated, not yet stored."""

    filename: str
    content: bytes
    content_type: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.content)


async def read_upload(upload) -> PendingUpload:
    """Read a starlette UploadFile and validate its name and size"""
    content = await upload.read()
    filename = sanitise_filename(upload.filename)
    validate_upload(filename, len(content))
    return PendingUpload(filename=filename, content=content, content_type=upload.content_type)


def admins_and_members(db: Session, organisation_id: str) -> List[User]:
    """Users who should hear about activity on an organisation's records"""
    return (
        db.query(User)
        .filter((User.is_admin.is_(True)) | (User.organisation_id == organisation_id))
        .all()
    )


class DocumentService:
    """Persists uploads through the storage backend and the documents table."""

    def __init__(self, db: Session, storage: DocumentStorage):
        self.db = db
        self.storage = storage

    async def store(self, pending: PendingUpload, organisation_id: str,
                    case: Optional[Case], uploaded_by: User) -> Document:
        """Write the file, add the Document row and its case activity. Caller commits."""
        stored: StoredFile = await self.storage.save(
            pending.content,
            pending.filename,
            organisation_id=organisation_id,
            case_id=case.id if case else None,
            content_type=pending.content_type,
        )
        document = Document(
            case_id=case.id if case else None,
            organisation_id=organisation_id,
            file_name=stored.file_name,
            file_type=stored.file_type,
            file_size=stored.file_size,
            file_path=stored.file_path,
            s3_key=stored.s3_key,
            storage_type=stored.storage_type,
            file_hash=stored.file_hash,
            is_encrypted=stored.is_encrypted,
            encryption_key=stored.encryption_key,
            uploaded_by=uploaded_by.id,
        )
        self.db.add(document)
        self.db.flush()

        if case is not None:
            CaseActivity.record(
                self.db,
                case_id=case.id,
                activity_type="document_uploaded",
                description=f"Document uploaded: {document.file_name}",
                performed_by=uploaded_by.id,
            )
            Notification.notify_users(
                self.db,
                admins_and_members(self.db, organisation_id),
                type=NotificationType.NEW_DOCUMENT,
                title="New document",
                message=f"{uploaded_by.full_name} uploaded {document.file_name} to {case.account_number}",
                case_id=case.id,
                data={"document_id": document.id},
                exclude_user_id=uploaded_by.id,
            )

        logger.info("Stored document %s (%s bytes) for organisation %s",
                    document.id, document.file_size, organisation_id)
        return document

    async def read(self, document: Document) -> bytes:
        return await self.storage.read(
            document.storage_type,
            document.file_path,
            document.s3_key,
            document.encryption_key if document.is_encrypted else None,
        )

    def delete(self, document: Document) -> None:
        """Remove stored bytes and the row. Caller commits."""
        if not self.storage.delete(document.storage_type, document.file_path, document.s3_key):
            logger.warning("Stored file for document %s was already missing", document.id)
        self.db.delete(document)
