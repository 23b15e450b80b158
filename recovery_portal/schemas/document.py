"""
Pydantic schemas for documents
"""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class DocumentResponse(BaseModel):
    id: str
    case_id: Optional[str] = None
    organisation_id: str
    file_name: str
    file_type: Optional[str] = None
    file_size: int
    uploaded_by: Optional[str] = None
    uploaded_by_name: Optional[str] = None
    case_account_number: Optional[str] = None
    case_name: Optional[str] = None
    created_at: datetime
    download_url: str


def document_to_response(document) -> DocumentResponse:
    case = document.case
    return DocumentResponse(
        id=document.id,
        case_id=document.case_id,
        organisation_id=document.organisation_id,
        file_name=document.file_name,
        file_type=document.file_type,
        file_size=document.file_size or 0,
        uploaded_by=document.uploaded_by,
        uploaded_by_name=document.uploaded_by_name,
        case_account_number=case.account_number if case else None,
        case_name=case.display_name if case else None,
        created_at=document.created_at,
        download_url=f"/api/documents/{document.id}/download",
    )
