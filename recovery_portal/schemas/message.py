"""
Pydantic schemas for messages
"""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from .common import PageResponse
from ..models import RECIPIENT_TYPES


class MessageCreate(BaseModel):
    subject: str = Field(..., min_length=1, max_length=255)
    content: str = Field(..., min_length=1)
    case_id: Optional[str] = None
    recipient_type: str = "organisation"
    recipient_id: Optional[str] = None

    @field_validator("case_id", "recipient_id", mode="before")
    @classmethod
    def blank_is_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("recipient_type")
    @classmethod
    def known_recipient_type(cls, v):
        v = v.strip().lower()
        if v == "organization":
            v = "organisation"
        if v not in RECIPIENT_TYPES:
            raise ValueError(f"recipient_type must be one of {', '.join(RECIPIENT_TYPES)}")
        return v


class MessageResponse(BaseModel):
    id: str
    sender_id: str
    sender_name: Optional[str] = None
    sender_email: Optional[str] = None
    sender_organisation: Optional[str] = None
    recipient_type: str
    recipient_id: Optional[str] = None
    case_id: Optional[str] = None
    case_account_number: Optional[str] = None
    case_name: Optional[str] = None
    subject: str
    content: str
    is_read: bool
    has_attachment: bool = False
    attachment_file_name: Optional[str] = None
    attachment_file_size: Optional[int] = None
    attachment_file_type: Optional[str] = None
    created_at: datetime


MessageListResponse = PageResponse[MessageResponse]


def message_to_response(message) -> MessageResponse:
    case = message.case
    return MessageResponse(
        id=message.id,
        sender_id=message.sender_id,
        sender_name=message.sender_name,
        sender_email=message.sender_email,
        sender_organisation=message.sender_organisation,
        recipient_type=message.recipient_type,
        recipient_id=message.recipient_id,
        case_id=message.case_id,
        case_account_number=case.account_number if case else None,
        case_name=case.display_name if case else None,
        subject=message.subject,
        content=message.content,
        is_read=bool(message.is_read),
        has_attachment=message.has_attachment,
        attachment_file_name=message.attachment_file_name,
        attachment_file_size=message.attachment_file_size,
        attachment_file_type=message.attachment_file_type,
        created_at=message.created_at,
    )
