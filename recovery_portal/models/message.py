from sqlalchemy import Column, String, DateTime, Boolean, Text, ForeignKey, Integer, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime
from ..config.database import Base
import uuid

RECIPIENT_TYPES = ("user", "organisation", "case")


class Message(Base):
    __tablename__ = "messages"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    sender_id = Column(String, ForeignKey("users.id"), nullable=False)
    recipient_type = Column(String(20), nullable=False, default="organisation")
    recipient_id = Column(String, nullable=True)
    case_id = Column(String, ForeignKey("cases.id", ondelete="CASCADE"), nullable=True, index=True)

    subject = Column(String(255), nullable=False)
    content = Column(Text, nullable=False)
    is_read = Column(Boolean, default=False, nullable=False)

    # Optional attachment
    attachment_file_name = Column(String(255), nullable=True)
    attachment_file_path = Column(String(500), nullable=True)
    attachment_file_size = Column(Integer, nullable=True)
    attachment_file_type = Column(String(100), nullable=True)
    attachment_storage_type = Column(String(10), nullable=True)
    attachment_s3_key = Column(String(500), nullable=True)
    attachment_encryption_key = Column(String(255), nullable=True)
    # Set when the attachment was also filed as a case document
    attachment_document_id = Column(String, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)

    sender = relationship("User")
    case = relationship("Case", back_populates="messages")
    views = relationship("MessageView", back_populates="message", cascade="all, delete-orphan")

    @property
    def has_attachment(self):
        return bool(self.attachment_file_path or self.attachment_s3_key)

    @property
    def sender_name(self):
        return self.sender.full_name if self.sender else None

    @property
    def sender_email(self):
        return self.sender.email if self.sender else None

    @property
    def sender_organisation(self):
        return self.sender.organisation_name if self.sender else None

    @property
    def organisation_id(self):
        """Organisation the conversation belongs to"""
        if self.case is not None:
            return self.case.organisation_id
        if self.recipient_type == "organisation" and self.recipient_id:
            return self.recipient_id
        return self.sender.organisation_id if self.sender else None

    def __repr__(self):
        return f"<Message {self.subject!r} from {self.sender_id}>"


class MessageView(Base):
    __tablename__ = "message_views"
    __table_args__ = (UniqueConstraint("message_id", "user_id", name="uq_message_view"),)

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    message_id = Column(String, ForeignKey("messages.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String, ForeignKey("users.id"), nullable=False)
    viewed_at = Column(DateTime, default=datetime.utcnow)

    message = relationship("Message", back_populates="views")
