from sqlalchemy import Column, String, DateTime, Boolean, Text, ForeignKey, Enum, JSON
from sqlalchemy.orm import relationship
from datetime import datetime
from enum import Enum as PyEnum
from ..config.database import Base
import uuid


class NotificationType(PyEnum):
    NEW_MESSAGE = "new_message"
    NEW_DOCUMENT = "new_document"
    CASE_CREATED = "case_created"
    CASE_UPDATED = "case_updated"
    PAYMENT_RECORDED = "payment_recorded"
    SYSTEM = "system"


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, ForeignKey("users.id"), nullable=False)

    type = Column(Enum(NotificationType), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)

    case_id = Column(String, ForeignKey("cases.id", ondelete="CASCADE"), nullable=True)
    data = Column(JSON, nullable=True)

    read = Column(Boolean, default=False)
    read_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    user = relationship("User", back_populates="notifications")
    case = relationship("Case")

    @classmethod
    def notify_users(cls, session, users, type, title, message, case_id=None, data=None, exclude_user_id=None):
        """Queue the same notification for several users"""
        created = []
        for user in users:
            if exclude_user_id and user.id == exclude_user_id:
                continue
            notification = cls(
                user_id=user.id,
                type=type,
                title=title,
                message=message,
                case_id=case_id,
                data=data,
            )
            session.add(notification)
            created.append(notification)
        return created

    def __repr__(self):
        return f"<Notification {self.id}: {self.type.value} for {self.user_id}>"
