from sqlalchemy import Column, String, DateTime, Text, ForeignKey, JSON, Boolean
from sqlalchemy.orm import relationship
from datetime import datetime
from enum import Enum as PyEnum
from ..config.database import Base
import uuid


class AuditAction(PyEnum):
    LOGIN = "login"
    LOGOUT = "logout"
    LOGIN_FAILED = "login_failed"
    SESSION_EXPIRED = "session_expired"
    PASSWORD_CHANGED = "password_changed"
    ACCOUNT_CREATED = "account_created"
    ACCOUNT_UPDATED = "account_updated"

    # Documents
    FILE_UPLOADED = "file_uploaded"
    FILE_DOWNLOADED = "file_downloaded"
    FILE_DELETED = "file_deleted"

    # Cases
    CASE_CREATED = "case_created"
    CASE_VIEWED = "case_viewed"
    CASE_ARCHIVED = "case_archived"
    CASE_UNARCHIVED = "case_unarchived"
    CASE_DELETED = "case_deleted"
    CASE_ACTIVITY_DELETED = "case_activity_deleted"

    # Messages and payments
    MESSAGE_SENT = "message_sent"
    MESSAGE_DELETED = "message_deleted"
    PAYMENT_RECORDED = "payment_recorded"
    PAYMENT_DELETED = "payment_deleted"

    # Admin operations
    USER_ASSIGNED = "user_assigned"
    USER_ROLE_CHANGED = "user_role_changed"
    ORGANISATION_CREATED = "organisation_created"
    SESSION_SETTINGS_UPDATED = "session_settings_updated"
    DATA_EXPORT = "data_export"


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))

    # Who performed the action
    user_id = Column(String, ForeignKey("users.id"), nullable=True)  # null for system actions
    organisation_id = Column(String, nullable=True)

    # What action was performed
    action = Column(String(50), nullable=False)
    resource_type = Column(String(50), nullable=True)  # e.g. "case", "document", "message"
    resource_id = Column(String, nullable=True)
    description = Column(Text, nullable=True)
    details = Column(JSON, nullable=True)

    # Request information
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(Text, nullable=True)

    # Result information
    success = Column(Boolean, nullable=False, default=True)
    error_message = Column(Text, nullable=True)

    # Kept as plain strings so audit rows survive deletion of what they describe
    case_id = Column(String, nullable=True)
    filename = Column(String(255), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    user = relationship("User", back_populates="audit_logs")

    @classmethod
    def log_action(cls, session, action, user_id=None, organisation_id=None, resource_type=None,
                   resource_id=None, description=None, details=None, ip_address=None,
                   user_agent=None, success=True, error_message=None, **kwargs):
        """Queue an audit entry on the session; the caller commits"""
        if isinstance(action, AuditAction):
            action = action.value
        log_entry = cls(
            user_id=user_id,
            organisation_id=organisation_id,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            description=description,
            details=details,
            ip_address=ip_address,
            user_agent=user_agent,
            success=success,
            error_message=error_message,
            **kwargs
        )
        session.add(log_entry)
        return log_entry

    def __repr__(self):
        return f"<AuditLog {self.action} by {self.user_id or 'system'} at {self.created_at}>"
