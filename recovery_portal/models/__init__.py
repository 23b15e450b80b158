from .organisation import Organisation
from .user import User, UserStatus
from .case import Case, CaseActivity, DEBTOR_TYPES, generate_account_number
from .payment import Payment
from .message import Message, MessageView, RECIPIENT_TYPES
from .document import Document
from .audit_log import AuditLog, AuditAction
from .notification import Notification, NotificationType
from .session_settings import SessionSettings

# Import the base and database config
from ..config.database import Base, engine


def create_tables():
    """Create all database tables"""
    Base.metadata.create_all(bind=engine)


__all__ = [
    "Organisation",
    "User", "UserStatus",
    "Case", "CaseActivity", "DEBTOR_TYPES", "generate_account_number",
    "Payment",
    "Message", "MessageView", "RECIPIENT_TYPES",
    "Document",
    "AuditLog", "AuditAction",
    "Notification", "NotificationType",
    "SessionSettings",
    "Base", "engine", "create_tables"
]
