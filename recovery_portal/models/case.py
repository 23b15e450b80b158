from sqlalchemy import Column, String, DateTime, Boolean, Text, ForeignKey, Numeric
from sqlalchemy.orm import relationship
from datetime import datetime
from decimal import Decimal
from ..config.database import Base
import uuid

DEBTOR_TYPES = ("individual", "company", "sole_trader", "company_and_individual")


def generate_account_number(now: datetime = None) -> str:
    """Account numbers look like ACC-2025-123456 (year + last six digits of the epoch millis)"""
    now = now or datetime.utcnow()
    millis = int(now.timestamp() * 1000)
    return f"ACC-{now.year}-{str(millis)[-6:]}"


class Case(Base):
    __tablename__ = "cases"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    account_number = Column(String(50), unique=True, nullable=False, index=True)
    case_name = Column(String(255), nullable=True)

    # Debtor
    debtor_name = Column(String(255), nullable=False)
    debtor_email = Column(String(255), nullable=True)
    debtor_phone = Column(String(50), nullable=True)
    debtor_address = Column(Text, nullable=True)
    debtor_type = Column(String(50), nullable=False, default="individual")

    # Money
    original_amount = Column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    # Null means "not supplied"; derive from payments instead
    outstanding_amount = Column(Numeric(12, 2), nullable=True)
    costs_added = Column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    interest_added = Column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    fees_added = Column(Numeric(12, 2), nullable=False, default=Decimal("0"))

    # Free-text lifecycle labels as supplied by the case management system
    status = Column(String(50), nullable=False, default="active")
    stage = Column(String(50), nullable=False, default="initial_contact")

    organisation_id = Column(String, ForeignKey("organisations.id"), nullable=False)
    assigned_to = Column(String, ForeignKey("users.id"), nullable=True)
    external_ref = Column(String(100), nullable=True)

    # Archiving
    is_archived = Column(Boolean, default=False, nullable=False)
    archived_at = Column(DateTime, nullable=True)
    archived_by = Column(String, ForeignKey("users.id"), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    organisation = relationship("Organisation", back_populates="cases")
    assignee = relationship("User", foreign_keys=[assigned_to])
    payments = relationship("Payment", back_populates="case", cascade="all, delete-orphan",
                            order_by="Payment.payment_date")
    activities = relationship("CaseActivity", back_populates="case", cascade="all, delete-orphan",
                              order_by="CaseActivity.created_at.desc()")
    messages = relationship("Message", back_populates="case", cascade="all, delete-orphan")
    documents = relationship("Document", back_populates="case", cascade="all, delete-orphan")

    @property
    def organisation_name(self):
        return self.organisation.name if self.organisation else None

    @property
    def display_name(self):
        return self.case_name or self.debtor_name

    def __repr__(self):
        return f"<Case {self.account_number} ({self.status}/{self.stage})>"


class CaseActivity(Base):
    __tablename__ = "case_activities"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    case_id = Column(String, ForeignKey("cases.id", ondelete="CASCADE"), nullable=False, index=True)
    activity_type = Column(String(50), nullable=False)
    description = Column(Text, nullable=False)
    performed_by = Column(String, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    case = relationship("Case", back_populates="activities")
    performer = relationship("User")

    @classmethod
    def record(cls, session, case_id, activity_type, description, performed_by=None):
        """Add an activity entry to the session"""
        activity = cls(
            case_id=case_id,
            activity_type=activity_type,
            description=description,
            performed_by=performed_by,
        )
        session.add(activity)
        return activity

    def __repr__(self):
        return f"<CaseActivity {self.activity_type} on {self.case_id}>"
