from sqlalchemy import Column, String, DateTime, Boolean, ForeignKey, Enum
from sqlalchemy.orm import relationship
from datetime import datetime
from enum import Enum as PyEnum
from ..config.database import Base
import uuid


class UserStatus(PyEnum):
    ACTIVE = "active"
    SUSPENDED = "suspended"


class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)

    # Profile
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    phone = Column(String(50), nullable=True)

    # Admins belong to the recovery organisation itself and may have no client organisation
    organisation_id = Column(String, ForeignKey("organisations.id"), nullable=True)
    is_admin = Column(Boolean, default=False, nullable=False)
    status = Column(Enum(UserStatus), nullable=False, default=UserStatus.ACTIVE)
    must_change_password = Column(Boolean, default=False, nullable=False)

    # Session tracking
    last_login = Column(DateTime, nullable=True)
    last_activity = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    organisation = relationship("Organisation", back_populates="users")
    audit_logs = relationship("AuditLog", back_populates="user")
    notifications = relationship("Notification", back_populates="user", cascade="all, delete-orphan")

    @property
    def full_name(self):
        if self.first_name and self.last_name:
            return f"{self.first_name} {self.last_name}"
        return self.first_name or self.email

    @property
    def organisation_name(self):
        return self.organisation.name if self.organisation else None

    @property
    def is_active(self):
        return self.status == UserStatus.ACTIVE

    def can_access_organisation(self, organisation_id) -> bool:
        """Admins see everything, other users only their own organisation"""
        return self.is_admin or (self.organisation_id is not None and self.organisation_id == organisation_id)

    def __repr__(self):
        return f"<User {self.email} ({'admin' if self.is_admin else 'client'})>"
