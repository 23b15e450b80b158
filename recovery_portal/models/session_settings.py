from sqlalchemy import Column, String, Integer, Boolean, DateTime
from datetime import datetime
from ..config.database import Base
from ..config.settings import settings as app_settings


class SessionSettings(Base):
    """Single row holding the portal-wide idle timeout and warning lead time"""
    __tablename__ = "session_settings"

    TIMEOUT_RANGE = (60, 7200)
    WARNING_RANGE = (10, 600)

    id = Column(String, primary_key=True, default="singleton")

    session_timeout_seconds = Column(Integer, default=900, nullable=False)
    session_warning_seconds = Column(Integer, default=60, nullable=False)

    enable_session_management = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    updated_by = Column(String, nullable=True)

    def __repr__(self):
        return f"<SessionSettings(timeout={self.session_timeout_seconds}s, warning={self.session_warning_seconds}s)>"

    @classmethod
    def get_or_create_default(cls, db):
        """The settings row, seeded from SESSION_TIMEOUT_SECONDS and SESSION_WARNING_SECONDS on first use"""
        settings = db.query(cls).filter(cls.id == "singleton").first()
        if not settings:
            settings = cls(
                id="singleton",
                session_timeout_seconds=app_settings.session_timeout_seconds,
                session_warning_seconds=app_settings.session_warning_seconds,
                enable_session_management=True,
            )
            db.add(settings)
            db.commit()
            db.refresh(settings)
        return settings

    @property
    def warning_at_seconds(self):
        """Seconds of inactivity after which the warning is shown"""
        return max(0, self.session_timeout_seconds - self.session_warning_seconds)

    def to_dict(self):
        return {
            "session_timeout_seconds": self.session_timeout_seconds,
            "session_warning_seconds": self.session_warning_seconds,
            "enable_session_management": self.enable_session_management,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "updated_by": self.updated_by,
        }
