from sqlalchemy import Column, String, DateTime, Boolean, ForeignKey, Integer
from sqlalchemy.orm import relationship
from datetime import datetime
from ..config.database import Base
import uuid


class Document(Base):
    __tablename__ = "documents"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    case_id = Column(String, ForeignKey("cases.id", ondelete="CASCADE"), nullable=True, index=True)
    organisation_id = Column(String, ForeignKey("organisations.id"), nullable=False)

    file_name = Column(String(255), nullable=False)
    file_type = Column(String(100), nullable=True)
    file_size = Column(Integer, nullable=False, default=0)

    # Storage
    file_path = Column(String(500), nullable=True)  # relative to the upload dir
    s3_key = Column(String(500), nullable=True)
    storage_type = Column(String(10), nullable=False, default="local")
    file_hash = Column(String(64), nullable=True)
    is_encrypted = Column(Boolean, default=False, nullable=False)
    encryption_key = Column(String(255), nullable=True)

    uploaded_by = Column(String, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    case = relationship("Case", back_populates="documents")
    uploader = relationship("User")

    @property
    def uploaded_by_name(self):
        return self.uploader.full_name if self.uploader else None

    def __repr__(self):
        return f"<Document {self.file_name} ({self.file_size} bytes)>"
