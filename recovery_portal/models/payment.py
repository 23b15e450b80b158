from sqlalchemy import Column, String, DateTime, Text, ForeignKey, Numeric
from sqlalchemy.orm import relationship
from datetime import datetime
from ..config.database import Base
import uuid


class Payment(Base):
    __tablename__ = "payments"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    case_id = Column(String, ForeignKey("cases.id", ondelete="CASCADE"), nullable=False, index=True)
    organisation_id = Column(String, ForeignKey("organisations.id"), nullable=False)

    amount = Column(Numeric(12, 2), nullable=False)
    payment_date = Column(DateTime, nullable=False, default=datetime.utcnow)
    payment_method = Column(String(50), nullable=True)
    reference = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)

    recorded_by = Column(String, ForeignKey("users.id"), nullable=True)
    external_ref = Column(String(100), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    case = relationship("Case", back_populates="payments")
    recorder = relationship("User")

    @property
    def account_number(self):
        return self.case.account_number if self.case else None

    def __repr__(self):
        return f"<Payment {self.amount} on {self.case_id}>"
