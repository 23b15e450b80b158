"""
Pydantic schemas for cases, case activities and payments
"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from .common import Badge, Money, PageResponse
from ..services.case_search import normalise_debtor_type, stage_badge, status_badge
from ..services.financials import case_financials


class CaseCreate(BaseModel):
    debtor_name: str = Field(..., min_length=1, max_length=255)
    case_name: Optional[str] = None
    account_number: Optional[str] = Field(None, max_length=50)
    debtor_email: Optional[EmailStr] = None
    debtor_phone: Optional[str] = None
    debtor_address: Optional[str] = None
    debtor_type: str = "individual"
    original_amount: Decimal = Field(..., ge=0)
    outstanding_amount: Optional[Decimal] = Field(None, ge=0)
    costs_added: Decimal = Field(Decimal("0"), ge=0)
    interest_added: Decimal = Field(Decimal("0"), ge=0)
    fees_added: Decimal = Field(Decimal("0"), ge=0)
    status: str = "active"
    stage: str = "initial_contact"
    external_ref: Optional[str] = None
    # Only honoured for admins; everyone else files against their own organisation
    organisation_id: Optional[str] = None

    @field_validator("debtor_email", "outstanding_amount", "account_number", mode="before")
    @classmethod
    def blank_is_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("debtor_type", mode="before")
    @classmethod
    def normalise_type(cls, v):
        return normalise_debtor_type(v)

    @field_validator("debtor_name")
    @classmethod
    def strip_name(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Debtor name is required")
        return v


class PaymentCreate(BaseModel):
    amount: Decimal = Field(..., gt=0)
    payment_date: Optional[datetime] = None
    payment_method: Optional[str] = None
    reference: Optional[str] = None
    notes: Optional[str] = None


class PaymentResponse(BaseModel):
    id: str
    case_id: str
    organisation_id: str
    amount: Money
    payment_date: datetime
    payment_method: Optional[str] = None
    reference: Optional[str] = None
    notes: Optional[str] = None
    recorded_by: Optional[str] = None
    created_at: datetime
    account_number: Optional[str] = None

    class Config:
        from_attributes = True

    @classmethod
    def from_model(cls, payment):
        return cls.model_validate(payment)


class ActivityResponse(BaseModel):
    id: str
    case_id: str
    activity_type: str
    description: str
    performed_by: Optional[str] = None
    performed_by_name: Optional[str] = None
    created_at: datetime

    @classmethod
    def from_model(cls, activity):
        return cls(
            id=activity.id,
            case_id=activity.case_id,
            activity_type=activity.activity_type,
            description=activity.description,
            performed_by=activity.performed_by,
            performed_by_name=activity.performer.full_name if activity.performer else None,
            created_at=activity.created_at,
        )


class CaseResponse(BaseModel):
    id: str
    account_number: str
    case_name: Optional[str] = None
    debtor_name: str
    debtor_email: Optional[str] = None
    debtor_phone: Optional[str] = None
    debtor_address: Optional[str] = None
    debtor_type: str
    original_amount: Money
    outstanding_amount: Money
    costs_added: Money
    interest_added: Money
    fees_added: Money
    total_debt: Money
    total_payments: Money
    recovery_rate: float
    recovery_band: str
    status: str
    stage: str
    status_badge: Badge
    stage_badge: Badge
    organisation_id: str
    organisation_name: Optional[str] = None
    assigned_to: Optional[str] = None
    external_ref: Optional[str] = None
    is_archived: bool = False
    archived_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    last_activity_time: Optional[datetime] = None


class CaseDetailResponse(CaseResponse):
    payments: List[PaymentResponse] = []
    activities: List[ActivityResponse] = []


CaseListResponse = PageResponse[CaseResponse]


def _badge(badge) -> Badge:
    return Badge(label=badge.label, colour=badge.colour)


def case_fields(case, last_activity_time: Optional[datetime] = None) -> dict:
    """Stored columns plus the derived figures every case view shows"""
    figures = case_financials(case)
    return dict(
        id=case.id,
        account_number=case.account_number,
        case_name=case.case_name,
        debtor_name=case.debtor_name,
        debtor_email=case.debtor_email,
        debtor_phone=case.debtor_phone,
        debtor_address=case.debtor_address,
        debtor_type=case.debtor_type,
        original_amount=case.original_amount or Decimal("0"),
        costs_added=case.costs_added or Decimal("0"),
        interest_added=case.interest_added or Decimal("0"),
        fees_added=case.fees_added or Decimal("0"),
        outstanding_amount=figures["outstanding_amount"],
        total_debt=figures["total_debt"],
        total_payments=figures["total_payments"],
        recovery_rate=figures["recovery_rate"],
        recovery_band=figures["recovery_band"],
        status=case.status,
        stage=case.stage,
        status_badge=_badge(status_badge(case.status)),
        stage_badge=_badge(stage_badge(case.status, case.stage)),
        organisation_id=case.organisation_id,
        organisation_name=case.organisation_name,
        assigned_to=case.assigned_to,
        external_ref=case.external_ref,
        is_archived=bool(case.is_archived),
        archived_at=case.archived_at,
        created_at=case.created_at,
        updated_at=case.updated_at,
        last_activity_time=last_activity_time or case.updated_at,
    )


def case_to_response(case, last_activity_time: Optional[datetime] = None) -> CaseResponse:
    return CaseResponse(**case_fields(case, last_activity_time))


def case_to_detail(case, last_activity_time: Optional[datetime] = None) -> CaseDetailResponse:
    return CaseDetailResponse(
        **case_fields(case, last_activity_time),
        payments=[PaymentResponse.from_model(payment) for payment in case.payments],
        activities=[ActivityResponse.from_model(activity) for activity in case.activities],
    )
