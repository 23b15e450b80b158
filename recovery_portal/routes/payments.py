from fastapi import APIRouter, Depends, HTTPException, status, Request
from sqlalchemy.orm import Session, joinedload
from typing import List, Optional

from ..config.database import get_db
from ..config.logging import log_case_operation
from ..models import User, Case, Payment, CaseActivity, AuditLog, AuditAction
from ..schemas.case import PaymentResponse
from ..services.records import within_range
from ..utils.auth import get_client_ip_address
from .auth import get_current_user, get_current_admin

router = APIRouter()


def visible_payments_query(db: Session, user: User):
    query = db.query(Payment).join(Case, Payment.case_id == Case.id).options(joinedload(Payment.case))
    if not user.is_admin:
        query = query.filter(Payment.organisation_id == user.organisation_id, Case.is_archived.is_(False))
    return query


@router.get("", response_model=List[PaymentResponse])
async def list_payments(
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
    organisation_id: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Payments received on the organisation's cases, newest first"""
    query = visible_payments_query(db, current_user)
    if current_user.is_admin and organisation_id:
        query = query.filter(Payment.organisation_id == organisation_id)
    payments = query.order_by(Payment.payment_date.desc()).all()
    return [
        PaymentResponse.from_model(payment) for payment in payments
        if within_range(payment.payment_date, date_from, date_to)
    ]


@router.delete("/{payment_id}")
async def delete_payment(
    payment_id: str,
    request: Request,
    current_admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    """Remove a payment recorded in error (admin only)"""
    payment = db.get(Payment, payment_id)
    if not payment:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Payment not found")

    case = payment.case
    case_id = payment.case_id
    if case is not None and case.outstanding_amount is not None:
        case.outstanding_amount = case.outstanding_amount + payment.amount
    CaseActivity.record(
        db,
        case_id=payment.case_id,
        activity_type="payment_deleted",
        description=f"Payment of £{payment.amount:,.2f} removed",
        performed_by=current_admin.id,
    )
    AuditLog.log_action(
        db,
        action=AuditAction.PAYMENT_DELETED,
        user_id=current_admin.id,
        organisation_id=payment.organisation_id,
        resource_type="payment",
        resource_id=payment.id,
        case_id=payment.case_id,
        details={"amount": str(payment.amount)},
        ip_address=get_client_ip_address(request),
    )
    db.delete(payment)
    db.commit()
    log_case_operation("payment_deleted", case_id, current_admin.id, f"payment={payment_id}")
    return {"message": "Payment deleted successfully"}
