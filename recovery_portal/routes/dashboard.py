from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from pydantic import BaseModel
from typing import List

from ..config.database import get_db
from ..models import User, Notification
from ..schemas.case import CaseResponse, case_to_response
from ..schemas.common import Money
from ..services.reports import dashboard_stats
from .auth import get_current_user
from .cases import visible_cases_query, last_activity_times

router = APIRouter()


class DashboardStatsResponse(BaseModel):
    active_cases: int
    closed_cases: int
    total_cases: int
    total_outstanding: Money
    total_recovery: Money
    unread_notifications: int
    recent_cases: List[CaseResponse] = []


@router.get("/stats", response_model=DashboardStatsResponse)
async def get_dashboard_stats(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Headline figures for the user's organisation (every organisation for admins)"""
    cases = visible_cases_query(db, current_user).all()
    stats = dashboard_stats(cases)

    activity = last_activity_times(db, cases)
    recent = sorted(cases, key=lambda case: activity.get(case.id) or case.created_at, reverse=True)[:5]
    unread = (
        db.query(Notification)
        .filter(Notification.user_id == current_user.id, Notification.read.is_(False))
        .count()
    )
    return DashboardStatsResponse(
        **stats,
        unread_notifications=unread,
        recent_cases=[case_to_response(case, activity.get(case.id)) for case in recent],
    )
