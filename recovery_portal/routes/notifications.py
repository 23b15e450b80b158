from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session, Query
from typing import List, Optional
from pydantic import BaseModel
from datetime import datetime

from ..config.database import get_db
from ..models import User, Notification
from .auth import get_current_user

router = APIRouter(prefix="/notifications", tags=["notifications"])

MAX_FEED_SIZE = 200


class NotificationResponse(BaseModel):
    id: str
    type: str
    title: str
    message: str
    case_id: Optional[str] = None
    data: Optional[dict] = None
    read: bool
    read_at: Optional[datetime] = None
    created_at: datetime

    @classmethod
    def from_model(cls, notification: Notification) -> "NotificationResponse":
        return cls(
            id=notification.id,
            type=notification.type.value,
            title=notification.title,
            message=notification.message,
            case_id=notification.case_id,
            data=notification.data,
            read=bool(notification.read),
            read_at=notification.read_at,
            created_at=notification.created_at,
        )


class MarkAsReadRequest(BaseModel):
    notification_id: str


def _feed(db: Session, user: User, unread_only: bool = False) -> Query:
    query = db.query(Notification).filter(Notification.user_id == user.id)
    if unread_only:
        query = query.filter(Notification.read.is_(False))
    return query


def _own_notification(db: Session, user: User, notification_id: str) -> Notification:
    notification = _feed(db, user).filter(Notification.id == notification_id).first()
    if notification is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
    return notification


def _mark_read(notifications: List[Notification]) -> int:
    now = datetime.utcnow()
    for notification in notifications:
        notification.read = True
        notification.read_at = now
    return len(notifications)


@router.get("", response_model=List[NotificationResponse])
async def get_notifications(
    unread_only: bool = False,
    limit: int = 50,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Newest first; message, document, case and payment events addressed to the user"""
    notifications = (
        _feed(db, current_user, unread_only)
        .order_by(Notification.created_at.desc())
        .limit(max(1, min(limit, MAX_FEED_SIZE)))
        .all()
    )
    return [NotificationResponse.from_model(notification) for notification in notifications]


@router.get("/unread-count")
async def get_unread_count(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return {"unread_count": _feed(db, current_user, unread_only=True).count()}


@router.post("/mark-as-read")
async def mark_notification_as_read(
    body: MarkAsReadRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    _mark_read([_own_notification(db, current_user, body.notification_id)])
    db.commit()
    return {"message": "Notification marked as read"}


@router.post("/mark-all-as-read")
async def mark_all_notifications_as_read(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    count = _mark_read(_feed(db, current_user, unread_only=True).all())
    db.commit()
    return {"message": f"Marked {count} notifications as read"}


@router.delete("/{notification_id}")
async def delete_notification(
    notification_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    db.delete(_own_notification(db, current_user, notification_id))
    db.commit()
    return {"message": "Notification deleted"}


@router.delete("")
async def clear_all_notifications(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    count = _feed(db, current_user).delete(synchronize_session=False)
    db.commit()
    return {"message": f"Cleared {count} notifications"}
