from fastapi import APIRouter, Depends, HTTPException, status, Request
from sqlalchemy.orm import Session
from pydantic import BaseModel, field_validator, model_validator
from typing import Optional

from ..config.database import get_db
from ..models import User, SessionSettings, AuditLog, AuditAction
from ..utils.auth import get_client_ip_address
from .auth import get_current_user, get_current_admin

router = APIRouter(prefix="/session-settings", tags=["session-settings"])


def _within(label: str, value: int, bounds) -> int:
    low, high = bounds
    if not low <= value <= high:
        raise ValueError(f"{label} must be between {low} and {high} seconds")
    return value


class SessionSettingsRequest(BaseModel):
    session_timeout_seconds: int
    session_warning_seconds: int
    enable_session_management: bool = True

    @field_validator('session_timeout_seconds')
    @classmethod
    def validate_timeout_seconds(cls, v):
        return _within("Session timeout", v, SessionSettings.TIMEOUT_RANGE)

    @field_validator('session_warning_seconds')
    @classmethod
    def validate_warning_seconds(cls, v):
        return _within("Session warning", v, SessionSettings.WARNING_RANGE)

    @model_validator(mode='after')
    def warning_before_timeout(self):
        if self.session_warning_seconds >= self.session_timeout_seconds:
            raise ValueError('Session warning must be shorter than the session timeout')
        return self

class SessionSettingsResponse(BaseModel):
    session_timeout_seconds: int
    session_warning_seconds: int
    enable_session_management: bool
    updated_at: Optional[str]
    updated_by: Optional[str]

class PublicSessionSettingsResponse(BaseModel):
    enable_session_management: bool
    session_timeout_seconds: int
    session_warning_seconds: int
    warning_at_seconds: int

@router.get("", response_model=SessionSettingsResponse)
async def get_session_settings(
    current_admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    """Get current session settings (admin only)"""
    settings = SessionSettings.get_or_create_default(db)
    return SessionSettingsResponse(**settings.to_dict())

@router.put("", response_model=SessionSettingsResponse)
async def update_session_settings(
    settings_data: SessionSettingsRequest,
    request: Request,
    current_admin: User = Depends(get_current_admin),
    db: Session = Depends(get_db)
):
    """Update the idle timeout and warning (admin only)"""
    settings = SessionSettings.get_or_create_default(db)
    old_values = settings.to_dict()

    settings.session_timeout_seconds = settings_data.session_timeout_seconds
    settings.session_warning_seconds = settings_data.session_warning_seconds
    settings.enable_session_management = settings_data.enable_session_management
    settings.updated_by = current_admin.id

    changes = [
        f"{key}: {old_values[key]} -> {getattr(settings, key)}"
        for key in ("session_timeout_seconds", "session_warning_seconds", "enable_session_management")
        if old_values[key] != getattr(settings, key)
    ]
    AuditLog.log_action(
        db,
        action=AuditAction.SESSION_SETTINGS_UPDATED,
        user_id=current_admin.id,
        organisation_id=current_admin.organisation_id,
        description=f"Session settings updated by {current_admin.email}. Changes: {', '.join(changes) or 'none'}",
        ip_address=get_client_ip_address(request),
    )
    db.commit()
    db.refresh(settings)
    return SessionSettingsResponse(**settings.to_dict())

@router.get("/public", response_model=PublicSessionSettingsResponse)
async def get_public_session_settings(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Idle timeout and warning for the client-side countdown (any authenticated user)"""
    settings = SessionSettings.get_or_create_default(db)
    return PublicSessionSettingsResponse(
        enable_session_management=settings.enable_session_management,
        session_timeout_seconds=settings.session_timeout_seconds,
        session_warning_seconds=settings.session_warning_seconds,
        warning_at_seconds=settings.warning_at_seconds,
    )
