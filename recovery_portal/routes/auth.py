from fastapi import APIRouter, Depends, HTTPException, status, Request, Response
from sqlalchemy.orm import Session
from pydantic import BaseModel, EmailStr, field_validator
from typing import Optional
from datetime import datetime
from slowapi import Limiter
from slowapi.util import get_remote_address

from ..config.database import get_db
from ..config.settings import settings
from ..config.logging import get_logger, log_authentication_attempt, log_security_event
from ..models import User, AuditLog, AuditAction, UserStatus, SessionSettings
from ..utils.auth import (
    hash_password, verify_password, validate_password_strength,
    create_access_token, verify_token, get_token_from_request,
    is_session_expired, get_session_remaining_time, get_client_ip_address
)

router = APIRouter()
logger = get_logger('auth')

limiter = Limiter(key_func=get_remote_address, enabled=settings.rate_limit_enabled)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str

    @field_validator('new_password')
    @classmethod
    def validate_password(cls, v):
        validation = validate_password_strength(v)
        if not validation['valid']:
            raise ValueError('; '.join(validation['errors']))
        return v


class UserResponse(BaseModel):
    id: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    full_name: str
    phone: Optional[str] = None
    is_admin: bool
    status: str
    must_change_password: bool
    organisation_id: Optional[str] = None
    organisation_name: Optional[str] = None
    last_login: Optional[datetime] = None
    created_at: datetime


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse


class SessionInfoResponse(BaseModel):
    remaining_seconds: int
    session_timeout_seconds: int
    warning_threshold: int
    enable_session_management: bool


def user_to_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        full_name=user.full_name,
        phone=user.phone,
        is_admin=user.is_admin,
        status=user.status.value,
        must_change_password=user.must_change_password,
        organisation_id=user.organisation_id,
        organisation_name=user.organisation_name,
        last_login=user.last_login,
        created_at=user.created_at,
    )


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


async def get_current_user(
    request: Request,
    db: Session = Depends(get_db)
) -> User:
    """Resolve the session cookie (or bearer token) to an active user"""
    token = get_token_from_request(request)
    if not token:
        raise _unauthorized("Not authenticated")

    payload = verify_token(token)
    if not payload:
        raise _unauthorized("Invalid authentication token")

    user_id = payload.get("sub")
    user = db.get(User, user_id) if user_id else None
    if not user:
        raise _unauthorized("User not found")

    if user.status != UserStatus.ACTIVE:
        raise _unauthorized("Your account has been suspended.")

    session_settings = SessionSettings.get_or_create_default(db)
    if is_session_expired(user.last_activity, session_settings):
        AuditLog.log_action(
            db,
            action=AuditAction.SESSION_EXPIRED,
            user_id=user.id,
            organisation_id=user.organisation_id,
            description=f"Session expired due to inactivity for {user.email}",
            ip_address=get_client_ip_address(request),
            success=False
        )
        db.commit()
        raise _unauthorized("Session expired due to inactivity. Please log in again.")

    user.last_activity = datetime.utcnow()
    db.commit()

    request.state.user = user
    return user


async def get_current_admin(current_user: User = Depends(get_current_user)) -> User:
    """Require an admin user"""
    if not current_user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )
    return current_user


def set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=settings.session_cookie_name,
        value=token,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite="lax",
        max_age=settings.access_token_expire_minutes * 60,
        path="/",
    )


@router.post("/login", response_model=LoginResponse)
@limiter.limit(settings.login_rate_limit)
async def login(
    request: Request,
    response: Response,
    login_request: LoginRequest,
    db: Session = Depends(get_db)
):
    """Login with email and password and start a cookie session"""
    ip_address = get_client_ip_address(request)
    user = db.query(User).filter(User.email == login_request.email.lower()).first()

    # Always hash the password even if user doesn't exist (timing attack prevention)
    if user:
        password_valid = verify_password(login_request.password, user.password_hash)
    else:
        hash_password("dummy_password")
        password_valid = False

    if not user or not password_valid:
        log_authentication_attempt(login_request.email, False, ip_address, "Invalid email or password")
        if user:
            AuditLog.log_action(
                db,
                action=AuditAction.LOGIN_FAILED,
                user_id=user.id,
                organisation_id=user.organisation_id,
                description=f"Failed login attempt for {user.email}",
                ip_address=ip_address,
                success=False
            )
            db.commit()
        raise _unauthorized("Invalid email or password")

    if user.status != UserStatus.ACTIVE:
        log_security_event("suspended_login", user_id=user.id, ip_address=ip_address)
        raise _unauthorized("Your account has been suspended.")

    now = datetime.utcnow()
    user.last_login = now
    user.last_activity = now
    AuditLog.log_action(
        db,
        action=AuditAction.LOGIN,
        user_id=user.id,
        organisation_id=user.organisation_id,
        description=f"Successful login for {user.email}",
        ip_address=ip_address
    )
    db.commit()
    log_authentication_attempt(user.email, True, ip_address)

    token = create_access_token(user.id, is_admin=user.is_admin)
    set_session_cookie(response, token)
    return LoginResponse(access_token=token, user=user_to_response(user))


@router.post("/logout")
async def logout(
    request: Request,
    response: Response,
    db: Session = Depends(get_db)
):
    """End the session. Works even when the session already expired so idle logout can always clear the cookie"""
    token = get_token_from_request(request)
    payload = verify_token(token) if token else None
    user = db.get(User, payload.get("sub")) if payload and payload.get("sub") else None

    if user:
        AuditLog.log_action(
            db,
            action=AuditAction.LOGOUT,
            user_id=user.id,
            organisation_id=user.organisation_id,
            description=f"User logout: {user.email}",
            ip_address=get_client_ip_address(request)
        )
        db.commit()

    response.delete_cookie(settings.session_cookie_name, path="/")
    return {"message": "Successfully logged out"}


@router.get("/user", response_model=UserResponse)
async def get_current_user_info(current_user: User = Depends(get_current_user)):
    """Get current user information"""
    return user_to_response(current_user)


@router.post("/change-password")
async def change_password(
    request: Request,
    password_request: ChangePasswordRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Change the current user's password"""
    if not verify_password(password_request.current_password, current_user.password_hash):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Current password is incorrect"
        )

    current_user.password_hash = hash_password(password_request.new_password)
    current_user.must_change_password = False
    AuditLog.log_action(
        db,
        action=AuditAction.PASSWORD_CHANGED,
        user_id=current_user.id,
        organisation_id=current_user.organisation_id,
        description=f"Password changed for {current_user.email}",
        ip_address=get_client_ip_address(request)
    )
    db.commit()
    logger.info("Password changed for user %s", current_user.id)
    return {"message": "Password changed successfully"}


@router.get("/session-info", response_model=SessionInfoResponse)
async def get_session_info(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Get current session information for the idle countdown"""
    session_settings = SessionSettings.get_or_create_default(db)
    return SessionInfoResponse(
        remaining_seconds=get_session_remaining_time(current_user.last_activity, session_settings),
        session_timeout_seconds=session_settings.session_timeout_seconds,
        warning_threshold=session_settings.session_warning_seconds,
        enable_session_management=session_settings.enable_session_management,
    )
