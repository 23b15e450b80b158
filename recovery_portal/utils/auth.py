from passlib.context import CryptContext
from jose import JWTError, jwt
from datetime import datetime, timedelta
from typing import Optional, Dict, Any
import secrets
import string
from fastapi import Request
from ..config.settings import settings

# Password hashing (pbkdf2_sha256 avoids platform bcrypt issues)
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

MIN_PASSWORD_LENGTH = 10

PASSWORD_RULES = (
    (lambda p: len(p) >= MIN_PASSWORD_LENGTH, f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"),
    (lambda p: any(c.isupper() for c in p), "Password must contain at least one uppercase letter"),
    (lambda p: any(c.islower() for c in p), "Password must contain at least one lowercase letter"),
    (lambda p: any(c.isdigit() for c in p), "Password must contain at least one number"),
)

SESSION_TOKEN_TYPE = "session"

# Checked in order; the first header present wins
CLIENT_IP_HEADERS = ("X-Forwarded-For", "X-Real-IP", "CF-Connecting-IP")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def validate_password_strength(password: str) -> Dict[str, Any]:
    """Check a new password against the portal policy: 10+ characters with upper, lower and a digit"""
    errors = [message for rule, message in PASSWORD_RULES if not rule(password or "")]
    return {"valid": not errors, "errors": errors}


def generate_temporary_password(length: int = 12) -> str:
    """Random password handed to newly created users; always passes the policy"""
    alphabet = string.ascii_letters + string.digits
    while True:
        candidate = "".join(secrets.choice(alphabet) for _ in range(length))
        if validate_password_strength(candidate)["valid"]:
            return candidate


def create_access_token(user_id: str, is_admin: bool = False, expires_delta: Optional[timedelta] = None) -> str:
    """Sign the session token stored in the portal cookie"""
    issued_at = datetime.utcnow()
    lifetime = expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    claims = {
        "sub": user_id,
        "admin": is_admin,
        "type": SESSION_TOKEN_TYPE,
        "iat": issued_at,
        "exp": issued_at + lifetime,
    }
    return jwt.encode(claims, settings.secret_key, algorithm=settings.algorithm)


def verify_token(token: str) -> Optional[dict]:
    """Decoded claims of a valid session token, None otherwise"""
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None
    if payload.get("type") != SESSION_TOKEN_TYPE:
        return None
    return payload


# Idle session tracking
def session_deadline(last_activity: Optional[datetime], session_settings) -> Optional[datetime]:
    """Moment the session lapses; None when idle tracking is switched off"""
    if not session_settings.enable_session_management:
        return None
    if not last_activity:
        return datetime.min
    return last_activity + timedelta(seconds=session_settings.session_timeout_seconds)


def is_session_expired(last_activity: Optional[datetime], session_settings) -> bool:
    deadline = session_deadline(last_activity, session_settings)
    return deadline is not None and datetime.utcnow() > deadline


def get_session_remaining_time(last_activity: Optional[datetime], session_settings) -> int:
    """Whole seconds left before the idle timeout logs the user out"""
    deadline = session_deadline(last_activity, session_settings)
    if deadline is None:
        return session_settings.session_timeout_seconds
    if deadline == datetime.min:
        return 0
    return max(0, int((deadline - datetime.utcnow()).total_seconds()))


def get_token_from_request(request: Request) -> Optional[str]:
    """Session cookie first, then an Authorization: Bearer header"""
    token = request.cookies.get(settings.session_cookie_name)
    if token:
        return token
    scheme, _, credentials = request.headers.get("Authorization", "").partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return None


def get_client_ip_address(request: Request) -> Optional[str]:
    """Originating client address for audit entries, honouring proxy headers"""
    if not request:
        return None
    for header in CLIENT_IP_HEADERS:
        value = request.headers.get(header)
        if value:
            # X-Forwarded-For lists the original client first
            return value.split(",")[0].strip()
    return request.client.host if request.client else None
