from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
import os
import time
import uvicorn
from contextlib import asynccontextmanager
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from .config.settings import settings
from .config.logging import setup_logging, log_api_request
from .models import create_tables
from .routes import (
    auth, cases, messages, documents, payments, dashboard, reports, admin,
    notifications, session_settings
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger = setup_logging()
    logger.info("Starting %s...", settings.app_name)

    os.makedirs(settings.upload_dir, exist_ok=True)
    logger.info(f"Upload directory ready: {settings.upload_dir}")

    create_tables()
    logger.info("Database tables created")

    yield

    # Shutdown
    logger.info("Shutting down %s...", settings.app_name)

# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Client portal for tracking debt recovery cases, payments, messages and documents",
    docs_url="/api/docs" if settings.debug else None,
    redoc_url="/api/redoc" if settings.debug else None,
    lifespan=lifespan
)

# The login route decorates with this limiter, so it must be the app's limiter too
app.state.limiter = auth.limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

if not settings.debug:
    app.add_middleware(
        TrustedHostMiddleware,
        allowed_hosts=os.getenv("ALLOWED_HOSTS", "localhost,127.0.0.1").split(",")
    )

# Credentials are needed for the session cookie; Content-Disposition carries export filenames
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Requested-With", "Accept", "Origin"],
    expose_headers=["Content-Type", "Content-Disposition"],
    max_age=3600
)

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Cross-Origin-Opener-Policy": "same-origin",
    # Print views carry their own inline styles
    "Content-Security-Policy": (
        "default-src 'self'; style-src 'self' 'unsafe-inline'; img-src 'self' data:; "
        "frame-ancestors 'none'; object-src 'none'"
    ),
}


@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    response = await call_next(request)
    if not settings.debug:
        response.headers.update(SECURITY_HEADERS)
        if request.url.scheme == "https":
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
    return response


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log every API call with the acting user for the audit trail"""
    start_time = time.time()
    response = await call_next(request)
    user = getattr(request.state, "user", None)
    log_api_request(
        method=request.method,
        path=str(request.url.path),
        user_id=str(user.id) if user else None,
        status_code=response.status_code,
        duration_ms=round((time.time() - start_time) * 1000, 2)
    )
    return response


ROUTERS = (
    (auth.router, "/api/auth", "Authentication"),
    (cases.router, "/api/cases", "Cases"),
    (messages.router, "/api/messages", "Messages"),
    (documents.router, "/api/documents", "Documents"),
    (payments.router, "/api/payments", "Payments"),
    (dashboard.router, "/api/dashboard", "Dashboard"),
    (reports.router, "/api/reports", "Reports"),
    (admin.router, "/api/admin", "Administration"),
    (notifications.router, "/api", "Notifications"),
    (session_settings.router, "/api", "Session Settings"),
)

for router, prefix, tag in ROUTERS:
    app.include_router(router, prefix=prefix, tags=[tag])


@app.get("/api/health")
async def health_check():
    return {
        "status": "healthy",
        "version": settings.app_version,
        "service": settings.app_name
    }


@app.get("/")
async def root():
    return {
        "message": f"{settings.app_name} API",
        "version": settings.app_version,
        "docs": "/api/docs" if settings.debug else None
    }

if __name__ == "__main__":
    uvicorn.run(
        "recovery_portal.main:app",
        host="127.0.0.1",
        port=8000,
        reload=settings.debug,
        log_level="info" if settings.debug else "warning"
    )
