import logging
import sys
import os
from datetime import datetime
from .settings import settings

ROOT_LOGGER_NAME = 'recovery_portal'


def setup_logging():
    """Setup structured logging for the application"""

    log_level = logging.DEBUG if settings.debug else getattr(logging, settings.log_level.upper(), logging.INFO)

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    handlers = []

    # Console handler (always present)
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    handlers.append(console_handler)

    # File handler (only in production)
    if not settings.debug:
        log_dir = os.path.join(os.path.dirname(os.path.dirname(__file__)), '..', 'logs')
        os.makedirs(log_dir, exist_ok=True)

        from logging.handlers import RotatingFileHandler
        file_handler = RotatingFileHandler(
            os.path.join(log_dir, settings.log_file),
            maxBytes=50*1024*1024,
            backupCount=50
        )
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    logging.basicConfig(
        level=log_level,
        handlers=handlers,
        force=True
    )

    if not settings.debug:
        # Reduce noise from third-party libraries in production
        logging.getLogger('uvicorn.access').setLevel(logging.WARNING)
        logging.getLogger('uvicorn.error').setLevel(logging.WARNING)
        logging.getLogger('fastapi').setLevel(logging.WARNING)
        logging.getLogger('sqlalchemy.engine').setLevel(logging.WARNING)
        logging.getLogger('botocore').setLevel(logging.WARNING)

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.info("Logging system initialized")

    return logger


def get_logger(name: str = None) -> logging.Logger:
    """Get a logger instance for a specific module"""
    if name:
        return logging.getLogger(f'{ROOT_LOGGER_NAME}.{name}')
    return logging.getLogger(ROOT_LOGGER_NAME)


def _log_data(**fields) -> dict:
    fields['timestamp'] = datetime.utcnow().isoformat()
    return fields


# Security logging functions
def log_security_event(event_type: str, user_id: str = None, details: str = None, ip_address: str = None):
    """Log security-related events"""
    logger = get_logger('security')
    log_data = _log_data(event_type=event_type, user_id=user_id, details=details, ip_address=ip_address)
    logger.warning(f"Security Event: {log_data}")


def log_authentication_attempt(email: str, success: bool, ip_address: str = None, details: str = None):
    """Log authentication attempts"""
    event_type = "login_success" if success else "login_failed"
    log_security_event(event_type, details=f"Email: {email}, Details: {details}", ip_address=ip_address)


def _log_operation(area: str, label: str, **fields):
    get_logger(area).info(f"{label}: {_log_data(**fields)}")


def log_document_operation(operation: str, document_id: str = None, user_id: str = None, details: str = None, ip_address: str = None):
    """Log document uploads, downloads and deletions"""
    _log_operation('documents', "Document Operation", operation=operation, document_id=document_id,
                   user_id=user_id, details=details, ip_address=ip_address)


def log_case_operation(operation: str, case_id: str = None, user_id: str = None, details: str = None, ip_address: str = None):
    _log_operation('cases', "Case Operation", operation=operation, case_id=case_id,
                   user_id=user_id, details=details, ip_address=ip_address)


def log_message_operation(operation: str, message_id: str = None, user_id: str = None, details: str = None, ip_address: str = None):
    _log_operation('messages', "Message Operation", operation=operation, message_id=message_id,
                   user_id=user_id, details=details, ip_address=ip_address)


def log_report_operation(report: str, export_format: str = None, user_id: str = None, rows: int = None):
    """Log report views and exports"""
    _log_operation('reports', "Report Operation", report=report, format=export_format, user_id=user_id, rows=rows)


def log_api_request(method: str, path: str, user_id: str = None, status_code: int = None, duration_ms: float = None):
    _log_operation('api', "API Request", method=method, path=path, user_id=user_id,
                   status_code=status_code, duration_ms=duration_ms)
