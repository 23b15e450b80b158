import os
import re
import uuid
import hashlib
import mimetypes
from typing import Optional, Tuple
from cryptography.fernet import Fernet, InvalidToken
from ..config.settings import settings
from ..config.logging import get_logger

logger = get_logger('file_utils')


class FileValidationError(ValueError):
    """Raised when an upload is rejected before it is stored."""


# File encryption
def generate_encryption_key() -> bytes:
    """Generate encryption key for file encryption"""
    return Fernet.generate_key()


def encrypt_file_content(content: bytes, key: bytes) -> bytes:
    return Fernet(key).encrypt(content)


def decrypt_file_content(encrypted_content: bytes, key: bytes) -> bytes:
    try:
        return Fernet(key).decrypt(encrypted_content)
    except InvalidToken:
        logger.error("Stored file could not be decrypted with its key")
        raise


def get_file_hash(content: bytes) -> str:
    """Generate SHA-256 hash of file content"""
    return hashlib.sha256(content).hexdigest()


def get_file_mime_type(filename: str, declared: Optional[str] = None) -> str:
    """Trust the browser's declared type unless it is generic, then guess from the extension"""
    if declared and declared != "application/octet-stream":
        return declared
    guessed, _ = mimetypes.guess_type(filename)
    return guessed or "application/octet-stream"


def sanitise_filename(original_filename: str) -> str:
    """Strip directory parts and characters that are unsafe in storage paths"""
    name = os.path.basename((original_filename or "").replace("\\", "/"))
    name = re.sub(r"[^A-Za-z0-9._ -]", "_", name).strip(" .")
    return name or "file"


def generate_secure_filename(original_filename: str, prefix: Optional[str] = None) -> str:
    """Unique stored name: <prefix or short uuid>-<sanitised original name>"""
    safe_name = sanitise_filename(original_filename)
    base_filename, ext = os.path.splitext(safe_name)
    unique = prefix or uuid.uuid4().hex[:8]
    return f"{unique}-{base_filename}{ext.lower()}"


def get_extension(filename: str) -> str:
    return os.path.splitext((filename or "").lower())[1].lstrip(".")


def is_allowed_file_type(filename: str) -> Tuple[bool, str]:
    """Check if file type is allowed based on extension. Returns (is_allowed, message)"""
    ext = get_extension(filename)
    if ext and ext in settings.allowed_extensions:
        return True, "File type allowed"
    allowed_list = ", ".join(f".{e}" for e in sorted(settings.allowed_extensions))
    shown = f".{ext}" if ext else "(none)"
    return False, f"File type '{shown}' is not allowed. Allowed types are: {allowed_list}"


def is_file_size_allowed(size: int) -> Tuple[bool, str]:
    """Check if file size is within allowed limits. Returns (is_allowed, message)"""
    max_size = settings.max_file_size
    if size <= 0:
        return False, "File is empty"
    if size <= max_size:
        return True, "File size acceptable"
    max_mb = max_size / (1024 * 1024)
    actual_mb = size / (1024 * 1024)
    return False, f"File size ({actual_mb:.1f}MB) exceeds maximum allowed size of {max_mb:.0f}MB"


def validate_upload(filename: str, size: int) -> None:
    """Raise FileValidationError when the name or size is not acceptable"""
    allowed, message = is_allowed_file_type(filename)
    if not allowed:
        raise FileValidationError(message)
    allowed, message = is_file_size_allowed(size)
    if not allowed:
        raise FileValidationError(message)


def format_file_size(size: Optional[int]) -> str:
    size = size or 0
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    return f"{size / (1024 * 1024):.1f} MB"
