from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Optional
import os


class Settings(BaseSettings):
    # Application
    app_name: str = os.getenv(
        "APP_NAME", "Debt Recovery Case Portal")  # .env: APP_NAME
    app_version: str = os.getenv("APP_VERSION", "1.0.0")  # .env: APP_VERSION
    debug: bool = os.getenv("DEBUG", "true").lower() == "true"  # .env: DEBUG

    # Database (SQLite locally, PostgreSQL in production)
    database_url: str = os.getenv(
        "DATABASE_URL",
        "sqlite:///./recovery_portal.db"
    )  # .env: DATABASE_URL

    # Security
    secret_key: str = os.getenv("SECRET_KEY", "")  # .env: SECRET_KEY

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        origins_str = os.getenv(
            "ALLOWED_ORIGINS",
            "http://localhost:3000,http://localhost:5173,"
            "http://127.0.0.1:3000,http://127.0.0.1:5173"
        )
        object.__setattr__(self, 'allowed_origins', [
            origin.strip() for origin in origins_str.split(",")
        ])

        # Only enforce SECRET_KEY requirement in production
        if not self.secret_key and not self.debug:
            raise ValueError(
                "SECRET_KEY environment variable is required in production")
        elif not self.secret_key and self.debug:
            import secrets
            self.secret_key = secrets.token_urlsafe(32)
            print("WARNING: Using temporary SECRET_KEY for development. Set SECRET_KEY environment variable for production!")
    algorithm: str = "HS256"
    access_token_expire_minutes: int = int(
        os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "480"))  # .env: ACCESS_TOKEN_EXPIRE_MINUTES

    # Session cookie
    session_cookie_name: str = os.getenv(
        "SESSION_COOKIE_NAME", "portal_session")  # .env: SESSION_COOKIE_NAME
    session_cookie_secure: bool = os.getenv(
        "SESSION_COOKIE_SECURE", "false").lower() == "true"  # .env: SESSION_COOKIE_SECURE

    # File Upload (25MB, matching the portal's upload form)
    max_file_size: int = int(
        os.getenv("MAX_FILE_SIZE", str(25 * 1024 * 1024)))  # .env: MAX_FILE_SIZE
    upload_dir: str = os.getenv("UPLOAD_DIR", "./uploads")  # .env: UPLOAD_DIR
    encrypt_uploads: bool = os.getenv(
        "ENCRYPT_UPLOADS", "true").lower() == "true"  # .env: ENCRYPT_UPLOADS
    file_encryption_key: str = os.getenv(
        "FILE_ENCRYPTION_KEY", "")  # .env: FILE_ENCRYPTION_KEY
    allowed_extensions: List[str] = [
        "pdf", "doc", "docx", "txt", "jpg", "jpeg", "png", "gif", "heic", "heif",
        "xls", "xlsx", "csv", "zip", "rar", "mp4", "mov", "avi", "webm", "mkv",
        "m4v", "3gp", "3gpp"
    ]

    # AWS S3 Configuration
    aws_access_key_id: Optional[str] = os.getenv(
        "AWS_ACCESS_KEY_ID")  # .env: AWS_ACCESS_KEY_ID
    aws_secret_access_key: Optional[str] = os.getenv(
        "AWS_SECRET_ACCESS_KEY")  # .env: AWS_SECRET_ACCESS_KEY
    aws_region: str = os.getenv(
        "AWS_REGION", "eu-west-2")  # .env: AWS_REGION
    s3_bucket_name: str = os.getenv(
        "S3_BUCKET_NAME", "recovery-portal-documents")  # .env: S3_BUCKET_NAME
    s3_endpoint_url: Optional[str] = os.getenv(
        "S3_ENDPOINT_URL")  # .env: S3_ENDPOINT_URL
    use_s3_storage: bool = os.getenv(
        "USE_S3_STORAGE", "false").lower() == "true"  # .env: USE_S3_STORAGE

    # Idle session settings (seed values for the session_settings row)
    session_timeout_seconds: int = int(
        os.getenv("SESSION_TIMEOUT_SECONDS", "900"))  # .env: SESSION_TIMEOUT_SECONDS
    session_warning_seconds: int = int(
        os.getenv("SESSION_WARNING_SECONDS", "60"))  # .env: SESSION_WARNING_SECONDS

    # Listings
    cases_page_size: int = int(
        os.getenv("CASES_PAGE_SIZE", "20"))  # .env: CASES_PAGE_SIZE
    messages_page_size: int = int(
        os.getenv("MESSAGES_PAGE_SIZE", "20"))  # .env: MESSAGES_PAGE_SIZE

    # Rate limiting
    rate_limit_enabled: bool = os.getenv(
        "RATE_LIMIT_ENABLED", "true").lower() == "true"  # .env: RATE_LIMIT_ENABLED
    login_rate_limit: str = os.getenv(
        "LOGIN_RATE_LIMIT", "10/minute")  # .env: LOGIN_RATE_LIMIT

    # Logging
    log_level: str = os.getenv("LOG_LEVEL", "INFO")  # .env: LOG_LEVEL
    log_file: str = os.getenv("LOG_FILE", "app.log")  # .env: LOG_FILE

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",  # allowed_origins is parsed manually in __init__
    )


settings = Settings()
