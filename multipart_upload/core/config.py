"""
Configuration settings for the upload service
"""
import os
from dotenv import load_dotenv

load_dotenv()

MIB = 1024 * 1024
GIB = 1024 * MIB


class Settings:
    """Application settings"""

    # Database
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./uploads.db")

    # S3 / MinIO object storage
    S3_ENDPOINT: str = os.getenv("S3_ENDPOINT", "http://localhost:9000")
    S3_ACCESS_KEY: str = os.getenv("S3_ACCESS_KEY", "minioadmin")
    S3_SECRET_KEY: str = os.getenv("S3_SECRET_KEY", "minioadmin")
    S3_BUCKET: str = os.getenv("S3_BUCKET", "uploads")
    S3_REGION: str = os.getenv("S3_REGION", "us-east-1")
    S3_PATH_STYLE_ACCESS: bool = os.getenv("S3_PATH_STYLE_ACCESS", "true").lower() == "true"

    # Upload limits
    UPLOAD_MAX_FILE_SIZE: int = int(os.getenv("UPLOAD_MAX_FILE_SIZE", str(5 * GIB)))
    UPLOAD_DEFAULT_CHUNK_SIZE: int = int(os.getenv("UPLOAD_DEFAULT_CHUNK_SIZE", str(8 * MIB)))
    UPLOAD_ALLOWED_CONTENT_TYPES: str = os.getenv("UPLOAD_ALLOWED_CONTENT_TYPES", "video/")
    PRESIGNED_URL_EXPIRATION_MINUTES: int = int(os.getenv("PRESIGNED_URL_EXPIRATION_MINUTES", "60"))

    # Server-side uploads
    UPLOAD_TEMP_DIRECTORY: str = os.getenv("UPLOAD_TEMP_DIRECTORY", "/tmp/multipart-upload")
    UPLOAD_WORKER_COUNT: int = int(os.getenv("UPLOAD_WORKER_COUNT", "4"))
    UPLOAD_QUEUE_CAPACITY: int = int(os.getenv("UPLOAD_QUEUE_CAPACITY", "200"))
    PROGRESS_RETENTION_MINUTES: int = int(os.getenv("PROGRESS_RETENTION_MINUTES", "60"))

    # Server
    SERVER_HOST: str = os.getenv("SERVER_HOST", "0.0.0.0")
    SERVER_PORT: int = int(os.getenv("SERVER_PORT", "8000"))

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Application
    APP_TITLE: str = "Multipart Upload API"
    APP_DESCRIPTION: str = "Resumable chunked uploads to S3-compatible storage"
    APP_VERSION: str = "1.0.0"

    @property
    def allowed_content_type_prefixes(self) -> list[str]:
        return [p.strip() for p in self.UPLOAD_ALLOWED_CONTENT_TYPES.split(",") if p.strip()]

    @property
    def presigned_url_ttl_seconds(self) -> int:
        return self.PRESIGNED_URL_EXPIRATION_MINUTES * 60


settings = Settings()
