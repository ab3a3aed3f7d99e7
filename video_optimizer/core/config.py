"""Application configuration settings.

All configuration values are loaded from environment variables (.env file).
"""

from typing import Optional
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    PROJECT_NAME: str = "Video Optimizer"
    VERSION: str = "0.1.0"
    API_V1_PREFIX: str = "/api/v1"
    DEBUG: bool = False

    # Logging / tracing
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True
    TRACING_CONSOLE_EXPORT: bool = False

    # Optimization defaults, used when a field does not override them.
    # VIDEO_OPTIMIZER_OPTIMIZE: low, medium, high
    # VIDEO_OPTIMIZER_FORMAT: webm, mp4
    VIDEO_OPTIMIZER_OPTIMIZE: Optional[str] = None
    VIDEO_OPTIMIZER_FORMAT: Optional[str] = None

    # Disks
    DEFAULT_DISK: str = "public"
    TEMPORARY_DISK: str = "local"
    TEMPORARY_UPLOAD_DIRECTORY: str = "tmp/uploads"
    SCRATCH_DISK: str = "local"
    SCRATCH_DIRECTORY: str = "tmp/video-optimizer"
    TEMPORARY_URL_TTL_SECONDS: int = 300

    # Local Storage
    LOCAL_STORAGE_PATH: str = "./storage/app"
    PUBLIC_STORAGE_PATH: str = "./storage/app/public"
    PUBLIC_STORAGE_URL: str = "/storage"

    # S3/MinIO/Compatible Storage (registered as the "s3" disk when a bucket is set)
    STORAGE_BUCKET: str = ""
    STORAGE_REGION: str = ""
    STORAGE_ACCESS_KEY: str = ""
    STORAGE_SECRET_KEY: str = ""
    STORAGE_ENDPOINT_URL: Optional[str] = None  # Required for MinIO
    STORAGE_USE_SSL: bool = True

    # CDN Configuration (optional, for any backend)
    CDN_DOMAIN: Optional[str] = None
    CDN_ENABLED: bool = False

    # FFmpeg
    FFMPEG_PATH: str = "ffmpeg"
    FFPROBE_PATH: str = "ffprobe"
    FFMPEG_TIMEOUT: int = 600  # seconds

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"


settings = Settings()
