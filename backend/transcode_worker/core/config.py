"""Worker configuration settings.

All configuration values are loaded from environment variables (.env file).
No sensitive values should be hardcoded here.
"""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Worker settings loaded from environment variables."""

    # Application
    PROJECT_NAME: str = "Transcode Worker"
    VERSION: str = "0.1.0"
    API_V1_PREFIX: str = "/api/v1"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True

    # Redis / Celery
    REDIS_URL: str = "redis://localhost:6379/0"
    CELERY_BROKER_URL: str = ""
    CELERY_RESULT_BACKEND: str = ""
    CELERY_TASK_TIME_LIMIT: int = 3600
    # Redelivery of failed runs
    TASK_MAX_ATTEMPTS: int = 3
    TASK_RETRY_INITIAL_DELAY: float = 10.0
    TASK_RETRY_MAX_DELAY: float = 120.0
    TASK_RETRY_BACKOFF_MULTIPLIER: float = 2.0

    # Storage Configuration
    # STORAGE_BACKEND: s3, minio, local
    STORAGE_BACKEND: str = "s3"
    LOCAL_STORAGE_PATH: str = "./storage"
    SOURCE_BUCKET: str = ""
    DESTINATION_BUCKET: str = ""
    STORAGE_REGION: str = "us-east-1"
    STORAGE_ACCESS_KEY: str = ""
    STORAGE_SECRET_KEY: str = ""
    STORAGE_ENDPOINT_URL: Optional[str] = None  # Required for MinIO
    STORAGE_USE_SSL: bool = True
    STORAGE_CONNECT_TIMEOUT: float = 10.0
    STORAGE_READ_TIMEOUT: float = 60.0

    # CDN Configuration (optional, used for published asset URLs)
    CDN_DOMAIN: Optional[str] = None

    # Pipeline
    # PIPELINE_MODE: local (ffmpeg subprocess) or remote (MediaConvert job)
    PIPELINE_MODE: str = "local"
    INPUT_PREFIX: str = "uploads/"
    PIPELINE_SUFFIXES: list[str] = ["_cfr"]
    # FETCH_MODE: download (local copy) or presigned (time-limited URL)
    FETCH_MODE: str = "presigned"
    PRESIGNED_URL_EXPIRES: int = 60
    WORK_DIR: str = "/tmp"
    MAX_CONCURRENCY: int = 2

    # FFmpeg
    FFMPEG_PATH: str = "ffmpeg"
    FFPROBE_PATH: str = "ffprobe"
    # PROBE_TOOL: ffprobe (format=duration) or ffmpeg (Duration: line)
    PROBE_TOOL: str = "ffprobe"
    PROBE_TIMEOUT_SECONDS: float = 30.0
    TRANSCODE_TIMEOUT_SECONDS: float = 600.0
    DEFAULT_DURATION_SECONDS: float = 10.0

    # Clipping
    CLIP_ENABLED: bool = True
    CLIP_THRESHOLD_SECONDS: float = 10.0

    # Renditions (JSON list of objects overriding the default high/low pair)
    RENDITIONS: list[dict] = []
    GENERATE_THUMBNAIL: bool = False
    THUMBNAIL_OFFSET: str = "00:00:01"

    # Remote job mode (AWS MediaConvert)
    MEDIACONVERT_ROLE_ARN: str = ""
    MEDIACONVERT_ENDPOINT: Optional[str] = None
    MEDIACONVERT_TEMPLATE_PATH: Optional[str] = None
    POLL_INTERVAL_SECONDS: float = 10.0
    POLL_MAX_ATTEMPTS: int = 5

    # Metadata callback
    CALLBACK_URL: str = ""
    NOTIFY_TIMEOUT_SECONDS: float = 30.0

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"


@lru_cache
def get_settings() -> Settings:
    """Get the settings for this process, loaded once from the environment."""
    return Settings()
