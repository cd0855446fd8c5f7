"""Configuration management for pixguard."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    ENV: str = "local"
    SERVICE_NAME: str = "pixguard"
    SERVICE_VERSION: str = "0.1.0"
    LOG_LEVEL: str = "INFO"

    # Upload Constraints
    MAX_UPLOAD_MB: int = 2
    DEFAULT_CONTENT_TYPE: str = "image/jpeg"

    # Codec Limits
    MAX_INPUT_PIXELS: int = 67_108_864  # 8192 x 8192
    MAX_IMAGE_DIMENSION: int = 8192
    TOLERATE_TRUNCATED_IMAGES: bool = True
    CONVERSION_TIMEOUT_SECONDS: float = 20.0

    # Compression Profile
    WEBP_QUALITY: int = 80
    WEBP_EFFORT: int = 4
    WEBP_LARGE_INPUT_QUALITY: int = 75
    WEBP_LARGE_INPUT_EFFORT: int = 5
    LARGE_INPUT_THRESHOLD_MB: int = 1
    PNG_COMPRESSION_LEVEL: int = 6

    # Moderation Configuration (Amazon Rekognition + S3 staging)
    AWS_REGION: str = "us-east-2"
    MODERATION_STAGING_BUCKET: str = ""
    MODERATION_STAGING_PREFIX: str = "temp-moderation"
    MODERATION_MIN_CONFIDENCE: float = 50.0
    MODERATION_REJECTION_THRESHOLD: float = 70.0

    # Storage Configuration
    STORAGE_BACKEND: str = "gcs"  # "gcs" or "local"
    GCP_PROJECT_ID: str = ""
    GCS_BUCKET_NAME: str = ""
    PUBLISH_PREFIX: str = ""
    CDN_URL: str = ""
    LOCAL_STORAGE_PATH: str = "data/images"

    @property
    def max_upload_bytes(self) -> int:
        """Convert MAX_UPLOAD_MB to bytes."""
        return self.MAX_UPLOAD_MB * 1024 * 1024

    @property
    def large_input_threshold_bytes(self) -> int:
        """Convert LARGE_INPUT_THRESHOLD_MB to bytes."""
        return self.LARGE_INPUT_THRESHOLD_MB * 1024 * 1024

    @property
    def cdn_base_url(self) -> str | None:
        """CDN_URL without a trailing slash, or None when unset."""
        if not self.CDN_URL:
            return None
        return self.CDN_URL.rstrip("/")


# Singleton settings instance
settings = Settings()
