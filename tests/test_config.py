"""Tests for settings."""

from pixguard.core.config import Settings
from pixguard.images.conversion import ConversionOptions


def test_defaults():
    """Test the default limits."""
    settings = Settings()

    assert settings.max_upload_bytes == 2 * 1024 * 1024
    assert settings.large_input_threshold_bytes == 1024 * 1024
    assert settings.MAX_IMAGE_DIMENSION == 8192
    assert settings.MODERATION_REJECTION_THRESHOLD == 70.0
    assert settings.DEFAULT_CONTENT_TYPE == "image/jpeg"


def test_environment_override(monkeypatch):
    """Test that environment variables override defaults."""
    monkeypatch.setenv("MAX_UPLOAD_MB", "5")
    monkeypatch.setenv("CDN_URL", "https://cdn.example.com/")

    settings = Settings()

    assert settings.max_upload_bytes == 5 * 1024 * 1024
    assert settings.cdn_base_url == "https://cdn.example.com"


def test_cdn_base_url_unset():
    assert Settings(CDN_URL="").cdn_base_url is None


def test_conversion_options_from_settings():
    """Test that conversion limits follow settings."""
    options = ConversionOptions.from_settings(
        Settings(CONVERSION_TIMEOUT_SECONDS=3.5, WEBP_QUALITY=90, MAX_IMAGE_DIMENSION=4096)
    )

    assert options.timeout_seconds == 3.5
    assert options.webp_quality == 90
    assert options.max_dimension == 4096
