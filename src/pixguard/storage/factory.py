"""Storage publisher selection."""

from pixguard.core.config import Settings, settings as default_settings
from pixguard.storage.base import StoragePublisher
from pixguard.storage.gcs import GCSPublisher
from pixguard.storage.local import LocalPublisher


def get_publisher(settings: Settings = default_settings) -> StoragePublisher:
    """Create the publisher configured by STORAGE_BACKEND.

    Raises:
        ValueError: If STORAGE_BACKEND names an unknown backend
    """
    backend = settings.STORAGE_BACKEND.lower()
    if backend == "gcs":
        return GCSPublisher(
            bucket_name=settings.GCS_BUCKET_NAME,
            project_id=settings.GCP_PROJECT_ID,
            prefix=settings.PUBLISH_PREFIX,
            public_base_url=settings.cdn_base_url,
        )
    if backend == "local":
        return LocalPublisher(
            base_path=settings.LOCAL_STORAGE_PATH,
            prefix=settings.PUBLISH_PREFIX,
            public_base_url=settings.cdn_base_url,
        )
    raise ValueError(f"Unknown STORAGE_BACKEND: {settings.STORAGE_BACKEND}")
