"""Google Cloud Storage publisher."""

import asyncio
import logging
from typing import Optional

from google.api_core.exceptions import GoogleAPIError
from google.cloud import storage

from pixguard.core.exceptions import StorageError
from pixguard.storage.base import StoragePublisher

logger = logging.getLogger(__name__)


class GCSPublisher(StoragePublisher):
    """Publishes images to a Google Cloud Storage bucket."""

    def __init__(
        self,
        bucket_name: str,
        project_id: str = "",
        prefix: str = "",
        public_base_url: str | None = None,
    ):
        super().__init__(prefix=prefix, public_base_url=public_base_url)
        self.bucket_name = bucket_name
        self.project_id = project_id
        self._client: Optional[storage.Client] = None
        self._bucket: Optional[storage.Bucket] = None

    def _get_bucket(self) -> storage.Bucket:
        """Lazy-load and cache GCS bucket."""
        if self._bucket is None:
            if not self.bucket_name:
                raise StorageError("GCS_BUCKET_NAME not configured")

            self._client = storage.Client(project=self.project_id or None)
            self._bucket = self._client.bucket(self.bucket_name)

        return self._bucket

    async def publish(self, data: bytes, filename: str, content_type: str) -> str:
        key = self.get_object_key(filename)
        bucket = self._get_bucket()
        blob = bucket.blob(key)

        try:
            await asyncio.to_thread(blob.upload_from_string, data, content_type=content_type)
        except GoogleAPIError as e:
            logger.error(
                "Failed to upload image to GCS",
                extra={"bucket": self.bucket_name, "object_name": key, "error": str(e)},
            )
            raise StorageError(f"Failed to upload image to GCS: {e}") from e

        address = f"{self.public_base_url}/{key}" if self.public_base_url else blob.public_url
        logger.info(
            "Image uploaded to GCS",
            extra={"bucket": self.bucket_name, "object_name": key, "size_bytes": len(data)},
        )
        return address

    def get_backend_name(self) -> str:
        return "gcs"
