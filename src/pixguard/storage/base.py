"""Abstract storage publisher interface."""

import re
from abc import ABC, abstractmethod


class StoragePublisher(ABC):
    """Abstract base class for permanent image storage."""

    def __init__(self, prefix: str = "", public_base_url: str | None = None):
        self.prefix = prefix.strip("/")
        self.public_base_url = public_base_url.rstrip("/") if public_base_url else None

    def get_stored_name(self, filename: str) -> str:
        """Name the file is stored under once unsafe characters are replaced."""
        return self._sanitize_filename(filename)

    def get_object_key(self, filename: str) -> str:
        """Generate the storage key for a published file.

        Args:
            filename: Final file name (extension already rewritten)

        Returns:
            Key relative to the storage root
        """
        safe_name = self.get_stored_name(filename)
        return f"{self.prefix}/{safe_name}" if self.prefix else safe_name

    @abstractmethod
    async def publish(self, data: bytes, filename: str, content_type: str) -> str:
        """Upload the final image bytes.

        Args:
            data: Encoded image bytes
            filename: Final file name
            content_type: MIME type of ``data``

        Returns:
            Public address of the stored image

        Raises:
            StorageError: If the upload fails
        """
        pass

    @abstractmethod
    def get_backend_name(self) -> str:
        """Return backend identifier."""
        pass

    @staticmethod
    def _sanitize_filename(filename: str) -> str:
        """Remove path traversal and dangerous characters."""
        safe = filename.replace("../", "").replace("..\\", "")
        safe = safe.replace("/", "_").replace("\\", "_")
        safe = re.sub(r"[^a-zA-Z0-9._-]", "_", safe)
        return safe[:255]
