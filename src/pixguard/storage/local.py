"""Local filesystem publisher."""

import asyncio
import logging
from pathlib import Path

from pixguard.core.exceptions import StorageError
from pixguard.storage.base import StoragePublisher

logger = logging.getLogger(__name__)


class LocalPublisher(StoragePublisher):
    """Writes published images under a local directory."""

    def __init__(self, base_path: str | Path = "data/images", prefix: str = "", public_base_url: str | None = None):
        super().__init__(prefix=prefix, public_base_url=public_base_url)
        self.base_path = Path(base_path)

    async def publish(self, data: bytes, filename: str, content_type: str) -> str:
        key = self.get_object_key(filename)
        target_path = self.base_path / key

        try:
            target_path.parent.mkdir(parents=True, exist_ok=True)
            await asyncio.to_thread(target_path.write_bytes, data)
        except OSError as e:
            logger.error("Failed to write image", extra={"path": str(target_path), "error": str(e)})
            raise StorageError(f"Failed to write image: {e}") from e

        logger.info(
            "Image written to local storage",
            extra={"path": str(target_path), "content_type": content_type, "size_bytes": len(data)},
        )
        if self.public_base_url:
            return f"{self.public_base_url}/{key}"
        return str(target_path)

    def get_backend_name(self) -> str:
        return "local"
