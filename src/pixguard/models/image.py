"""Image asset model."""

from dataclasses import dataclass, field
from typing import Optional

from pixguard.images.formats import ImageFormat


@dataclass
class ImageAsset:
    """The unit of work for one upload.

    ``data`` is never mutated in place. A conversion that produces a new
    encoding replaces it wholesale through ``replace_data`` so the previous
    rendition can be released.
    """

    data: bytes
    filename: str
    declared_content_type: str
    format: ImageFormat
    original_format: ImageFormat = field(init=False)
    original_size_bytes: int = field(init=False)
    width: Optional[int] = None
    height: Optional[int] = None

    def __post_init__(self) -> None:
        self.original_format = self.format
        self.original_size_bytes = len(self.data)

    @property
    def size_bytes(self) -> int:
        return len(self.data)

    @property
    def has_dimensions(self) -> bool:
        return self.width is not None and self.height is not None

    def record_dimensions(self, width: int, height: int) -> None:
        """Store the intrinsic size reported by the first decode."""
        if not self.has_dimensions:
            self.width = width
            self.height = height

    def replace_data(self, data: bytes, image_format: ImageFormat) -> None:
        self.data = data
        self.format = image_format
