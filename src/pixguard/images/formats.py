"""
Image format classification.

Maps a declared content type onto the canonical format tags the pipeline
works with:
- webp: the storage format
- jpg: JPEG, declared as either image/jpeg or image/jpg
- png: lossless, scan compatible
"""

import re
from enum import Enum
from typing import Dict, FrozenSet, List

from pixguard.core.exceptions import ErrorKind, PipelineError


class ImageFormat(str, Enum):
    """Canonical image format tags."""

    WEBP = "webp"
    JPEG = "jpg"
    PNG = "png"

    @property
    def mime_type(self) -> str:
        return MIME_TYPES[self]

    @property
    def extension(self) -> str:
        return self.value


# Declared format tokens to canonical tags
FORMAT_ALIASES: Dict[str, ImageFormat] = {
    "webp": ImageFormat.WEBP,
    "jpeg": ImageFormat.JPEG,
    "jpg": ImageFormat.JPEG,
    "png": ImageFormat.PNG,
}

MIME_TYPES: Dict[ImageFormat, str] = {
    ImageFormat.WEBP: "image/webp",
    ImageFormat.JPEG: "image/jpeg",
    ImageFormat.PNG: "image/png",
}

# Formats the moderation provider accepts as-is
SCAN_COMPATIBLE_FORMATS: FrozenSet[ImageFormat] = frozenset({ImageFormat.JPEG, ImageFormat.PNG})

STORAGE_FORMAT = ImageFormat.WEBP

_EXTENSION_PATTERN = re.compile(r"\.[^/.]+$")


def extract_format(content_type: str) -> str:
    """
    Normalise a declared content type to its bare format token.

    Args:
        content_type: MIME-style string (e.g., "image/PNG; charset=binary")

    Returns:
        Lower-cased subtype with parameters and media-type prefix removed

    Examples:
        >>> extract_format("image/JPEG")
        'jpeg'
        >>> extract_format("image/webp; q=0.9")
        'webp'
        >>> extract_format("png")
        'png'
    """
    normalized = content_type.lower().split(";")[0].strip()
    return normalized.rsplit("/", 1)[-1].strip()


def is_supported_format(content_type: str) -> bool:
    """Whether the declared content type is one of the supported formats."""
    return extract_format(content_type) in FORMAT_ALIASES


def classify_content_type(content_type: str) -> ImageFormat:
    """
    Classify a declared content type into a canonical format tag.

    Args:
        content_type: Caller-supplied content type (untrusted)

    Returns:
        Canonical ImageFormat

    Raises:
        PipelineError: UNSUPPORTED_FORMAT for anything outside webp, jpeg, jpg, png
    """
    token = extract_format(content_type)
    image_format = FORMAT_ALIASES.get(token)
    if image_format is None:
        raise PipelineError(
            ErrorKind.UNSUPPORTED_FORMAT,
            f"Unsupported image format: {content_type}. Only webp, jpg, and png are supported.",
        )
    return image_format


def mime_type_for(image_format: ImageFormat) -> str:
    """MIME type used when handing bytes of this format to a collaborator."""
    return MIME_TYPES[image_format]


def is_scan_compatible(image_format: ImageFormat) -> bool:
    return image_format in SCAN_COMPATIBLE_FORMATS


def get_supported_content_types() -> List[str]:
    """
    Get all content types the classifier accepts.

    Returns:
        List of image/* content types, including the image/jpg alias
    """
    return [f"image/{token}" for token in FORMAT_ALIASES]


def rewrite_extension(filename: str, image_format: ImageFormat) -> str:
    """
    Rewrite the extension of a filename to match the given format.

    A name without an extension gets one appended; a directory part, if any,
    is kept as-is.

    Examples:
        >>> rewrite_extension("avatar.png", ImageFormat.WEBP)
        'avatar.webp'
        >>> rewrite_extension("avatar", ImageFormat.WEBP)
        'avatar.webp'
    """
    suffix = f".{image_format.extension}"
    if _EXTENSION_PATTERN.search(filename):
        return _EXTENSION_PATTERN.sub(suffix, filename)
    return filename + suffix
