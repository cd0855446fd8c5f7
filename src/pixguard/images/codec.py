"""Image codec gateway.

Narrow boundary around the image library. The pipeline only ever talks to an
``ImageCodec``; the Pillow-backed implementation translates library failures
into ``CodecError`` values carrying a structured ``CodecFailure``.
"""

import io
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from PIL import Image, ImageFile, UnidentifiedImageError

from pixguard.core.exceptions import CodecError, CodecFailure
from pixguard.images.formats import ImageFormat

logger = logging.getLogger(__name__)

# Pillow encoder names per canonical format
PILLOW_FORMATS: Dict[ImageFormat, str] = {
    ImageFormat.WEBP: "WEBP",
    ImageFormat.JPEG: "JPEG",
    ImageFormat.PNG: "PNG",
}

# Message fragments checked in priority order when an exception carries no type information
_MEMORY_SIGNALS = ("memory", "buffer")
_PIXEL_SIGNALS = ("pixel", "dimension", "decompression bomb")
_UNRECOGNIZED_SIGNALS = ("cannot identify", "unsupported image format", "unrecognized", "unknown image file format")
_TIMEOUT_SIGNALS = ("timeout", "timed out")


@dataclass(frozen=True)
class DecodeLimits:
    """Safety limits applied when decoding untrusted input."""

    max_pixels: int = 67_108_864
    tolerate_truncation: bool = True


@dataclass(frozen=True)
class EncodeParams:
    """Encoder settings. Fields an encoder does not use are ignored."""

    quality: Optional[int] = None
    effort: Optional[int] = None
    compression_level: Optional[int] = None


@dataclass
class DecodedImage:
    """Handle to a decoded image."""

    image: Image.Image
    source_format: Optional[str]

    @property
    def width(self) -> int:
        return self.image.width

    @property
    def height(self) -> int:
        return self.image.height

    def close(self) -> None:
        self.image.close()


def failure_from_message(message: str) -> CodecFailure:
    """
    Infer a failure category from an opaque error message.

    Checks run in priority order: memory, pixel/dimension, unrecognized bytes,
    timeout. Anything else is OTHER.

    Examples:
        >>> failure_from_message("out of memory")
        <CodecFailure.OUT_OF_MEMORY: 'out_of_memory'>
        >>> failure_from_message("Image size (70000000 pixels) exceeds limit")
        <CodecFailure.TOO_MANY_PIXELS: 'too_many_pixels'>
    """
    text = message.lower()
    if any(signal in text for signal in _MEMORY_SIGNALS):
        return CodecFailure.OUT_OF_MEMORY
    if any(signal in text for signal in _PIXEL_SIGNALS):
        return CodecFailure.TOO_MANY_PIXELS
    if any(signal in text for signal in _UNRECOGNIZED_SIGNALS):
        return CodecFailure.UNRECOGNIZED_FORMAT
    if any(signal in text for signal in _TIMEOUT_SIGNALS):
        return CodecFailure.TIMEOUT
    return CodecFailure.OTHER


def to_codec_error(error: BaseException) -> CodecError:
    """Translate an image library exception into a CodecError."""
    if isinstance(error, CodecError):
        return error
    if isinstance(error, Image.DecompressionBombError):
        return CodecError(CodecFailure.TOO_MANY_PIXELS, str(error))
    if isinstance(error, UnidentifiedImageError):
        return CodecError(CodecFailure.UNRECOGNIZED_FORMAT, str(error))
    if isinstance(error, MemoryError):
        return CodecError(CodecFailure.OUT_OF_MEMORY, str(error) or "out of memory")
    if isinstance(error, TimeoutError):
        return CodecError(CodecFailure.TIMEOUT, str(error) or "timed out")
    return CodecError(failure_from_message(str(error)), str(error))


class ImageCodec(ABC):
    """Abstract image codec capability."""

    @abstractmethod
    def decode(self, data: bytes) -> DecodedImage:
        """Decode a buffer, enforcing the codec's decode limits.

        Args:
            data: Encoded image bytes

        Returns:
            Handle to the decoded image

        Raises:
            CodecError: If the bytes cannot be decoded within limits
        """
        pass

    @abstractmethod
    def encode(self, decoded: DecodedImage, target: ImageFormat, params: EncodeParams) -> bytes:
        """Encode a decoded image to the target format.

        Raises:
            CodecError: If encoding fails
        """
        pass

    def probe_dimensions(self, decoded: DecodedImage) -> Tuple[int, int]:
        """Return the intrinsic (width, height) of a decoded image."""
        return decoded.width, decoded.height


class PillowCodec(ImageCodec):
    """Image codec backed by Pillow."""

    def __init__(self, limits: Optional[DecodeLimits] = None):
        self.limits = limits or DecodeLimits()
        # Process-wide Pillow switch; every codec in the process shares one configuration
        ImageFile.LOAD_TRUNCATED_IMAGES = self.limits.tolerate_truncation

    def decode(self, data: bytes) -> DecodedImage:
        image: Optional[Image.Image] = None
        try:
            # Header only; pixel data is read in a single pass by load()
            image = Image.open(io.BytesIO(data))
            width, height = image.size
            if width * height > self.limits.max_pixels:
                raise CodecError(
                    CodecFailure.TOO_MANY_PIXELS,
                    f"Input image exceeds pixel limit: {width}x{height} > {self.limits.max_pixels} pixels",
                )
            source_format = image.format
            image.load()
            return DecodedImage(image=image, source_format=source_format)
        except Exception as e:
            if image is not None:
                image.close()
            error = to_codec_error(e)
            logger.debug(
                "Image decode failed",
                extra={"failure": error.failure.value, "error": str(e), "buffer_size": len(data)},
            )
            raise error from e

    def encode(self, decoded: DecodedImage, target: ImageFormat, params: EncodeParams) -> bytes:
        try:
            image = self._prepare_mode(decoded.image, target)
            output = io.BytesIO()
            image.save(output, format=PILLOW_FORMATS[target], **self._save_options(decoded.image, target, params))
            return output.getvalue()
        except Exception as e:
            error = to_codec_error(e)
            logger.debug(
                "Image encode failed",
                extra={"target_format": target.value, "failure": error.failure.value, "error": str(e)},
            )
            raise error from e

    @staticmethod
    def _prepare_mode(image: Image.Image, target: ImageFormat) -> Image.Image:
        """Convert the colour mode to one the target encoder accepts."""
        has_alpha = image.mode in ("RGBA", "LA", "PA") or "transparency" in image.info
        if target is ImageFormat.JPEG:
            if image.mode not in ("RGB", "L", "CMYK"):
                return image.convert("RGB")
            return image
        if target is ImageFormat.WEBP:
            if image.mode not in ("RGB", "RGBA"):
                return image.convert("RGBA" if has_alpha else "RGB")
            return image
        if image.mode == "CMYK":
            return image.convert("RGB")
        return image

    @staticmethod
    def _save_options(source: Image.Image, target: ImageFormat, params: EncodeParams) -> Dict[str, Any]:
        options: Dict[str, Any] = {}
        icc_profile = source.info.get("icc_profile")
        if icc_profile:
            options["icc_profile"] = icc_profile
        exif = source.info.get("exif")
        if exif and target is not ImageFormat.PNG:
            options["exif"] = exif

        if target is ImageFormat.WEBP:
            if params.quality is not None:
                options["quality"] = params.quality
            if params.effort is not None:
                options["method"] = params.effort
        elif target is ImageFormat.JPEG:
            if params.quality is not None:
                options["quality"] = params.quality
        elif target is ImageFormat.PNG:
            if params.compression_level is not None:
                options["compress_level"] = params.compression_level
        return options
