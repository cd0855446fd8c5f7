"""Format conversions at the two pipeline boundaries.

``ensure_scan_compatible`` prepares bytes the moderation provider accepts;
``ensure_storage_format`` prepares the bytes that are published. Both hand
back the very same buffer when the input already has the target format.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from pixguard.core.exceptions import CodecError, ErrorKind, PipelineError
from pixguard.images.codec import EncodeParams, ImageCodec
from pixguard.images.formats import STORAGE_FORMAT, ImageFormat, is_scan_compatible
from pixguard.models.image import ImageAsset
from pixguard.pipeline.errors import MESSAGES, classify_decode_error, classify_encode_error, dimension_error

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConversionResult:
    """Output of a conversion step.

    ``converted`` is False when the input already matched the target format,
    in which case ``data`` is the input buffer itself.
    """

    data: bytes
    format: ImageFormat
    converted: bool


@dataclass(frozen=True)
class ConversionOptions:
    """Limits and compression profile for conversions."""

    timeout_seconds: float = 20.0
    max_dimension: int = 8192
    png_compression_level: int = 6
    webp_quality: int = 80
    webp_effort: int = 4
    large_input_quality: int = 75
    large_input_effort: int = 5
    large_input_threshold_bytes: int = 1024 * 1024

    @classmethod
    def from_settings(cls, settings) -> "ConversionOptions":
        return cls(
            timeout_seconds=settings.CONVERSION_TIMEOUT_SECONDS,
            max_dimension=settings.MAX_IMAGE_DIMENSION,
            png_compression_level=settings.PNG_COMPRESSION_LEVEL,
            webp_quality=settings.WEBP_QUALITY,
            webp_effort=settings.WEBP_EFFORT,
            large_input_quality=settings.WEBP_LARGE_INPUT_QUALITY,
            large_input_effort=settings.WEBP_LARGE_INPUT_EFFORT,
            large_input_threshold_bytes=settings.large_input_threshold_bytes,
        )

    def png_params(self) -> EncodeParams:
        return EncodeParams(compression_level=self.png_compression_level)

    def webp_params(self, original_size_bytes: int) -> EncodeParams:
        """Standard profile, or the stronger one for inputs above the large-input threshold."""
        if original_size_bytes > self.large_input_threshold_bytes:
            return EncodeParams(quality=self.large_input_quality, effort=self.large_input_effort)
        return EncodeParams(quality=self.webp_quality, effort=self.webp_effort)


@dataclass(frozen=True)
class _Transcoded:
    width: int
    height: int
    # None when the dimensions are over the limit and nothing was encoded
    data: Optional[bytes]


def _transcode(
    codec: ImageCodec,
    source: bytes,
    target: ImageFormat,
    params: EncodeParams,
    max_dimension: int,
) -> _Transcoded:
    """Decode, check dimensions and encode in a single worker call.

    The decoded handle never leaves this function, so it is released by the
    thread that used it, even after the caller has stopped waiting.

    Raises:
        PipelineError: With the classified decode or encode kind
    """
    try:
        decoded = codec.decode(source)
    except CodecError as e:
        logger.warning(
            "Image decode failed",
            extra={"failure": e.failure.value, "buffer_size": len(source), "target_format": target.value},
        )
        raise classify_decode_error(e) from e

    try:
        width, height = codec.probe_dimensions(decoded)
        if width > max_dimension or height > max_dimension:
            return _Transcoded(width=width, height=height, data=None)

        try:
            data = codec.encode(decoded, target, params)
        except CodecError as e:
            logger.error(
                "Image encode failed",
                extra={"failure": e.failure.value, "buffer_size": len(source), "target_format": target.value},
            )
            raise classify_encode_error(e, target) from e
        return _Transcoded(width=width, height=height, data=data)
    finally:
        decoded.close()


async def _convert(
    asset: ImageAsset,
    codec: ImageCodec,
    options: ConversionOptions,
    target: ImageFormat,
    params: EncodeParams,
    source: bytes,
) -> bytes:
    """Run one conversion in a worker thread under the time budget.

    Args:
        asset: Asset whose intrinsic dimensions are recorded
        codec: Codec doing the work
        options: Limits for this conversion
        target: Format to encode to
        params: Encoder settings
        source: Encoded input bytes

    Returns:
        Encoded bytes in the target format

    Raises:
        PipelineError: ProcessingTimeout, ImageTooLarge or the classified codec kind
    """
    try:
        transcoded = await asyncio.wait_for(
            asyncio.to_thread(_transcode, codec, source, target, params, options.max_dimension),
            timeout=options.timeout_seconds,
        )
    except asyncio.TimeoutError as e:
        # The worker thread runs on until the codec returns; it closes the handle itself
        logger.error(
            "Image conversion timed out",
            extra={
                "timeout_seconds": options.timeout_seconds,
                "buffer_size": len(source),
                "target_format": target.value,
            },
        )
        raise PipelineError(ErrorKind.PROCESSING_TIMEOUT, MESSAGES[ErrorKind.PROCESSING_TIMEOUT]) from e

    asset.record_dimensions(transcoded.width, transcoded.height)
    if transcoded.data is None:
        logger.debug(
            "Image dimensions exceed limits",
            extra={"width": transcoded.width, "height": transcoded.height, "max_dimension": options.max_dimension},
        )
        raise dimension_error(transcoded.width, transcoded.height, options.max_dimension)
    return transcoded.data


async def ensure_scan_compatible(
    asset: ImageAsset, codec: ImageCodec, options: ConversionOptions
) -> ConversionResult:
    """
    Produce a buffer the moderation provider accepts.

    JPEG and PNG pass through untouched; anything else is re-encoded to PNG.

    Raises:
        PipelineError: With the decode/encode kind, or
            RekognitionCompatibilityError for unexpected failures
    """
    if is_scan_compatible(asset.format):
        return ConversionResult(data=asset.data, format=asset.format, converted=False)

    logger.info(
        "Converting image to PNG for moderation compatibility",
        extra={"original_format": asset.format.value, "buffer_size": asset.size_bytes},
    )
    try:
        png = await _convert(asset, codec, options, ImageFormat.PNG, options.png_params(), asset.data)
    except PipelineError:
        raise
    except Exception as e:
        logger.error(
            "Failed to convert to moderation compatible format",
            extra={"original_format": asset.format.value, "buffer_size": asset.size_bytes},
            exc_info=True,
        )
        raise PipelineError(
            ErrorKind.SCAN_COMPATIBILITY_ERROR, MESSAGES[ErrorKind.SCAN_COMPATIBILITY_ERROR]
        ) from e

    logger.info(
        "Image converted to PNG for moderation",
        extra={"original_size": asset.size_bytes, "converted_size": len(png)},
    )
    return ConversionResult(data=png, format=ImageFormat.PNG, converted=True)


async def ensure_storage_format(
    asset: ImageAsset, codec: ImageCodec, options: ConversionOptions
) -> ConversionResult:
    """
    Produce the buffer that is published.

    WebP passes through untouched; anything else is re-encoded to WebP with
    the compression profile chosen from the original upload size.

    Raises:
        PipelineError: With the decode/encode kind, or WebPConversionError for
            unexpected failures
    """
    if asset.format is STORAGE_FORMAT:
        return ConversionResult(data=asset.data, format=asset.format, converted=False)

    params = options.webp_params(asset.original_size_bytes)
    try:
        webp = await _convert(asset, codec, options, STORAGE_FORMAT, params, asset.data)
    except PipelineError:
        raise
    except Exception as e:
        logger.error(
            "WebP conversion failed",
            extra={"original_format": asset.format.value, "buffer_size": asset.size_bytes},
            exc_info=True,
        )
        raise PipelineError(ErrorKind.WEBP_CONVERSION_ERROR, MESSAGES[ErrorKind.WEBP_CONVERSION_ERROR]) from e

    logger.info(
        "Image converted to WebP",
        extra={
            "original_format": asset.format.value,
            "original_size": asset.size_bytes,
            "converted_size": len(webp),
            "quality": params.quality,
            "effort": params.effort,
        },
    )
    return ConversionResult(data=webp, format=STORAGE_FORMAT, converted=True)
