"""Image upload handling: request envelope in, response envelope out."""

import base64
import binascii
import logging
from functools import lru_cache
from typing import Any, Dict, List, Tuple

from pixguard.core.config import Settings, settings as default_settings
from pixguard.core.exceptions import ErrorKind, PipelineError
from pixguard.images.codec import DecodeLimits, PillowCodec
from pixguard.images.conversion import ConversionOptions
from pixguard.models.upload import ImageUploadRequest, UploadEnvelope
from pixguard.moderation.gate import ModerationGate
from pixguard.moderation.rekognition import RekognitionModerationProvider
from pixguard.pipeline.controller import ImagePipeline, PipelineOutcome
from pixguard.storage.factory import get_publisher

logger = logging.getLogger(__name__)

MISSING_FIELDS_MESSAGE = "Missing required fields: imageData and filename"


def create_pipeline(settings: Settings = default_settings) -> ImagePipeline:
    """Wire the production collaborators from settings."""
    codec = PillowCodec(
        DecodeLimits(
            max_pixels=settings.MAX_INPUT_PIXELS,
            tolerate_truncation=settings.TOLERATE_TRUNCATED_IMAGES,
        )
    )
    provider = RekognitionModerationProvider(
        bucket_name=settings.MODERATION_STAGING_BUCKET,
        region=settings.AWS_REGION,
    )
    gate = ModerationGate(
        provider,
        min_confidence=settings.MODERATION_MIN_CONFIDENCE,
        rejection_threshold=settings.MODERATION_REJECTION_THRESHOLD,
        key_prefix=settings.MODERATION_STAGING_PREFIX,
    )
    return ImagePipeline(
        codec=codec,
        gate=gate,
        publisher=get_publisher(settings),
        options=ConversionOptions.from_settings(settings),
        max_upload_bytes=settings.max_upload_bytes,
    )


@lru_cache
def get_pipeline() -> ImagePipeline:
    """FastAPI dependency returning the process-wide pipeline."""
    return create_pipeline()


def decode_image_data(image_data: str) -> bytes:
    """
    Decode the base64 payload of a request.

    Accepts plain or line-wrapped base64, or a ``data:<mime>;base64,`` URL.

    Raises:
        PipelineError: VALIDATION_ERROR if the payload is not valid base64
    """
    payload = image_data.strip()
    if payload.startswith("data:") and "," in payload:
        payload = payload.split(",", 1)[1]
    # MIME-style encoders wrap lines; only the alphabet itself is validated
    payload = "".join(payload.split())
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise PipelineError(ErrorKind.VALIDATION_ERROR, "imageData is not valid base64") from e


def success_envelope(outcome: PipelineOutcome) -> UploadEnvelope:
    return UploadEnvelope(
        success=True,
        message="Image successfully processed and uploaded",
        data={
            "filename": outcome.filename,
            "url": outcome.url,
            "originalFormat": outcome.original_format.value,
            "finalFormat": outcome.final_format.value,
            "sizeBytes": outcome.size_bytes,
            "moderationResult": {
                "isAppropriate": True,
                "confidence": outcome.verdict.confidence,
            },
        },
    )


def error_envelope(error: PipelineError) -> UploadEnvelope:
    return UploadEnvelope(success=False, message=error.message, error=error.kind.value, data=error.data)


def request_validation_error(errors: List[Dict[str, Any]]) -> PipelineError:
    """
    Map a request schema failure to VALIDATION_ERROR.

    A missing body reports the missing required fields; anything else
    (a field of the wrong JSON type, a body that is not an object) is an
    invalid request.
    """
    if any(error.get("type") == "missing" and tuple(error.get("loc", ())) == ("body",) for error in errors):
        return PipelineError(ErrorKind.VALIDATION_ERROR, MISSING_FIELDS_MESSAGE)
    fields = sorted(
        {error["loc"][-1] for error in errors if len(error.get("loc", ())) > 1 and isinstance(error["loc"][-1], str)}
    )
    message = "Invalid request body"
    if fields:
        message = f"{message}: " + ", ".join(fields)
    return PipelineError(ErrorKind.VALIDATION_ERROR, message)


async def handle_image_upload(
    request: ImageUploadRequest, pipeline: ImagePipeline, settings: Settings = default_settings
) -> Tuple[int, Dict[str, Any]]:
    """
    Process an upload request.

    Args:
        request: Parsed request envelope
        pipeline: Pipeline to run the image through
        settings: Settings providing the default content type

    Returns:
        Tuple of (HTTP status code, response body)
    """
    try:
        if not request.image_data or not request.filename:
            logger.debug(
                "Missing required fields in request",
                extra={"has_image_data": bool(request.image_data), "file_name": request.filename},
            )
            raise PipelineError(ErrorKind.VALIDATION_ERROR, MISSING_FIELDS_MESSAGE)

        content_type = request.content_type or settings.DEFAULT_CONTENT_TYPE
        outcome = await pipeline.run(decode_image_data(request.image_data), request.filename, content_type)
        return 200, success_envelope(outcome).to_body()

    except PipelineError as e:
        return e.status_code, error_envelope(e).to_body()
    except Exception as e:
        logger.error(
            "Unexpected error processing image",
            extra={"error": str(e), "error_type": type(e).__name__},
            exc_info=True,
        )
        internal = PipelineError(ErrorKind.INTERNAL_ERROR, "Internal server error")
        return internal.status_code, error_envelope(internal).to_body()
