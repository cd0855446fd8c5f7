"""Pipeline controller.

Runs one upload through validate -> scan-compatible conversion -> moderation
-> storage conversion -> publish. Each stage hands the next one a dedicated
type, and the only way to obtain a ``StorageReadyImage`` is from an
``ApprovedImage``, which in turn can only be built from a passed verdict.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, List, Optional

from pixguard.core.exceptions import ErrorKind, PipelineError
from pixguard.images.codec import ImageCodec
from pixguard.images.conversion import (
    ConversionOptions,
    ConversionResult,
    ensure_scan_compatible,
    ensure_storage_format,
)
from pixguard.images.formats import STORAGE_FORMAT, ImageFormat, classify_content_type, rewrite_extension
from pixguard.models.image import ImageAsset
from pixguard.moderation.gate import ModerationGate, ModerationVerdict
from pixguard.pipeline.errors import file_too_large_error, upload_failure_error
from pixguard.storage.base import StoragePublisher

logger = logging.getLogger(__name__)

DEFAULT_MAX_UPLOAD_BYTES = 2 * 1024 * 1024


class PipelineState(str, Enum):
    """States of one pipeline run."""

    RECEIVED = "received"
    VALIDATED = "validated"
    SCAN_READY = "scan_ready"
    SCANNED = "scanned"
    STORAGE_READY = "storage_ready"
    UPLOADED = "uploaded"
    REJECTED = "rejected"


TRANSITIONS: Dict[PipelineState, FrozenSet[PipelineState]] = {
    PipelineState.RECEIVED: frozenset({PipelineState.VALIDATED, PipelineState.REJECTED}),
    PipelineState.VALIDATED: frozenset({PipelineState.SCAN_READY, PipelineState.REJECTED}),
    PipelineState.SCAN_READY: frozenset({PipelineState.SCANNED, PipelineState.REJECTED}),
    PipelineState.SCANNED: frozenset({PipelineState.STORAGE_READY, PipelineState.REJECTED}),
    PipelineState.STORAGE_READY: frozenset({PipelineState.UPLOADED, PipelineState.REJECTED}),
    PipelineState.UPLOADED: frozenset(),
    PipelineState.REJECTED: frozenset(),
}


class IllegalTransitionError(RuntimeError):
    """Raised when a run is moved along an edge the state machine does not have."""
    pass


@dataclass
class PipelineRun:
    """State tracker for a single upload."""

    state: PipelineState = PipelineState.RECEIVED
    history: List[PipelineState] = field(default_factory=lambda: [PipelineState.RECEIVED])
    rejection: Optional[PipelineError] = None

    def advance(self, new_state: PipelineState) -> None:
        """Move to ``new_state``.

        Raises:
            IllegalTransitionError: If the state machine has no such edge
        """
        if new_state not in TRANSITIONS[self.state]:
            raise IllegalTransitionError(f"Illegal pipeline transition {self.state.value} -> {new_state.value}")
        self.state = new_state
        self.history.append(new_state)

    def reject(self, error: PipelineError) -> None:
        """Terminate the run, keeping the error that caused it."""
        self.advance(PipelineState.REJECTED)
        self.rejection = error


@dataclass(frozen=True)
class ValidatedImage:
    """An asset that passed the format and size checks."""

    asset: ImageAsset


@dataclass(frozen=True)
class ScanReadyImage:
    """An asset together with the rendition the moderation provider accepts."""

    asset: ImageAsset
    rendition: ConversionResult


@dataclass(frozen=True)
class ApprovedImage:
    """An asset whose moderation verdict passed."""

    asset: ImageAsset
    verdict: ModerationVerdict
    scan_converted: bool

    def __post_init__(self) -> None:
        if not self.verdict.passed:
            raise ValueError("ApprovedImage requires a passed moderation verdict")


@dataclass(frozen=True)
class StorageReadyImage:
    """An approved asset and the bytes to publish."""

    approved: ApprovedImage
    result: ConversionResult

    def __post_init__(self) -> None:
        if not isinstance(self.approved, ApprovedImage):
            raise TypeError("StorageReadyImage can only be built from an ApprovedImage")


@dataclass(frozen=True)
class PipelineOutcome:
    """Result of a successful run."""

    url: str
    filename: str
    original_format: ImageFormat
    final_format: ImageFormat
    size_bytes: int
    verdict: ModerationVerdict
    scan_converted: bool
    storage_converted: bool
    width: Optional[int] = None
    height: Optional[int] = None


class ImagePipeline:
    """Orchestrates one upload through conversion, moderation and publishing."""

    def __init__(
        self,
        codec: ImageCodec,
        gate: ModerationGate,
        publisher: StoragePublisher,
        options: Optional[ConversionOptions] = None,
        max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES,
    ):
        self.codec = codec
        self.gate = gate
        self.publisher = publisher
        self.options = options or ConversionOptions()
        self.max_upload_bytes = max_upload_bytes

    def validate(self, data: bytes, filename: str, content_type: str) -> ValidatedImage:
        """
        Run the cheap checks: declared format first, then byte length.

        Nothing is decoded here, so an oversized or unsupported upload is
        rejected without touching the codec or any remote collaborator.

        Args:
            data: Raw uploaded bytes
            filename: Caller-supplied file name
            content_type: Caller-declared content type

        Returns:
            ValidatedImage wrapping a new ImageAsset

        Raises:
            PipelineError: UNSUPPORTED_FORMAT or FILE_TOO_LARGE
        """
        image_format = classify_content_type(content_type)

        # Inclusive limit: exactly max_upload_bytes is accepted
        if len(data) > self.max_upload_bytes:
            logger.debug(
                "Image file size too large",
                extra={"file_name": filename, "size_bytes": len(data), "max_size_bytes": self.max_upload_bytes},
            )
            raise file_too_large_error(len(data), self.max_upload_bytes)

        return ValidatedImage(
            asset=ImageAsset(data=data, filename=filename, declared_content_type=content_type, format=image_format)
        )

    async def prepare_for_scan(self, validated: ValidatedImage) -> ScanReadyImage:
        """
        Produce the rendition the moderation provider will see.

        Args:
            validated: Output of ``validate``

        Returns:
            ScanReadyImage; its rendition is the asset's own buffer when no
            conversion was needed

        Raises:
            PipelineError: Decode/encode kinds or RekognitionCompatibilityError
        """
        rendition = await ensure_scan_compatible(validated.asset, self.codec, self.options)
        return ScanReadyImage(asset=validated.asset, rendition=rendition)

    async def moderate(self, scan_ready: ScanReadyImage) -> ApprovedImage:
        """
        Run the moderation gate; a failed verdict stops the run here.

        Args:
            scan_ready: Output of ``prepare_for_scan``

        Returns:
            ApprovedImage carrying the passed verdict

        Raises:
            PipelineError: MODERATION_FAILED for a content failure or a failed scan
        """
        verdict = await self.gate.scan(scan_ready.rendition.data, scan_ready.rendition.format)

        if not verdict.passed:
            # Provider error text stays in the logs; callers only see the labels
            logger.info(
                "Image failed moderation checks",
                extra={
                    "file_name": scan_ready.asset.filename,
                    "moderation_labels": verdict.labels,
                    "confidence": verdict.confidence,
                    "scan_error": verdict.error is not None,
                },
            )
            raise PipelineError(
                ErrorKind.MODERATION_FAILED,
                "Image failed moderation checks",
                data={"moderationLabels": list(verdict.labels), "confidence": verdict.confidence},
            )

        return ApprovedImage(
            asset=scan_ready.asset, verdict=verdict, scan_converted=scan_ready.rendition.converted
        )

    async def prepare_for_storage(self, approved: ApprovedImage) -> StorageReadyImage:
        """
        Produce the bytes that will be published.

        Args:
            approved: Output of ``moderate``

        Returns:
            StorageReadyImage holding the WebP rendition

        Raises:
            PipelineError: Decode/encode kinds, ImageTooLarge or WebPConversionError
        """
        asset = approved.asset
        result = await ensure_storage_format(asset, self.codec, self.options)

        if result.converted:
            # Drop the original encoding; only the storage rendition stays referenced
            asset.replace_data(result.data, result.format)

        return StorageReadyImage(approved=approved, result=result)

    async def publish(self, storage_ready: StorageReadyImage) -> PipelineOutcome:
        """
        Hand the storage rendition to the publisher.

        Args:
            storage_ready: Output of ``prepare_for_storage``

        Returns:
            PipelineOutcome reporting the name and address actually stored

        Raises:
            PipelineError: UploadFailure if the publisher fails for any reason
        """
        approved = storage_ready.approved
        asset = approved.asset
        result = storage_ready.result

        # Extension follows the stored format; the publisher decides the final safe name
        filename = rewrite_extension(asset.filename, STORAGE_FORMAT)
        stored_name = self.publisher.get_stored_name(filename)

        try:
            url = await self.publisher.publish(result.data, filename, result.format.mime_type)
        except Exception as e:
            logger.error(
                "Failed to publish image",
                extra={
                    "file_name": filename,
                    "backend": self.publisher.get_backend_name(),
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
            )
            raise upload_failure_error() from e

        return PipelineOutcome(
            url=url,
            filename=stored_name,
            original_format=asset.original_format,
            final_format=result.format,
            size_bytes=len(result.data),
            verdict=approved.verdict,
            scan_converted=approved.scan_converted,
            storage_converted=result.converted,
            width=asset.width,
            height=asset.height,
        )

    async def run(self, data: bytes, filename: str, content_type: str) -> PipelineOutcome:
        """
        Process one upload end to end.

        Args:
            data: Raw uploaded bytes
            filename: Caller-supplied file name
            content_type: Caller-declared content type

        Returns:
            PipelineOutcome with the published address

        Raises:
            PipelineError: On any rejection; nothing is published in that case
        """
        run = PipelineRun()
        try:
            # Format and size checks
            validated = self.validate(data, filename, content_type)
            del data
            run.advance(PipelineState.VALIDATED)

            # Scan-compatible rendition (PNG for webp input)
            scan_ready = await self.prepare_for_scan(validated)
            run.advance(PipelineState.SCAN_READY)

            # Moderation gate
            approved = await self.moderate(scan_ready)
            # The scan rendition is not needed past this point
            del scan_ready
            run.advance(PipelineState.SCANNED)

            # Storage rendition
            storage_ready = await self.prepare_for_storage(approved)
            run.advance(PipelineState.STORAGE_READY)

            # Publish
            outcome = await self.publish(storage_ready)
            run.advance(PipelineState.UPLOADED)
        except PipelineError as e:
            run.reject(e)
            logger.info(
                "Pipeline run rejected",
                extra={
                    "file_name": filename,
                    "error_kind": e.kind.value,
                    "states": [state.value for state in run.history],
                },
            )
            raise

        logger.info(
            "Image successfully processed and uploaded",
            extra={
                "file_name": outcome.filename,
                "original_format": outcome.original_format.value,
                "final_format": outcome.final_format.value,
                "scan_converted": outcome.scan_converted,
                "storage_converted": outcome.storage_converted,
                "size_bytes": outcome.size_bytes,
            },
        )
        return outcome
