"""Moderation gate.

Stages the scan-compatible buffer with the provider, runs label detection,
turns the labels into a pass/fail verdict and always removes the staged
object again. Provider failures never escape ``scan``: they produce a failed
verdict with ``error`` set.
"""

import asyncio
import logging
import time
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import AsyncIterator, FrozenSet, Iterable, List, Optional

from pixguard.images.formats import ImageFormat, is_scan_compatible, mime_type_for
from pixguard.moderation.provider import ModerationLabel, ModerationProvider

logger = logging.getLogger(__name__)

# Rejected content categories; weapons and violence are acceptable in game artwork
DISALLOWED_LABELS: FrozenSet[str] = frozenset(
    {
        "Explicit Nudity",
        "Visually Disturbing",
        "Hate Symbols",
        "Gambling",
        "Drugs",
        "Tobacco",
        "Alcohol",
        "Rude Gestures",
        "Adult Content",
    }
)

DEFAULT_MIN_CONFIDENCE = 50.0
DEFAULT_REJECTION_THRESHOLD = 70.0


@dataclass(frozen=True)
class ModerationVerdict:
    """Outcome of one moderation scan.

    ``passed`` is always False when ``error`` is set.
    """

    passed: bool
    labels: List[str] = field(default_factory=list)
    confidence: float = 0.0
    error: Optional[str] = None

    @classmethod
    def failed_scan(cls, error: str) -> "ModerationVerdict":
        return cls(passed=False, labels=[], confidence=0.0, error=error)


class ModerationGate:
    """Pass/fail screening of an image through a moderation provider."""

    def __init__(
        self,
        provider: ModerationProvider,
        min_confidence: float = DEFAULT_MIN_CONFIDENCE,
        rejection_threshold: float = DEFAULT_REJECTION_THRESHOLD,
        disallowed_labels: Iterable[str] = DISALLOWED_LABELS,
        key_prefix: str = "temp-moderation",
    ):
        self.provider = provider
        self.min_confidence = min_confidence
        self.rejection_threshold = rejection_threshold
        self.disallowed_labels = frozenset(disallowed_labels)
        self.key_prefix = key_prefix.strip("/")

    def new_transient_key(self, image_format: ImageFormat) -> str:
        """Unique staging key: ``{prefix}/{uuid}-{epoch_ms}.{ext}``."""
        return f"{self.key_prefix}/{uuid.uuid4()}-{int(time.time() * 1000)}.{image_format.extension}"

    @asynccontextmanager
    async def _transient_object(self, data: bytes, image_format: ImageFormat) -> AsyncIterator[str]:
        """Stage ``data`` under a fresh key and remove it again on exit.

        Cleanup runs exactly once, whether the body returned, raised, or the
        request was cancelled, and also when staging itself failed.

        Yields:
            The transient key the provider can scan
        """
        key = self.new_transient_key(image_format)
        try:
            await self.provider.stage(key, data, mime_type_for(image_format))
            logger.info("Image staged for moderation", extra={"temp_key": key, "format": image_format.value})
            yield key
        finally:
            # Shielded so that a cancelled request still removes the object
            await asyncio.shield(self._release(key))

    async def _release(self, key: str) -> None:
        """Delete a staged object. Failures are logged and never raised."""
        try:
            await self.provider.unstage(key)
            logger.info("Temporary moderation object cleaned up", extra={"temp_key": key})
        except Exception as e:
            logger.warning(
                "Failed to clean up temporary moderation object",
                extra={"temp_key": key, "error": str(e)},
            )

    def _is_disallowed(self, label: ModerationLabel) -> bool:
        # Sub-labels are matched through their parent category
        if label.confidence < self.rejection_threshold:
            return False
        return label.name in self.disallowed_labels or label.parent_name in self.disallowed_labels

    def evaluate(self, labels: List[ModerationLabel]) -> ModerationVerdict:
        """Turn detected labels into a verdict.

        Args:
            labels: Labels returned by the provider, already above the detection floor

        Returns:
            ModerationVerdict; failed if any disallowed label reaches the
            rejection threshold. ``confidence`` is the highest confidence seen.
        """
        confidence = max((label.confidence for label in labels), default=0.0)
        has_disallowed = any(self._is_disallowed(label) for label in labels)
        return ModerationVerdict(
            passed=not has_disallowed,
            labels=[label.name for label in labels if label.name],
            confidence=confidence,
        )

    async def scan(self, data: bytes, image_format: ImageFormat) -> ModerationVerdict:
        """
        Screen an image.

        Args:
            data: Scan-compatible image bytes
            image_format: Format of ``data`` (jpg or png)

        Returns:
            ModerationVerdict; failed with ``error`` set if the scan itself failed
        """
        logger.info(
            "Starting content moderation scan",
            extra={
                "format": image_format.value,
                "buffer_size": len(data),
                "buffer_size_mb": f"{len(data) / (1024 * 1024):.2f}",
            },
        )

        # The provider only reads JPEG and PNG; never stage anything else
        if not is_scan_compatible(image_format):
            logger.error("Refusing to scan incompatible format", extra={"format": image_format.value})
            return ModerationVerdict.failed_scan(f"format {image_format.value} is not scan compatible")

        # The staged object is removed by _transient_object on every path
        try:
            async with self._transient_object(data, image_format) as key:
                labels = await self.provider.detect_labels(key, self.min_confidence)
        except Exception as e:
            # Fail closed: any error during the scan is a failed verdict
            logger.error(
                "Error during content moderation scan",
                extra={"error": str(e), "error_type": type(e).__name__},
            )
            return ModerationVerdict.failed_scan(str(e) or type(e).__name__)

        verdict = self.evaluate(labels)
        logger.info(
            "Moderation scan completed",
            extra={
                "passed": verdict.passed,
                "label_count": len(verdict.labels),
                "labels": verdict.labels,
                "max_confidence": verdict.confidence,
            },
        )
        return verdict

    async def scan_file(self, path: Path, image_format: ImageFormat) -> ModerationVerdict:
        """Screen an image stored on disk.

        Args:
            path: Path to a scan-compatible image file
            image_format: Format of the file

        Returns:
            ModerationVerdict, as from ``scan``
        """
        data = await asyncio.to_thread(Path(path).read_bytes)
        return await self.scan(data, image_format)
