"""Amazon Rekognition moderation provider with S3 staging."""

import asyncio
import logging
from typing import Any, List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from pixguard.core.exceptions import ModerationProviderError
from pixguard.moderation.provider import ModerationLabel, ModerationProvider

logger = logging.getLogger(__name__)


class RekognitionModerationProvider(ModerationProvider):
    """Stages images in S3 and scans them with ``DetectModerationLabels``."""

    def __init__(self, bucket_name: str, region: str = "us-east-2"):
        """Initialize the provider.

        Args:
            bucket_name: S3 bucket used as the staging area
            region: AWS region for both S3 and Rekognition
        """
        self.bucket_name = bucket_name
        self.region = region
        self._s3: Optional[Any] = None
        self._rekognition: Optional[Any] = None

    def _get_s3(self) -> Any:
        """Lazy-load and cache the S3 client."""
        if self._s3 is None:
            if not self.bucket_name:
                raise ModerationProviderError("MODERATION_STAGING_BUCKET not configured")
            self._s3 = boto3.client("s3", region_name=self.region)
        return self._s3

    def _get_rekognition(self) -> Any:
        """Lazy-load and cache the Rekognition client."""
        if self._rekognition is None:
            self._rekognition = boto3.client("rekognition", region_name=self.region)
        return self._rekognition

    async def stage(self, key: str, data: bytes, content_type: str) -> None:
        try:
            await asyncio.to_thread(
                self._get_s3().put_object,
                Bucket=self.bucket_name,
                Key=key,
                Body=data,
                ContentType=content_type,
            )
        except (BotoCoreError, ClientError) as e:
            logger.error(
                "Failed to stage image in S3",
                extra={"bucket": self.bucket_name, "temp_key": key, "error": str(e)},
            )
            raise ModerationProviderError(f"Failed to stage image: {e}") from e

    async def detect_labels(self, key: str, min_confidence: float) -> List[ModerationLabel]:
        try:
            response = await asyncio.to_thread(
                self._get_rekognition().detect_moderation_labels,
                Image={"S3Object": {"Bucket": self.bucket_name, "Name": key}},
                MinConfidence=min_confidence,
            )
        except (BotoCoreError, ClientError) as e:
            logger.error(
                "Rekognition moderation scan failed",
                extra={"bucket": self.bucket_name, "temp_key": key, "error": str(e)},
            )
            raise ModerationProviderError(f"Moderation scan failed: {e}") from e

        labels = [
            ModerationLabel(
                name=item.get("Name") or "",
                confidence=float(item.get("Confidence") or 0.0),
                parent_name=item.get("ParentName") or None,
            )
            for item in response.get("ModerationLabels", [])
        ]
        logger.info(
            "Rekognition moderation scan completed",
            extra={"temp_key": key, "label_count": len(labels)},
        )
        return labels

    # Deleting is idempotent, so a short retry is safe here
    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.1, min=0.1, max=1),
        retry=retry_if_exception_type(ModerationProviderError),
        reraise=True,
    )
    async def unstage(self, key: str) -> None:
        try:
            await asyncio.to_thread(self._get_s3().delete_object, Bucket=self.bucket_name, Key=key)
        except (BotoCoreError, ClientError) as e:
            logger.warning(
                "Failed to delete staged image",
                extra={"bucket": self.bucket_name, "temp_key": key, "error": str(e)},
            )
            raise ModerationProviderError(f"Failed to delete staged image: {e}") from e

    def get_provider_name(self) -> str:
        return "rekognition"
