"""Moderation provider capability."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional


@dataclass(frozen=True)
class ModerationLabel:
    """A label reported by the moderation provider."""

    name: str
    confidence: float
    parent_name: Optional[str] = None


class ModerationProvider(ABC):
    """Abstract content-scanning provider with a staging area."""

    @abstractmethod
    async def stage(self, key: str, data: bytes, content_type: str) -> None:
        """Place bytes under a transient key where the scanner can read them.

        Raises:
            ModerationProviderError: If staging fails
        """
        pass

    @abstractmethod
    async def detect_labels(self, key: str, min_confidence: float) -> List[ModerationLabel]:
        """Run moderation-label detection on a staged object.

        Args:
            key: Transient key passed to ``stage``
            min_confidence: Labels below this confidence are not reported

        Raises:
            ModerationProviderError: If the scan fails
        """
        pass

    @abstractmethod
    async def unstage(self, key: str) -> None:
        """Delete a staged object.

        Raises:
            ModerationProviderError: If deletion fails
        """
        pass

    def get_provider_name(self) -> str:
        return type(self).__name__
