"""Pytest configuration and shared fixtures."""

import io
from typing import List, Optional

import pytest
from PIL import Image

from pixguard.core.exceptions import CodecError, ModerationProviderError, StorageError
from pixguard.images.codec import ImageCodec
from pixguard.images.conversion import ConversionOptions
from pixguard.images.formats import ImageFormat
from pixguard.moderation.gate import ModerationGate
from pixguard.moderation.provider import ModerationLabel, ModerationProvider
from pixguard.pipeline.controller import ImagePipeline
from pixguard.storage.base import StoragePublisher

PILLOW_NAMES = {ImageFormat.WEBP: "WEBP", ImageFormat.JPEG: "JPEG", ImageFormat.PNG: "PNG"}


def make_image_bytes(image_format: ImageFormat, size=(32, 24), mode: str = "RGB", color=(200, 40, 40)) -> bytes:
    """Encode a solid-colour test image."""
    image = Image.new(mode, size, color)
    output = io.BytesIO()
    image.save(output, format=PILLOW_NAMES[image_format])
    return output.getvalue()


class FakeModerationProvider(ModerationProvider):
    """In-memory provider recording every call."""

    def __init__(
        self,
        labels: Optional[List[ModerationLabel]] = None,
        detect_error: Optional[Exception] = None,
        stage_error: Optional[Exception] = None,
        unstage_error: Optional[Exception] = None,
    ):
        self.labels = labels or []
        self.detect_error = detect_error
        self.stage_error = stage_error
        self.unstage_error = unstage_error
        self.staged: dict = {}
        self.stage_calls: List[str] = []
        self.detect_calls: List[tuple] = []
        self.unstage_calls: List[str] = []

    async def stage(self, key, data, content_type):
        self.stage_calls.append(key)
        if self.stage_error:
            raise self.stage_error
        self.staged[key] = (data, content_type)

    async def detect_labels(self, key, min_confidence):
        self.detect_calls.append((key, min_confidence))
        if self.detect_error:
            raise self.detect_error
        return list(self.labels)

    async def unstage(self, key):
        self.unstage_calls.append(key)
        if self.unstage_error:
            raise self.unstage_error
        self.staged.pop(key, None)


class RecordingPublisher(StoragePublisher):
    """Publisher double that keeps what it was given."""

    def __init__(self, fail: bool = False):
        super().__init__(public_base_url="https://cdn.example.com")
        self.fail = fail
        self.calls: List[tuple] = []

    async def publish(self, data, filename, content_type):
        self.calls.append((data, filename, content_type))
        if self.fail:
            raise StorageError("bucket unavailable")
        return f"{self.public_base_url}/{self.get_object_key(filename)}"

    def get_backend_name(self) -> str:
        return "recording"


class _FakeDecoded:
    def __init__(self, width: int, height: int):
        self.width = width
        self.height = height
        self.closed = False

    def close(self):
        self.closed = True


class FakeCodec(ImageCodec):
    """Codec double reporting fixed dimensions without touching pixels."""

    def __init__(self, width: int = 64, height: int = 64, decode_error: Optional[CodecError] = None,
                 encode_error: Optional[Exception] = None):
        self.width = width
        self.height = height
        self.decode_error = decode_error
        self.encode_error = encode_error
        self.decode_calls: List[bytes] = []
        self.encode_calls: List[tuple] = []
        self.handles: List[_FakeDecoded] = []

    def decode(self, data):
        self.decode_calls.append(data)
        if self.decode_error:
            raise self.decode_error
        handle = _FakeDecoded(self.width, self.height)
        self.handles.append(handle)
        return handle

    def encode(self, decoded, target, params):
        self.encode_calls.append((target, params))
        if self.encode_error:
            raise self.encode_error
        return f"encoded-{target.value}".encode()


@pytest.fixture
def moderation_provider():
    return FakeModerationProvider()


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def conversion_options():
    return ConversionOptions(timeout_seconds=5.0)


@pytest.fixture
def make_pipeline(moderation_provider, publisher, conversion_options):
    """Build a pipeline around the shared doubles, with an optional codec override."""
    from pixguard.images.codec import PillowCodec

    def _make(codec: Optional[ImageCodec] = None, provider: Optional[ModerationProvider] = None) -> ImagePipeline:
        return ImagePipeline(
            codec=codec or PillowCodec(),
            gate=ModerationGate(provider or moderation_provider),
            publisher=publisher,
            options=conversion_options,
        )

    return _make


@pytest.fixture
def provider_error():
    return ModerationProviderError("Rekognition unavailable: AccessDenied for arn:aws:iam::123:role/x")
