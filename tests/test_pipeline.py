"""Tests for the pipeline controller."""

import pytest

from conftest import FakeCodec, FakeModerationProvider, RecordingPublisher, make_image_bytes
from pixguard.core.exceptions import CodecError, CodecFailure, ErrorKind, PipelineError
from pixguard.images.formats import ImageFormat
from pixguard.moderation.gate import ModerationGate, ModerationVerdict
from pixguard.moderation.provider import ModerationLabel
from pixguard.pipeline.controller import (
    ApprovedImage,
    IllegalTransitionError,
    ImagePipeline,
    PipelineRun,
    PipelineState,
)

TWO_MIB = 2 * 1024 * 1024


@pytest.mark.asyncio
async def test_jpeg_upload_is_converted_and_published(make_pipeline, publisher, moderation_provider):
    """Test the full happy path for a JPEG upload."""
    pipeline = make_pipeline()
    data = make_image_bytes(ImageFormat.JPEG, size=(40, 30))

    outcome = await pipeline.run(data, "hero.jpeg", "image/jpeg")

    assert outcome.filename == "hero.webp"
    assert outcome.url == "https://cdn.example.com/hero.webp"
    assert outcome.original_format is ImageFormat.JPEG
    assert outcome.final_format is ImageFormat.WEBP
    assert outcome.scan_converted is False
    assert outcome.storage_converted is True
    assert (outcome.width, outcome.height) == (40, 30)

    published, filename, content_type = publisher.calls[0]
    assert published[8:12] == b"WEBP"
    assert filename == "hero.webp"
    assert content_type == "image/webp"
    # The scan saw the original JPEG bytes
    assert len(moderation_provider.stage_calls) == 1
    assert moderation_provider.stage_calls[0].endswith(".jpg")


@pytest.mark.asyncio
async def test_webp_upload_reaches_storage_unchanged(make_pipeline, publisher, moderation_provider):
    """Test that WebP bytes are published as uploaded, scanned through a PNG rendition."""
    pipeline = make_pipeline()
    data = make_image_bytes(ImageFormat.WEBP)

    outcome = await pipeline.run(data, "banner.webp", "image/webp")

    assert outcome.storage_converted is False
    assert outcome.final_format is ImageFormat.WEBP
    assert publisher.calls[0][0] == data
    assert moderation_provider.stage_calls[0].endswith(".png")


@pytest.mark.asyncio
async def test_moderation_failure_never_publishes(make_pipeline, publisher):
    """Test that a failed verdict stops the run before storage."""
    provider = FakeModerationProvider(labels=[ModerationLabel("Explicit Nudity", 91.0)])
    codec = FakeCodec()
    pipeline = make_pipeline(codec=codec, provider=provider)

    with pytest.raises(PipelineError) as exc_info:
        await pipeline.run(make_image_bytes(ImageFormat.PNG), "x.png", "image/png")

    error = exc_info.value
    assert error.kind is ErrorKind.MODERATION_FAILED
    assert error.data == {"moderationLabels": ["Explicit Nudity"], "confidence": 91.0}
    assert publisher.calls == []
    # No storage conversion was attempted either
    assert codec.encode_calls == []


@pytest.mark.asyncio
async def test_scan_error_never_publishes_and_hides_provider_text(make_pipeline, publisher, provider_error):
    """Test that a provider error is treated as a content failure."""
    provider = FakeModerationProvider(detect_error=provider_error)
    pipeline = make_pipeline(provider=provider)

    with pytest.raises(PipelineError) as exc_info:
        await pipeline.run(make_image_bytes(ImageFormat.PNG), "x.png", "image/png")

    error = exc_info.value
    assert error.kind is ErrorKind.MODERATION_FAILED
    assert error.data == {"moderationLabels": [], "confidence": 0.0}
    assert "AccessDenied" not in error.message
    assert publisher.calls == []
    assert len(provider.unstage_calls) == 1


@pytest.mark.asyncio
async def test_size_boundary_passes_at_two_mib(publisher):
    """Test that exactly 2 MiB is accepted by the size check."""
    pipeline = ImagePipeline(
        codec=FakeCodec(), gate=ModerationGate(FakeModerationProvider()), publisher=publisher
    )

    outcome = await pipeline.run(b"\0" * TWO_MIB, "big.png", "image/png")

    assert outcome.final_format is ImageFormat.WEBP


@pytest.mark.asyncio
async def test_size_boundary_rejects_one_byte_over(publisher):
    """Test that 2 MiB + 1 byte is FILE_TOO_LARGE with no collaborator calls."""
    codec = FakeCodec()
    provider = FakeModerationProvider()
    pipeline = ImagePipeline(codec=codec, gate=ModerationGate(provider), publisher=publisher)

    with pytest.raises(PipelineError) as exc_info:
        await pipeline.run(b"\0" * (TWO_MIB + 1), "big.png", "image/png")

    assert exc_info.value.kind is ErrorKind.FILE_TOO_LARGE
    assert exc_info.value.data["sizeBytes"] == TWO_MIB + 1
    assert codec.decode_calls == []
    assert provider.stage_calls == []
    assert publisher.calls == []


@pytest.mark.asyncio
async def test_unsupported_format_is_checked_first(make_pipeline, moderation_provider, publisher):
    """Test that the format check runs before anything else."""
    pipeline = make_pipeline()

    with pytest.raises(PipelineError) as exc_info:
        await pipeline.run(b"\0" * (TWO_MIB + 1), "anim.gif", "image/gif")

    assert exc_info.value.kind is ErrorKind.UNSUPPORTED_FORMAT
    assert moderation_provider.stage_calls == []
    assert publisher.calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize("width,height,passes", [(8192, 8192, True), (8193, 10, False), (10, 8193, False)])
async def test_dimension_boundary(make_pipeline, publisher, width, height, passes):
    """Test the per-axis dimension limit during the storage conversion."""
    pipeline = make_pipeline(codec=FakeCodec(width=width, height=height))

    if passes:
        outcome = await pipeline.run(b"png", "map.png", "image/png")
        assert (outcome.width, outcome.height) == (width, height)
    else:
        with pytest.raises(PipelineError) as exc_info:
            await pipeline.run(b"png", "map.png", "image/png")
        assert exc_info.value.kind is ErrorKind.IMAGE_TOO_LARGE
        assert publisher.calls == []


@pytest.mark.asyncio
async def test_undecodable_webp_is_rejected_before_scan(make_pipeline, moderation_provider):
    """Test that garbage WebP bytes fail in the scan conversion."""
    pipeline = make_pipeline()

    with pytest.raises(PipelineError) as exc_info:
        await pipeline.run(b"not really webp", "x.webp", "image/webp")

    assert exc_info.value.kind is ErrorKind.INVALID_IMAGE_FORMAT
    assert moderation_provider.stage_calls == []


@pytest.mark.asyncio
async def test_storage_conversion_failure_after_pass(make_pipeline, publisher):
    """Test that a failed WebP conversion is reported and nothing is published."""
    codec = FakeCodec(encode_error=CodecError(CodecFailure.OUT_OF_MEMORY, "out of memory"))
    pipeline = make_pipeline(codec=codec)

    with pytest.raises(PipelineError) as exc_info:
        await pipeline.run(b"jpeg", "x.jpg", "image/jpg")

    assert exc_info.value.kind is ErrorKind.MEMORY_LIMIT_EXCEEDED
    assert publisher.calls == []


@pytest.mark.asyncio
async def test_publish_failure_is_upload_failure(moderation_provider):
    """Test that publisher errors become UploadFailure."""
    pipeline = ImagePipeline(
        codec=FakeCodec(),
        gate=ModerationGate(moderation_provider),
        publisher=RecordingPublisher(fail=True),
    )

    with pytest.raises(PipelineError) as exc_info:
        await pipeline.run(b"png", "x.png", "image/png")

    assert exc_info.value.kind is ErrorKind.UPLOAD_FAILURE
    assert exc_info.value.status_code == 500


@pytest.mark.asyncio
async def test_original_buffer_is_released_after_storage_conversion(make_pipeline, publisher):
    """Test that the asset only keeps the storage rendition."""
    pipeline = make_pipeline(codec=FakeCodec())
    validated = pipeline.validate(b"original-png", "x.png", "image/png")
    scan_ready = await pipeline.prepare_for_scan(validated)
    approved = await pipeline.moderate(scan_ready)

    storage_ready = await pipeline.prepare_for_storage(approved)

    assert validated.asset.data is storage_ready.result.data
    assert validated.asset.format is ImageFormat.WEBP
    assert validated.asset.original_format is ImageFormat.PNG


def test_approved_image_requires_passed_verdict(make_pipeline):
    """Test that there is no way to approve a failed verdict."""
    validated = make_pipeline().validate(b"png", "x.png", "image/png")

    with pytest.raises(ValueError):
        ApprovedImage(asset=validated.asset, verdict=ModerationVerdict(passed=False), scan_converted=False)


def test_state_machine_rejects_skipping_moderation():
    """Test that storage cannot follow scan preparation directly."""
    run = PipelineRun()
    run.advance(PipelineState.VALIDATED)
    run.advance(PipelineState.SCAN_READY)

    with pytest.raises(IllegalTransitionError):
        run.advance(PipelineState.STORAGE_READY)


def test_state_machine_terminal_states():
    """Test that nothing follows a rejection."""
    run = PipelineRun()
    run.reject(PipelineError(ErrorKind.UNSUPPORTED_FORMAT, "nope"))

    assert run.state is PipelineState.REJECTED
    assert run.history == [PipelineState.RECEIVED, PipelineState.REJECTED]
    with pytest.raises(IllegalTransitionError):
        run.advance(PipelineState.VALIDATED)


@pytest.mark.asyncio
async def test_outcome_reports_stored_name(make_pipeline, publisher):
    """Test that the outcome names the file as the publisher stored it."""
    pipeline = make_pipeline(codec=FakeCodec())

    outcome = await pipeline.run(b"png", "summer trip/../my photo!.png", "image/png")

    assert outcome.filename == publisher.get_stored_name("summer trip/../my photo!.webp")
    assert outcome.url == f"https://cdn.example.com/{outcome.filename}"
    assert " " not in outcome.filename and "/" not in outcome.filename
