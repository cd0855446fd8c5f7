"""Tests for the error taxonomy."""

import pytest

from pixguard.core.exceptions import (
    CodecError,
    CodecFailure,
    ErrorKind,
    ModerationProviderError,
    PipelineError,
    PixguardException,
    StorageError,
)


def test_exception_hierarchy():
    """Test that all exceptions inherit from PixguardException."""
    assert issubclass(PipelineError, PixguardException)
    assert issubclass(CodecError, PixguardException)
    assert issubclass(StorageError, PixguardException)
    assert issubclass(ModerationProviderError, PixguardException)


@pytest.mark.parametrize(
    "kind,value,status",
    [
        (ErrorKind.VALIDATION_ERROR, "VALIDATION_ERROR", 400),
        (ErrorKind.UNSUPPORTED_FORMAT, "UNSUPPORTED_FORMAT", 400),
        (ErrorKind.FILE_TOO_LARGE, "FILE_TOO_LARGE", 400),
        (ErrorKind.INVALID_IMAGE_FORMAT, "InvalidImageFormat", 400),
        (ErrorKind.IMAGE_TOO_LARGE, "ImageTooLarge", 413),
        (ErrorKind.MEMORY_LIMIT_EXCEEDED, "MemoryLimitExceeded", 413),
        (ErrorKind.PROCESSING_TIMEOUT, "ProcessingTimeout", 408),
        (ErrorKind.INSTANTIATION_ERROR, "InstantiationError", 400),
        (ErrorKind.PNG_CONVERSION_ERROR, "PNGConversionError", 500),
        (ErrorKind.WEBP_CONVERSION_ERROR, "WebPConversionError", 500),
        (ErrorKind.SCAN_COMPATIBILITY_ERROR, "RekognitionCompatibilityError", 500),
        (ErrorKind.MODERATION_FAILED, "MODERATION_FAILED", 400),
        (ErrorKind.UPLOAD_FAILURE, "UploadFailure", 500),
        (ErrorKind.INTERNAL_ERROR, "INTERNAL_ERROR", 500),
    ],
)
def test_error_kinds_have_fixed_status_codes(kind, value, status):
    """Test the wire value and status code of each error kind."""
    assert kind.value == value
    assert kind.status_code == status


def test_pipeline_error_carries_kind_message_and_data():
    """Test that PipelineError exposes what the response envelope needs."""
    error = PipelineError(ErrorKind.FILE_TOO_LARGE, "too big", data={"sizeBytes": 3})

    assert error.kind is ErrorKind.FILE_TOO_LARGE
    assert error.status_code == 400
    assert error.message == "too big"
    assert error.data == {"sizeBytes": 3}
    assert str(error) == "too big"


def test_codec_error_carries_failure():
    """Test that CodecError keeps its structured failure."""
    error = CodecError(CodecFailure.OUT_OF_MEMORY, "out of memory")

    assert error.failure is CodecFailure.OUT_OF_MEMORY
    with pytest.raises(PixguardException):
        raise error
