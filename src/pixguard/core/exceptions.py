"""Exception types and the caller-facing error taxonomy."""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    """Closed set of error kinds reported to callers.

    The values are the exact strings sent in the ``error`` field of the
    response envelope.
    """

    VALIDATION_ERROR = "VALIDATION_ERROR"
    UNSUPPORTED_FORMAT = "UNSUPPORTED_FORMAT"
    FILE_TOO_LARGE = "FILE_TOO_LARGE"
    INVALID_IMAGE_FORMAT = "InvalidImageFormat"
    IMAGE_TOO_LARGE = "ImageTooLarge"
    MEMORY_LIMIT_EXCEEDED = "MemoryLimitExceeded"
    PROCESSING_TIMEOUT = "ProcessingTimeout"
    INSTANTIATION_ERROR = "InstantiationError"
    PNG_CONVERSION_ERROR = "PNGConversionError"
    WEBP_CONVERSION_ERROR = "WebPConversionError"
    SCAN_COMPATIBILITY_ERROR = "RekognitionCompatibilityError"
    MODERATION_FAILED = "MODERATION_FAILED"
    UPLOAD_FAILURE = "UploadFailure"
    INTERNAL_ERROR = "INTERNAL_ERROR"

    @property
    def status_code(self) -> int:
        """HTTP status code fixed for this kind."""
        return ERROR_STATUS_CODES[self]


ERROR_STATUS_CODES: Dict[ErrorKind, int] = {
    ErrorKind.VALIDATION_ERROR: 400,
    ErrorKind.UNSUPPORTED_FORMAT: 400,
    ErrorKind.FILE_TOO_LARGE: 400,
    ErrorKind.INVALID_IMAGE_FORMAT: 400,
    ErrorKind.IMAGE_TOO_LARGE: 413,
    ErrorKind.MEMORY_LIMIT_EXCEEDED: 413,
    ErrorKind.PROCESSING_TIMEOUT: 408,
    ErrorKind.INSTANTIATION_ERROR: 400,
    ErrorKind.PNG_CONVERSION_ERROR: 500,
    ErrorKind.WEBP_CONVERSION_ERROR: 500,
    ErrorKind.SCAN_COMPATIBILITY_ERROR: 500,
    ErrorKind.MODERATION_FAILED: 400,
    ErrorKind.UPLOAD_FAILURE: 500,
    ErrorKind.INTERNAL_ERROR: 500,
}


class CodecFailure(str, Enum):
    """Structured failure categories reported by the image codec."""

    TOO_MANY_PIXELS = "too_many_pixels"
    UNRECOGNIZED_FORMAT = "unrecognized_format"
    OUT_OF_MEMORY = "out_of_memory"
    TIMEOUT = "timeout"
    OTHER = "other"


class PixguardException(Exception):
    """Base exception for pixguard."""
    pass


class PipelineError(PixguardException):
    """Rejection raised by a pipeline stage.

    Carries a stable kind (and therefore status code), a human-readable
    message and optional structured data for the response envelope.
    """

    def __init__(self, kind: ErrorKind, message: str, data: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.data = data

    @property
    def status_code(self) -> int:
        return self.kind.status_code

    def __repr__(self) -> str:
        return f"PipelineError(kind={self.kind.value!r}, message={self.message!r})"


class CodecError(PixguardException):
    """Exception raised when decoding or encoding an image fails."""

    def __init__(self, failure: CodecFailure, message: str):
        super().__init__(message)
        self.failure = failure


class StorageError(PixguardException):
    """Exception raised when publishing to permanent storage fails."""
    pass


class ModerationProviderError(PixguardException):
    """Exception raised when the moderation provider cannot complete a call."""
    pass
