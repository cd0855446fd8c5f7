"""Mapping of codec and collaborator failures onto caller-facing error kinds."""

from pixguard.core.exceptions import CodecError, CodecFailure, ErrorKind, PipelineError
from pixguard.images.formats import ImageFormat

_DECODE_KINDS = {
    CodecFailure.OUT_OF_MEMORY: ErrorKind.MEMORY_LIMIT_EXCEEDED,
    CodecFailure.TOO_MANY_PIXELS: ErrorKind.IMAGE_TOO_LARGE,
    CodecFailure.UNRECOGNIZED_FORMAT: ErrorKind.INVALID_IMAGE_FORMAT,
    CodecFailure.TIMEOUT: ErrorKind.PROCESSING_TIMEOUT,
    CodecFailure.OTHER: ErrorKind.INSTANTIATION_ERROR,
}

_ENCODE_KINDS = {
    CodecFailure.OUT_OF_MEMORY: ErrorKind.MEMORY_LIMIT_EXCEEDED,
    CodecFailure.TOO_MANY_PIXELS: ErrorKind.IMAGE_TOO_LARGE,
    CodecFailure.TIMEOUT: ErrorKind.PROCESSING_TIMEOUT,
}

_CONVERSION_ERROR_KINDS = {
    ImageFormat.PNG: ErrorKind.PNG_CONVERSION_ERROR,
    ImageFormat.WEBP: ErrorKind.WEBP_CONVERSION_ERROR,
}

MESSAGES = {
    ErrorKind.MEMORY_LIMIT_EXCEEDED: "Image is too large to process within the memory budget. Please reduce image size and try again.",
    ErrorKind.IMAGE_TOO_LARGE: "Image dimensions are too large to process. Please reduce image dimensions and try again.",
    ErrorKind.INVALID_IMAGE_FORMAT: "The provided data is not a valid image format. Please ensure you are uploading a valid image file.",
    ErrorKind.PROCESSING_TIMEOUT: "Image conversion timed out. Please try with a smaller image.",
    ErrorKind.INSTANTIATION_ERROR: "Input image could not be instantiated. Please choose a valid image.",
    ErrorKind.PNG_CONVERSION_ERROR: "Failed to convert image to PNG format.",
    ErrorKind.WEBP_CONVERSION_ERROR: "Failed to convert image to WebP format.",
    ErrorKind.SCAN_COMPATIBILITY_ERROR: "Failed to convert image to a moderation compatible format.",
    ErrorKind.UPLOAD_FAILURE: "Failed to upload image to storage.",
}


def classify_decode_error(error: CodecError) -> PipelineError:
    """Map a decode-time codec failure to a pipeline error."""
    kind = _DECODE_KINDS[error.failure]
    return PipelineError(kind, MESSAGES[kind])


def classify_encode_error(error: CodecError, target: ImageFormat) -> PipelineError:
    """Map an encode-time codec failure to a pipeline error.

    Unclassified failures become the conversion error of the target format.
    """
    kind = _ENCODE_KINDS.get(error.failure) or _CONVERSION_ERROR_KINDS.get(target, ErrorKind.INTERNAL_ERROR)
    return PipelineError(kind, MESSAGES.get(kind, "Image conversion failed."))


def dimension_error(width: int, height: int, max_dimension: int) -> PipelineError:
    return PipelineError(
        ErrorKind.IMAGE_TOO_LARGE,
        f"Image dimensions ({width}x{height}) exceed maximum allowed "
        f"({max_dimension}x{max_dimension}). Please reduce image dimensions.",
        data={"width": width, "height": height, "maxDimension": max_dimension},
    )


def file_too_large_error(size_bytes: int, max_size_bytes: int) -> PipelineError:
    size_mb = f"{size_bytes / (1024 * 1024):.2f}"
    max_mb = max_size_bytes / (1024 * 1024)
    return PipelineError(
        ErrorKind.FILE_TOO_LARGE,
        f"Image file size too large: {size_mb}MB. Maximum allowed size is {max_mb:g}MB.",
        data={"sizeBytes": size_bytes, "maxSizeBytes": max_size_bytes, "sizeMB": size_mb},
    )


def upload_failure_error() -> PipelineError:
    return PipelineError(ErrorKind.UPLOAD_FAILURE, MESSAGES[ErrorKind.UPLOAD_FAILURE])
