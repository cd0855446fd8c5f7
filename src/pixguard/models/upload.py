"""Upload request and response models."""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class ImageUploadRequest(BaseModel):
    """Request envelope for an image upload.

    Every field is optional at the schema level so that missing fields are
    reported as VALIDATION_ERROR by the handler rather than as a 422.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    image_data: Optional[str] = Field(None, alias="imageData", description="Base64 image bytes or data URL")
    filename: Optional[str] = Field(None, description="Caller-supplied file name")
    content_type: Optional[str] = Field(None, alias="contentType", description="Declared MIME type")


class UploadEnvelope(BaseModel):
    """Response envelope for an image upload."""

    success: bool
    message: str
    error: Optional[str] = None
    data: Optional[Dict[str, Any]] = None

    def to_body(self) -> Dict[str, Any]:
        """Serialise without the optional keys that are unset."""
        return self.model_dump(exclude_none=True)
