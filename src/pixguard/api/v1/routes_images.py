"""Image upload API routes."""

from fastapi import APIRouter, Body, Depends
from fastapi.responses import JSONResponse

from pixguard.models.upload import ImageUploadRequest
from pixguard.pipeline.controller import ImagePipeline
from pixguard.services.image_upload import get_pipeline, handle_image_upload

router = APIRouter(prefix="/api/v1", tags=["images"])


@router.post("/images")
async def upload_image(
    request: ImageUploadRequest = Body(...),
    pipeline: ImagePipeline = Depends(get_pipeline),
) -> JSONResponse:
    """Validate, moderate and publish a base64-encoded image."""
    status_code, body = await handle_image_upload(request, pipeline)
    return JSONResponse(status_code=status_code, content=body)
