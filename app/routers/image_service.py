from fastapi import APIRouter, Depends, UploadFile, File, Form, Query, Response
from fastapi.concurrency import run_in_threadpool
from typing import Optional
from io import BytesIO
import logging
import time
from PIL import Image

from app.dependencies.dependencies import get_image_pipeline, get_app_settings
from app.image_service.service import ImagePipeline
from app.image_service.models import ImageView, ListImagesResponse, DeleteScopeResponse
from app.exceptions import InvalidImageException, PayloadTooLargeException, ScopeForbiddenException
from app.settings import Settings

log = logging.getLogger(__name__)

router = APIRouter(
    prefix="/images",
    tags=["image-flip-service"]
)

# Allowed content types
ALLOWED_IMAGE_TYPES = {
    "image/png",
    "image/jpeg",
    "image/jpg",
    "image/gif",
    "image/webp",
}

FORMAT_MIME_MAP = {
    "JPEG": "image/jpeg",
    "PNG": "image/png",
    "GIF": "image/gif",
    "WEBP": "image/webp",
}

def validate_image_bytes(file_bytes: bytes, content_type: str) -> str:
    """Validate that the uploaded file is a real image of an allowed type."""
    if content_type not in ALLOWED_IMAGE_TYPES:
        raise InvalidImageException(
            f"Unsupported content type: {content_type}. File must be an image (jpeg, jpg, png, gif, or webp)"
        )
    try:
        img = Image.open(BytesIO(file_bytes))
        img.verify()
    except Exception:
        raise InvalidImageException("Invalid image file")
    mime_type = FORMAT_MIME_MAP.get((img.format or "").upper())
    if mime_type is None:
        raise InvalidImageException(f"Unsupported image format: {img.format}")
    return mime_type

def check_scope(scope: Optional[str], settings: Settings):
    """Only the configured scope may upload or be retired. No allow-list means any scope."""
    if settings.allowed_scope and scope != settings.allowed_scope:
        raise ScopeForbiddenException(scope or "")

@router.post("", response_model=ImageView, status_code=201)
async def upload_image(
    file: UploadFile = File(...),
    scope: Optional[str] = Form(None),
    response: Response = None,
    pipeline: ImagePipeline = Depends(get_image_pipeline),
    settings: Settings = Depends(get_app_settings),
):
    """Removes the background, flips the image and stores both variants."""
    if response:
        response.headers["X-Content-Type-Options"] = "nosniff"

    check_scope(scope, settings)

    if file.content_type not in ALLOWED_IMAGE_TYPES:
        raise InvalidImageException(f"Unsupported content type: {file.content_type}")

    contents = await file.read(settings.max_upload_bytes + 1)
    if len(contents) > settings.max_upload_bytes:
        raise PayloadTooLargeException(settings.max_upload_bytes)
    if not contents:
        raise InvalidImageException("No file uploaded")

    mime_type = validate_image_bytes(contents, file.content_type)

    return await run_in_threadpool(
        pipeline.process_image,
        contents,
        mime_type,
        scope,
        deadline=time.monotonic() + settings.process_timeout_seconds,
    )

@router.get("", response_model=ListImagesResponse)
def list_images_handler(
    scope: Optional[str] = Query(None),
    limit: Optional[int] = Query(None, ge=1, le=100),
    cursor: Optional[str] = Query(None),
    pipeline: ImagePipeline = Depends(get_image_pipeline),
):
    """Lists processed images, newest first."""
    return pipeline.get_all_images(scope=scope, limit=limit, cursor=cursor)

@router.delete("", response_model=DeleteScopeResponse)
def delete_scope(
    scope: str = Query(..., min_length=1),
    pipeline: ImagePipeline = Depends(get_image_pipeline),
    settings: Settings = Depends(get_app_settings),
):
    """Deletes every image of a scope, records and blobs."""
    check_scope(scope, settings)
    deleted = pipeline.retire_scope(scope)
    return DeleteScopeResponse(scope=scope, deleted=deleted)

@router.get("/{image_id}", response_model=ImageView)
def get_image(
    image_id: str,
    pipeline: ImagePipeline = Depends(get_image_pipeline),
):
    """Gets a single processed image."""
    return pipeline.get_image_by_id(image_id)

@router.delete("/{image_id}", status_code=204)
def delete_image(
    image_id: str,
    pipeline: ImagePipeline = Depends(get_image_pipeline),
):
    """Deletes an image record and both of its blobs."""
    pipeline.delete_image(image_id)
    return Response(status_code=204)
