"""
Upload endpoints — draft images and metadata JSON go to the blob store.

The returned URL is what drafts store in image_url / metadata_json_url.
"""
import logging

from fastapi import APIRouter, Body, Depends, File, UploadFile, status

from deps import get_blob_store, require_user_id
from domain.errors import BlockchainError, ValidationError
from models import UploadResponse
from services.blob_service import BlobStoreError, PinataBlobStore, upload_image, upload_metadata

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/upload", tags=["upload"])

ALLOWED_IMAGE_TYPES = {"image/png", "image/jpeg", "image/gif", "image/webp", "image/svg+xml"}
MAX_IMAGE_BYTES = 10 * 1024 * 1024


@router.post("/image", response_model=UploadResponse, status_code=status.HTTP_201_CREATED)
async def upload_draft_image(
    file: UploadFile = File(...),
    _user_id: int = Depends(require_user_id),
    blob_store: PinataBlobStore = Depends(get_blob_store),
):
    if file.content_type not in ALLOWED_IMAGE_TYPES:
        raise ValidationError(f"Unsupported image type: {file.content_type}", field="file")
    data = await file.read()
    if not data:
        raise ValidationError("No file uploaded.", field="file")
    if len(data) > MAX_IMAGE_BYTES:
        raise ValidationError("Image exceeds the 10 MB limit.", field="file")

    try:
        result = await upload_image(blob_store, data, file.filename or "image", file.content_type)
    except BlobStoreError as e:
        logger.error(f"Image upload failed: {e}")
        raise BlockchainError("Failed to upload image to storage.")
    return UploadResponse(message="Image uploaded successfully", url=result["url"], key=result["key"])


@router.post("/metadata", response_model=UploadResponse, status_code=status.HTTP_201_CREATED)
async def upload_draft_metadata(
    metadata: dict = Body(...),
    _user_id: int = Depends(require_user_id),
    blob_store: PinataBlobStore = Depends(get_blob_store),
):
    if not metadata.get("name"):
        raise ValidationError("Metadata must include a name.", field="name")
    try:
        result = await upload_metadata(blob_store, metadata)
    except BlobStoreError as e:
        logger.error(f"Metadata upload failed: {e}")
        raise BlockchainError("Failed to upload metadata to storage.")
    return UploadResponse(message="Metadata uploaded successfully", url=result["url"], key=result["key"])
