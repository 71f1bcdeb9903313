"""Upload router: photo uploads ahead of a form submission."""

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, File, Form, UploadFile

from asset_tracker.core.dependencies import get_asset_service, get_blob_store, http_error_for, read_uploads
from asset_tracker.core.errors import AssetTrackerError
from asset_tracker.core.service import AssetService
from asset_tracker.core.storage import BlobStore
from asset_tracker.schemas.asset import BatchUploadResponse, UploadResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["uploads"])


@router.post("/upload", response_model=UploadResponse)
async def upload_image(
    service: Annotated[AssetService, Depends(get_asset_service)],
    file: UploadFile = File(...),
) -> UploadResponse:
    """Upload a single photo under the single-image size ceiling."""
    uploads = await read_uploads([file])
    logger.info(f"Single image upload: {uploads[0].filename} ({uploads[0].size_bytes} bytes)")
    try:
        urls = await service.upload_images(uploads, single=True)
    except AssetTrackerError as e:
        raise http_error_for(e) from e
    return UploadResponse(success=True, url=urls[-1], message="Image uploaded")


@router.post("/upload/batch", response_model=BatchUploadResponse)
async def upload_images(
    service: Annotated[AssetService, Depends(get_asset_service)],
    files: list[UploadFile] = File(...),
    existing: list[str] = Form(default=[]),
) -> BatchUploadResponse:
    """Upload several photos at once; ``existing`` are the URLs already on the form.

    The whole batch is rejected if it would exceed the per-asset image count,
    and nothing is kept if any single file fails.
    """
    uploads = await read_uploads(files)
    try:
        urls = await service.upload_images(uploads, existing=existing)
    except AssetTrackerError as e:
        raise http_error_for(e) from e
    return BatchUploadResponse(success=True, urls=urls, message=f"Uploaded {len(uploads)} image(s)")


@router.get("/storage/status")
async def storage_status(blob_store: Annotated[BlobStore, Depends(get_blob_store)]) -> dict[str, Any]:
    """Report which blob backend is configured, without exposing secrets."""
    return blob_store.describe()
