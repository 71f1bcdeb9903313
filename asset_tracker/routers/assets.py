"""Asset router."""

import logging
from typing import Annotated, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, File, Query, Response, UploadFile, status

from asset_tracker.core.dependencies import get_asset_service, http_error_for, read_uploads
from asset_tracker.core.errors import AssetTrackerError
from asset_tracker.core.service import AssetService
from asset_tracker.schemas.asset import AssetCreate, AssetResponse, AssetUpdate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/assets", tags=["assets"])


@router.get("", response_model=list[AssetResponse])
async def list_assets(
    service: Annotated[AssetService, Depends(get_asset_service)],
    q: Optional[str] = Query(None, description="Case-insensitive match on code, name, category or location"),
) -> list[AssetResponse]:
    """List all assets, optionally filtered by a search query."""
    try:
        assets = service.list_assets(q)
    except AssetTrackerError as e:
        raise http_error_for(e) from e
    return [AssetResponse.model_validate(asset) for asset in assets]


@router.post("", response_model=AssetResponse, status_code=status.HTTP_201_CREATED)
async def create_asset(
    asset_data: AssetCreate,
    service: Annotated[AssetService, Depends(get_asset_service)],
    code: Optional[str] = Query(None, description="Code pre-filled by a scan (guided creation)"),
) -> AssetResponse:
    """Create a new asset.

    The id comes from, in order: the ``code`` of a guided creation, the
    ``id`` in the body, or a freshly allocated code.

    Args:
        asset_data: Asset fields
        service: Asset service
        code: Scanned code that seeded this creation, if any

    Returns:
        AssetResponse: The stored asset

    Raises:
        HTTPException: 400 on invalid input, 409 if the id is taken, 500 on storage failure
    """
    try:
        asset = await service.create_asset(asset_data, preset_code=code)
    except AssetTrackerError as e:
        raise http_error_for(e) from e
    return AssetResponse.model_validate(asset)


@router.get("/{asset_id}", response_model=AssetResponse)
async def get_asset(
    asset_id: str,
    service: Annotated[AssetService, Depends(get_asset_service)],
) -> AssetResponse:
    """Get a specific asset by its code."""
    try:
        asset = service.get_asset(asset_id)
    except AssetTrackerError as e:
        raise http_error_for(e) from e
    return AssetResponse.model_validate(asset)


@router.put("/{asset_id}", response_model=AssetResponse)
async def replace_asset(
    asset_id: str,
    asset_data: AssetUpdate,
    background_tasks: BackgroundTasks,
    service: Annotated[AssetService, Depends(get_asset_service)],
) -> AssetResponse:
    """Replace every mutable field of an asset.

    Photos dropped from ``imageUrls`` are deleted from the blob store after
    the response is sent; a failed deletion never affects the update.

    Args:
        asset_id: Code of the asset to replace
        asset_data: Complete new field values
        background_tasks: FastAPI background tasks for blob cleanup
        service: Asset service

    Returns:
        AssetResponse: The updated asset

    Raises:
        HTTPException: 404 if the asset is unknown, 400 on invalid input, 500 on storage failure
    """
    try:
        result = await service.replace_asset(asset_id, asset_data)
    except AssetTrackerError as e:
        raise http_error_for(e) from e

    if result.removed_urls:
        background_tasks.add_task(service.discard_urls, result.removed_urls)
    return AssetResponse.model_validate(result.asset)


@router.delete("/{asset_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_asset(
    asset_id: str,
    background_tasks: BackgroundTasks,
    service: Annotated[AssetService, Depends(get_asset_service)],
) -> None:
    """Delete an asset; its photos are removed from the blob store in the background."""
    try:
        urls = service.delete_asset(asset_id)
    except AssetTrackerError as e:
        raise http_error_for(e) from e

    if urls:
        background_tasks.add_task(service.discard_urls, urls)


@router.post("/{asset_id}/images", response_model=AssetResponse)
async def add_asset_images(
    asset_id: str,
    service: Annotated[AssetService, Depends(get_asset_service)],
    files: list[UploadFile] = File(...),
) -> AssetResponse:
    """Compress, upload and append photos to an existing asset."""
    uploads = await read_uploads(files)
    try:
        asset = await service.add_images(asset_id, uploads)
    except AssetTrackerError as e:
        raise http_error_for(e) from e
    return AssetResponse.model_validate(asset)


@router.get("/{asset_id}/label.png")
async def get_asset_label(
    asset_id: str,
    service: Annotated[AssetService, Depends(get_asset_service)],
) -> Response:
    """Printable QR label carrying the asset code."""
    try:
        png = service.label_png(asset_id)
    except AssetTrackerError as e:
        raise http_error_for(e) from e

    return Response(
        content=png,
        media_type="image/png",
        headers={"Content-Disposition": 'inline; filename="asset-label.png"'},
    )
