"""FastAPI dependencies wiring the core services to request scope."""

import logging
from typing import Annotated

from fastapi import Depends, HTTPException, Request, UploadFile, status
from sqlalchemy.orm import Session

from asset_tracker.config import Settings
from asset_tracker.core.errors import (
    AssetTrackerError,
    ConflictError,
    ImageValidationError,
    NotFoundError,
    UpstreamStorageError,
    ValidationError,
)
from asset_tracker.core.identity import IdentityResolver
from asset_tracker.core.images import ImagePipeline, ImageUpload
from asset_tracker.core.repository import AssetRepository
from asset_tracker.core.service import AssetService
from asset_tracker.core.storage import BlobStore
from asset_tracker.database import get_db

logger = logging.getLogger(__name__)


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_blob_store(request: Request) -> BlobStore:
    return request.app.state.blob_store


def get_asset_service(
    db: Annotated[Session, Depends(get_db)],
    blob_store: Annotated[BlobStore, Depends(get_blob_store)],
    settings: Annotated[Settings, Depends(get_app_settings)],
) -> AssetService:
    """Build the asset service for one request.

    Example:
        ```python
        @router.get("/{asset_id}")
        async def get_asset(asset_id: str, service: Annotated[AssetService, Depends(get_asset_service)]):
            return service.get_asset(asset_id)
        ```
    """
    repository = AssetRepository(db)
    return AssetService(
        repository=repository,
        resolver=IdentityResolver(repository, prefix=settings.asset_id_prefix),
        pipeline=ImagePipeline.from_settings(settings, blob_store),
        settings=settings,
    )


async def read_uploads(files: list[UploadFile]) -> list[ImageUpload]:
    """Read multipart files into pipeline inputs, keeping submission order."""
    uploads = []
    for file in files:
        try:
            content = await file.read()
        except Exception as e:
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Failed to read file: {str(e)}",
            ) from e
        uploads.append(
            ImageUpload(
                content=content,
                content_type=file.content_type or "application/octet-stream",
                filename=(file.filename or "").strip() or "unnamed",
                size=file.size if file.size is not None else len(content),
            )
        )
    return uploads


def http_error_for(error: AssetTrackerError) -> HTTPException:
    """Translate a core error into the HTTP status the boundary promises."""
    if isinstance(error, ImageValidationError):
        detail: str | dict = str(error)
        if error.index is not None:
            detail = {"message": str(error), "index": error.index, "filename": error.filename}
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)
    if isinstance(error, ValidationError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error))
    if isinstance(error, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Asset not found")
    if isinstance(error, ConflictError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(error))
    if isinstance(error, UpstreamStorageError):
        logger.error(f"Storage failure: {error}")
        return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(error))
    logger.exception(f"Unhandled asset error: {error}")
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Internal error")
