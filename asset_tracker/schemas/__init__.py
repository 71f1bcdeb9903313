"""Pydantic schemas package."""

from asset_tracker.schemas.asset import (
    AssetCreate,
    AssetResponse,
    AssetUpdate,
    ScanResponse,
)

__all__ = [
    "AssetCreate",
    "AssetUpdate",
    "AssetResponse",
    "ScanResponse",
]
