"""Error types shared by the asset core.

Routers map these onto HTTP statuses; nothing below the router layer
raises ``HTTPException``.
"""


class AssetTrackerError(Exception):
    """Base exception for asset tracker operations."""

    pass


class ValidationError(AssetTrackerError):
    """Raised when caller input is rejected (bad field, enum, image type, size or count)."""

    pass


class ImageValidationError(ValidationError):
    """Raised when one file of an image batch is rejected.

    Args:
        message: Human readable reason
        index: Position of the offending file in the submitted batch, if any
        filename: Original filename of the offending file, if any
    """

    def __init__(self, message: str, index: int | None = None, filename: str | None = None) -> None:
        super().__init__(message)
        self.index = index
        self.filename = filename


class NotFoundError(AssetTrackerError):
    """Raised when no asset exists for the requested id."""

    def __init__(self, asset_id: str) -> None:
        super().__init__(f"Asset not found: {asset_id}")
        self.asset_id = asset_id


class ConflictError(AssetTrackerError):
    """Raised when an asset id is already taken."""

    def __init__(self, asset_id: str) -> None:
        super().__init__(f"Asset id already exists: {asset_id}")
        self.asset_id = asset_id


class UpstreamStorageError(AssetTrackerError):
    """Raised when the record store or the blob store is unavailable. Safe to retry."""

    pass


class ImageUploadError(UpstreamStorageError):
    """Raised when a file of an image batch cannot be uploaded to the blob store.

    Args:
        message: Human readable reason
        index: Position of the offending file in the submitted batch
        filename: Original filename of the offending file
    """

    def __init__(self, message: str, index: int | None = None, filename: str | None = None) -> None:
        super().__init__(message)
        self.index = index
        self.filename = filename
