"""Asset use cases: scan, create, view, edit and photo management.

This is the only entry point of the HTTP layer into the core. Every call
either completes or leaves the stored record untouched; photos uploaded
for a write that then fails are deleted again best effort.
"""

import logging
from dataclasses import dataclass, field
from io import BytesIO
from typing import Any, Sequence

import qrcode

from asset_tracker.config import Settings
from asset_tracker.core.errors import AssetTrackerError, ValidationError
from asset_tracker.core.identity import IdentityResolver
from asset_tracker.core.images import ImagePipeline, ImageUpload
from asset_tracker.core.repository import MUTABLE_FIELDS, AssetRepository
from asset_tracker.models.asset import Asset
from asset_tracker.schemas.asset import AssetCreate, AssetFields, AssetUpdate, ScanFlow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScanOutcome:
    """Where a scan or a manual "new asset" action leads."""

    flow: ScanFlow
    code: str | None = None
    asset: Asset | None = None


@dataclass
class ReplaceResult:
    """A replaced asset plus the photo URLs it no longer references."""

    asset: Asset
    removed_urls: list[str] = field(default_factory=list)


class AssetService:
    """Composes identity resolution, persistence and the image pipeline.

    Args:
        repository: Asset repository of the current unit of work
        resolver: Code resolver bound to the same repository
        pipeline: Image pipeline bound to the configured blob store
        settings: Image count and size limits
    """

    def __init__(
        self,
        repository: AssetRepository,
        resolver: IdentityResolver,
        pipeline: ImagePipeline,
        settings: Settings,
    ) -> None:
        self.repository = repository
        self.resolver = resolver
        self.pipeline = pipeline
        self.settings = settings

    @property
    def max_images(self) -> int:
        return self.settings.max_images_per_asset

    # ------------------------------------------------------------------
    # Entry points of the creation flow
    # ------------------------------------------------------------------

    def scan(self, code: str) -> ScanOutcome:
        """Route a scanned code to the stored asset or to guided creation."""
        resolution = self.resolver.resolve(code)
        if resolution.found:
            return ScanOutcome(ScanFlow.VIEW, resolution.code, resolution.asset)
        logger.info(f"Scanned code {resolution.code} is unknown, starting guided creation")
        return ScanOutcome(ScanFlow.GUIDED_CREATE, resolution.code)

    def start_manual_entry(self) -> ScanOutcome:
        """Manual entry has no code; one is allocated when the form is submitted."""
        return ScanOutcome(ScanFlow.FREE_CREATE)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list_assets(self, query: str | None = None) -> list[Asset]:
        if query and query.strip():
            return self.repository.search(query)
        return self.repository.list_all()

    def get_asset(self, asset_id: str) -> Asset:
        return self.repository.get_or_raise(asset_id)

    def label_png(self, asset_id: str) -> bytes:
        """Render the asset code as a QR symbol for printing."""
        asset = self.repository.get_or_raise(asset_id)
        qr = qrcode.QRCode(version=1, box_size=8, border=2)
        qr.add_data(asset.id)
        qr.make(fit=True)
        qr_img = qr.make_image(fill_color="black", back_color="white")

        buffer = BytesIO()
        qr_img.save(buffer, format="PNG")
        return buffer.getvalue()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _check_image_count(self, urls: Sequence[str]) -> None:
        if len(urls) > self.max_images:
            raise ValidationError(f"An asset can have at most {self.max_images} images, got {len(urls)}")

    @staticmethod
    def _fields(payload: AssetFields) -> dict[str, Any]:
        data = payload.model_dump(include=set(MUTABLE_FIELDS))
        data["image_urls"] = list(data["image_urls"])
        return data

    async def _ingest(self, images: Sequence[ImageUpload], existing: Sequence[str]) -> list[str]:
        if not images:
            return list(existing)
        return await self.pipeline.ingest(
            images,
            existing,
            max_count=self.max_images,
            max_bytes=self.settings.multi_image_max_bytes,
        )

    async def upload_images(
        self,
        images: Sequence[ImageUpload],
        existing: Sequence[str] = (),
        single: bool = False,
    ) -> list[str]:
        """Upload photos ahead of a form submission.

        The single-image path accepts exactly one file under the smaller
        size ceiling; the multi-image path accepts a batch under the larger
        one. Both respect the per-asset image count.
        """
        if not images:
            raise ValidationError("No file was submitted")
        if single and len(images) != 1:
            raise ValidationError("The single image upload accepts exactly one file")
        max_bytes = self.settings.single_image_max_bytes if single else self.settings.multi_image_max_bytes
        return await self.pipeline.ingest(images, existing, max_count=self.max_images, max_bytes=max_bytes)

    async def create_asset(
        self,
        payload: AssetCreate,
        images: Sequence[ImageUpload] = (),
        preset_code: str | None = None,
    ) -> Asset:
        """Create an asset from a submitted form.

        Args:
            payload: Validated form fields, optionally carrying a client code
            images: Photos to upload and append to ``payload.image_urls``
            preset_code: Code pre-filled by guided creation; cannot be changed

        Returns:
            Asset: The stored record

        Raises:
            ValidationError: If the payload or an image is rejected
            ConflictError: If the id is already taken
            UpstreamStorageError: If the database or the blob store fails
        """
        if preset_code is not None:
            preset_code = preset_code.strip()
            if not preset_code:
                raise ValidationError("Pre-filled code must not be blank")
            if payload.id is not None and payload.id != preset_code:
                raise ValidationError(f"Code {preset_code} was pre-filled by a scan and cannot be changed")

        asset_id = preset_code or payload.id or self.resolver.allocate()
        fields = self._fields(payload)
        self._check_image_count(fields["image_urls"])

        existing = fields["image_urls"]
        fields["image_urls"] = await self._ingest(images, existing)
        new_urls = fields["image_urls"][len(existing) :]

        try:
            asset = self.repository.insert(Asset(id=asset_id, **fields))
        except AssetTrackerError:
            await self.pipeline.discard(new_urls)
            raise

        logger.info(f"Created asset {asset.id} with {len(asset.image_urls or [])} image(s)")
        return asset

    async def replace_asset(
        self,
        asset_id: str,
        payload: AssetUpdate,
        new_images: Sequence[ImageUpload] = (),
    ) -> ReplaceResult:
        """Replace every mutable field of an asset, optionally adding photos.

        Returns:
            ReplaceResult: The stored record and the URLs dropped from its photo list

        Raises:
            ValidationError: If the payload tries to change the id or an image is rejected
            NotFoundError: If the asset does not exist
            ConflictError, UpstreamStorageError: Propagated from storage
        """
        if payload.id is not None and payload.id != asset_id:
            raise ValidationError("Asset id cannot be changed")

        current = self.repository.get_or_raise(asset_id)
        previous_urls = list(current.image_urls or [])

        fields = self._fields(payload)
        self._check_image_count(fields["image_urls"])

        existing = fields["image_urls"]
        fields["image_urls"] = await self._ingest(new_images, existing)
        new_urls = fields["image_urls"][len(existing) :]

        try:
            asset = self.repository.replace(asset_id, fields)
        except AssetTrackerError:
            await self.pipeline.discard(new_urls)
            raise

        removed = [url for url in previous_urls if url not in fields["image_urls"]]
        return ReplaceResult(asset, removed)

    async def add_images(self, asset_id: str, images: Sequence[ImageUpload]) -> Asset:
        """Append photos to a stored asset, keeping every other field."""
        if not images:
            raise ValidationError("No file was submitted")

        current = self.repository.get_or_raise(asset_id)
        fields = {name: getattr(current, name) for name in MUTABLE_FIELDS}
        existing = list(fields["image_urls"] or [])

        fields["image_urls"] = await self._ingest(images, existing)
        new_urls = fields["image_urls"][len(existing) :]

        try:
            return self.repository.replace(asset_id, fields)
        except AssetTrackerError:
            await self.pipeline.discard(new_urls)
            raise

    def delete_asset(self, asset_id: str) -> list[str]:
        """Delete an asset.

        Returns:
            list[str]: Photo URLs of the deleted asset, for best-effort cleanup
        """
        asset = self.repository.get_or_raise(asset_id)
        urls = list(asset.image_urls or [])
        self.repository.delete(asset_id)
        return urls

    async def discard_urls(self, urls: Sequence[str]) -> None:
        """Best-effort blob cleanup; never raises."""
        if urls:
            await self.pipeline.discard(urls)
