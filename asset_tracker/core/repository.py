"""Asset persistence: point lookups, scans and whole-record writes keyed by id."""

import logging
from typing import Any

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from asset_tracker.core.errors import ConflictError, NotFoundError, UpstreamStorageError
from asset_tracker.models.asset import Asset

logger = logging.getLogger(__name__)

# Every column except the primary key
MUTABLE_FIELDS = (
    "name",
    "purchase_date",
    "location",
    "price",
    "invoice_type",
    "tax_rate",
    "model_spec",
    "category",
    "last_check_date",
    "image_urls",
    "status",
    "storage_place",
    "owner",
)


class AssetRepository:
    """CRUD over the assets table for one unit of work.

    Enumeration and range checks are not enforced here; the service
    validates payloads before they reach the repository.

    Args:
        db: Database session owned by the caller
    """

    def __init__(self, db: Session) -> None:
        self.db = db

    def _fail(self, action: str, error: SQLAlchemyError) -> UpstreamStorageError:
        self.db.rollback()
        logger.error(f"Failed to {action}: {error}")
        return UpstreamStorageError(f"Failed to {action}")

    def get(self, asset_id: str) -> Asset | None:
        try:
            return self.db.get(Asset, asset_id)
        except SQLAlchemyError as e:
            raise self._fail(f"load asset {asset_id}", e) from e

    def get_or_raise(self, asset_id: str) -> Asset:
        asset = self.get(asset_id)
        if asset is None:
            raise NotFoundError(asset_id)
        return asset

    def list_all(self) -> list[Asset]:
        try:
            return self.db.query(Asset).all()
        except SQLAlchemyError as e:
            raise self._fail("list assets", e) from e

    def search(self, query: str) -> list[Asset]:
        """Case-insensitive substring match on id, name, category and location."""
        pattern = f"%{query.strip().lower()}%"
        try:
            return (
                self.db.query(Asset)
                .filter(
                    or_(
                        func.lower(Asset.id).like(pattern),
                        func.lower(Asset.name).like(pattern),
                        func.lower(Asset.category).like(pattern),
                        func.lower(Asset.location).like(pattern),
                    )
                )
                .all()
            )
        except SQLAlchemyError as e:
            raise self._fail("search assets", e) from e

    def insert(self, asset: Asset) -> Asset:
        """Insert a new record.

        Raises:
            ConflictError: If a record with the same id already exists
            UpstreamStorageError: If the database fails
        """
        if self.get(asset.id) is not None:
            raise ConflictError(asset.id)

        self.db.add(asset)
        try:
            self.db.commit()
        except IntegrityError as e:
            # Lost a race against a concurrent insert of the same id
            self.db.rollback()
            raise ConflictError(asset.id) from e
        except SQLAlchemyError as e:
            raise self._fail(f"insert asset {asset.id}", e) from e

        self.db.refresh(asset)
        logger.info(f"Inserted asset {asset.id}")
        return asset

    def replace(self, asset_id: str, fields: dict[str, Any]) -> Asset:
        """Replace every mutable field of an existing record in one commit.

        Args:
            asset_id: Id of the record to replace
            fields: Values for all of :data:`MUTABLE_FIELDS`

        Raises:
            NotFoundError: If no record has this id
            UpstreamStorageError: If the database fails
        """
        missing = [name for name in MUTABLE_FIELDS if name not in fields]
        if missing:
            raise ValueError(f"Replace requires every mutable field, missing: {', '.join(missing)}")

        asset = self.get_or_raise(asset_id)
        for name in MUTABLE_FIELDS:
            setattr(asset, name, fields[name])

        try:
            self.db.commit()
        except SQLAlchemyError as e:
            raise self._fail(f"replace asset {asset_id}", e) from e

        self.db.refresh(asset)
        logger.info(f"Replaced asset {asset_id}")
        return asset

    def delete(self, asset_id: str) -> None:
        """Delete a record.

        Raises:
            NotFoundError: If no record has this id
            UpstreamStorageError: If the database fails
        """
        asset = self.get_or_raise(asset_id)
        self.db.delete(asset)
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            raise self._fail(f"delete asset {asset_id}", e) from e

        logger.info(f"Deleted asset {asset_id}")
