"""Pytest fixtures for asset tracker tests."""

import asyncio
from io import BytesIO
from pathlib import Path
from typing import Any, Callable, Generator

import pytest
from fastapi.testclient import TestClient
from PIL import Image
from sqlalchemy.orm import Session

from asset_tracker.config import Settings
from asset_tracker.core.identity import IdentityResolver
from asset_tracker.core.images import ImagePipeline, ImageUpload
from asset_tracker.core.repository import AssetRepository
from asset_tracker.core.service import AssetService
from asset_tracker.core.storage import BlobNotFoundError, BlobStore, LocalBlobStore, StorageError
from asset_tracker.database import Database
from asset_tracker.main import create_app


class RecordingBlobStore(BlobStore):
    """In-memory blob store that records every call.

    Args:
        delays: Seconds to wait before completing the upload of a given filename suffix
        fail_on: Filename suffixes whose upload raises a StorageError
    """

    public_base_url = "https://blobs.test"

    def __init__(self, delays: dict[str, float] | None = None, fail_on: set[str] | None = None) -> None:
        self.objects: dict[str, bytes] = {}
        self.put_calls: list[str] = []
        self.deleted: list[str] = []
        self.completed: list[str] = []
        self.delays = delays or {}
        self.fail_on = fail_on or set()

    async def put(self, key: str, content: bytes, content_type: str) -> str:
        self.put_calls.append(key)
        for suffix, delay in self.delays.items():
            if key.endswith(suffix):
                await asyncio.sleep(delay)
        if any(key.endswith(suffix) for suffix in self.fail_on):
            raise StorageError(f"simulated outage for {key}")
        self.objects[key] = content
        self.completed.append(key)
        return self.url_for_key(key)

    async def delete(self, key: str) -> None:
        if key not in self.objects:
            raise BlobNotFoundError(key)
        del self.objects[key]
        self.deleted.append(key)

    def describe(self) -> dict[str, Any]:
        return {"backend": "memory", "configured": True}


@pytest.fixture
def make_image() -> Callable[..., bytes]:
    """Factory producing encoded test images.

    Example:
        ```python
        def test_example(make_image):
            png = make_image(width=64, height=32, fmt="PNG")
        ```
    """

    def _make_image(width: int = 64, height: int = 48, fmt: str = "JPEG", color: str = "red", mode: str = "RGB") -> bytes:
        img = Image.new(mode, (width, height), color)
        buffer = BytesIO()
        img.save(buffer, format=fmt)
        return buffer.getvalue()

    return _make_image


@pytest.fixture
def make_upload(make_image) -> Callable[..., ImageUpload]:
    """Factory producing pipeline inputs backed by a real small image."""

    def _make_upload(filename: str = "photo.jpg", content_type: str = "image/jpeg", size: int | None = None) -> ImageUpload:
        return ImageUpload(content=make_image(), content_type=content_type, filename=filename, size=size)

    return _make_upload


@pytest.fixture
def asset_payload() -> Callable[..., dict]:
    """Factory producing a valid camelCase asset body."""

    def _asset_payload(**overrides: Any) -> dict:
        payload = {
            "name": "ThinkPad X1 Carbon",
            "modelSpec": "Gen 11, i7-1365U, 32GB RAM",
            "owner": "Li Wei",
            "storagePlace": "Room 302, cabinet B",
            "purchaseDate": "2024-03-15",
            "lastCheckDate": "2025-01-10",
            "location": "茶山",
            "category": "电子设备",
            "invoiceType": "专票",
            "status": "在用",
            "price": 12999.0,
            "taxRate": 0.13,
            "imageUrls": [],
        }
        payload.update(overrides)
        return payload

    return _asset_payload


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """Settings pointing at a temporary SQLite database and upload directory."""
    return Settings(
        DATABASE_URL=f"sqlite:///{tmp_path / 'assets.db'}",
        STORAGE_PATH=str(tmp_path / "uploads"),
        BLOB_BACKEND="local",
        LOG_LEVEL="DEBUG",
    )


@pytest.fixture
def database(test_settings: Settings) -> Generator[Database, None, None]:
    """Open a migrated database for the duration of a test."""
    db = Database(test_settings.database_url).open()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def test_db_session(database: Database) -> Generator[Session, None, None]:
    """Create a database session for testing."""
    session = database.session()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def repository(test_db_session: Session) -> AssetRepository:
    return AssetRepository(test_db_session)


@pytest.fixture
def blob_store() -> RecordingBlobStore:
    return RecordingBlobStore()


@pytest.fixture
def local_blob_store(tmp_path: Path) -> LocalBlobStore:
    return LocalBlobStore(base_path=tmp_path / "blobs", public_base_url="/uploads")


@pytest.fixture
def pipeline(blob_store: RecordingBlobStore) -> ImagePipeline:
    return ImagePipeline(blob_store)


@pytest.fixture
def service(repository: AssetRepository, pipeline: ImagePipeline, test_settings: Settings) -> AssetService:
    return AssetService(
        repository=repository,
        resolver=IdentityResolver(repository, prefix=test_settings.asset_id_prefix),
        pipeline=pipeline,
        settings=test_settings,
    )


@pytest.fixture
def test_client(test_settings: Settings) -> Generator[TestClient, None, None]:
    """Create a test client; entering it runs the app lifespan (database + blob store)."""
    app = create_app(test_settings)
    with TestClient(app) as client:
        yield client


@pytest.fixture
def make_blob_store() -> Callable[..., RecordingBlobStore]:
    """Factory for in-memory blob stores with simulated latency or outages."""
    return RecordingBlobStore
