"""Tests for startup schema migrations."""

import json
from pathlib import Path

import pytest
import sqlalchemy as sa
from fastapi.testclient import TestClient
from sqlalchemy.engine import Engine

from asset_tracker.config import Settings
from asset_tracker.core.migrations import MIGRATIONS, QUARANTINE_TABLE, run_migrations
from asset_tracker.core.repository import AssetRepository
from asset_tracker.database import Database
from asset_tracker.main import create_app

LEGACY_SCHEMA = """
CREATE TABLE assets (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    purchaseDate TEXT,
    location TEXT,
    price REAL,
    invoiceType TEXT,
    taxRate REAL,
    modelSpec TEXT,
    category TEXT,
    lastCheckDate TEXT,
    imageUrl TEXT,
    status TEXT,
    storagePlace TEXT,
    owner TEXT
)
"""

LEGACY_INSERT = sa.text(
    "INSERT INTO assets VALUES (:id, 'Old laptop', '2021-05-04', '茶山', 5000, '普票', 0.06, "
    "'T480', '电子设备', '2023-01-01', :image_url, '闲置', 'Store room', 'Zhao Lei')"
)


@pytest.fixture
def database_url(tmp_path: Path) -> str:
    return f"sqlite:///{tmp_path / 'legacy.db'}"


@pytest.fixture
def legacy_engine(database_url: str) -> Engine:
    """Engine over a database created by the single-photo schema."""
    engine = sa.create_engine(database_url)
    with engine.begin() as conn:
        conn.execute(sa.text(LEGACY_SCHEMA))
        conn.execute(LEGACY_INSERT, {"id": "ZC-2021-AAA", "image_url": "https://cdn.example.com/assets/a.jpg"})
        conn.execute(LEGACY_INSERT, {"id": "ZC-2021-BBB", "image_url": None})
        conn.execute(LEGACY_INSERT, {"id": "ZC-2021-CCC", "image_url": ""})
    yield engine
    engine.dispose()


def _image_urls(engine: Engine) -> dict[str, list[str] | None]:
    with engine.connect() as conn:
        rows = conn.execute(sa.text("SELECT id, imageUrls FROM assets ORDER BY id")).all()
    return {asset_id: json.loads(value) if value is not None else None for asset_id, value in rows}


class TestRunMigrations:
    """Tests for run_migrations()."""

    def test__empty_database__creates_current_schema(self, database_url: str):
        engine = sa.create_engine(database_url)

        applied = run_migrations(engine)

        assert applied == ["create_assets_table"]
        columns = {column["name"] for column in sa.inspect(engine).get_columns("assets")}
        assert "imageUrls" in columns
        assert "imageUrl" not in columns
        engine.dispose()

    def test__legacy_database__copies_single_url_into_list(self, legacy_engine: Engine):
        applied = run_migrations(legacy_engine)

        assert applied == ["add_image_urls_column"]
        assert _image_urls(legacy_engine) == {
            "ZC-2021-AAA": ["https://cdn.example.com/assets/a.jpg"],
            "ZC-2021-BBB": None,
            "ZC-2021-CCC": None,
        }

    def test__legacy_column__is_left_in_place(self, legacy_engine: Engine):
        run_migrations(legacy_engine)

        with legacy_engine.connect() as conn:
            legacy = conn.execute(sa.text("SELECT imageUrl FROM assets WHERE id = 'ZC-2021-AAA'")).scalar_one()
        assert legacy == "https://cdn.example.com/assets/a.jpg"

    def test__second_run__is_a_no_op(self, legacy_engine: Engine):
        run_migrations(legacy_engine)
        first = _image_urls(legacy_engine)

        applied = run_migrations(legacy_engine)

        assert applied == []
        assert _image_urls(legacy_engine) == first

    def test__steps__are_named_and_ordered(self):
        assert [step.name for step in MIGRATIONS] == [
            "create_assets_table",
            "add_image_urls_column",
            "quarantine_invalid_assets",
        ]


class TestMigratedRecords:
    """Migrated rows read back through the ORM."""

    def test__migrated_rows__load_with_image_lists(self, legacy_engine: Engine, database_url: str):
        legacy_engine.dispose()
        database = Database(database_url).open()
        session = database.session()
        try:
            repository = AssetRepository(session)

            assert repository.get("ZC-2021-AAA").image_urls == ["https://cdn.example.com/assets/a.jpg"]
            assert repository.get("ZC-2021-BBB").image_urls is None
        finally:
            session.close()
            database.close()


@pytest.fixture
def incomplete_legacy_engine(legacy_engine: Engine) -> Engine:
    """Legacy database that also holds rows the single-photo schema accepted but the current one rejects."""
    with legacy_engine.begin() as conn:
        conn.execute(
            sa.text("INSERT INTO assets (id, name, imageUrl) VALUES ('ZC-2021-NUL', 'Half entered', :url)"),
            {"url": "https://cdn.example.com/assets/n.jpg"},
        )
        conn.execute(
            sa.text(
                "INSERT INTO assets VALUES ('ZC-2021-DAT', 'No dates', '', '松山湖', 80, '无票', 0, "
                "'Desk lamp', '其他', '', NULL, '在用', 'Shelf 3', 'Sun Mei')"
            )
        )
    return legacy_engine


def _ids(engine: Engine, table: str) -> list[str]:
    with engine.connect() as conn:
        return list(conn.execute(sa.text(f"SELECT id FROM {table} ORDER BY id")).scalars())


class TestQuarantineInvalidAssets:
    """Rows that cannot be served under the current contract are moved aside at startup."""

    def test__incomplete_rows__move_to_quarantine_table(self, incomplete_legacy_engine: Engine):
        applied = run_migrations(incomplete_legacy_engine)

        assert applied == ["add_image_urls_column", "quarantine_invalid_assets"]
        assert _ids(incomplete_legacy_engine, "assets") == ["ZC-2021-AAA", "ZC-2021-BBB", "ZC-2021-CCC"]
        assert _ids(incomplete_legacy_engine, QUARANTINE_TABLE) == ["ZC-2021-DAT", "ZC-2021-NUL"]

    def test__quarantined_rows__keep_their_original_values(self, incomplete_legacy_engine: Engine):
        run_migrations(incomplete_legacy_engine)

        with incomplete_legacy_engine.connect() as conn:
            row = conn.execute(
                sa.text(f"SELECT name, imageUrl, imageUrls FROM {QUARANTINE_TABLE} WHERE id = 'ZC-2021-NUL'")
            ).one()
        assert row.name == "Half entered"
        assert row.imageUrl == "https://cdn.example.com/assets/n.jpg"
        assert json.loads(row.imageUrls) == ["https://cdn.example.com/assets/n.jpg"]

    def test__second_run__is_a_no_op(self, incomplete_legacy_engine: Engine):
        run_migrations(incomplete_legacy_engine)

        assert run_migrations(incomplete_legacy_engine) == []
        assert _ids(incomplete_legacy_engine, QUARANTINE_TABLE) == ["ZC-2021-DAT", "ZC-2021-NUL"]

    def test__complete_database__leaves_quarantine_uncreated(self, legacy_engine: Engine):
        run_migrations(legacy_engine)

        assert not sa.inspect(legacy_engine).has_table(QUARANTINE_TABLE)

    def test__read_endpoints__serve_remaining_assets(
        self, incomplete_legacy_engine: Engine, database_url: str, tmp_path: Path
    ):
        incomplete_legacy_engine.dispose()
        settings = Settings(DATABASE_URL=database_url, STORAGE_PATH=str(tmp_path / "uploads"))

        with TestClient(create_app(settings)) as client:
            listing = client.get("/api/assets")
            assert listing.status_code == 200
            assert sorted(asset["id"] for asset in listing.json()) == ["ZC-2021-AAA", "ZC-2021-BBB", "ZC-2021-CCC"]

            scan = client.get("/api/scan/ZC-2021-NUL")
            assert scan.status_code == 200
            assert scan.json()["found"] is False

            assert client.get("/api/assets/ZC-2021-DAT").status_code == 404
