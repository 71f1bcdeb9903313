"""Startup schema migrations for the assets table.

Migrations are an ordered list of steps. Each step declares the
postcondition it establishes and is skipped when that postcondition
already holds, so running the list any number of times is safe.
"""

import logging
from dataclasses import dataclass
from typing import Callable

import pydantic
import sqlalchemy as sa
from alembic.migration import MigrationContext
from alembic.operations import Operations
from sqlalchemy.engine import Connection, Engine

from asset_tracker.database import Base
from asset_tracker.schemas.asset import AssetResponse

logger = logging.getLogger(__name__)

ASSETS_TABLE = "assets"
LEGACY_IMAGE_COLUMN = "imageUrl"
IMAGE_LIST_COLUMN = "imageUrls"
QUARANTINE_TABLE = "assets_quarantine"
DATE_COLUMNS = ("purchaseDate", "lastCheckDate")


@dataclass(frozen=True)
class MigrationStep:
    """One schema change plus the check that tells whether it is already applied."""

    name: str
    is_applied: Callable[[Connection], bool]
    apply: Callable[[Connection], None]


def _column_names(conn: Connection, table: str) -> set[str]:
    return {column["name"] for column in sa.inspect(conn).get_columns(table)}


def _assets_table_exists(conn: Connection) -> bool:
    return sa.inspect(conn).has_table(ASSETS_TABLE)


def _create_assets_table(conn: Connection) -> None:
    # Import models so they are registered on Base.metadata
    from asset_tracker.models.asset import Asset

    Base.metadata.create_all(bind=conn, tables=[Asset.__table__])


def _image_list_column_exists(conn: Connection) -> bool:
    return IMAGE_LIST_COLUMN in _column_names(conn, ASSETS_TABLE)


def _add_image_list_column(conn: Connection) -> None:
    op = Operations(MigrationContext.configure(conn))
    op.add_column(ASSETS_TABLE, sa.Column(IMAGE_LIST_COLUMN, sa.JSON(), nullable=True))

    if LEGACY_IMAGE_COLUMN not in _column_names(conn, ASSETS_TABLE):
        return

    # The legacy column stays in place; only the new list is written
    assets = sa.table(
        ASSETS_TABLE,
        sa.column("id", sa.String),
        sa.column(LEGACY_IMAGE_COLUMN, sa.Text),
        sa.column(IMAGE_LIST_COLUMN, sa.JSON),
    )
    legacy_rows = conn.execute(
        sa.select(assets.c.id, assets.c[LEGACY_IMAGE_COLUMN]).where(
            assets.c[LEGACY_IMAGE_COLUMN].is_not(None),
            assets.c[LEGACY_IMAGE_COLUMN] != "",
            assets.c[IMAGE_LIST_COLUMN].is_(None),
        )
    ).all()
    for asset_id, legacy_url in legacy_rows:
        conn.execute(
            assets.update().where(assets.c.id == asset_id).values({IMAGE_LIST_COLUMN: [legacy_url]})
        )
    logger.info(f"Copied legacy {LEGACY_IMAGE_COLUMN} into {IMAGE_LIST_COLUMN} for {len(legacy_rows)} asset(s)")


def _row_is_servable(row: dict) -> bool:
    # Dates are stored as ISO text; anything else fails to load through the ORM
    if any(not isinstance(row[name], str) for name in DATE_COLUMNS):
        return False
    try:
        AssetResponse.model_validate(row)
    except pydantic.ValidationError:
        return False
    return True


def _invalid_asset_ids(conn: Connection) -> list[str | None]:
    """Ids of rows that do not satisfy the current record contract.

    Rows written by the single-photo schema may have NULL or empty fields,
    which that schema never rejected. Values are read raw so that malformed
    dates are detected instead of raised.
    """
    from asset_tracker.models.asset import Asset

    columns = [
        sa.column(column.name, sa.JSON) if column.name == IMAGE_LIST_COLUMN else sa.column(column.name)
        for column in Asset.__table__.columns
    ]
    assets = sa.table(ASSETS_TABLE, *columns)
    rows = conn.execute(sa.select(*assets.c)).mappings()
    return [row["id"] for row in rows if not _row_is_servable(dict(row))]


def _all_assets_servable(conn: Connection) -> bool:
    return not _invalid_asset_ids(conn)


def _quarantine_invalid_assets(conn: Connection) -> None:
    invalid = _invalid_asset_ids(conn)
    if not invalid:
        return

    source = sa.Table(ASSETS_TABLE, sa.MetaData(), autoload_with=conn)
    quarantine = sa.Table(
        QUARANTINE_TABLE,
        sa.MetaData(),
        *(sa.Column(column.name, column.type, nullable=True) for column in source.columns),
    )
    quarantine.create(conn, checkfirst=True)

    # A NULL id never matches IN, so it is selected explicitly
    condition = source.c.id.in_([asset_id for asset_id in invalid if asset_id is not None])
    if None in invalid:
        condition = sa.or_(condition, source.c.id.is_(None))

    names = [column.name for column in source.columns]
    conn.execute(quarantine.insert().from_select(names, sa.select(*source.columns).where(condition)))
    conn.execute(source.delete().where(condition))
    logger.warning(f"Moved {len(invalid)} incomplete asset(s) to {QUARANTINE_TABLE}: {invalid}")


MIGRATIONS: list[MigrationStep] = [
    MigrationStep("create_assets_table", _assets_table_exists, _create_assets_table),
    MigrationStep("add_image_urls_column", _image_list_column_exists, _add_image_list_column),
    MigrationStep("quarantine_invalid_assets", _all_assets_servable, _quarantine_invalid_assets),
]


def run_migrations(engine: Engine, steps: list[MigrationStep] | None = None) -> list[str]:
    """Apply every pending step in order, each in its own transaction.

    Args:
        engine: Engine of the asset database
        steps: Steps to run, defaults to :data:`MIGRATIONS`

    Returns:
        list[str]: Names of the steps that were applied
    """
    applied = []
    for step in MIGRATIONS if steps is None else steps:
        with engine.begin() as conn:
            if step.is_applied(conn):
                logger.debug(f"Migration {step.name} already applied, skipping")
                continue
            logger.info(f"Applying migration {step.name}")
            step.apply(conn)
            applied.append(step.name)
    return applied
