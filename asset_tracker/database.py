"""Database connection and session management."""

import logging
from typing import Generator

from fastapi import Request
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

logger = logging.getLogger(__name__)

# Base class for declarative models
Base = declarative_base()


class Database:
    """Owns the engine and session factory for one process.

    Opened when the application starts and closed at shutdown. Request
    handlers get sessions through :func:`get_db` instead of importing a
    module-level engine.

    Args:
        url: SQLAlchemy database URL
        echo: Log every SQL statement (development only)
    """

    def __init__(self, url: str, echo: bool = False) -> None:
        self.url = url
        self.echo = echo
        self._engine: Engine | None = None
        self._session_factory: sessionmaker | None = None

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            raise RuntimeError("Database is not open")
        return self._engine

    @property
    def is_open(self) -> bool:
        return self._engine is not None

    def open(self) -> "Database":
        """Create the engine and run pending schema migrations."""
        if self._engine is not None:
            return self

        connect_args = {}
        if self.url.startswith("sqlite"):
            # Sessions are handed across the threadpool used by FastAPI
            connect_args["check_same_thread"] = False

        self._engine = create_engine(
            self.url,
            pool_pre_ping=True,  # Verify connections before using
            connect_args=connect_args,
            echo=self.echo,
        )
        self._session_factory = sessionmaker(
            autocommit=False,
            autoflush=False,
            bind=self._engine,
        )

        from asset_tracker.core.migrations import run_migrations

        run_migrations(self._engine)
        logger.info(f"Opened database {self._engine.url.render_as_string(hide_password=True)}")
        return self

    def close(self) -> None:
        """Dispose of the engine and its connection pool."""
        if self._engine is None:
            return
        self._engine.dispose()
        self._engine = None
        self._session_factory = None
        logger.info("Closed database")

    def session(self) -> Session:
        """Create a new session bound to this database."""
        if self._session_factory is None:
            raise RuntimeError("Database is not open")
        return self._session_factory()


def get_db(request: Request) -> Generator[Session, None, None]:
    """Dependency for getting database session.

    Yields:
        Session: SQLAlchemy database session

    Example:
        ```python
        from asset_tracker.database import get_db

        @app.get("/items")
        def get_items(db: Session = Depends(get_db)):
            return db.query(Item).all()
        ```
    """
    database: Database = request.app.state.database
    db = database.session()
    try:
        yield db
    finally:
        db.close()
