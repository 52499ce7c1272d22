"""
Database Module - Engine and session lifecycle.
===============================================

The engine and session factory are built once per process and passed
explicitly to the importer, reconciler and content store; ``close`` disposes
the pool on shutdown.
"""

from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine, delete, event, func, select, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from notebot_bridge.shared.config import Settings, get_settings
from notebot_bridge.shared.logging import get_logger
from notebot_bridge.storage.models import WIPE_ORDER, Base

logger = get_logger(__name__)


class DatabaseConfigError(RuntimeError):
    """No database URL configured, or the database cannot be reached."""


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:  # type: ignore[no-untyped-def]
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """
    Owns the SQLAlchemy engine and session factory.

    Example:
        >>> db = Database("sqlite:///notebot.db")
        >>> db.create_all()
        >>> with db.session() as session:
        ...     session.scalars(select(Level)).all()
    """

    def __init__(self, url: str, echo: bool = False):
        if not url:
            raise DatabaseConfigError("No database URL configured (set DATABASE_URL)")

        self.url = url
        try:
            self.engine: Engine = create_engine(url, echo=echo, future=True)
        except (SQLAlchemyError, ImportError) as e:
            raise DatabaseConfigError(f"Invalid database URL {url!r}: {e}") from e

        if self.engine.dialect.name == "sqlite":
            event.listen(self.engine, "connect", _enable_sqlite_foreign_keys)

        self._session_factory = sessionmaker(bind=self.engine, expire_on_commit=False)

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "Database":
        """Build from the effective DATABASE_URL."""
        settings = settings or get_settings()
        return cls(settings.get_effective_database_url(), echo=settings.database.echo)

    def create_all(self) -> None:
        """Create any missing tables."""
        Base.metadata.create_all(self.engine)

    def check_connection(self) -> None:
        """
        Verify the database is reachable.

        Raises:
            DatabaseConfigError: If a trivial query fails
        """
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            raise DatabaseConfigError(f"Database unreachable: {e}") from e

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Transactional scope: commit on success, roll back on error."""
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def close(self) -> None:
        """Dispose the connection pool."""
        self.engine.dispose()
        logger.debug("Database engine disposed")


# ─────────────────────────────────────────────────────────────────────────────
# Bulk Helpers
# ─────────────────────────────────────────────────────────────────────────────


def wipe_all(session: Session) -> None:
    """Delete every canonical row, children first."""
    for model in WIPE_ORDER:
        session.execute(delete(model))
    session.flush()
    logger.info("Canonical tables wiped")


def count_rows(session: Session) -> dict[str, int]:
    """Row count per canonical table."""
    counts = {}
    for model in reversed(WIPE_ORDER):
        counts[model.__tablename__] = session.scalar(select(func.count()).select_from(model)) or 0
    return counts
