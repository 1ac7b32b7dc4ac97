"""
Database Connection Management.

This module handles the relational store via SQLAlchemy.
It provides:
- Connection pooling
- Transactional session scopes
- Health checks

Every multi-step write in the engine happens inside one get_session()
block, which commits on success and rolls back on any error.
"""
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine, event, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from companion.core.config import get_settings
from companion.core.logging_config import get_logger

logger = get_logger(__name__)


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class DatabaseConnection:
    """
    Manages database connections and session lifecycle.

    Example:
        >>> db = DatabaseConnection("sqlite:///:memory:")
        >>> with db.get_session() as session:
        ...     session.execute(text("SELECT 1"))
    """

    def __init__(self, connection_url: Optional[str] = None):
        """
        Initialize database engine with connection pooling.

        Args:
            connection_url: Optional connection URL. If not provided, uses settings.
        """
        db_url = connection_url or get_settings().database_url
        self.url = db_url

        if db_url.startswith("sqlite"):
            engine_kwargs = {"connect_args": {"check_same_thread": False}}
            if ":memory:" in db_url or db_url in ("sqlite://", "sqlite:///"):
                # One shared connection so every session sees the same in-memory DB
                engine_kwargs["poolclass"] = StaticPool
            self.engine = create_engine(db_url, echo=False, **engine_kwargs)
            event.listen(self.engine, "connect", _enable_sqlite_foreign_keys)
        else:
            # pool_pre_ping: Test connections before using (handles stale connections)
            self.engine = create_engine(
                db_url,
                pool_pre_ping=True,
                pool_size=5,
                max_overflow=10,
                echo=False,
            )

        self._session_factory = sessionmaker(
            bind=self.engine,
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
        )

        logger.info(
            f"Database connection initialized: "
            f"{db_url.split('@')[-1] if '@' in db_url else db_url}"
        )

    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        """
        Get a database session scoped to one transaction.

        The transaction is committed when the block exits normally and
        rolled back when anything (database error or not) is raised.

        Yields:
            SQLAlchemy Session object
        """
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Database error, rolling back: {e}")
            raise
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def check_connection(self) -> bool:
        """
        Test database connectivity.

        Returns:
            True if connection is healthy, False otherwise.
        """
        try:
            with self.get_session() as session:
                session.execute(text("SELECT 1"))
            logger.debug("Database connection check: OK")
            return True
        except SQLAlchemyError as e:
            logger.error(f"Database connection check failed: {e}")
            return False

    def close(self):
        """Close all connections in the pool."""
        self.engine.dispose()
        logger.info("Database connections closed")


# Module-level instance (singleton pattern)
_db_connection: Optional[DatabaseConnection] = None


def get_database() -> DatabaseConnection:
    """
    Get or create the database connection instance.

    Returns:
        DatabaseConnection singleton instance
    """
    global _db_connection
    if _db_connection is None:
        _db_connection = DatabaseConnection()
    return _db_connection


def reset_database() -> None:
    """Dispose and forget the singleton (used by tests)."""
    global _db_connection
    if _db_connection is not None:
        _db_connection.close()
    _db_connection = None
