"""
Database Initialization - Create the companion schema.
"""
from typing import Optional

from companion.core.logging_config import get_logger
from companion.database.connection import DatabaseConnection, get_database
from companion.database.models import Base

logger = get_logger(__name__)


def init_tables(db: Optional[DatabaseConnection] = None) -> bool:
    """
    Create all tables if they don't exist.

    Called once during application startup.

    Returns:
        True if tables were created successfully
    """
    db = db or get_database()
    try:
        Base.metadata.create_all(db.engine)
        logger.info("Companion tables initialized successfully")
        return True
    except Exception as e:
        logger.error(f"Failed to initialize tables: {e}")
        raise


def drop_tables(db: Optional[DatabaseConnection] = None) -> bool:
    """Drop all tables (development and tests only)."""
    db = db or get_database()
    Base.metadata.drop_all(db.engine)
    logger.warning("Companion tables dropped")
    return True


if __name__ == "__main__":
    print("Initializing companion tables...")
    init_tables()
    print("Done!")
