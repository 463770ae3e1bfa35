# ==============================================================================
# utils/database.py - Database utilities
# ==============================================================================

import logging

from coursetrack.database import Base, engine, SessionLocal
from coursetrack.utils.document_store import DocumentStore

logger = logging.getLogger(__name__)


def init_database(bind=None) -> None:
    """Initialize database tables with error handling"""
    try:
        Base.metadata.create_all(bind=bind or engine)
        logger.info("Database tables created successfully")
    except Exception as e:
        logger.error(f"Error creating database tables: {e}")
        raise


def reset_database(bind=None) -> None:
    """Reset the database (drop and recreate all tables)"""
    try:
        Base.metadata.drop_all(bind=bind or engine)
        Base.metadata.create_all(bind=bind or engine)
        logger.info("Database reset successfully")
    except Exception as e:
        logger.error(f"Error resetting database: {e}")
        raise


_default_store = None


def get_store() -> DocumentStore:
    """Document store dependency for FastAPI"""
    global _default_store
    if _default_store is None:
        _default_store = DocumentStore(SessionLocal)
    return _default_store


def get_db():
    """Raw session dependency, used by the health check"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
