# ==============================================================================
# database.py - SQLAlchemy engine and session factory
# ==============================================================================

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from coursetrack.config.settings import Settings
from coursetrack.exceptions import ConfigurationError


def build_engine(database_url: str):
    """Create an engine; SQLite connections are shared across threads."""
    if not database_url:
        raise ConfigurationError("DATABASE_URL is not set", "CONFIGURATION_ERROR")
    kwargs = {}
    if database_url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
    return create_engine(database_url, **kwargs)


settings = Settings()

engine = build_engine(settings.DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()
