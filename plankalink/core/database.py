"""
Database engine and session management.
"""
import logging

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine, Session

from plankalink.core.config import settings
from plankalink.core.logging_config import _sanitize_data

logger = logging.getLogger(__name__)

database_url = settings.database_url
url = make_url(database_url)

logger.info(f"Using database: {_sanitize_data(database_url)}")

if url.get_backend_name() == "sqlite":
    is_sqlite_memory = url.database in (None, "", ":memory:")

    engine_kwargs = {
        "echo": False,
        "connect_args": {"check_same_thread": False},
    }
    if is_sqlite_memory:
        engine_kwargs["poolclass"] = StaticPool

    engine = create_engine(database_url, **engine_kwargs)
    logger.info(f"Configured SQLite engine ({'in-memory' if is_sqlite_memory else 'file-based'})")

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        """Enforce foreign keys so credential rows cascade with their user."""
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        if not is_sqlite_memory:
            cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

else:
    engine = create_engine(
        database_url,
        echo=False,
        pool_pre_ping=True,
        pool_recycle=3600,
    )
    logger.info(f"Configured {url.get_backend_name()} engine with connection pooling")


def init_db():
    """Create database tables."""
    # Import models so they register with SQLModel metadata
    from plankalink import models  # noqa: F401

    SQLModel.metadata.create_all(engine)
    logger.info("Database tables created")


def get_session():
    """Get database session."""
    with Session(engine) as session:
        yield session
