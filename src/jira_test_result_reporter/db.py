"""
SQLAlchemy database setup and session management.
"""
import logging
from typing import Optional
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)

# Base class for models
Base = declarative_base()

__all__ = ['Base', 'normalize_database_url', 'create_db_engine', 'create_session_factory', 'init_db']


def normalize_database_url(database_url: str) -> str:
    """
    Normalize a database URL for SQLAlchemy.

    - postgres:// is converted to postgresql:// (Supabase and some providers use postgres://)
    - postgresql:// gets the +psycopg dialect so psycopg3 is used instead of psycopg2
    - Anything else (sqlite, explicit dialects) is returned unchanged

    Args:
        database_url: Raw DATABASE_URL value

    Returns:
        SQLAlchemy-compatible URL
    """
    if not database_url:
        raise RuntimeError(
            "DATABASE_URL is required. "
            "Set it to a PostgreSQL connection string or a sqlite:/// path."
        )

    if database_url.startswith("postgres://"):
        database_url = database_url.replace("postgres://", "postgresql://", 1)

    if database_url.startswith("postgresql://"):
        database_url = database_url.replace("postgresql://", "postgresql+psycopg://", 1)

    return database_url


def create_db_engine(database_url: str) -> Engine:
    """
    Create an engine for the configured database.

    SQLite connections are shared across threads (builds run concurrently);
    in-memory SQLite uses a single static connection so every session sees the same tables.
    PostgreSQL keeps a bounded connection pool:
    - pool_size: Number of connections to maintain in the pool
    - max_overflow: Additional connections beyond pool_size
    - pool_pre_ping: Test connections before using (handles stale connections)
    - pool_recycle: Recycle connections after 1 hour
    """
    url = normalize_database_url(database_url)

    if url.startswith("sqlite"):
        if ":memory:" in url or url in ("sqlite://", "sqlite:///"):
            return create_engine(
                url,
                echo=False,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        return create_engine(url, echo=False, connect_args={"check_same_thread": False})

    return create_engine(
        url,
        echo=False,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
        pool_recycle=3600,
        connect_args={
            "connect_timeout": 10,  # Connection timeout in seconds
        }
    )


def create_session_factory(database_url: Optional[str] = None, engine: Optional[Engine] = None) -> sessionmaker:
    """
    Build a session factory, creating missing tables on the way.

    Args:
        database_url: Database URL (ignored when engine is given)
        engine: Existing engine to bind

    Returns:
        sessionmaker bound to the engine
    """
    if engine is None:
        engine = create_db_engine(database_url)
    init_db(engine)
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def init_db(engine: Engine) -> None:
    """
    Create the reporter's tables if they do not exist yet.
    """
    # Import models to ensure they're registered with Base
    from jira_test_result_reporter import models  # noqa: F401

    Base.metadata.create_all(bind=engine)
    logger.info("Database tables ensured", extra={"dialect": engine.dialect.name})
