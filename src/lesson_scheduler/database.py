"""
Database configuration and session management.

Provides:
- Engine creation for SQLite or PostgreSQL
- SessionLocal factory for creating database sessions
- get_db() dependency for FastAPI request-scoped sessions
- Database initialization utilities
"""

import logging
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from lesson_scheduler.config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()

if settings.is_production:
    settings.validate_production_config()


def create_db_engine(database_url: str, echo: bool = False) -> Engine:
    """
    Create an engine configured for the database type.

    Args:
        database_url: SQLAlchemy database URL
        echo: Log SQL statements

    Returns:
        Engine: Configured SQLAlchemy engine
    """
    if "sqlite" in database_url.lower():
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},  # FastAPI serves from a thread pool
            poolclass=StaticPool,
            echo=echo,
        )

    return create_engine(
        database_url,
        pool_size=5,
        pool_recycle=3600,  # Recycle connections after 1 hour
        pool_pre_ping=True,
        echo=echo,
    )


@event.listens_for(Engine, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints in SQLite."""
    if type(dbapi_conn).__module__.startswith("sqlite3"):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


engine = create_db_engine(settings.database_url, echo=settings.log_level == "DEBUG")

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)


def get_db() -> Generator[Session, None, None]:
    """
    FastAPI dependency for request-scoped database sessions.

    Commits when the request succeeds and rolls back when it raises.

    Yields:
        Session: SQLAlchemy database session
    """
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


@contextmanager
def get_db_context() -> Generator[Session, None, None]:
    """
    Context manager for database sessions outside FastAPI.

    Usage for scripts or maintenance tasks:
        with get_db_context() as db:
            lesson = SQLAlchemyLessonRepository(db).find_by_id(lesson_id)

    Yields:
        Session: SQLAlchemy database session
    """
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def init_db() -> None:
    """
    Create all tables.

    For development and tests; production databases are managed by
    `alembic upgrade head`.
    """
    from lesson_scheduler.models.base import Base

    logger.info("Creating database tables...")
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created successfully")
