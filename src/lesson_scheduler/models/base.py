"""
Base model definitions for SQLAlchemy.

Provides:
- GUID TypeDecorator for UUID support across SQLite and PostgreSQL
- BaseModel declarative base with common fields
- Soft deletion support
- JSON/JSONB column factory function
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, JSON, TypeDecorator, func
from sqlalchemy.dialects.postgresql import JSONB, UUID as PostgreSQL_UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import CHAR

from lesson_scheduler.config import get_settings


class GUID(TypeDecorator):
    """
    Platform-independent GUID type.

    Uses PostgreSQL's UUID type on PostgreSQL databases.
    Uses CHAR(32) on SQLite databases (stores hex representation).
    """

    impl = CHAR(32)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        """Load the appropriate type for the dialect."""
        if dialect.name == "postgresql":
            return dialect.type_descriptor(PostgreSQL_UUID())
        else:
            return dialect.type_descriptor(CHAR(32))

    def process_bind_param(self, value, dialect):
        """
        Convert UUID to database-appropriate format.

        PostgreSQL: Store as UUID type (string representation)
        SQLite: Store as CHAR(32) (hex representation without dashes)
        """
        if value is None:
            return value

        if dialect.name == "postgresql":
            return str(value)
        else:
            if isinstance(value, uuid.UUID):
                return value.hex
            else:
                return uuid.UUID(value).hex if value else None

    def process_result_value(self, value, dialect):
        """Convert database value back to UUID."""
        if value is None:
            return value

        if isinstance(value, uuid.UUID):
            return value

        return uuid.UUID(value)


def get_json_type():
    """
    Get database-appropriate JSON column type.

    Returns:
        JSONB for PostgreSQL, JSON otherwise
    """
    settings = get_settings()

    if "postgres" in settings.database_url.lower():
        return JSONB
    return JSON


class Base(DeclarativeBase):
    """Declarative base for all models."""

    type_annotation_map = {
        uuid.UUID: GUID,
    }


class BaseModel(Base):
    """
    Base model with common fields for all entities.

    Provides:
    - id: UUID primary key
    - created_at: Timestamp of record creation (UTC)
    - updated_at: Timestamp of last update (UTC, auto-updates)
    - deleted_at: Timestamp of soft deletion (NULL if not deleted)
    """

    __abstract__ = True

    id: Mapped[uuid.UUID] = mapped_column(
        GUID,
        primary_key=True,
        default=uuid.uuid4,
        doc="Unique identifier (UUID)"
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
        doc="Timestamp of record creation (UTC)"
    )

    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        onupdate=func.now(),
        nullable=True,
        doc="Timestamp of last update (UTC)"
    )

    deleted_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        default=None,
        doc="Timestamp of soft deletion (NULL if not deleted)"
    )

    def soft_delete(self) -> None:
        """
        Mark record as deleted by setting deleted_at timestamp.

        Does not remove the record from the database, preserving history.
        """
        self.deleted_at = datetime.utcnow()

    @property
    def is_deleted(self) -> bool:
        """Check if record is soft-deleted."""
        return self.deleted_at is not None

    def __repr__(self) -> str:
        """String representation showing class name and ID."""
        return f"<{self.__class__.__name__}(id={self.id})>"
