"""
Database Base Classes and Common Utilities

This module provides the foundation for all database models in the application.

Two kinds of tables share this metadata:
-----------------------------------------
1. Owned tables (``index_records``): created and migrated by this service.
2. Source-of-truth mirrors (``messages``, ``avatar_documents``, ``profiles``):
   owned by the chat application. They are mapped here so the service can
   read them (and write ``avatar_documents.embedding_status``), but Alembic
   never manages them. Mirrors are tagged with ``EXTERNAL_TABLE_INFO``.
"""

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import DateTime, MetaData, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, registry

# ================================
# Naming Convention for Constraints
# ================================
# Format examples:
# - ix_index_records_namespace: Index on 'index_records' table, 'namespace' column
# - uq_index_records_namespace: Unique constraint on 'index_records'
# - pk_index_records: Primary key on 'index_records' table
convention = {
    "ix": "ix_%(column_0_label)s",  # Index
    "uq": "uq_%(table_name)s_%(column_0_name)s",  # Unique constraint
    "ck": "ck_%(table_name)s_%(constraint_name)s",  # Check constraint
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",  # Foreign key
    "pk": "pk_%(table_name)s",  # Primary key
}

metadata = MetaData(naming_convention=convention)

orm_registry = registry(metadata=metadata)

# Marks a table as owned by the chat application (skipped by Alembic)
EXTERNAL_TABLE_INFO = {"external": True}


# ================================
# Base DeclarativeBase Class
# ================================

class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy models.

    Usage:
        class IndexRecordModel(Base):
            __tablename__ = "index_records"
            namespace: Mapped[str] = mapped_column(primary_key=True)
    """

    registry = orm_registry
    metadata = metadata

    __tablename__: str

    def dict(self) -> dict[str, Any]:
        """Convert model instance to a column-name keyed dictionary."""
        return {
            column.name: getattr(self, column.key)
            for column in self.__table__.columns
        }


def is_external_table(table: Any) -> bool:
    """True when ``table`` mirrors a table owned by the chat application."""
    return bool(getattr(table, "info", {}).get("external"))


# ================================
# Timestamp Mixin
# ================================

def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TimestampMixin:
    """
    Adds created_at / updated_at columns.

    Uses timezone-aware UTC timestamps. ``updated_at`` changes on every
    ORM-level update.
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        nullable=False,
        comment="Timestamp when record was created (UTC)",
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        onupdate=utc_now,
        nullable=False,
        comment="Timestamp when record was last updated (UTC)",
    )


# ================================
# String Length Constraints
# ================================

String50 = String(50)  # Example: namespace, enum values
String100 = String(100)  # Example: MIME types, usernames
String255 = String(255)  # Example: document names, item ids
String500 = String(500)  # Example: bio, storage paths
String1000 = String(1000)  # Example: descriptions
