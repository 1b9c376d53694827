"""Database utilities and session management."""

from chatgenius.db.base import (
    EXTERNAL_TABLE_INFO,
    Base,
    String50,
    String100,
    String255,
    String500,
    String1000,
    TimestampMixin,
    is_external_table,
)
from chatgenius.db.deps import DBSession, get_db
from chatgenius.db.session import (
    AsyncSessionLocal,
    check_db_health,
    close_db,
    engine,
    get_session,
    init_db,
)

__all__ = [
    # Base classes
    "Base",
    "TimestampMixin",
    "EXTERNAL_TABLE_INFO",
    "is_external_table",
    # String types
    "String50",
    "String100",
    "String255",
    "String500",
    "String1000",
    # Session management
    "engine",
    "AsyncSessionLocal",
    "get_session",
    "init_db",
    "close_db",
    "check_db_health",
    # Dependencies
    "get_db",
    "DBSession",
]
