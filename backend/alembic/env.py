"""
Alembic Migration Environment

This file configures the Alembic migration environment.

What happens here:
------------------
1. Load application settings (database URL, etc.)
2. Import all models so Alembic can detect them
3. Configure connection to database
4. Run migrations (upgrade/downgrade)

Only tables owned by this service are migrated. The chat application's
tables (messages, avatar_documents, profiles) are mirrored as models for
reading but are skipped here; see ``include_object``.
"""

import asyncio
import sys
from logging.config import fileConfig
from pathlib import Path

from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config

from alembic import context

# Add parent directory to Python path so we can import the chatgenius package
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

# Import application config
from chatgenius.core.config import settings

# Import Base metadata from our models
from chatgenius.db.base import Base, is_external_table

# Import all models so they're registered with Base.metadata
from chatgenius.models import (  # noqa: F401
    AvatarDocument,
    ChatMessage,
    IndexRecordModel,
    Profile,
)

# ================================
# Alembic Config Object
# ================================

config = context.config

# Set the SQLAlchemy URL from our application settings
config.set_main_option("sqlalchemy.url", settings.DATABASE_URL)

# Interpret the config file for Python logging.
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# ================================
# Metadata Target
# ================================

target_metadata = Base.metadata


def include_object(object, name, type_, reflected, compare_to):
    """Leave the chat application's tables alone."""
    if type_ == "table" and is_external_table(object):
        return False
    if type_ == "table" and reflected and compare_to is None:
        # Tables in the shared database that this service has no model for
        return False
    return True


def run_migrations_offline() -> None:
    """
    Run migrations in 'offline' mode.

    Generates the SQL statements and prints them instead of connecting
    to the database.
    """
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        url=url,
        target_metadata=target_metadata,
        include_object=include_object,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
        compare_server_default=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
    """
    Run migrations with the given connection.

    Parameters:
        connection: Database connection to use
    """
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        include_object=include_object,
        compare_type=True,
        compare_server_default=True,
        render_as_batch=True,
    )

    with context.begin_transaction():
        context.run_migrations()


async def run_async_migrations() -> None:
    """Create async engine (asyncpg, no pooling) and run migrations."""
    connectable = async_engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    async with connectable.connect() as connection:
        await connection.run_sync(do_run_migrations)

    await connectable.dispose()


def run_migrations_online() -> None:
    """Run migrations in 'online' mode against the configured database."""
    asyncio.run(run_async_migrations())


# ================================
# Main Execution
# ================================

if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
