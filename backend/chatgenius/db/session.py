"""
Database Session Management

This module handles the database connection lifecycle and session management.

The same PostgreSQL database holds both the chat application's tables
(messages, avatar_documents, profiles) and the pgvector ``index_records``
table owned by this service, so one engine serves both.

Architecture Flow:
------------------
Application Start → Create Engine → Connection Pool Ready
↓
Webhook / API Request → Get Session → Execute Queries → Commit/Rollback → Close Session
↓
Application Shutdown → Dispose Engine → Close All Connections
"""

from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import AsyncAdaptedQueuePool, NullPool

from chatgenius.core.config import settings
from chatgenius.core.logging import get_logger

logger = get_logger(__name__)


# ================================
# Database Engine Configuration
# ================================

def get_engine_config() -> dict[str, Any]:
    """
    Configure the database engine based on environment.

    - development / production: pooled connections (DB_POOL_SIZE + DB_MAX_OVERFLOW)
    - anything else (staging, test): NullPool, one connection per checkout

    pool_pre_ping detects connections dropped by the server; pool_recycle
    closes connections older than an hour.
    """
    config: dict[str, Any] = {
        "echo": settings.DB_ECHO,
        "pool_pre_ping": True,
        "pool_recycle": 3600,
        "connect_args": {
            "server_settings": {
                "application_name": settings.APP_NAME,
            }
        },
    }

    if settings.is_development or settings.is_production:
        logger.info(
            "configuring_database_engine",
            environment=settings.APP_ENV,
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
        )
        config.update({
            "poolclass": AsyncAdaptedQueuePool,
            "pool_size": settings.DB_POOL_SIZE,
            "max_overflow": settings.DB_MAX_OVERFLOW,
            "pool_timeout": 30,
        })
        if settings.is_production:
            config["pool_recycle"] = 7200
    else:
        logger.info(
            "configuring_database_engine",
            environment=settings.APP_ENV,
            pool_type="NullPool",
        )
        config["poolclass"] = NullPool

    return config


def create_engine() -> AsyncEngine:
    """
    Create the async database engine.

    Returns:
        AsyncEngine: The database engine instance
    """
    engine_config = get_engine_config()

    engine = create_async_engine(settings.DATABASE_URL, **engine_config)

    logger.info(
        "database_engine_created",
        driver="asyncpg",
        pool_size=engine_config.get("pool_size", "NullPool"),
    )

    return engine


engine: AsyncEngine = create_engine()

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    autoflush=False,
    autocommit=False,
    expire_on_commit=False,
)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Get a database session for a single request.

    On error the session is rolled back and the exception propagates;
    the session is always closed and its connection returned to the pool.

    Yields:
        AsyncSession: A database session for this request
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception as e:
            logger.error(
                "database_session_error",
                error=str(e),
                error_type=type(e).__name__,
            )
            await session.rollback()
            raise


async def init_db() -> None:
    """
    Verify the database connection at startup.

    In development the pgvector extension and the tables owned by this
    service are created directly; elsewhere Alembic migrations do it. The
    chat application's tables are never created here.
    """
    logger.info("initializing_database")

    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))

        logger.info("database_connection_successful")

        if settings.is_development:
            from chatgenius.db.base import Base, is_external_table
            import chatgenius.models  # noqa: F401  (registers tables)

            owned = [t for t in Base.metadata.sorted_tables if not is_external_table(t)]
            async with engine.begin() as conn:
                await conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
                await conn.run_sync(Base.metadata.create_all, tables=owned)

            logger.info("database_tables_created", tables=[t.name for t in owned])

    except Exception as e:
        logger.error(
            "database_initialization_failed",
            error=str(e),
            error_type=type(e).__name__,
        )
        raise


async def close_db() -> None:
    """Dispose the connection pool at shutdown."""
    logger.info("closing_database_connections")

    try:
        await engine.dispose()
        logger.info("database_connections_closed")
    except Exception as e:
        logger.error(
            "database_closure_failed",
            error=str(e),
            error_type=type(e).__name__,
        )


async def check_db_health() -> bool:
    """
    Check if the database is healthy and responsive.

    Returns:
        bool: True if database is healthy, False otherwise
    """
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(
            "database_health_check_failed",
            error=str(e),
            error_type=type(e).__name__,
        )
        return False
