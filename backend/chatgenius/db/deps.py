"""
Database Dependencies for FastAPI Routes

Routes declare ``db: DBSession`` and FastAPI provides a session whose
lifecycle (rollback on error, close afterwards) is handled by
``get_session``.

    @router.post("/ai/avatar/ask")
    async def ask_avatar(payload: PersonaAskRequest, db: DBSession):
        profile = await get_profile(db, payload.persona_id)
"""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from chatgenius.db.session import get_session


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that provides a database session.

    Yields:
        AsyncSession: Database session for the current request
    """
    async for session in get_session():
        yield session


DBSession = Annotated[AsyncSession, Depends(get_db)]
