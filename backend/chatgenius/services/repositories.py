"""
Source-of-truth readers.

Query helpers over the chat application's tables. They take an open
``AsyncSession`` and leave transaction control to the caller.
"""

from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from chatgenius.models.chat import ChatMessage, Profile
from chatgenius.models.documents import AvatarDocument


async def get_document(db: AsyncSession, document_id: str) -> Optional[AvatarDocument]:
    """Get an avatar document by id."""
    result = await db.execute(
        select(AvatarDocument).where(AvatarDocument.id == document_id)
    )
    return result.scalar_one_or_none()


async def get_profile(db: AsyncSession, user_id: str) -> Optional[Profile]:
    """Get a user's profile (persona) by user id."""
    result = await db.execute(select(Profile).where(Profile.id == user_id))
    return result.scalar_one_or_none()


async def list_messages(db: AsyncSession, offset: int = 0, limit: int = 100) -> list[ChatMessage]:
    """Page through all messages, oldest first."""
    result = await db.execute(
        select(ChatMessage)
        .order_by(ChatMessage.created_at.asc(), ChatMessage.id.asc())
        .offset(offset)
        .limit(limit)
    )
    return list(result.scalars().all())


async def count_messages(db: AsyncSession) -> int:
    result = await db.execute(select(func.count()).select_from(ChatMessage))
    return result.scalar() or 0


async def count_documents_by_status(db: AsyncSession) -> dict[str, int]:
    """Count avatar documents per embedding status."""
    result = await db.execute(
        select(AvatarDocument.embedding_status, func.count())
        .group_by(AvatarDocument.embedding_status)
    )
    return {status: count for status, count in result.all()}
