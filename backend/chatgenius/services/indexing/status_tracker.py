"""
Document embedding status tracking.

The indexing pipeline is the only writer of ``avatar_documents.embedding_status``.
Each transition is a single conditional UPDATE, so a status can only move
along the allowed edges even when events are redelivered:

    pending ───────────┐
    completed ─────────┼──> processing ──> completed
    failed ────────────┘               └─> failed
    processing (redelivery)

Entering ``processing`` is allowed from every state: from pending it is the
normal path, from completed/failed it is a re-trigger, and from processing
it is a redelivered event taking over a job that may have crashed.
"""

from typing import Optional

from sqlalchemy import or_, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from chatgenius.core.exceptions import InvalidStatusTransitionError
from chatgenius.core.logging import get_logger
from chatgenius.models.documents import AvatarDocument, EmbeddingStatus

logger = get_logger(__name__)


ALLOWED_SOURCES: dict[EmbeddingStatus, frozenset[EmbeddingStatus]] = {
    EmbeddingStatus.PROCESSING: frozenset(EmbeddingStatus),
    EmbeddingStatus.COMPLETED: frozenset({EmbeddingStatus.PROCESSING}),
    EmbeddingStatus.FAILED: frozenset({EmbeddingStatus.PROCESSING}),
    EmbeddingStatus.PENDING: frozenset({EmbeddingStatus.COMPLETED, EmbeddingStatus.FAILED}),
}


def can_transition(current: Optional[EmbeddingStatus], target: EmbeddingStatus) -> bool:
    if current is None:
        return target is EmbeddingStatus.PROCESSING
    return current in ALLOWED_SOURCES[target]


class StatusTracker:
    """
    Writes embedding status transitions for avatar documents.

    Usage:
    ------
    tracker = StatusTracker(AsyncSessionLocal)
    await tracker.mark_processing(document_id)
    await tracker.mark_completed(document_id)
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def transition(self, document_id: str, target: EmbeddingStatus) -> None:
        """
        Move a document to ``target`` if its current status allows it.

        Raises:
            InvalidStatusTransitionError: The document is missing or its
                current status is not an allowed source for ``target``
        """
        sources = [status.value for status in ALLOWED_SOURCES[target]]
        values = {"embedding_status": target.value}
        if target is EmbeddingStatus.COMPLETED:
            values["is_processed"] = True
        elif target is EmbeddingStatus.PROCESSING:
            values["is_processed"] = False

        allowed = AvatarDocument.embedding_status.in_(sources)
        if can_transition(None, target):
            allowed = or_(allowed, AvatarDocument.embedding_status.is_(None))

        stmt = (
            update(AvatarDocument)
            .where(AvatarDocument.id == document_id, allowed)
            .values(**values)
        )

        async with self.session_factory() as session:
            result = await session.execute(stmt)
            await session.commit()

        if not result.rowcount:
            logger.warning(
                "embedding_status_transition_rejected",
                document_id=document_id,
                target=target.value,
            )
            raise InvalidStatusTransitionError(document_id, target.value)

        logger.info("embedding_status_updated", document_id=document_id, status=target.value)

    async def mark_processing(self, document_id: str) -> None:
        await self.transition(document_id, EmbeddingStatus.PROCESSING)

    async def mark_completed(self, document_id: str) -> None:
        await self.transition(document_id, EmbeddingStatus.COMPLETED)

    async def mark_failed(self, document_id: str) -> None:
        await self.transition(document_id, EmbeddingStatus.FAILED)
