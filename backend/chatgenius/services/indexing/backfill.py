"""
Message backfill

Indexes every existing chat message, oldest first, in pages of
BACKFILL_BATCH_SIZE with BACKFILL_BATCH_DELAY_SECONDS between pages. Used
once when the index is first populated and whenever it has to be rebuilt.
Upserts overwrite, so running it again is harmless.
"""

import asyncio
from dataclasses import asdict, dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from chatgenius.core.config import settings
from chatgenius.core.logging import get_logger
from chatgenius.models.chat import ChatMessage
from chatgenius.schemas.events import MessageRecord
from chatgenius.services.indexing.pipeline import IndexingPipeline
from chatgenius.services.repositories import count_messages, list_messages

logger = get_logger(__name__)


@dataclass
class BackfillResult:
    total_messages: int = 0
    scanned: int = 0
    indexed: int = 0
    skipped: int = 0
    batches: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


def message_record_from_row(row: ChatMessage) -> MessageRecord:
    return MessageRecord(
        id=str(row.id),
        channel_id=str(row.channel_id) if row.channel_id else None,
        user_id=str(row.user_id) if row.user_id else None,
        content=row.content,
        created_at=row.created_at,
        updated_at=row.updated_at,
        is_edited=bool(row.is_edited),
        type=row.type or "message",
        file_attachment=row.file_attachment,
    )


async def backfill_messages(
    session_factory: async_sessionmaker[AsyncSession],
    pipeline: IndexingPipeline,
    batch_size: Optional[int] = None,
    batch_delay: Optional[float] = None,
) -> BackfillResult:
    """
    Embed and upsert all messages.

    Returns:
        Counts of scanned, indexed and skipped (blank) messages
    """
    batch_size = batch_size or settings.BACKFILL_BATCH_SIZE
    batch_delay = settings.BACKFILL_BATCH_DELAY_SECONDS if batch_delay is None else batch_delay

    result = BackfillResult()
    async with session_factory() as db:
        result.total_messages = await count_messages(db)

    logger.info("backfill_started", total_messages=result.total_messages, batch_size=batch_size)

    offset = 0
    while True:
        async with session_factory() as db:
            rows = await list_messages(db, offset=offset, limit=batch_size)
        if not rows:
            break

        records = [message_record_from_row(row) for row in rows]
        written = await pipeline.index_messages(records)

        result.batches += 1
        result.scanned += len(records)
        result.indexed += written
        result.skipped += len(records) - written
        offset += len(rows)

        logger.info(
            "backfill_batch_done",
            batch=result.batches,
            scanned=result.scanned,
            total_messages=result.total_messages,
        )

        if len(rows) < batch_size:
            break
        await asyncio.sleep(batch_delay)

    logger.info("backfill_finished", **result.to_dict())
    return result
