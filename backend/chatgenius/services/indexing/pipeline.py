"""
Indexing Pipeline

Keeps the vector index in sync with chat messages and avatar documents.
It is the only writer of index records and of document embedding status.

Messages:
---------
- Create / Update: embed the content and upsert. An update overwrites the
  existing record in one upsert, so the message stays searchable
  throughout the edit.
- Delete: remove the record.
- Blank content: nothing is embedded and any existing record is removed.

Documents:
----------
- Create: processing → extract → embed → upsert → completed. Any failure
  marks the document failed and the error propagates (no automatic retry).
- Update: only acted on when the chat application reset the status to
  pending from completed/failed (a re-trigger). Status writes made by this
  pipeline arrive back as updates and are ignored.
- Delete: remove the record, whatever the status.

Every handler is safe to run more than once for the same event.
"""

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from chatgenius.core.exceptions import ChatGeniusError
from chatgenius.core.logging import get_logger
from chatgenius.models.documents import EmbeddingStatus
from chatgenius.models.index_record import Namespace
from chatgenius.schemas.events import (
    DocumentChangeEvent,
    EventType,
    MessageChangeEvent,
    MessageRecord,
)
from chatgenius.services.indexing.status_tracker import StatusTracker, can_transition
from chatgenius.services.processors.document_processor import DocumentProcessor, ProcessedDocument
from chatgenius.services.processors.embedder import EmbeddingService, normalize_text
from chatgenius.services.vector_index import IndexRecord, VectorIndex

logger = get_logger(__name__)


class IndexingAction(str, enum.Enum):
    INDEXED = "indexed"
    DELETED = "deleted"
    SKIPPED = "skipped"
    IGNORED = "ignored"

    def __str__(self) -> str:
        return self.value


@dataclass
class IndexingOutcome:
    item_id: str
    namespace: Namespace
    action: IndexingAction

    @property
    def expects_record(self) -> bool:
        """Whether the index should hold a record for the item afterwards."""
        return self.action is IndexingAction.INDEXED


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _drop_none(values: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in values.items() if value is not None}


def build_message_metadata(record: MessageRecord, content: str) -> dict[str, Any]:
    created_at = _isoformat(record.created_at)
    return _drop_none({
        "content": content,
        "owner_id": record.user_id,
        "scope_id": record.channel_id,
        "created_at": created_at,
        "updated_at": _isoformat(record.updated_at) or created_at,
        "is_edited": bool(record.is_edited),
        "message_type": record.type or "message",
        "has_attachment": record.has_attachment,
    })


def build_document_metadata(processed: ProcessedDocument) -> dict[str, Any]:
    meta = processed.metadata
    return _drop_none({
        "content": processed.text,
        "owner_id": meta.get("user_id"),
        "document_name": meta.get("file_name"),
        "mime_type": meta.get("mime_type"),
        "created_at": meta.get("created_at"),
        "created_by": meta.get("created_by"),
        "storage_path": meta.get("storage_path"),
        "description": meta.get("description"),
    })


def is_retrigger(event: DocumentChangeEvent) -> bool:
    """
    True when an update resets a finished document back to pending.

    Without the previous row the reset is still honoured, since this
    pipeline never writes ``pending`` itself.
    """
    new_status = event.record.embedding_status if event.record else None
    if new_status is not EmbeddingStatus.PENDING:
        return False
    if event.previous_record is None or event.previous_record.embedding_status is None:
        return True
    return can_transition(event.previous_record.embedding_status, EmbeddingStatus.PENDING)


class IndexingPipeline:
    """
    Applies change events to the vector index.

    Usage:
    ------
    pipeline = IndexingPipeline(embedder, vector_index, document_processor, status_tracker)
    outcome = await pipeline.handle_message_event(event)
    """

    def __init__(
        self,
        embedder: EmbeddingService,
        vector_index: VectorIndex,
        document_processor: DocumentProcessor,
        status_tracker: StatusTracker,
    ):
        self.embedder = embedder
        self.vector_index = vector_index
        self.document_processor = document_processor
        self.status_tracker = status_tracker

    # ========================================
    # Messages
    # ========================================

    async def handle_message_event(self, event: MessageChangeEvent) -> IndexingOutcome:
        if event.event_type is EventType.DELETE:
            return await self._delete(Namespace.MESSAGES, event.item_id)
        return await self.index_message(event.record)

    async def index_message(self, record: MessageRecord) -> IndexingOutcome:
        """Embed one message and write (or overwrite) its record."""
        content = normalize_text(record.content or "")
        if not content:
            logger.info("message_skipped_blank_content", message_id=record.id)
            await self.vector_index.delete_by_id(Namespace.MESSAGES, record.id)
            return IndexingOutcome(record.id, Namespace.MESSAGES, IndexingAction.SKIPPED)

        vector = await self.embedder.embed_query(content)
        await self.vector_index.upsert(
            Namespace.MESSAGES,
            [IndexRecord(id=record.id, vector=vector, metadata=build_message_metadata(record, content))],
        )

        logger.info(
            "message_indexed",
            message_id=record.id,
            channel_id=record.channel_id,
            is_edited=record.is_edited,
        )
        return IndexingOutcome(record.id, Namespace.MESSAGES, IndexingAction.INDEXED)

    async def index_messages(self, records: list[MessageRecord]) -> int:
        """
        Embed and upsert many messages at once (backfill).

        Blank messages are skipped. Returns the number of records written.
        """
        pending: list[tuple[MessageRecord, str]] = []
        for record in records:
            content = normalize_text(record.content or "")
            if content:
                pending.append((record, content))

        if not pending:
            return 0

        vectors = await self.embedder.embed_batch([content for _, content in pending])
        index_records = [
            IndexRecord(id=record.id, vector=vector, metadata=build_message_metadata(record, content))
            for (record, content), vector in zip(pending, vectors)
        ]
        return await self.vector_index.upsert(Namespace.MESSAGES, index_records)

    # ========================================
    # Documents
    # ========================================

    async def handle_document_event(self, event: DocumentChangeEvent) -> IndexingOutcome:
        if event.event_type is EventType.DELETE:
            return await self._delete(Namespace.AVATAR_DOCUMENTS, event.item_id)

        if event.event_type is EventType.UPDATE and not is_retrigger(event):
            logger.debug(
                "document_update_ignored",
                document_id=event.item_id,
                status=str(event.record.embedding_status),
            )
            return IndexingOutcome(event.item_id, Namespace.AVATAR_DOCUMENTS, IndexingAction.IGNORED)

        return await self.index_document(event.record.id)

    async def index_document(self, document_id: str) -> IndexingOutcome:
        """
        Run the full document path and record the resulting status.

        Raises:
            Whatever failed (processing, embedding, upsert); the document is
            marked failed first
        """
        await self.status_tracker.mark_processing(document_id)

        try:
            processed = await self.document_processor.process(document_id)
            vectors = await self.embedder.embed_batch([processed.text])
            await self.vector_index.upsert(
                Namespace.AVATAR_DOCUMENTS,
                [IndexRecord(id=document_id, vector=vectors[0], metadata=build_document_metadata(processed))],
            )
            await self.status_tracker.mark_completed(document_id)
        except Exception as e:
            logger.error(
                "document_indexing_failed",
                document_id=document_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            await self._mark_failed(document_id)
            raise

        logger.info(
            "document_indexed",
            document_id=document_id,
            chars=len(processed.text),
            chunk_count=processed.metadata.get("chunk_count", 1),
        )
        return IndexingOutcome(document_id, Namespace.AVATAR_DOCUMENTS, IndexingAction.INDEXED)

    async def _mark_failed(self, document_id: str) -> None:
        try:
            await self.status_tracker.mark_failed(document_id)
        except ChatGeniusError as status_error:
            # The row may be gone or already re-triggered; keep the original error
            logger.warning(
                "document_status_not_marked_failed",
                document_id=document_id,
                error=str(status_error),
            )

    # ========================================
    # Shared
    # ========================================

    async def _delete(self, namespace: Namespace, item_id: str) -> IndexingOutcome:
        removed = await self.vector_index.delete_by_id(namespace, item_id)
        logger.info("index_record_deleted", namespace=namespace.value, item_id=item_id, existed=removed)
        return IndexingOutcome(item_id, namespace, IndexingAction.DELETED)
