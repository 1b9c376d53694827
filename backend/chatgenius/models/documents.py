"""
Avatar Document Model

Mirror of the chat application's ``avatar_documents`` table. Users upload
documents to build the knowledge base their AI persona answers from; the
file bytes live in blob storage under ``storage_path``.

This service reads the row to process the document and is the only writer
of ``embedding_status``.

Embedding Status Flow:
----------------------
    pending → processing → completed
                    ↓
                  failed

A document may be re-triggered (status set back to ``pending`` by the chat
application, or the ``indexing.reembed_document`` task), which re-enters
``processing`` from ``completed`` or ``failed``.
"""

import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, Boolean, DateTime, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from chatgenius.db.base import EXTERNAL_TABLE_INFO, Base, String100, String255, String500


class EmbeddingStatus(str, enum.Enum):
    """Indexing status of an avatar document."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    def __str__(self) -> str:
        return self.value


class AvatarDocument(Base):
    __tablename__ = "avatar_documents"
    __table_args__ = {"info": EXTERNAL_TABLE_INFO}

    id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True)
    user_id: Mapped[str] = mapped_column(Uuid(as_uuid=False), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String255, nullable=False)
    size: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    mime_type: Mapped[str] = mapped_column(String100, nullable=False)
    storage_path: Mapped[str] = mapped_column(String500, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_by: Mapped[str] = mapped_column(Uuid(as_uuid=False), nullable=False)
    is_processed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    embedding_status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=EmbeddingStatus.PENDING.value,
    )

    def __repr__(self) -> str:
        return (
            f"AvatarDocument(id={self.id}, name={self.name!r}, "
            f"embedding_status={self.embedding_status!r})"
        )
