"""
Index Record Model

One row per indexed content item per namespace. This table is the vector
index: the row holds the embedding, the metadata that is returned with
search results, and the namespace that separates chat messages from avatar
documents.

Namespaces:
-----------
- messages: one record per chat message, id = message id
- avatar_documents: one record per avatar document, id = document id

The composite primary key (namespace, item_id) is what makes upserts
idempotent: ``INSERT ... ON CONFLICT (namespace, item_id) DO UPDATE``.

Search:
-------
- ``embedding`` is a pgvector column searched with cosine distance. Each
  namespace has its own partial HNSW index (vector_cosine_ops), so a
  search in one namespace never spends its candidate list on the other
- ``record_metadata`` is JSONB; equality filters use containment (``@>``)
  backed by a GIN index
"""

import enum
from typing import Any

from pgvector.sqlalchemy import Vector
from sqlalchemy import Index, String, Text, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from chatgenius.core.config import settings
from chatgenius.db.base import Base, String50, String255, TimestampMixin


class Namespace(str, enum.Enum):
    """Logical partitions of the vector index."""

    MESSAGES = "messages"
    AVATAR_DOCUMENTS = "avatar_documents"

    def __str__(self) -> str:
        return self.value


class IndexRecordModel(Base, TimestampMixin):
    __tablename__ = "index_records"
    __table_args__ = (
        *(
            Index(
                f"ix_index_records_embedding_hnsw_{namespace.value}",
                "embedding",
                postgresql_using="hnsw",
                postgresql_with={"m": 16, "ef_construction": 64},
                postgresql_ops={"embedding": "vector_cosine_ops"},
                postgresql_where=text(f"namespace = '{namespace.value}'"),
            )
            for namespace in Namespace
        ),
        Index(
            "ix_index_records_record_metadata_gin",
            "record_metadata",
            postgresql_using="gin",
            postgresql_ops={"record_metadata": "jsonb_path_ops"},
        ),
    )

    namespace: Mapped[str] = mapped_column(
        String50,
        primary_key=True,
        comment="Index partition: messages or avatar_documents",
    )

    item_id: Mapped[str] = mapped_column(
        String255,
        primary_key=True,
        comment="Id of the source message or document",
    )

    embedding = mapped_column(
        Vector(settings.EMBEDDING_DIMENSION),
        nullable=False,
        comment="Embedding of the item's text, compared by cosine distance",
    )

    # Duplicate of metadata["content"]; search results read the metadata copy
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")

    record_metadata: Mapped[dict[str, Any]] = mapped_column(
        JSONB,
        nullable=False,
        default=dict,
        comment="Payload returned with search results and used for filtering",
    )

    embedding_model: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        comment="Model that produced the embedding",
    )

    def __repr__(self) -> str:
        return f"IndexRecordModel(namespace={self.namespace!r}, item_id={self.item_id!r})"
