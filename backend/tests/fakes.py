"""
In-memory stand-ins for the external providers.

The services take their providers as constructor arguments, so tests wire
the real pipeline, retriever and synthesizers around these fakes:

- FakeEmbedder: bag-of-words vectors, one dimension per distinct word
- FakeVectorIndex: dict-backed index with cosine scoring and the same
  scope checks as the pgvector index
- FakeBlobStore: path -> bytes
- FakeGenerator: records prompts and returns a canned answer
"""

import math
import re
import uuid
from datetime import datetime, timezone
from typing import Any, Mapping, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from chatgenius.core.exceptions import BlobStoreError, GenerationError
from chatgenius.models import AvatarDocument, ChatMessage, Profile
from chatgenius.services.vector_index import (
    IndexRecord,
    RetrievalResult,
    check_scope,
    namespace_value,
)

STOPWORDS = frozenset({
    "a", "an", "the", "is", "are", "was", "to", "of", "in", "on", "at", "for",
    "and", "or", "what", "when", "how", "do", "does", "i", "you", "my", "me",
    "with", "about", "it", "this", "that", "be", "can",
})


def new_id() -> str:
    return str(uuid.uuid4())


# ================================
# Providers
# ================================

class FakeEmbedder:
    """Collision-free bag-of-words embedder (stopwords ignored)."""

    def __init__(self, dimension: int = 512):
        self.dimension = dimension
        self.vocabulary: dict[str, int] = {}
        self.batch_calls: list[list[str]] = []
        self.initialized = False
        self.shut_down = False

    def _vector(self, text: str) -> list[float]:
        vector = [0.0] * self.dimension
        for word in re.findall(r"[a-z0-9]+", text.lower()):
            if word in STOPWORDS:
                continue
            if word not in self.vocabulary:
                self.vocabulary[word] = len(self.vocabulary) % self.dimension
            vector[self.vocabulary[word]] += 1.0
        norm = math.sqrt(sum(v * v for v in vector))
        return [v / norm for v in vector] if norm else vector

    async def initialize(self) -> None:
        self.initialized = True

    async def embed_query(self, text: str) -> list[float]:
        return (await self.embed_batch([text]))[0]

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        if any(not (text or "").strip() for text in texts):
            raise ValueError("Cannot embed blank text")
        self.batch_calls.append(list(texts))
        return [self._vector(text) for text in texts]

    async def shutdown(self) -> None:
        self.shut_down = True


def cosine(a: Sequence[float], b: Sequence[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if not norm_a or not norm_b:
        return 0.0
    return dot / (norm_a * norm_b)


class FakeVectorIndex:
    """Dict-backed vector index keyed by (namespace, id)."""

    def __init__(self):
        self.records: dict[tuple[str, str], IndexRecord] = {}
        self.upsert_calls = 0
        self.queries: list[dict[str, Any]] = []

    def get(self, namespace, item_id: str) -> Optional[IndexRecord]:
        return self.records.get((namespace_value(namespace), item_id))

    def count(self, namespace) -> int:
        ns = namespace_value(namespace)
        return sum(1 for key in self.records if key[0] == ns)

    async def upsert(self, namespace, records: Sequence[IndexRecord]) -> int:
        self.upsert_calls += 1
        ns = namespace_value(namespace)
        for record in records:
            self.records[(ns, record.id)] = IndexRecord(record.id, list(record.vector), dict(record.metadata))
        return len(records)

    async def delete_by_id(self, namespace, item_id: str) -> bool:
        return self.records.pop((namespace_value(namespace), item_id), None) is not None

    async def query(
        self,
        namespace,
        vector: Sequence[float],
        metadata_filter: Optional[Mapping[str, Any]] = None,
        top_k: int = 5,
    ) -> list[RetrievalResult]:
        check_scope(namespace, metadata_filter)
        ns = namespace_value(namespace)
        self.queries.append({"namespace": ns, "filter": dict(metadata_filter or {}), "top_k": top_k})

        results = []
        for (record_ns, item_id), record in self.records.items():
            if record_ns != ns:
                continue
            if metadata_filter and any(record.metadata.get(k) != v for k, v in metadata_filter.items()):
                continue
            results.append(RetrievalResult(item_id, cosine(vector, record.vector), dict(record.metadata)))

        results.sort(key=lambda r: r.score, reverse=True)
        return results[:top_k]

    async def exists(self, namespace, item_id: str) -> bool:
        return (namespace_value(namespace), item_id) in self.records

    async def wait_for_consistency(self, namespace, item_id: str, present: bool, **kwargs) -> bool:
        return await self.exists(namespace, item_id) == present

    async def count_by_namespace(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for ns, _ in self.records:
            counts[ns] = counts.get(ns, 0) + 1
        return counts


class FakeBlobStore:
    def __init__(self, files: Optional[dict[str, bytes]] = None):
        self.files = dict(files or {})
        self.closed = False

    async def fetch(self, path: str) -> bytes:
        if path not in self.files:
            raise BlobStoreError(f"Failed to download file {path}: HTTP 404")
        return self.files[path]

    async def close(self) -> None:
        self.closed = True


class FakeGenerator:
    def __init__(self, answer: str = "Here is what I found [1].", fail: bool = False):
        self.answer = answer
        self.fail = fail
        self.prompts: list[str] = []
        self.closed = False

    async def complete(self, prompt: str, system: Optional[str] = None) -> str:
        self.prompts.append(prompt)
        if self.fail:
            raise GenerationError("Generative model call failed: overloaded")
        return self.answer

    async def close(self) -> None:
        self.closed = True


# ================================
# Source-of-truth rows (SQLite)
# ================================

SOURCE_TABLES = [AvatarDocument.__table__, ChatMessage.__table__, Profile.__table__]


async def insert_document(
    session_factory: async_sessionmaker[AsyncSession],
    *,
    name: str = "notes.txt",
    mime_type: str = "text/plain",
    storage_path: Optional[str] = None,
    user_id: Optional[str] = None,
    embedding_status: str = "pending",
    document_id: Optional[str] = None,
    description: Optional[str] = None,
) -> AvatarDocument:
    user_id = user_id or new_id()
    document = AvatarDocument(
        id=document_id or new_id(),
        user_id=user_id,
        name=name,
        size=0,
        mime_type=mime_type,
        storage_path=storage_path or f"{user_id}/{name}",
        description=description,
        created_at=datetime(2024, 3, 15, 9, 30, tzinfo=timezone.utc),
        created_by=user_id,
        is_processed=False,
        embedding_status=embedding_status,
    )
    async with session_factory() as db:
        db.add(document)
        await db.commit()
    return document


async def get_document_status(session_factory: async_sessionmaker[AsyncSession], document_id: str) -> str:
    async with session_factory() as db:
        document = await db.get(AvatarDocument, document_id)
        return document.embedding_status


async def insert_profile(
    session_factory: async_sessionmaker[AsyncSession],
    *,
    username: str,
    bio: Optional[str] = None,
    user_id: Optional[str] = None,
) -> Profile:
    profile = Profile(id=user_id or new_id(), username=username, bio=bio)
    async with session_factory() as db:
        db.add(profile)
        await db.commit()
    return profile


async def insert_message(
    session_factory: async_sessionmaker[AsyncSession],
    *,
    content: str,
    channel_id: str,
    created_at: datetime,
    user_id: Optional[str] = None,
) -> ChatMessage:
    message = ChatMessage(
        id=new_id(),
        channel_id=channel_id,
        user_id=user_id or new_id(),
        content=content,
        created_at=created_at,
        is_edited=False,
        type="message",
    )
    async with session_factory() as db:
        db.add(message)
        await db.commit()
    return message
