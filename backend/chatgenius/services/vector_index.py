"""
Vector Index Service

pgvector-backed index over the ``index_records`` table, partitioned into
namespaces (``messages``, ``avatar_documents``).

Operations:
-----------
- upsert: idempotent overwrite by (namespace, id), sent in batches of
  VECTOR_UPSERT_BATCH_SIZE with VECTOR_UPSERT_DELAY_SECONDS between batches
- query: cosine similarity (1 - cosine distance), optional metadata
  equality filter (JSONB containment), results score-descending
  Each namespace has its own partial HNSW index. ef_search and
  iterative scans are set per transaction so filtered searches still
  fill top_k.
- delete_by_id: removes one record; deleting a missing id is a no-op
- exists / wait_for_consistency: readiness check used after change events

Scoping:
--------
Queries on ``avatar_documents`` must carry an ``owner_id`` filter. The
check runs before any database access and raises ScopeFilterRequiredError,
so a persona can never be answered from another user's documents.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Sequence

from sqlalchemy import Select, delete, func, literal_column, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from chatgenius.core.config import settings
from chatgenius.core.exceptions import ScopeFilterRequiredError, VectorIndexError
from chatgenius.core.logging import get_logger
from chatgenius.models.index_record import IndexRecordModel, Namespace

logger = get_logger(__name__)


# Metadata field every query on the namespace must filter on
REQUIRED_SCOPE_FILTERS: dict[str, str] = {
    Namespace.AVATAR_DOCUMENTS.value: "owner_id",
}

MAX_EF_SEARCH = 1000


@dataclass
class IndexRecord:
    """A vector plus the metadata returned with search results."""

    id: str
    vector: list[float]
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class RetrievalResult:
    """One search hit: the indexed item's id, its similarity and metadata."""

    id: str
    score: float
    metadata: dict[str, Any] = field(default_factory=dict)


def namespace_value(namespace: Namespace | str) -> str:
    return namespace.value if isinstance(namespace, Namespace) else str(namespace)


def check_scope(namespace: Namespace | str, metadata_filter: Optional[Mapping[str, Any]]) -> None:
    """
    Enforce mandatory scope filters for a namespace.

    Raises:
        ScopeFilterRequiredError: The namespace requires a filter field
            that is missing or empty
    """
    ns = namespace_value(namespace)
    required = REQUIRED_SCOPE_FILTERS.get(ns)
    if required is None:
        return
    if not metadata_filter or metadata_filter.get(required) in (None, ""):
        raise ScopeFilterRequiredError(ns, required)


class VectorIndex:
    """
    Namespaced vector index on PostgreSQL + pgvector.

    Usage:
    ------
    index = VectorIndex(AsyncSessionLocal)
    await index.upsert(Namespace.MESSAGES, [IndexRecord(id, vector, metadata)])
    hits = await index.query(Namespace.MESSAGES, query_vector, {"scope_id": channel_id}, top_k=5)
    await index.delete_by_id(Namespace.MESSAGES, message_id)
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        dimension: Optional[int] = None,
        upsert_batch_size: Optional[int] = None,
        upsert_delay: Optional[float] = None,
        embedding_model: Optional[str] = None,
        ef_search: Optional[int] = None,
        iterative_scan: Optional[str] = None,
    ):
        self.session_factory = session_factory
        self.dimension = dimension or settings.EMBEDDING_DIMENSION
        self.upsert_batch_size = upsert_batch_size or settings.VECTOR_UPSERT_BATCH_SIZE
        self.upsert_delay = (
            settings.VECTOR_UPSERT_DELAY_SECONDS if upsert_delay is None else upsert_delay
        )
        self.embedding_model = embedding_model or settings.EMBEDDING_MODEL
        self.ef_search = ef_search or settings.VECTOR_HNSW_EF_SEARCH
        self.iterative_scan = iterative_scan or settings.VECTOR_HNSW_ITERATIVE_SCAN

    # ========================================
    # Writes
    # ========================================

    async def upsert(self, namespace: Namespace | str, records: Sequence[IndexRecord]) -> int:
        """
        Insert or overwrite records by id.

        A record that already exists is fully replaced (vector and metadata),
        so redelivered events and edits never produce duplicates.

        Returns:
            Number of records written
        """
        if not records:
            return 0

        ns = namespace_value(namespace)
        for record in records:
            self._validate_vector(record.vector, record.id)

        written = 0
        for batch_number, start in enumerate(range(0, len(records), self.upsert_batch_size)):
            if batch_number > 0 and self.upsert_delay > 0:
                await asyncio.sleep(self.upsert_delay)

            batch = records[start:start + self.upsert_batch_size]
            stmt = self.build_upsert_statement(ns, batch)
            try:
                async with self.session_factory() as session:
                    await session.execute(stmt)
                    await session.commit()
            except SQLAlchemyError as e:
                logger.error(
                    "vector_upsert_failed",
                    namespace=ns,
                    batch=batch_number + 1,
                    error=str(e),
                )
                raise VectorIndexError(f"Upsert into '{ns}' failed: {e}") from e

            written += len(batch)

        logger.info("vector_upsert_complete", namespace=ns, records=written)
        return written

    def build_upsert_statement(self, namespace: str, records: Sequence[IndexRecord]):
        rows = [
            {
                "namespace": namespace,
                "item_id": record.id,
                "embedding": record.vector,
                "content": str(record.metadata.get("content", "")),
                "record_metadata": dict(record.metadata),
                "embedding_model": self.embedding_model,
            }
            for record in records
        ]
        stmt = pg_insert(IndexRecordModel).values(rows)
        return stmt.on_conflict_do_update(
            index_elements=["namespace", "item_id"],
            set_={
                "embedding": stmt.excluded.embedding,
                "content": stmt.excluded.content,
                "record_metadata": stmt.excluded.record_metadata,
                "embedding_model": stmt.excluded.embedding_model,
                "updated_at": func.now(),
            },
        )

    async def delete_by_id(self, namespace: Namespace | str, item_id: str) -> bool:
        """
        Delete one record.

        Returns:
            True if a record was removed, False if none existed
        """
        ns = namespace_value(namespace)
        stmt = delete(IndexRecordModel).where(
            IndexRecordModel.namespace == ns,
            IndexRecordModel.item_id == item_id,
        )
        try:
            async with self.session_factory() as session:
                result = await session.execute(stmt)
                await session.commit()
        except SQLAlchemyError as e:
            logger.error("vector_delete_failed", namespace=ns, item_id=item_id, error=str(e))
            raise VectorIndexError(f"Delete from '{ns}' failed: {e}") from e

        removed = (result.rowcount or 0) > 0
        logger.info("vector_delete_complete", namespace=ns, item_id=item_id, removed=removed)
        return removed

    # ========================================
    # Reads
    # ========================================

    async def query(
        self,
        namespace: Namespace | str,
        vector: Sequence[float],
        metadata_filter: Optional[Mapping[str, Any]] = None,
        top_k: int = 5,
    ) -> list[RetrievalResult]:
        """
        Nearest-neighbour search by cosine similarity.

        Args:
            namespace: Index partition to search
            vector: Query embedding
            metadata_filter: Equality constraints on metadata fields
            top_k: Maximum number of results

        Returns:
            Results ordered by score, highest first

        Raises:
            ScopeFilterRequiredError: Required scope filter missing
            VectorIndexError: Database failure
        """
        check_scope(namespace, metadata_filter)
        self._validate_vector(vector)

        stmt = self.build_query_statement(namespace_value(namespace), vector, metadata_filter, top_k)
        try:
            async with self.session_factory() as session:
                for setting in self.build_search_settings(top_k):
                    await session.execute(setting)
                rows = (await session.execute(stmt)).all()
        except SQLAlchemyError as e:
            logger.error("vector_query_failed", namespace=namespace_value(namespace), error=str(e))
            raise VectorIndexError(f"Query on '{namespace_value(namespace)}' failed: {e}") from e

        results = [
            RetrievalResult(id=row.item_id, score=float(row.score), metadata=dict(row.record_metadata or {}))
            for row in rows
        ]
        results.sort(key=lambda r: r.score, reverse=True)
        return results

    def build_search_settings(self, top_k: int) -> list[Select]:
        """
        Transaction-local HNSW settings for one search.

        ef_search is raised to at least top_k. With iterative scans the
        index keeps walking the graph until the metadata filter has
        produced top_k rows.
        """
        ef_search = min(max(self.ef_search, top_k), MAX_EF_SEARCH)
        settings_stmts = [select(func.set_config("hnsw.ef_search", str(ef_search), True))]
        if self.iterative_scan != "off":
            settings_stmts.append(select(func.set_config("hnsw.iterative_scan", self.iterative_scan, True)))
        return settings_stmts

    def build_query_statement(
        self,
        namespace: str,
        vector: Sequence[float],
        metadata_filter: Optional[Mapping[str, Any]],
        top_k: int,
    ) -> Select:
        # Inlined so the planner can match the per-namespace partial HNSW index
        namespace_literal = literal_column(f"'{Namespace(namespace).value}'")
        distance = IndexRecordModel.embedding.cosine_distance(list(vector))
        stmt = (
            select(
                IndexRecordModel.item_id,
                IndexRecordModel.record_metadata,
                (1 - distance).label("score"),
            )
            .where(IndexRecordModel.namespace == namespace_literal)
        )
        if metadata_filter:
            stmt = stmt.where(IndexRecordModel.record_metadata.contains(dict(metadata_filter)))
        return stmt.order_by(distance).limit(top_k)

    async def exists(self, namespace: Namespace | str, item_id: str) -> bool:
        ns = namespace_value(namespace)
        stmt = select(func.count()).select_from(IndexRecordModel).where(
            IndexRecordModel.namespace == ns,
            IndexRecordModel.item_id == item_id,
        )
        try:
            async with self.session_factory() as session:
                return ((await session.execute(stmt)).scalar() or 0) > 0
        except SQLAlchemyError as e:
            raise VectorIndexError(f"Lookup in '{ns}' failed: {e}") from e

    async def wait_for_consistency(
        self,
        namespace: Namespace | str,
        item_id: str,
        present: bool,
        max_attempts: Optional[int] = None,
        interval: Optional[float] = None,
    ) -> bool:
        """
        Poll until the record's presence matches ``present``.

        Returns:
            True if the index reflected the expected state within the
            bounded number of attempts, False otherwise
        """
        max_attempts = max_attempts or settings.INDEX_SETTLE_MAX_ATTEMPTS
        interval = settings.INDEX_SETTLE_INTERVAL_SECONDS if interval is None else interval

        for attempt in range(1, max_attempts + 1):
            if await self.exists(namespace, item_id) == present:
                return True
            if attempt < max_attempts:
                await asyncio.sleep(interval)

        logger.warning(
            "index_not_consistent",
            namespace=namespace_value(namespace),
            item_id=item_id,
            expected_present=present,
            attempts=max_attempts,
        )
        return False

    async def count_by_namespace(self) -> dict[str, int]:
        stmt = select(IndexRecordModel.namespace, func.count()).group_by(IndexRecordModel.namespace)
        try:
            async with self.session_factory() as session:
                rows = (await session.execute(stmt)).all()
        except SQLAlchemyError as e:
            raise VectorIndexError(f"Index stats query failed: {e}") from e
        return {ns: count for ns, count in rows}

    def _validate_vector(self, vector: Sequence[float], item_id: Optional[str] = None) -> None:
        if len(vector) != self.dimension:
            raise VectorIndexError(
                f"Vector for {item_id or 'query'} has dimension {len(vector)}, expected {self.dimension}"
            )
