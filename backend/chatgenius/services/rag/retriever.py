"""
Retriever for RAG

Two retrieval policies over the vector index:

1. Message search (open corpus)
   - Namespace: messages, optionally scoped to one channel
   - top_k = limit, no relevance floor

2. Persona search (per-owner corpus)
   - Namespace: avatar_documents, always scoped to one owner
   - top_k = limit * 2, results below RAG_PERSONA_MIN_SCORE dropped
   - An empty result is retried up to RAG_PERSONA_MAX_RETRIES times with
     RAG_PERSONA_RETRY_DELAY_SECONDS between attempts

Both policies return results deduplicated by id, highest score first,
truncated to ``limit``.
"""

import asyncio
import logging
from typing import Optional

from chatgenius.core.config import settings
from chatgenius.models.index_record import Namespace
from chatgenius.services.processors.embedder import EmbeddingService
from chatgenius.services.vector_index import RetrievalResult, VectorIndex

logger = logging.getLogger(__name__)


def rank_results(results: list[RetrievalResult], limit: int, min_score: Optional[float] = None) -> list[RetrievalResult]:
    """
    Filter, deduplicate and order raw index hits.

    When an id appears more than once the highest-scoring hit is kept.
    """
    best: dict[str, RetrievalResult] = {}
    for result in results:
        if min_score is not None and result.score < min_score:
            continue
        current = best.get(result.id)
        if current is None or result.score > current.score:
            best[result.id] = result

    ranked = sorted(best.values(), key=lambda r: r.score, reverse=True)
    return ranked[:limit]


class Retriever:
    """
    Embeds queries and searches the vector index.

    Usage:
    ------
    retriever = Retriever(embedder, vector_index)

    messages = await retriever.similarity_search("when is standup?", channel_id="c1", limit=5)
    documents = await retriever.persona_search("how do I make pasta?", owner_id="u1", limit=3)
    """

    def __init__(
        self,
        embedder: EmbeddingService,
        vector_index: VectorIndex,
        persona_min_score: Optional[float] = None,
        persona_max_retries: Optional[int] = None,
        persona_retry_delay: Optional[float] = None,
    ):
        self.embedder = embedder
        self.vector_index = vector_index
        self.persona_min_score = (
            settings.RAG_PERSONA_MIN_SCORE if persona_min_score is None else persona_min_score
        )
        self.persona_max_retries = (
            settings.RAG_PERSONA_MAX_RETRIES if persona_max_retries is None else persona_max_retries
        )
        self.persona_retry_delay = (
            settings.RAG_PERSONA_RETRY_DELAY_SECONDS if persona_retry_delay is None else persona_retry_delay
        )

    async def similarity_search(
        self,
        query: str,
        channel_id: Optional[str] = None,
        limit: int = 5,
    ) -> list[RetrievalResult]:
        """
        Search chat messages.

        Args:
            query: Natural-language query
            channel_id: Restrict results to one channel
            limit: Maximum number of results

        Returns:
            Results ordered by score, highest first
        """
        vector = await self.embedder.embed_query(query)
        metadata_filter = {"scope_id": channel_id} if channel_id else None

        results = await self.vector_index.query(Namespace.MESSAGES, vector, metadata_filter, top_k=limit)
        ranked = rank_results(results, limit)

        logger.info(
            f"Message search returned {len(ranked)} results "
            f"(channel={channel_id or 'all'}, top_score={ranked[0].score if ranked else 0:.3f})"
        )
        return ranked

    async def persona_search(
        self,
        query: str,
        owner_id: str,
        limit: int = 5,
    ) -> list[RetrievalResult]:
        """
        Search one user's avatar documents.

        Args:
            query: Natural-language query
            owner_id: The persona whose documents may be returned (required)
            limit: Maximum number of results

        Returns:
            Results with score >= persona_min_score, highest first. Empty
            only after all retries came back empty.
        """
        vector = await self.embedder.embed_query(query)
        metadata_filter = {"owner_id": owner_id}

        attempts = self.persona_max_retries + 1
        ranked: list[RetrievalResult] = []
        for attempt in range(1, attempts + 1):
            results = await self.vector_index.query(
                Namespace.AVATAR_DOCUMENTS,
                vector,
                metadata_filter,
                top_k=limit * 2,
            )
            ranked = rank_results(results, limit, min_score=self.persona_min_score)
            if ranked:
                break

            if attempt < attempts:
                logger.info(
                    f"No persona documents above {self.persona_min_score} for owner {owner_id}, "
                    f"retrying ({attempt}/{self.persona_max_retries})"
                )
                await asyncio.sleep(self.persona_retry_delay)

        logger.info(f"Persona search for owner {owner_id} returned {len(ranked)} results")
        return ranked
