"""
Service wiring

Builds every provider the indexing pipeline and the answer synthesizers
need from one session factory. The API builds one set in its lifespan and
keeps it on ``app.state``; Celery tasks build a set per task run.

Usage:
------
services = build_services(AsyncSessionLocal)
await services.pipeline.handle_message_event(event)
...
await services.close()
"""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from chatgenius.core.logging import get_logger
from chatgenius.services.indexing.pipeline import IndexingPipeline
from chatgenius.services.indexing.status_tracker import StatusTracker
from chatgenius.services.processors.document_processor import DocumentProcessor
from chatgenius.services.processors.embedder import EmbeddingService
from chatgenius.services.rag.chat_synthesizer import ChatAnswerSynthesizer
from chatgenius.services.rag.generator import AnswerGenerator
from chatgenius.services.rag.persona_synthesizer import PersonaAnswerSynthesizer
from chatgenius.services.rag.retriever import Retriever
from chatgenius.services.storage import BlobStore
from chatgenius.services.vector_index import VectorIndex

logger = get_logger(__name__)


@dataclass
class ServiceContainer:
    embedder: EmbeddingService
    vector_index: VectorIndex
    blob_store: BlobStore
    status_tracker: StatusTracker
    document_processor: DocumentProcessor
    pipeline: IndexingPipeline
    retriever: Retriever
    generator: AnswerGenerator
    chat_synthesizer: ChatAnswerSynthesizer
    persona_synthesizer: PersonaAnswerSynthesizer
    owns_embedder: bool = True

    async def close(self) -> None:
        """Release network clients (and the model, when this container loaded it)."""
        await self.blob_store.close()
        await self.generator.close()
        if self.owns_embedder:
            await self.embedder.shutdown()
        logger.info("services_closed")


def build_services(
    session_factory: async_sessionmaker[AsyncSession],
    embedder: Optional[EmbeddingService] = None,
    blob_store: Optional[BlobStore] = None,
    generator: Optional[AnswerGenerator] = None,
) -> ServiceContainer:
    """
    Wire all services around ``session_factory``.

    A shared ``embedder`` may be passed in (e.g. one model per Celery
    worker); the container then leaves it loaded on close.
    """
    owns_embedder = embedder is None
    embedder = embedder or EmbeddingService()
    blob_store = blob_store or BlobStore()
    generator = generator or AnswerGenerator()

    vector_index = VectorIndex(session_factory)
    status_tracker = StatusTracker(session_factory)
    document_processor = DocumentProcessor(session_factory, blob_store)
    pipeline = IndexingPipeline(embedder, vector_index, document_processor, status_tracker)
    retriever = Retriever(embedder, vector_index)

    return ServiceContainer(
        embedder=embedder,
        vector_index=vector_index,
        blob_store=blob_store,
        status_tracker=status_tracker,
        document_processor=document_processor,
        pipeline=pipeline,
        retriever=retriever,
        generator=generator,
        chat_synthesizer=ChatAnswerSynthesizer(retriever, generator),
        persona_synthesizer=PersonaAnswerSynthesizer(retriever, generator),
        owns_embedder=owns_embedder,
    )
