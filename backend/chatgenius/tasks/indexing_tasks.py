"""
Celery tasks for vector index maintenance.

This module contains background tasks for:
- Re-embedding one avatar document (operator recovery for documents stuck
  in processing, or a forced refresh)
- Backfilling the messages namespace from the messages table
- Monitoring index and document status counts
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from celery import Task
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from chatgenius.core.config import settings
from chatgenius.core.exceptions import ChatGeniusError
from chatgenius.services.container import ServiceContainer, build_services
from chatgenius.services.indexing.backfill import backfill_messages as run_backfill
from chatgenius.services.processors.embedder import EmbeddingService
from chatgenius.services.repositories import count_documents_by_status, count_messages
from chatgenius.workers.celery_app import celery_app

logger = logging.getLogger(__name__)

_worker_embedder: Optional[EmbeddingService] = None


# ========================================
# Async Helpers
# ========================================

def run_async(coro):
    """
    Run async coroutine, handling both event loop and no event loop scenarios.

    - Celery worker (no running loop): asyncio.run()
    - Tests (loop already running): run in a separate thread
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)

    import concurrent.futures

    with concurrent.futures.ThreadPoolExecutor() as executor:
        future = executor.submit(asyncio.run, coro)
        return future.result()


def get_worker_embedder() -> EmbeddingService:
    """One embedding model per worker process, shared by all tasks."""
    global _worker_embedder
    if _worker_embedder is None:
        _worker_embedder = EmbeddingService()
    return _worker_embedder


@asynccontextmanager
async def task_services() -> AsyncIterator[ServiceContainer]:
    """
    Services bound to a fresh engine for one task run.

    Each task runs in its own event loop, so pooled connections from the
    application engine cannot be reused here.
    """
    engine = create_async_engine(settings.DATABASE_URL, poolclass=NullPool)
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    services = build_services(session_factory, embedder=get_worker_embedder())
    try:
        yield services
    finally:
        await services.close()
        await engine.dispose()


# ========================================
# Base Task Class
# ========================================

class IndexingTask(Task):
    """
    Base task class for index maintenance.

    Failures are not retried automatically: a document that fails is marked
    failed and waits for a re-trigger.
    """

    max_retries = 0

    def on_failure(self, exc, task_id, args, kwargs, einfo):
        logger.error(f"Task {self.name} [{task_id}] failed: {exc}")


# ========================================
# Tasks
# ========================================

@celery_app.task(base=IndexingTask, name='indexing.reembed_document', bind=True)
def reembed_document(self, document_id: str) -> dict:
    """
    Extract, embed and upsert one avatar document again.

    Works from any status, including a document stuck in ``processing``
    after a crash.

    Args:
        document_id: ID of the avatar document

    Returns:
        Dictionary with the outcome:
        {
            'success': bool,
            'document_id': str,
            'action': 'indexed' (on success),
            'error': str (on failure)
        }
    """
    async def _reembed():
        async with task_services() as services:
            try:
                outcome = await services.pipeline.index_document(document_id)
            except ChatGeniusError as e:
                logger.error(f"Re-embedding document {document_id} failed: {e}")
                return {
                    'success': False,
                    'document_id': document_id,
                    'error': str(e),
                }

        logger.info(f"Re-embedded document {document_id}")
        return {
            'success': True,
            'document_id': document_id,
            'action': outcome.action.value,
        }

    return run_async(_reembed())


@celery_app.task(base=IndexingTask, name='indexing.backfill_messages', bind=True)
def backfill_messages(self, batch_size: int = 100) -> dict:
    """
    Index every existing chat message.

    Args:
        batch_size: Messages per page

    Returns:
        Dictionary with total_messages, scanned, indexed, skipped, batches
    """
    async def _backfill():
        async with task_services() as services:
            result = await run_backfill(
                services.vector_index.session_factory,
                services.pipeline,
                batch_size=batch_size,
            )
        return {'success': True, **result.to_dict()}

    return run_async(_backfill())


@celery_app.task(base=IndexingTask, name='indexing.get_index_stats', bind=True)
def get_index_stats(self) -> dict:
    """
    Get statistics about the vector index.

    Returns:
        {
            'index_records': {'messages': int, 'avatar_documents': int},
            'messages_total': int,
            'documents_by_status': {'pending': int, 'processing': int, ...}
        }
    """
    async def _stats():
        async with task_services() as services:
            session_factory = services.vector_index.session_factory
            records = await services.vector_index.count_by_namespace()
            async with session_factory() as db:
                messages_total = await count_messages(db)
                documents_by_status = await count_documents_by_status(db)

        stats = {
            'index_records': records,
            'messages_total': messages_total,
            'documents_by_status': documents_by_status,
        }
        logger.info(f"Index stats: {stats}")
        return stats

    return run_async(_stats())
