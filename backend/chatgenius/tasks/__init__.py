"""
Celery tasks for background processing.
"""

from chatgenius.tasks.indexing_tasks import (
    backfill_messages,
    get_index_stats,
    reembed_document,
)

__all__ = [
    "backfill_messages",
    "get_index_stats",
    "reembed_document",
]
