"""
Celery application instance and configuration.
"""

from celery import Celery
from celery.schedules import crontab

from chatgenius.core.config import settings

# Create Celery application
celery_app = Celery(
    "chatgenius",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
)

# Configure Celery
celery_app.conf.update(
    task_serializer=settings.CELERY_TASK_SERIALIZER,
    result_serializer=settings.CELERY_RESULT_SERIALIZER,
    accept_content=settings.celery_accept_content_list,
    timezone=settings.CELERY_TIMEZONE,
    enable_utc=settings.CELERY_ENABLE_UTC,
    task_track_started=True,
    task_time_limit=60 * 60,  # 1 hour (full message backfill)
    task_soft_time_limit=55 * 60,
    result_expires=3600,  # 1 hour
)

# Celery Beat Schedule (Periodic Tasks)
celery_app.conf.beat_schedule = {
    'get-index-stats': {
        'task': 'indexing.get_index_stats',
        'schedule': crontab(minute='*/15'),  # Every 15 minutes
        'options': {'queue': 'monitoring'},
    },
}

# Task routing
celery_app.conf.task_routes = {
    'indexing.get_index_stats': {'queue': 'monitoring'},
    'indexing.*': {'queue': 'indexing'},
}

# Auto-discover tasks from chatgenius.tasks
celery_app.autodiscover_tasks(['chatgenius.tasks'], related_name='indexing_tasks')
