"""Celery application configuration."""

from celery import Celery

from transcode_worker.core.config import get_settings

settings = get_settings()

celery_app = Celery(
    "transcode_worker",
    broker=settings.CELERY_BROKER_URL or settings.REDIS_URL,
    backend=settings.CELERY_RESULT_BACKEND or settings.REDIS_URL,
)

# Storage events are delivered at least once: acknowledge only after the
# pipeline has finished so a lost worker leads to redelivery.
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=settings.CELERY_TASK_TIME_LIMIT,
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
)

celery_app.autodiscover_tasks(["transcode_worker.modules.pipeline"])
