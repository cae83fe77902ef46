"""Celery application configuration."""

from celery import Celery

from splatgen.core.config import settings
from splatgen.core.logging import configure_logging

configure_logging()

celery_app = Celery("splatgen", include=["splatgen.tasks.generation_tasks"])

broker_url = settings.celery_broker_url or settings.redis_url
result_backend = settings.celery_result_backend or settings.redis_url

celery_app.conf.update(
    broker_url=broker_url,
    result_backend=result_backend,
    task_default_queue=settings.celery_queue,
    task_soft_time_limit=settings.task_soft_time_limit,
    task_time_limit=settings.task_time_limit,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=100,
    task_track_started=True,
    task_always_eager=settings.debug,
)
