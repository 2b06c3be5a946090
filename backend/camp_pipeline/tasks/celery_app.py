"""Celery application configuration and beat schedule."""

from celery import Celery
from celery.schedules import crontab

from camp_pipeline.config import get_settings

settings = get_settings()

celery_app = Celery(
    "camps",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=[
        "camp_pipeline.tasks.scrape_tasks",
        "camp_pipeline.tasks.maintenance_tasks",
    ],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="America/Los_Angeles",
    task_track_started=True,
    task_time_limit=settings.extraction_timeout_seconds + 60,
    task_soft_time_limit=settings.extraction_timeout_seconds,
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
)

celery_app.conf.beat_schedule = {
    "dispatch-due-scrapes": {
        "task": "camp_pipeline.tasks.scrape_tasks.dispatch_due_scrapes",
        "schedule": crontab(minute="*/15"),
    },
    "fail-timed-out-jobs": {
        "task": "camp_pipeline.tasks.maintenance_tasks.fail_timed_out_jobs",
        "schedule": crontab(minute="*/5"),
    },
    "deduplicate-organizations": {
        "task": "camp_pipeline.tasks.maintenance_tasks.deduplicate",
        "schedule": crontab(minute=0, hour=3),
        "args": ("organizations",),
    },
    "deduplicate-locations": {
        "task": "camp_pipeline.tasks.maintenance_tasks.deduplicate",
        "schedule": crontab(minute=30, hour=3),
        "args": ("locations",),
    },
    "deduplicate-camps": {
        "task": "camp_pipeline.tasks.maintenance_tasks.deduplicate",
        "schedule": crontab(minute=0, hour=4),
        "args": ("camps",),
    },
}
