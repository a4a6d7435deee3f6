"""Celery application for WB Desk scheduled jobs.

Redis is both broker and result backend. Celery beat triggers the two daily
jobs at fixed local times in the configured timezone.
"""

from celery import Celery
from celery.schedules import crontab

from app.config import get_settings

settings = get_settings()

celery_app = Celery(
    "wb_desk",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=[
        "app.tasks.deadlines",
        "app.tasks.retention",
    ],
)

celery_app.conf.update(
    # Task settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone=settings.jobs_timezone,
    enable_utc=True,
    # Task execution settings
    task_time_limit=3600,
    task_soft_time_limit=3500,
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    # Result settings
    result_expires=86400,
    # Routing
    task_default_queue="default",
    # Worker settings
    worker_prefetch_multiplier=1,
    worker_concurrency=1,
    # Logging
    worker_hijack_root_logger=False,
    worker_log_format="[%(asctime)s: %(levelname)s/%(processName)s] %(message)s",
    worker_task_log_format="[%(asctime)s: %(levelname)s/%(processName)s][%(task_name)s(%(task_id)s)] %(message)s",
    # Schedules
    beat_schedule={
        "wb-deadline-reminders": {
            "task": "wb.deadline_reminders",
            "schedule": crontab(
                hour=settings.wb_deadlines_hour,
                minute=settings.wb_deadlines_minute,
            ),
        },
        "wb-retention-purge": {
            "task": "wb.retention_purge",
            "schedule": crontab(
                hour=settings.wb_retention_hour,
                minute=settings.wb_retention_minute,
            ),
        },
    },
)

