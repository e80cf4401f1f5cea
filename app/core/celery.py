"""
Celery configuration for background tasks
"""
from celery import Celery
from celery.schedules import crontab
import logging

from app.core.config import settings

logger = logging.getLogger(__name__)

celery_app = Celery(
    "billing",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=[
        "app.modules.milestones.tasks",
        "app.modules.email.tasks"
    ]
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone=settings.SCHEDULER_TIMEZONE,
    enable_utc=True,
    task_track_started=True,
    task_time_limit=30 * 60,  # 30 minutes
    task_soft_time_limit=25 * 60,  # 25 minutes
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=1000,

    # Result backend settings
    result_expires=3600,  # 1 hour

    task_routes={
        "app.modules.milestones.tasks.*": {"queue": "milestones"},
        "app.modules.email.tasks.*": {"queue": "email"},
    },

    beat_schedule={
        "process-milestone-invoices": {
            "task": "app.modules.milestones.tasks.process_milestone_invoices_task",
            "schedule": crontab(
                hour=settings.MILESTONE_INVOICE_HOUR,
                minute=settings.MILESTONE_INVOICE_MINUTE
            ),
        },
    }
)

if __name__ == "__main__":
    celery_app.start()
