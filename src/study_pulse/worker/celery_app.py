"""
Celery application: runs the daily reminder batch.

Start a worker and the beat scheduler:

    celery -A study_pulse.worker.celery_app worker --beat --loglevel=info
"""

from celery import Celery
from celery.schedules import crontab

from study_pulse.config import settings

celery_app = Celery(
    "study_pulse",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["study_pulse.worker.tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone=settings.local_timezone,
    enable_utc=True,
    task_track_started=True,
    task_acks_late=True,               # don't ack until task completes
    worker_prefetch_multiplier=1,      # process one task at a time per worker
    beat_schedule={
        "daily-reminders": {
            "task": "process_reminders",
            "schedule": crontab(hour=settings.reminder_cron_hour, minute=settings.reminder_cron_minute),
        },
    },
)
