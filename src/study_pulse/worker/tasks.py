"""
Celery tasks for scheduled reminder processing.

The batch runs inside the API process, which owns the store. The beat task
triggers it over HTTP through ``GET /reminders/run`` and returns the batch
counts the API reports.
"""

from __future__ import annotations

import httpx

from study_pulse.config import settings
from study_pulse.logging import configure_logging, log
from study_pulse.utils.http_client import get_http_client
from study_pulse.worker.celery_app import celery_app

configure_logging()


def _run_url() -> str:
    return f"{settings.reminders_api_url.rstrip('/')}/reminders/run"


@celery_app.task(bind=True, name="process_reminders", max_retries=2)
def run_reminders(self) -> dict:  # type: ignore[override]
    """
    Trigger one reminder batch on the API.

    Per-participant failures are part of the returned counts; only a failure
    to reach the API (or a non-2xx answer) is retried.

    Returns:
        dict: Serialised ReminderBatchResult (JSON-compatible).
    """
    headers = {"Authorization": f"Bearer {settings.cron_secret}"} if settings.cron_secret else {}
    log.info("task.process_reminders.start", url=_run_url())
    try:
        response = get_http_client().get(_run_url(), headers=headers, timeout=settings.reminder_run_timeout_seconds)
        response.raise_for_status()
    except httpx.HTTPError as exc:
        log.error("task.process_reminders.error", error=str(exc))
        raise self.retry(exc=exc, countdown=300) from exc
    result = response.json()
    log.info("task.process_reminders.done", sent=result.get("sent"), errors=result.get("errors"))
    return result
