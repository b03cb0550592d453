"""
/reminders endpoints

GET  /reminders/run
  Run the reminder batch now (called by a scheduler or manually). When
  CRON_SECRET is configured the caller must send ``Authorization: Bearer <secret>``.

POST /reminders/send
  Send the initial reminder for one participant and timepoint.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Header, HTTPException

from study_pulse.api.deps import get_senders, get_store
from study_pulse.config import settings
from study_pulse.engine.reminders import process_reminders, send_single_reminder
from study_pulse.logging import log
from study_pulse.messaging.senders import Sender
from study_pulse.schemas.records import Channel
from study_pulse.schemas.results import ReminderBatchResult, ReminderResult, SingleReminderRequest
from study_pulse.storage.base import StudyStore

router = APIRouter()


def _check_cron_secret(authorization: str | None = Header(default=None)) -> None:
    if settings.cron_secret and authorization != f"Bearer {settings.cron_secret}":
        raise HTTPException(status_code=401, detail="Unauthorized")


@router.get("/run", response_model=ReminderBatchResult, dependencies=[Depends(_check_cron_secret)])
def run_reminders(
    store: StudyStore = Depends(get_store),
    senders: dict[Channel, Sender] = Depends(get_senders),
) -> ReminderBatchResult:
    log.info("reminders.triggered", source="http")
    return process_reminders(store, senders)


@router.post("/send", response_model=ReminderResult)
def send_reminder(
    body: SingleReminderRequest,
    store: StudyStore = Depends(get_store),
    senders: dict[Channel, Sender] = Depends(get_senders),
) -> ReminderResult:
    result = send_single_reminder(store, body.participant_id, body.timepoint, body.channel, senders=senders)
    if result.error == "Participant not found":
        raise HTTPException(status_code=404, detail=result.error)
    return result
