"""
/participants endpoints

GET /participants/{participant_id}/schedule
  Every timepoint with its window and status, computed on read.

GET /participants/{participant_id}/schedule/summary
  Counts per status, the next open timepoints, percent complete and the
  participant's study week.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from study_pulse.api.deps import get_store
from study_pulse.engine.schedule import get_participant_schedule, schedule_summary
from study_pulse.errors import NotFoundError
from study_pulse.schemas.schedule import ParticipantSchedule, ScheduleSummary
from study_pulse.storage.base import StudyStore

router = APIRouter()


def _load(store: StudyStore, participant_id: str) -> ParticipantSchedule:
    try:
        schedule = get_participant_schedule(store, participant_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    if schedule is None:
        raise HTTPException(status_code=409, detail="Participant is not enrolled yet.")
    return schedule


@router.get("/{participant_id}/schedule", response_model=ParticipantSchedule)
def get_schedule(participant_id: str, store: StudyStore = Depends(get_store)) -> ParticipantSchedule:
    return _load(store, participant_id)


@router.get("/{participant_id}/schedule/summary", response_model=ScheduleSummary)
def get_schedule_summary(participant_id: str, store: StudyStore = Depends(get_store)) -> ScheduleSummary:
    schedule = _load(store, participant_id)
    return schedule_summary(schedule.timepoints, enrolled_at=schedule.enrolled_at, as_of=schedule.as_of)
