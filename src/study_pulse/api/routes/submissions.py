"""
/submissions endpoints

POST /submissions
  Validate, score and store one instrument submission, then run safety rules.
  The response carries scores, safety signals and, when needed, the crisis
  resources block.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from study_pulse.api.deps import get_store
from study_pulse.engine.submission import handle_submission
from study_pulse.logging import log
from study_pulse.schemas.results import SubmissionRequest, SubmissionResult
from study_pulse.storage.base import StudyStore

router = APIRouter()

_ERROR_STATUS = {
    "Participant not found": 404,
    "Study not found": 404,
    "Failed to save submission": 500,
    "An unexpected error occurred": 500,
}


@router.post("", response_model=SubmissionResult, response_model_exclude_none=True)
def submit(request: SubmissionRequest, store: StudyStore = Depends(get_store)) -> SubmissionResult:
    log.info("submissions.received", participant_id=request.participant_id, instrument=request.instrument_id)
    result = handle_submission(store, request)
    if not result.success:
        raise HTTPException(status_code=_ERROR_STATUS.get(result.error or "", 400), detail=result.error)
    return result
