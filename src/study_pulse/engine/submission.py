"""
PRO submission handling.

validate -> score -> save -> evaluate safety -> save alerts -> record follow-up

Steps run strictly in order. The submission write is the primary effect: if
it fails the request fails. Alert and follow-up writes are secondary: their
failures are logged and counted in the result but never undo the submission.
"""

from __future__ import annotations

from datetime import datetime

from study_pulse.engine.safety import CRISIS_RESOURCES, evaluate_pro_safety, persist_alerts
from study_pulse.engine.scoring import calculate_scores, validate_responses
from study_pulse.errors import StudyPulseError, ValidationError
from study_pulse.logging import log
from study_pulse.schemas.records import FollowUp, Submission
from study_pulse.schemas.results import SubmissionRequest, SubmissionResult
from study_pulse.storage.base import StudyStore
from study_pulse.utils.clock import utcnow


def handle_submission(
    store: StudyStore,
    request: SubmissionRequest,
    now: datetime | None = None,
) -> SubmissionResult:
    """Process one questionnaire submission and report a single verdict."""
    try:
        return _handle(store, request, now or utcnow())
    except Exception as exc:  # noqa: BLE001
        log.error(
            "submission.unexpected_error",
            participant_id=request.participant_id,
            instrument=request.instrument_id,
            error=str(exc),
        )
        return SubmissionResult(success=False, error="An unexpected error occurred")


def _handle(store: StudyStore, request: SubmissionRequest, now: datetime) -> SubmissionResult:
    participant = store.get_participant(request.participant_id)
    if participant is None:
        return SubmissionResult(success=False, error="Participant not found")

    study = store.get_study(participant.study_id)
    if study is None:
        return SubmissionResult(success=False, error="Study not found")

    protocol = study.protocol
    instrument = protocol.instrument(request.instrument_id)
    if instrument is None:
        log.warning(
            "submission.instrument_not_in_protocol",
            instrument=request.instrument_id,
            study_id=study.id,
            mode="minimal_validation",
        )

    try:
        validate_responses(instrument, request.responses)
    except ValidationError as exc:
        log.info("submission.rejected", participant_id=participant.id, reason=str(exc))
        return SubmissionResult(success=False, error=str(exc))

    scores = calculate_scores(instrument, request.responses)
    answers = {r.question_id: r.value for r in request.responses}

    try:
        submission = store.upsert_submission(Submission(
            participant_id=participant.id,
            timepoint=request.timepoint,
            instrument=request.instrument_id,
            responses=answers,
            scores=scores,
            duration_seconds=request.duration_seconds,
            submitted_at=now,
        ))
    except StudyPulseError as exc:
        log.error("submission.save_failed", participant_id=participant.id, error=str(exc))
        return SubmissionResult(success=False, error="Failed to save submission")

    log.info(
        "submission.saved",
        participant_id=participant.id,
        timepoint=request.timepoint,
        instrument=request.instrument_id,
        total=scores["total"],
    )

    safety = evaluate_pro_safety(
        request.instrument_id,
        scores,
        answers,
        alert_rules=instrument.alerts if instrument else (),
        pro_alerts=protocol.pro_alerts_for(request.instrument_id),
    )
    persisted, failed = persist_alerts(
        store, participant.id, request.instrument_id, scores["total"], safety.alerts,
    )

    if safety.trigger_follow_up:
        _record_follow_up(store, participant.id, request.timepoint, request.instrument_id, safety.trigger_follow_up)

    return SubmissionResult(
        success=True,
        submission_id=submission.id,
        scores=scores,
        safety=safety,
        alerts_persisted=persisted,
        alerts_failed=failed,
        crisis_resources=CRISIS_RESOURCES if safety.show_crisis_resources else None,
    )


def _record_follow_up(
    store: StudyStore,
    participant_id: str,
    timepoint: str,
    source_instrument: str,
    target: str,
) -> None:
    try:
        store.record_follow_up(FollowUp(
            participant_id=participant_id,
            timepoint=timepoint,
            instrument=target,
            source_instrument=source_instrument,
        ))
        log.info("submission.follow_up_required", participant_id=participant_id, timepoint=timepoint, instrument=target)
    except Exception as exc:  # noqa: BLE001
        log.error("submission.follow_up_failed", participant_id=participant_id, instrument=target, error=str(exc))
