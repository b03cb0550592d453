"""
Participant lifecycle and lab-result ingestion.

    invited -> registered -> screening -> consented -> enrolled -> active -> completed
    screening -> ineligible
    any non-terminal state -> withdrawn
"""

from __future__ import annotations

from datetime import datetime

from study_pulse.engine.safety import evaluate_lab_safety, persist_alerts
from study_pulse.errors import InvalidTransitionError, NotFoundError
from study_pulse.logging import log
from study_pulse.schemas.records import LabResult, Participant, ParticipantStatus
from study_pulse.schemas.results import SafetyAlert
from study_pulse.storage.base import StudyStore
from study_pulse.utils.clock import utcnow

S = ParticipantStatus

ALLOWED_TRANSITIONS: dict[ParticipantStatus, frozenset[ParticipantStatus]] = {
    S.INVITED: frozenset({S.REGISTERED, S.WITHDRAWN}),
    S.REGISTERED: frozenset({S.SCREENING, S.WITHDRAWN}),
    S.SCREENING: frozenset({S.CONSENTED, S.INELIGIBLE, S.WITHDRAWN}),
    S.CONSENTED: frozenset({S.ENROLLED, S.WITHDRAWN}),
    S.ENROLLED: frozenset({S.ACTIVE, S.COMPLETED, S.WITHDRAWN}),
    S.ACTIVE: frozenset({S.COMPLETED, S.WITHDRAWN}),
    S.COMPLETED: frozenset(),
    S.WITHDRAWN: frozenset(),
    S.INELIGIBLE: frozenset(),
}

# Participants the reminder batch and time-advance driver act on.
ACTIVE_STATUSES = frozenset({S.ENROLLED, S.ACTIVE})


def transition_status(
    store: StudyStore,
    participant_id: str,
    new_status: ParticipantStatus,
    now: datetime | None = None,
) -> Participant:
    """
    Move a participant to *new_status*.

    Entering ``enrolled`` stamps ``enrolled_at`` when it is not set yet.

    Raises:
        NotFoundError: unknown participant.
        InvalidTransitionError: the move is not in ``ALLOWED_TRANSITIONS``.
    """
    participant = store.get_participant(participant_id)
    if participant is None:
        raise NotFoundError(f"Participant {participant_id} not found")

    new_status = ParticipantStatus(new_status)
    if new_status not in ALLOWED_TRANSITIONS[participant.status]:
        raise InvalidTransitionError(
            f"Cannot move participant from {participant.status} to {new_status}"
        )

    previous = participant.status
    participant.status = new_status
    if new_status == S.ENROLLED and participant.enrolled_at is None:
        participant.enrolled_at = now or utcnow()

    store.save_participant(participant)
    log.info("participant.status_changed", participant_id=participant_id, previous=previous, status=new_status)
    return participant


# ---------------------------------------------------------------------------
# Lab results
# ---------------------------------------------------------------------------

def parse_reference_range(reference_range: str | None) -> tuple[float, float] | None:
    """Parse ``"min-max"`` into floats; anything else yields None."""
    if not reference_range:
        return None
    low, sep, high = reference_range.strip().partition("-")
    if not sep:
        return None
    try:
        return float(low), float(high)
    except ValueError:
        return None


def abnormal_flag(value: float, reference_range: str | None) -> str | None:
    bounds = parse_reference_range(reference_range)
    if bounds is None:
        return None
    low, high = bounds
    if value < low:
        return "L"
    if value > high:
        return "H"
    return None


def record_lab_result(
    store: StudyStore,
    participant_id: str,
    timepoint: str,
    marker: str,
    value: float,
    unit: str = "",
    reference_range: str | None = None,
    now: datetime | None = None,
) -> tuple[LabResult, list[SafetyAlert]]:
    """
    Store one lab value and run the protocol's lab thresholds against it.

    Alert rows are written best-effort; the lab row is the primary write.

    Raises:
        NotFoundError: unknown participant.
        PersistenceError: a result for (participant, timepoint, marker) already exists.
    """
    participant = store.get_participant(participant_id)
    if participant is None:
        raise NotFoundError(f"Participant {participant_id} not found")

    lab = store.insert_lab_result(LabResult(
        participant_id=participant_id,
        timepoint=timepoint,
        marker=marker,
        value=value,
        unit=unit,
        reference_range=reference_range,
        abnormal_flag=abnormal_flag(value, reference_range),
        collected_at=now or utcnow(),
    ))

    study = store.get_study(participant.study_id)
    thresholds = study.protocol.lab_thresholds_for(marker) if study else []
    alerts = evaluate_lab_safety(marker, value, thresholds, unit=unit)
    if alerts:
        persist_alerts(store, participant_id, marker, value, alerts)

    log.info(
        "labs.recorded",
        participant_id=participant_id,
        timepoint=timepoint,
        marker=marker,
        flag=lab.abnormal_flag,
        alerts=len(alerts),
    )
    return lab, alerts

