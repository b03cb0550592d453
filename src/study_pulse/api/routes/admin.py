"""
/admin endpoints (operator and demo tooling)

POST /admin/studies                      register a study and its protocol document
                                         (a protocol without a schedule gets the default one)
POST /admin/participants                 register a participant
POST /admin/participants/{id}/status     move a participant through the lifecycle
POST /admin/labs                         record one lab value
POST /admin/advance-time                 move a participant's current week forward
POST /admin/simulate-labs                generate lab values for a timepoint
GET  /admin/demo-state/{participant_id}  which driver actions are available
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from study_pulse.api.deps import get_store
from study_pulse.config import settings
from study_pulse.engine.participants import record_lab_result, transition_status
from study_pulse.engine.schedule import generate_default_schedule
from study_pulse.engine.simulation import advance_participant_time, demo_state, simulate_lab_results
from study_pulse.errors import InvalidTransitionError, NotFoundError, PersistenceError, ProtocolError
from study_pulse.logging import log
from study_pulse.schemas.protocol import load_protocol
from study_pulse.schemas.records import Participant, ParticipantStatus, Study, new_id
from study_pulse.schemas.results import (
    AdvanceTimeRequest,
    AdvanceTimeResult,
    DemoState,
    LabSimulationRequest,
    LabSimulationResult,
    SafetyAlert,
)
from study_pulse.storage.base import StudyStore

router = APIRouter()


class _Body(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class StudyCreate(_Body):
    id: str = Field(default_factory=new_id)
    name: str = "Study"
    protocol: dict[str, Any]
    message_templates: dict[str, Any] = Field(default_factory=dict)


class StudyCreated(_Body):
    id: str
    name: str
    instruments: list[str]
    timepoints: list[str]
    default_schedule: bool = False


class StatusChange(_Body):
    status: ParticipantStatus


class LabResultCreate(_Body):
    participant_id: str
    timepoint: str
    marker: str
    value: float
    unit: str = ""
    reference_range: str | None = None


class LabResultCreated(_Body):
    id: str
    abnormal_flag: str | None = None
    alerts: list[SafetyAlert] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Seeding
# ---------------------------------------------------------------------------

@router.post("/studies", response_model=StudyCreated, status_code=status.HTTP_201_CREATED)
def create_study(body: StudyCreate, store: StudyStore = Depends(get_store)) -> StudyCreated:
    try:
        protocol = load_protocol(body.protocol)
    except ProtocolError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc

    generated = not protocol.schedule and bool(protocol.instruments)
    if generated:
        duration = protocol.duration_weeks or settings.default_duration_weeks
        protocol.schedule = generate_default_schedule(duration, list(protocol.instruments))
        log.info("admin.default_schedule", study_id=body.id, weeks=duration, timepoints=len(protocol.schedule))

    study = store.save_study(Study(
        id=body.id, name=body.name, protocol=protocol, message_templates=body.message_templates,
    ))
    log.info("admin.study_created", study_id=study.id)
    return StudyCreated(
        id=study.id,
        name=study.name,
        instruments=list(protocol.instruments),
        timepoints=[e.timepoint for e in protocol.schedule],
        default_schedule=generated,
    )


@router.post("/participants", response_model=Participant, status_code=status.HTTP_201_CREATED)
def create_participant(body: Participant, store: StudyStore = Depends(get_store)) -> Participant:
    if store.get_study(body.study_id) is None:
        raise HTTPException(status_code=404, detail=f"Study '{body.study_id}' not found.")
    participant = store.save_participant(body)
    log.info("admin.participant_created", participant_id=participant.id, status=participant.status)
    return participant


@router.post("/participants/{participant_id}/status", response_model=Participant)
def change_status(
    participant_id: str,
    body: StatusChange,
    store: StudyStore = Depends(get_store),
) -> Participant:
    try:
        return transition_status(store, participant_id, body.status)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except InvalidTransitionError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc


@router.post("/labs", response_model=LabResultCreated, status_code=status.HTTP_201_CREATED)
def create_lab_result(body: LabResultCreate, store: StudyStore = Depends(get_store)) -> LabResultCreated:
    try:
        lab, alerts = record_lab_result(
            store,
            body.participant_id,
            body.timepoint,
            body.marker,
            body.value,
            unit=body.unit,
            reference_range=body.reference_range,
        )
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except PersistenceError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return LabResultCreated(id=lab.id, abnormal_flag=lab.abnormal_flag, alerts=alerts)


# ---------------------------------------------------------------------------
# Time-advance / lab simulation
# ---------------------------------------------------------------------------

@router.post("/advance-time", response_model=AdvanceTimeResult)
def advance_time(body: AdvanceTimeRequest, store: StudyStore = Depends(get_store)) -> AdvanceTimeResult:
    log.info("admin.advance_time", participant_id=body.participant_id, to_week=body.to_week)
    result = advance_participant_time(store, body.participant_id, body.to_week)
    if not result.success:
        code = 404 if result.error == "Participant not found" else 400
        raise HTTPException(status_code=code, detail=result.error)
    return result


@router.post("/simulate-labs", response_model=LabSimulationResult)
def simulate_labs(body: LabSimulationRequest, store: StudyStore = Depends(get_store)) -> LabSimulationResult:
    result = simulate_lab_results(store, body.participant_id, body.timepoint)
    if not result.success:
        raise HTTPException(status_code=404, detail=result.error)
    return result


@router.get("/demo-state/{participant_id}", response_model=DemoState)
def get_demo_state(participant_id: str, store: StudyStore = Depends(get_store)) -> DemoState:
    if store.get_participant(participant_id) is None:
        raise HTTPException(status_code=404, detail=f"Participant '{participant_id}' not found.")
    return demo_state(store, participant_id)
