"""
Time-advance and lab-simulation driver.

Lets an operator walk a participant through the study without waiting for
real time to pass: ``advance_participant_time`` moves the participant clock
forward, ``simulate_lab_results`` manufactures plausible lab values and runs
them through the normal lab ingestion path.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from datetime import datetime

from study_pulse.config import settings
from study_pulse.engine.participants import ACTIVE_STATUSES, record_lab_result
from study_pulse.engine.schedule import get_participant_schedule
from study_pulse.errors import PersistenceError
from study_pulse.logging import log
from study_pulse.schemas.results import AdvanceTimeResult, DemoState, LabSimulationResult
from study_pulse.schemas.schedule import TimepointStatus
from study_pulse.storage.base import StudyStore
from study_pulse.utils.clock import utcnow


@dataclass(frozen=True)
class SimulatedMarker:
    marker: str
    low: float
    high: float
    unit: str
    reference_range: str

    def sample(self, rng: random.Random) -> float:
        return round(rng.uniform(self.low, self.high), 2)


# Post-treatment values inside the therapeutic range.
DEFAULT_LAB_PANEL: tuple[SimulatedMarker, ...] = (
    SimulatedMarker("testosterone_total", 450, 650, "ng/dL", "300-1000"),
    SimulatedMarker("testosterone_free", 10, 25, "pg/mL", "9-30"),
    SimulatedMarker("hematocrit", 42, 48, "%", "38-50"),
    SimulatedMarker("psa", 0.5, 2.5, "ng/mL", "0-4"),
    SimulatedMarker("estradiol", 20, 40, "pg/mL", "10-40"),
)


def advance_participant_time(
    store: StudyStore,
    participant_id: str,
    to_week: int,
    now: datetime | None = None,
) -> AdvanceTimeResult:
    """Move the participant's current week forward and return the recomputed schedule."""
    participant = store.get_participant(participant_id)
    if participant is None:
        return AdvanceTimeResult(success=False, error="Participant not found")

    previous = participant.current_week
    if to_week < 0:
        return AdvanceTimeResult(
            success=False, previous_week=previous, current_week=previous, error="Week cannot be negative",
        )
    if to_week <= previous:
        return AdvanceTimeResult(
            success=False,
            previous_week=previous,
            current_week=previous,
            error="Cannot advance to a past or current week",
        )

    participant.current_week = to_week
    if participant.enrolled_at is None and participant.status in ACTIVE_STATUSES:
        participant.enrolled_at = now or utcnow()

    try:
        store.save_participant(participant)
    except PersistenceError as exc:
        log.error("simulation.advance_failed", participant_id=participant_id, error=str(exc))
        return AdvanceTimeResult(
            success=False,
            previous_week=previous,
            current_week=previous,
            error=f"Failed to update participant: {exc}",
        )

    schedule = get_participant_schedule(store, participant_id, now=now)
    log.info("simulation.time_advanced", participant_id=participant_id, from_week=previous, to_week=to_week)
    return AdvanceTimeResult(
        success=True,
        previous_week=previous,
        current_week=to_week,
        schedule=schedule.timepoints if schedule else None,
    )


def simulate_lab_results(
    store: StudyStore,
    participant_id: str,
    timepoint: str,
    rng: random.Random | None = None,
    now: datetime | None = None,
) -> LabSimulationResult:
    """
    Generate values for the timepoint's scheduled lab markers.

    When the timepoint declares no labs (or is not in the schedule) the whole
    default panel is generated. Markers that already have a result at this
    timepoint are skipped.
    """
    participant = store.get_participant(participant_id)
    if participant is None:
        return LabSimulationResult(success=False, error="Participant not found")

    rng = rng or random.Random()
    study = store.get_study(participant.study_id)
    entry = study.protocol.schedule_entry(timepoint) if study else None
    scheduled = set(entry.labs) if entry and entry.labs else None
    panel = [m for m in DEFAULT_LAB_PANEL if scheduled is None or m.marker in scheduled]

    result = LabSimulationResult(success=True)
    for marker in panel:
        try:
            lab, alerts = record_lab_result(
                store,
                participant_id,
                timepoint,
                marker.marker,
                marker.sample(rng),
                unit=marker.unit,
                reference_range=marker.reference_range,
                now=now,
            )
        except PersistenceError as exc:
            log.warning("simulation.lab_skipped", participant_id=participant_id, marker=marker.marker, error=str(exc))
            continue
        result.lab_ids.append(lab.id)
        result.alerts.extend(a.message for a in alerts)

    log.info(
        "simulation.labs_generated",
        participant_id=participant_id,
        timepoint=timepoint,
        labs=len(result.lab_ids),
        alerts=len(result.alerts),
    )
    return result


def demo_state(store: StudyStore, participant_id: str, now: datetime | None = None) -> DemoState:
    """Which driver actions make sense for the participant right now."""
    participant = store.get_participant(participant_id)
    if participant is None:
        return DemoState()

    study = store.get_study(participant.study_id)
    max_week = (study.protocol.duration_weeks if study else None) or settings.default_duration_weeks

    schedule = get_participant_schedule(store, participant_id, now=now) if study else None
    timepoints = schedule.timepoints if schedule else []

    pending_labs = [tp.timepoint for tp in timepoints if tp.labs and not tp.labs_collected]
    return DemoState(
        current_week=participant.current_week,
        max_week=max_week,
        can_advance=participant.current_week < max_week,
        can_simulate_labs=bool(pending_labs),
        pending_labs=pending_labs,
        due_assessments=[tp.timepoint for tp in timepoints if tp.status == TimepointStatus.DUE],
    )
