"""
Schedule calculator.

Turns an enrollment date plus the protocol schedule into per-timepoint due
windows and status:

    due_date     = enrolled_at + week * 7 days
    window_start = due_date - floor(window_days / 2) days
    window_end   = due_date + ceil(window_days / 2) days

Status, in priority order:
    completed  every required instrument has a submission (window ignored)
    missed     now > window_end
    due        window_start <= now <= window_end
    upcoming   otherwise

``calculate_schedule`` is pure; the store-backed helpers below only gather its
inputs. Nothing here persists a status.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from datetime import datetime, timedelta

from study_pulse.errors import NotFoundError
from study_pulse.logging import log
from study_pulse.schemas.protocol import ScheduleEntry
from study_pulse.schemas.records import Participant, Submission
from study_pulse.schemas.schedule import (
    ParticipantSchedule,
    ScheduleSummary,
    ScheduleTimepoint,
    TimepointStatus,
)
from study_pulse.storage.base import StudyStore
from study_pulse.utils.clock import days_until, ensure_aware, utcnow, whole_days_between


def calculate_schedule(
    enrolled_at: datetime | None,
    schedule: Iterable[ScheduleEntry],
    submissions: Iterable[Submission],
    lab_timepoints: Iterable[str] = (),
    now: datetime | None = None,
    follow_ups: Mapping[str, Iterable[str]] | None = None,
) -> list[ScheduleTimepoint] | None:
    """
    Compute the status of every schedule entry.

    Args:
        follow_ups: extra required instruments per timepoint, injected by safety rules.

    Returns:
        The ordered timepoints, or None when the participant is not enrolled yet.
    """
    if enrolled_at is None:
        return None

    enrolled_at = ensure_aware(enrolled_at)
    now = ensure_aware(now or utcnow())
    follow_ups = follow_ups or {}

    submitted: dict[str, set[str]] = {}
    for submission in submissions:
        submitted.setdefault(submission.timepoint, set()).add(submission.instrument)
    labs_present = set(lab_timepoints)

    timepoints: list[ScheduleTimepoint] = []
    for entry in schedule:
        due_date = enrolled_at + timedelta(weeks=entry.week)
        window_start = due_date - timedelta(days=entry.window_days // 2)
        window_end = due_date + timedelta(days=math.ceil(entry.window_days / 2))

        required = list(entry.instruments)
        for extra in follow_ups.get(entry.timepoint, ()):
            if extra not in required:
                required.append(extra)

        done = submitted.get(entry.timepoint, set())
        completed = [i for i in required if i in done]
        missing = [i for i in required if i not in done]

        if not missing:
            status = TimepointStatus.COMPLETED
        elif now > window_end:
            status = TimepointStatus.MISSED
        elif window_start <= now:
            status = TimepointStatus.DUE
        else:
            status = TimepointStatus.UPCOMING

        timepoints.append(ScheduleTimepoint(
            timepoint=entry.timepoint,
            week=entry.week,
            due_date=due_date,
            window_start=window_start,
            window_end=window_end,
            instruments=required,
            labs=list(entry.labs),
            status=status,
            completed_instruments=completed,
            missing_instruments=missing,
            labs_collected=entry.timepoint in labs_present,
            days_remaining=days_until(window_end, now),
        ))

    return timepoints


def participant_clock(participant: Participant, now: datetime | None = None) -> datetime:
    """
    The participant's effective "now".

    The time-advance driver moves ``current_week`` forward; the schedule then
    behaves as if that many weeks have elapsed since enrollment, unless real
    time is already further along.
    """
    now = ensure_aware(now or utcnow())
    if participant.enrolled_at is None:
        return now
    simulated = ensure_aware(participant.enrolled_at) + timedelta(weeks=participant.current_week)
    return max(now, simulated)


def get_participant_schedule(
    store: StudyStore,
    participant_id: str,
    now: datetime | None = None,
) -> ParticipantSchedule | None:
    """
    Load everything the calculator needs for *participant_id* and run it.

    Returns None for a participant that is not enrolled yet.

    Raises:
        NotFoundError: unknown participant or study.
    """
    participant = store.get_participant(participant_id)
    if participant is None:
        raise NotFoundError(f"Participant {participant_id} not found")
    if participant.enrolled_at is None:
        return None

    study = store.get_study(participant.study_id)
    if study is None:
        raise NotFoundError(f"Study {participant.study_id} not found")

    follow_ups: dict[str, list[str]] = {}
    for follow_up in store.list_follow_ups(participant_id):
        follow_ups.setdefault(follow_up.timepoint, []).append(follow_up.instrument)

    as_of = participant_clock(participant, now)
    timepoints = calculate_schedule(
        participant.enrolled_at,
        study.protocol.schedule,
        store.list_submissions(participant_id),
        lab_timepoints={lab.timepoint for lab in store.list_lab_results(participant_id)},
        now=as_of,
        follow_ups=follow_ups,
    ) or []

    log.debug("schedule.calculated", participant_id=participant_id, timepoints=len(timepoints))
    return ParticipantSchedule(
        participant_id=participant_id,
        enrolled_at=ensure_aware(participant.enrolled_at),
        current_week=participant.current_week,
        as_of=as_of,
        timepoints=timepoints,
    )


# ---------------------------------------------------------------------------
# Views over a computed schedule
# ---------------------------------------------------------------------------

def due_assessments(timepoints: Iterable[ScheduleTimepoint]) -> list[ScheduleTimepoint]:
    return [tp for tp in timepoints if tp.status == TimepointStatus.DUE]


def upcoming_assessments(timepoints: Iterable[ScheduleTimepoint], limit: int = 3) -> list[ScheduleTimepoint]:
    pending = [tp for tp in timepoints if tp.status in (TimepointStatus.UPCOMING, TimepointStatus.DUE)]
    return pending[:limit]


def completion_percentage(timepoints: Iterable[ScheduleTimepoint]) -> int:
    timepoints = list(timepoints)
    total = sum(len(tp.instruments) for tp in timepoints)
    if total == 0:
        return 0
    done = sum(len(tp.completed_instruments) for tp in timepoints)
    return round(done / total * 100)


def schedule_summary(
    timepoints: Iterable[ScheduleTimepoint],
    enrolled_at: datetime | None = None,
    as_of: datetime | None = None,
) -> ScheduleSummary:
    """Counts per status plus the next few open timepoints. ``study_week`` needs *enrolled_at*."""
    timepoints = list(timepoints)

    def count(status: TimepointStatus) -> int:
        return sum(1 for tp in timepoints if tp.status == status)

    next_due = next(
        (tp for tp in timepoints if tp.status in (TimepointStatus.DUE, TimepointStatus.UPCOMING)),
        None,
    )
    return ScheduleSummary(
        total_timepoints=len(timepoints),
        completed_timepoints=count(TimepointStatus.COMPLETED),
        due_timepoints=count(TimepointStatus.DUE),
        missed_timepoints=count(TimepointStatus.MISSED),
        upcoming_timepoints=count(TimepointStatus.UPCOMING),
        next_due=next_due,
        upcoming=upcoming_assessments(timepoints),
        percent_complete=completion_percentage(timepoints),
        study_week=calculate_current_week(enrolled_at, as_of) if enrolled_at else None,
    )


def calculate_current_week(enrolled_at: datetime, now: datetime | None = None) -> int:
    return whole_days_between(enrolled_at, now or utcnow()) // 7


def generate_default_schedule(duration_weeks: int, instrument_ids: list[str]) -> list[ScheduleEntry]:
    """Fallback schedule at fixed intervals for protocols that ship without one."""
    entries = [ScheduleEntry(timepoint="baseline", week=0, instruments=instrument_ids, window_days=3)]

    milestones = [
        (4, 2, instrument_ids[:2] or instrument_ids, 3),
        (8, 4, instrument_ids, 5),
        (12, 8, instrument_ids, 5),
        (16, 12, instrument_ids, 7),
        (20, 16, instrument_ids, 7),
        (26, 20, instrument_ids, 7),
    ]
    for min_duration, week, instruments, window in milestones:
        if duration_weeks >= min_duration:
            entries.append(ScheduleEntry(
                timepoint=f"week_{week}", week=week, instruments=instruments, window_days=window,
            ))

    if duration_weeks > 4 and all(e.week != duration_weeks for e in entries):
        entries.append(ScheduleEntry(
            timepoint=f"week_{duration_weeks}", week=duration_weeks, instruments=instrument_ids, window_days=7,
        ))
    return entries
