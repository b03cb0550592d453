"""Derived schedule views. Never persisted: always recomputed from inputs."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class TimepointStatus(StrEnum):
    UPCOMING = "upcoming"
    DUE = "due"
    MISSED = "missed"      # window closed without every required instrument (overdue)
    COMPLETED = "completed"


class _View(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ScheduleTimepoint(_View):
    timepoint: str
    week: int
    due_date: datetime
    window_start: datetime
    window_end: datetime
    instruments: list[str]
    labs: list[str] = Field(default_factory=list)
    status: TimepointStatus
    completed_instruments: list[str] = Field(default_factory=list)
    missing_instruments: list[str] = Field(default_factory=list)
    labs_collected: bool = False
    days_remaining: int = 0


class ParticipantSchedule(_View):
    participant_id: str
    enrolled_at: datetime
    current_week: int
    as_of: datetime
    timepoints: list[ScheduleTimepoint]


class ScheduleSummary(_View):
    total_timepoints: int = 0
    completed_timepoints: int = 0
    due_timepoints: int = 0
    missed_timepoints: int = 0
    upcoming_timepoints: int = 0
    next_due: ScheduleTimepoint | None = None
    upcoming: list[ScheduleTimepoint] = Field(default_factory=list)
    percent_complete: int = 0
    study_week: int | None = None
