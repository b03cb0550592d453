"""Request and result shapes for the engine's operations."""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from study_pulse.schemas.records import AlertType, Channel
from study_pulse.schemas.schedule import ScheduleTimepoint


class _Shape(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Submissions & safety
# ---------------------------------------------------------------------------

class ResponseItem(_Shape):
    question_id: str = Field(validation_alias=AliasChoices("questionId", "question_id", "id"))
    value: float


class SubmissionRequest(_Shape):
    participant_id: str = Field(min_length=1)
    timepoint: str = Field(min_length=1)
    instrument_id: str = Field(min_length=1)
    responses: list[ResponseItem]
    duration_seconds: int | None = Field(default=None, ge=0)


class SafetyAlert(_Shape):
    type: AlertType
    condition: str
    message: str
    urgency: str | None = None
    target_instrument: str | None = None


class SafetyEvaluation(_Shape):
    alerts: list[SafetyAlert] = Field(default_factory=list)
    show_crisis_resources: bool = False
    trigger_follow_up: str | None = None


class SubmissionResult(_Shape):
    success: bool
    submission_id: str | None = None
    scores: dict[str, float] | None = None
    safety: SafetyEvaluation | None = None
    alerts_persisted: int = 0
    alerts_failed: int = 0
    crisis_resources: dict[str, Any] | None = None
    error: str | None = None


# ---------------------------------------------------------------------------
# Time-advance / lab simulation
# ---------------------------------------------------------------------------

class AdvanceTimeRequest(_Shape):
    participant_id: str = Field(min_length=1)
    to_week: int


class AdvanceTimeResult(_Shape):
    success: bool
    previous_week: int = 0
    current_week: int = 0
    schedule: list[ScheduleTimepoint] | None = None
    error: str | None = None


class LabSimulationRequest(_Shape):
    participant_id: str = Field(min_length=1)
    timepoint: str = Field(min_length=1)


class LabSimulationResult(_Shape):
    success: bool
    lab_ids: list[str] = Field(default_factory=list)
    alerts: list[str] = Field(default_factory=list)
    error: str | None = None


class DemoState(_Shape):
    current_week: int = 0
    max_week: int = 0
    can_advance: bool = False
    can_simulate_labs: bool = False
    pending_labs: list[str] = Field(default_factory=list)
    due_assessments: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Messaging & reminders
# ---------------------------------------------------------------------------

class SendResult(_Shape):
    success: bool
    id: str | None = None
    error: str | None = None


class ReminderResult(_Shape):
    participant_id: str
    participant_name: str
    timepoint: str | None = None
    reminder_type: str | None = None  # escalation stage
    channel: Channel | None = None
    sent: bool
    skipped: bool = False
    error: str | None = None


class ReminderBatchResult(_Shape):
    processed: int = 0
    sent: int = 0
    skipped: int = 0
    errors: int = 0
    results: list[ReminderResult] = Field(default_factory=list)


class SingleReminderRequest(_Shape):
    participant_id: str = Field(min_length=1)
    timepoint: str = Field(min_length=1)
    channel: Channel = Channel.EMAIL
