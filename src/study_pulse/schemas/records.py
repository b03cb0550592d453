"""Persistent records exchanged with the storage contract."""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from study_pulse.schemas.protocol import Protocol
from study_pulse.utils.clock import utcnow


def new_id() -> str:
    return str(uuid.uuid4())


class ParticipantStatus(StrEnum):
    INVITED = "invited"
    REGISTERED = "registered"
    SCREENING = "screening"
    CONSENTED = "consented"
    ENROLLED = "enrolled"
    ACTIVE = "active"
    COMPLETED = "completed"
    WITHDRAWN = "withdrawn"
    INELIGIBLE = "ineligible"


class AlertType(StrEnum):
    TRIGGER_INSTRUMENT = "trigger_instrument"
    COORDINATOR_ALERT = "coordinator_alert"
    URGENT_ALERT = "urgent_alert"
    CRISIS_RESOURCES = "crisis_resources"
    LAB_THRESHOLD = "lab_threshold"


class AlertStatus(StrEnum):
    OPEN = "open"
    ACKNOWLEDGED = "acknowledged"
    RESOLVED = "resolved"


class Channel(StrEnum):
    SMS = "sms"
    EMAIL = "email"


class MessageStatus(StrEnum):
    QUEUED = "queued"
    SENT = "sent"
    FAILED = "failed"


class Record(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Participant(Record):
    id: str = Field(default_factory=new_id)
    study_id: str
    first_name: str | None = None
    email: str | None = None
    phone: str | None = None
    enrolled_at: datetime | None = None
    current_week: int = Field(default=0, ge=0)
    status: ParticipantStatus = ParticipantStatus.REGISTERED


class Study(Record):
    id: str = Field(default_factory=new_id)
    name: str = "Study"
    protocol: Protocol = Field(default_factory=Protocol)
    message_templates: dict[str, Any] = Field(default_factory=dict)


class Submission(Record):
    """One per (participant, timepoint, instrument); a resubmission replaces it."""
    id: str = Field(default_factory=new_id)
    participant_id: str
    timepoint: str
    instrument: str
    responses: dict[str, float]
    scores: dict[str, float]
    duration_seconds: int | None = None
    submitted_at: datetime = Field(default_factory=utcnow)

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.participant_id, self.timepoint, self.instrument)


class LabResult(Record):
    """One per (participant, timepoint, marker); immutable once stored."""
    id: str = Field(default_factory=new_id)
    participant_id: str
    timepoint: str
    marker: str
    value: float
    unit: str = ""
    reference_range: str | None = None
    abnormal_flag: str | None = None  # "L" | "H" | None
    collected_at: datetime = Field(default_factory=utcnow)

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.participant_id, self.timepoint, self.marker)


class Alert(Record):
    id: str = Field(default_factory=new_id)
    participant_id: str
    type: AlertType
    trigger_source: str
    trigger_value: str
    threshold: str
    message: str
    urgency: str | None = None
    status: AlertStatus = AlertStatus.OPEN
    created_at: datetime = Field(default_factory=utcnow)


class Message(Record):
    """Reminder log row; the only record consulted for 'already sent today'."""
    id: str = Field(default_factory=new_id)
    participant_id: str
    type: str = "reminder"
    channel: Channel
    template_id: str  # "{stage}_{timepoint}"
    subject: str | None = None
    body: str
    status: MessageStatus = MessageStatus.QUEUED
    external_id: str | None = None
    error: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    sent_at: datetime | None = None


class FollowUp(Record):
    """An instrument added to a timepoint's required set by a safety rule."""
    participant_id: str
    timepoint: str
    instrument: str
    source_instrument: str
    created_at: datetime = Field(default_factory=utcnow)
