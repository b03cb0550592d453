from study_pulse.schemas.protocol import (
    AlertRule,
    Instrument,
    LabThreshold,
    ProAlert,
    Protocol,
    Question,
    ScheduleEntry,
    load_protocol,
)
from study_pulse.schemas.records import (
    Alert,
    AlertType,
    Channel,
    FollowUp,
    LabResult,
    Message,
    MessageStatus,
    Participant,
    ParticipantStatus,
    Study,
    Submission,
)
from study_pulse.schemas.schedule import ParticipantSchedule, ScheduleTimepoint, TimepointStatus

__all__ = [
    "AlertRule",
    "Instrument",
    "LabThreshold",
    "ProAlert",
    "Protocol",
    "Question",
    "ScheduleEntry",
    "load_protocol",
    "Alert",
    "AlertType",
    "Channel",
    "FollowUp",
    "LabResult",
    "Message",
    "MessageStatus",
    "Participant",
    "ParticipantStatus",
    "Study",
    "Submission",
    "ParticipantSchedule",
    "ScheduleTimepoint",
    "TimepointStatus",
]
