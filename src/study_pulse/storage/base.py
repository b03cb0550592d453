"""
Storage contract the engine is written against.

Keys:
  Participant  id
  Study        id (carries the read-only protocol)
  Submission   (participant, timepoint, instrument), upsert, last write wins
  LabResult    (participant, timepoint, marker), insert once
  Alert        append only
  Message      unique on (participant, template id, channel, local calendar day)
  FollowUp     (participant, timepoint, instrument)

Implementations raise PersistenceError for failed writes and
DuplicateMessageError when a message key is already taken.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable
from datetime import datetime

from study_pulse.schemas.records import (
    Alert,
    Channel,
    FollowUp,
    LabResult,
    Message,
    Participant,
    ParticipantStatus,
    Study,
    Submission,
)


class StudyStore(ABC):

    # Participants -----------------------------------------------------------

    @abstractmethod
    def get_participant(self, participant_id: str) -> Participant | None: ...

    @abstractmethod
    def list_participants(self, statuses: Iterable[ParticipantStatus] | None = None) -> list[Participant]: ...

    @abstractmethod
    def save_participant(self, participant: Participant) -> Participant: ...

    # Studies ----------------------------------------------------------------

    @abstractmethod
    def get_study(self, study_id: str) -> Study | None: ...

    @abstractmethod
    def save_study(self, study: Study) -> Study: ...

    # Submissions ------------------------------------------------------------

    @abstractmethod
    def upsert_submission(self, submission: Submission) -> Submission: ...

    @abstractmethod
    def list_submissions(self, participant_id: str, timepoint: str | None = None) -> list[Submission]: ...

    # Lab results ------------------------------------------------------------

    @abstractmethod
    def insert_lab_result(self, lab: LabResult) -> LabResult: ...

    @abstractmethod
    def list_lab_results(self, participant_id: str, timepoint: str | None = None) -> list[LabResult]: ...

    # Alerts -----------------------------------------------------------------

    @abstractmethod
    def insert_alert(self, alert: Alert) -> Alert: ...

    @abstractmethod
    def list_alerts(self, participant_id: str | None = None) -> list[Alert]: ...

    # Message log ------------------------------------------------------------

    @abstractmethod
    def insert_message(self, message: Message) -> Message: ...

    @abstractmethod
    def update_message(self, message: Message) -> Message: ...

    @abstractmethod
    def find_messages(
        self,
        participant_id: str,
        template_id: str,
        channel: Channel,
        since: datetime,
    ) -> list[Message]: ...

    # Follow-up instruments --------------------------------------------------

    @abstractmethod
    def record_follow_up(self, follow_up: FollowUp) -> FollowUp: ...

    @abstractmethod
    def list_follow_ups(self, participant_id: str) -> list[FollowUp]: ...
