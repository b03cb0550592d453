"""Thread-safe in-memory StudyStore (single process; replace with a database in production)."""

from __future__ import annotations

import threading
from collections.abc import Iterable
from datetime import date, datetime, tzinfo

from study_pulse.config import settings
from study_pulse.errors import DuplicateMessageError, NotFoundError, PersistenceError
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
from study_pulse.storage.base import StudyStore
from study_pulse.utils.clock import ensure_aware


class InMemoryStore(StudyStore):
    def __init__(self, tz: tzinfo | None = None) -> None:
        self._tz = tz or settings.tz
        self._lock = threading.RLock()
        self._participants: dict[str, Participant] = {}
        self._studies: dict[str, Study] = {}
        self._submissions: dict[tuple[str, str, str], Submission] = {}
        self._labs: dict[tuple[str, str, str], LabResult] = {}
        self._alerts: list[Alert] = []
        self._messages: dict[str, Message] = {}
        self._message_keys: dict[tuple[str, str, str, date], str] = {}
        self._follow_ups: dict[tuple[str, str, str], FollowUp] = {}

    # Participants -----------------------------------------------------------

    def get_participant(self, participant_id: str) -> Participant | None:
        with self._lock:
            participant = self._participants.get(participant_id)
            return participant.model_copy() if participant else None

    def list_participants(self, statuses: Iterable[ParticipantStatus] | None = None) -> list[Participant]:
        wanted = set(statuses) if statuses is not None else None
        with self._lock:
            return [
                p.model_copy()
                for p in self._participants.values()
                if wanted is None or p.status in wanted
            ]

    def save_participant(self, participant: Participant) -> Participant:
        with self._lock:
            self._participants[participant.id] = participant.model_copy()
        return participant

    # Studies ----------------------------------------------------------------

    def get_study(self, study_id: str) -> Study | None:
        with self._lock:
            return self._studies.get(study_id)

    def save_study(self, study: Study) -> Study:
        with self._lock:
            self._studies[study.id] = study
        return study

    # Submissions ------------------------------------------------------------

    def upsert_submission(self, submission: Submission) -> Submission:
        with self._lock:
            if submission.participant_id not in self._participants:
                raise NotFoundError(f"Participant {submission.participant_id} not found")
            existing = self._submissions.get(submission.key)
            if existing is not None:
                submission = submission.model_copy(update={"id": existing.id})
            self._submissions[submission.key] = submission
        return submission

    def list_submissions(self, participant_id: str, timepoint: str | None = None) -> list[Submission]:
        with self._lock:
            return [
                s for s in self._submissions.values()
                if s.participant_id == participant_id and (timepoint is None or s.timepoint == timepoint)
            ]

    # Lab results ------------------------------------------------------------

    def insert_lab_result(self, lab: LabResult) -> LabResult:
        with self._lock:
            if lab.key in self._labs:
                raise PersistenceError(
                    f"Lab result for {lab.marker} at {lab.timepoint} already recorded for {lab.participant_id}"
                )
            self._labs[lab.key] = lab
        return lab

    def list_lab_results(self, participant_id: str, timepoint: str | None = None) -> list[LabResult]:
        with self._lock:
            return [
                lab for lab in self._labs.values()
                if lab.participant_id == participant_id and (timepoint is None or lab.timepoint == timepoint)
            ]

    # Alerts -----------------------------------------------------------------

    def insert_alert(self, alert: Alert) -> Alert:
        with self._lock:
            self._alerts.append(alert)
        return alert

    def list_alerts(self, participant_id: str | None = None) -> list[Alert]:
        with self._lock:
            return [a for a in self._alerts if participant_id is None or a.participant_id == participant_id]

    # Message log ------------------------------------------------------------

    def _message_key(self, message: Message) -> tuple[str, str, str, date]:
        day = ensure_aware(message.created_at).astimezone(self._tz).date()
        return (message.participant_id, message.template_id, message.channel, day)

    def insert_message(self, message: Message) -> Message:
        key = self._message_key(message)
        with self._lock:
            if key in self._message_keys:
                raise DuplicateMessageError(
                    f"{message.template_id}/{message.channel} already logged for {message.participant_id} on {key[3]}"
                )
            self._message_keys[key] = message.id
            self._messages[message.id] = message
        return message

    def update_message(self, message: Message) -> Message:
        with self._lock:
            if message.id not in self._messages:
                raise NotFoundError(f"Message {message.id} not found")
            self._messages[message.id] = message
        return message

    def find_messages(
        self,
        participant_id: str,
        template_id: str,
        channel: Channel,
        since: datetime,
    ) -> list[Message]:
        since = ensure_aware(since)
        with self._lock:
            return [
                m for m in self._messages.values()
                if m.participant_id == participant_id
                and m.template_id == template_id
                and m.channel == channel
                and ensure_aware(m.created_at) >= since
            ]

    def list_messages(self, participant_id: str | None = None) -> list[Message]:
        with self._lock:
            return [m for m in self._messages.values() if participant_id is None or m.participant_id == participant_id]

    # Follow-up instruments --------------------------------------------------

    def record_follow_up(self, follow_up: FollowUp) -> FollowUp:
        key = (follow_up.participant_id, follow_up.timepoint, follow_up.instrument)
        with self._lock:
            self._follow_ups.setdefault(key, follow_up)
        return follow_up

    def list_follow_ups(self, participant_id: str) -> list[FollowUp]:
        with self._lock:
            return [f for f in self._follow_ups.values() if f.participant_id == participant_id]
