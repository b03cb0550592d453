"""Injectable collaborators. Tests override these via ``app.dependency_overrides``."""

from __future__ import annotations

from study_pulse.messaging.senders import Sender, build_senders
from study_pulse.schemas.records import Channel
from study_pulse.storage import StudyStore, get_default_store


def get_store() -> StudyStore:
    return get_default_store()


def get_senders() -> dict[Channel, Sender]:
    return build_senders()
