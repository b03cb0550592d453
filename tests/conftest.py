"""
Root test configuration.

Shared fixtures for every test layer.

Test fixtures
─────────────
protocol_doc   →  tests/fixtures/phq_protocol.json
                  Twelve-week protocol: PHQ-2 / PHQ-9 cascade, a numeric-scale
                  fatigue rating with a declared alert rule, three timepoints
                  (baseline, week_4, week_12), hematocrit / PSA lab thresholds
                  and one PRO alert.

store          →  InMemoryStore seeded with the study and one active
                  participant ("p-1", enrolled ENROLLED_AT).

senders        →  FakeSender per channel; records every call.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

import pytest

from study_pulse.schemas.protocol import Protocol, load_protocol
from study_pulse.schemas.records import Channel, Participant, ParticipantStatus, Study
from study_pulse.schemas.results import ResponseItem, SendResult
from study_pulse.storage.memory import InMemoryStore

# ---------------------------------------------------------------------------
# Constants (used by all test layers)
# ---------------------------------------------------------------------------

FIXTURES_DIR = Path(__file__).parent / "fixtures"
PROTOCOL_JSON = FIXTURES_DIR / "phq_protocol.json"

ENROLLED_AT = datetime(2025, 1, 6, 9, 0, tzinfo=timezone.utc)
STUDY_ID = "study-1"
PARTICIPANT_ID = "p-1"


def responses(**values: float) -> list[ResponseItem]:
    return [ResponseItem(question_id=k, value=v) for k, v in values.items()]


def phq9(q9: float = 0, **overrides: float) -> list[ResponseItem]:
    """PHQ-9 answers: every item 0 unless overridden, item 9 as given."""
    values = {f"q{i}": 0.0 for i in range(1, 9)}
    values.update(overrides)
    values["q9"] = q9
    return responses(**values)


class FakeSender:
    def __init__(self, channel: Channel, success: bool = True, error: str | None = None) -> None:
        self.channel = channel
        self.success = success
        self.error = error
        self.calls: list[dict] = []

    def send(self, to: str, body: str, subject: str | None = None, html: str | None = None) -> SendResult:
        self.calls.append({"to": to, "body": body, "subject": subject, "html": html})
        if self.success:
            return SendResult(success=True, id=f"{self.channel}-{len(self.calls)}")
        return SendResult(success=False, error=self.error or "send failed")


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(scope="session")
def protocol_doc() -> dict:
    """Raw protocol document as a JSON-compatible dict."""
    assert PROTOCOL_JSON.exists(), f"Protocol fixture missing: {PROTOCOL_JSON}"
    return json.loads(PROTOCOL_JSON.read_text(encoding="utf-8"))


@pytest.fixture()
def protocol(protocol_doc) -> Protocol:
    return load_protocol(protocol_doc)


@pytest.fixture()
def study(protocol) -> Study:
    return Study(id=STUDY_ID, name="Vitality Study", protocol=protocol)


@pytest.fixture()
def participant() -> Participant:
    return Participant(
        id=PARTICIPANT_ID,
        study_id=STUDY_ID,
        first_name="Alex",
        email="alex@example.org",
        phone="+15555550123",
        enrolled_at=ENROLLED_AT,
        status=ParticipantStatus.ACTIVE,
    )


@pytest.fixture()
def store(study, participant) -> InMemoryStore:
    s = InMemoryStore(tz=timezone.utc)
    s.save_study(study)
    s.save_participant(participant)
    return s


@pytest.fixture()
def senders() -> dict[Channel, FakeSender]:
    return {Channel.EMAIL: FakeSender(Channel.EMAIL), Channel.SMS: FakeSender(Channel.SMS)}


@pytest.fixture()
def enrolled_at() -> datetime:
    return ENROLLED_AT


@pytest.fixture()
def answers():
    """Build a response list from keyword arguments: ``answers(q1=2, q2=1)``."""
    return responses


@pytest.fixture()
def phq9_answers():
    """Build PHQ-9 responses: ``phq9_answers(q9=1, q1=3)``."""
    return phq9


@pytest.fixture()
def fake_sender():
    """The FakeSender class, for tests that need a failing sender."""
    return FakeSender
