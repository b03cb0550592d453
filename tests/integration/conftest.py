"""
Integration test configuration.

The API runs against a fresh InMemoryStore and the FakeSender pair from the
root conftest, wired in through ``app.dependency_overrides``. Nothing leaves
the process: no email API, no SMS transport, no Redis.

Running only the API tests:
    pytest tests/integration -m integration
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from study_pulse.api.deps import get_senders, get_store
from study_pulse.api.main import app
from study_pulse.storage.memory import InMemoryStore


# ---------------------------------------------------------------------------
# Pytest fixtures
# ---------------------------------------------------------------------------

@pytest.fixture()
def api_store() -> InMemoryStore:
    return InMemoryStore(tz=timezone.utc)


@pytest.fixture()
def client(api_store, senders):
    app.dependency_overrides[get_store] = lambda: api_store
    app.dependency_overrides[get_senders] = lambda: senders
    try:
        with TestClient(app) as c:
            yield c
    finally:
        app.dependency_overrides.clear()


@pytest.fixture()
def seeded(client, protocol_doc) -> dict:
    """
    Register the fixture study and one active participant enrolled an hour ago.

    The API works on wall-clock time, so enrolment is relative to now: the
    baseline timepoint is due and owes its day-0 SMS.
    """
    resp = client.post("/admin/studies", json={"id": "study-1", "name": "Vitality Study", "protocol": protocol_doc})
    assert resp.status_code == 201, resp.text

    enrolled_at = datetime.now(timezone.utc) - timedelta(hours=1)
    resp = client.post("/admin/participants", json={
        "id": "p-1",
        "studyId": "study-1",
        "firstName": "Alex",
        "email": "alex@example.org",
        "phone": "+15555550123",
        "enrolledAt": enrolled_at.isoformat(),
        "status": "active",
    })
    assert resp.status_code == 201, resp.text
    return resp.json()
