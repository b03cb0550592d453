"""Unit tests for the Celery reminder task (executed eagerly, no broker)."""

from unittest.mock import patch

import httpx

from study_pulse.config import settings
from study_pulse.worker.celery_app import celery_app
from study_pulse.worker.tasks import run_reminders

BATCH = {"processed": 3, "sent": 2, "skipped": 1, "errors": 0, "results": []}


def _client(handler) -> httpx.Client:
    return httpx.Client(transport=httpx.MockTransport(handler))


class TestReminderTask:
    def test_registered_on_beat_schedule(self):
        entry = celery_app.conf.beat_schedule["daily-reminders"]
        assert entry["task"] == "process_reminders"
        assert run_reminders.name == "process_reminders"

    def test_triggers_api_batch(self, monkeypatch):
        monkeypatch.setattr(settings, "reminders_api_url", "http://api.test:8000/")
        monkeypatch.setattr(settings, "cron_secret", "s3cret")
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json=BATCH)

        with patch("study_pulse.worker.tasks.get_http_client", return_value=_client(handler)):
            result = run_reminders.apply().get()

        assert result == BATCH
        (request,) = seen
        assert str(request.url) == "http://api.test:8000/reminders/run"
        assert request.headers["Authorization"] == "Bearer s3cret"

    def test_no_auth_header_without_secret(self, monkeypatch):
        monkeypatch.setattr(settings, "cron_secret", None)
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json=BATCH)

        with patch("study_pulse.worker.tasks.get_http_client", return_value=_client(handler)):
            run_reminders.apply().get()
        assert "Authorization" not in seen[0].headers

    def test_api_failure_retried(self):
        client = _client(lambda request: httpx.Response(401, json={"detail": "Unauthorized"}))
        with patch("study_pulse.worker.tasks.get_http_client", return_value=client), \
                patch.object(run_reminders, "retry", side_effect=RuntimeError("retry scheduled")) as mock_retry:
            result = run_reminders.apply()
        assert result.failed()
        kwargs = mock_retry.call_args.kwargs
        assert isinstance(kwargs["exc"], httpx.HTTPStatusError)
        assert kwargs["countdown"] == 300
