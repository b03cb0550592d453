"""Unit tests for the offline CLI."""

import json

import pytest

from study_pulse.cli import app


@pytest.fixture()
def protocol_file(tmp_path, protocol_doc):
    path = tmp_path / "protocol.json"
    path.write_text(json.dumps(protocol_doc), encoding="utf-8")
    return path


class TestValidate:
    def test_reports_counts(self, protocol_file, capsys):
        app(["validate", str(protocol_file)])
        out = capsys.readouterr().out
        assert "3 timepoints" in out
        assert "2 lab thresholds" in out

    def test_missing_file_exits(self, tmp_path):
        with pytest.raises(SystemExit) as exc:
            app(["validate", str(tmp_path / "nope.json")])
        assert exc.value.code == 1

    def test_malformed_condition_skipped_unless_strict(self, tmp_path, capsys):
        path = tmp_path / "bad.json"
        path.write_text(json.dumps({
            "instruments": [{"id": "mood", "alerts": [{"condition": "total ~ 3", "type": "urgent_alert"}]}],
        }), encoding="utf-8")
        app(["validate", str(path)])
        assert "total ~ 3 (skipped)" in capsys.readouterr().out
        with pytest.raises(SystemExit):
            app(["validate", str(path), "--strict"])


class TestSchedule:
    def test_prints_timepoints(self, protocol_file, capsys):
        app([
            "schedule", str(protocol_file),
            "--enrolled-at", "2025-01-06T09:00:00+00:00",
            "--now", "2025-01-06T10:00:00+00:00",
        ])
        out = capsys.readouterr().out
        assert "week_12" in out
        assert "due" in out

    def test_bad_timestamp_exits(self, protocol_file):
        with pytest.raises(SystemExit):
            app(["schedule", str(protocol_file), "--enrolled-at", "yesterday"])


class TestScore:
    def test_total_and_follow_up(self, protocol_file, capsys):
        app(["score", str(protocol_file), "phq-2", "--responses", '{"q1": 2, "q2": 2}'])
        out = capsys.readouterr().out
        assert "Total score: 4" in out
        assert "phq-9" in out

    def test_rejected_responses_exit(self, protocol_file, capsys):
        with pytest.raises(SystemExit):
            app(["score", str(protocol_file), "phq-2", "--responses", '{"q1": 2}'])
        assert "Required question q2 not answered" in capsys.readouterr().out
