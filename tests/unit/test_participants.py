"""Unit tests for participant lifecycle and lab ingestion."""

from datetime import datetime, timezone

import pytest

from study_pulse.engine.participants import (
    abnormal_flag,
    parse_reference_range,
    record_lab_result,
    transition_status,
)
from study_pulse.errors import InvalidTransitionError, NotFoundError, PersistenceError
from study_pulse.schemas.records import AlertType, Participant, ParticipantStatus

S = ParticipantStatus


class TestTransitions:
    @pytest.fixture()
    def newcomer(self, store):
        store.save_participant(Participant(id="p-new", study_id="study-1", status=S.INVITED))
        return "p-new"

    def test_full_path_to_active(self, store, newcomer):
        now = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)
        for status in (S.REGISTERED, S.SCREENING, S.CONSENTED, S.ENROLLED, S.ACTIVE):
            transition_status(store, newcomer, status, now=now)
        participant = store.get_participant(newcomer)
        assert participant.status == S.ACTIVE
        assert participant.enrolled_at == now

    def test_enrolling_keeps_existing_timestamp(self, store, enrolled_at):
        store.save_participant(Participant(
            id="p-c", study_id="study-1", status=S.CONSENTED, enrolled_at=enrolled_at,
        ))
        assert transition_status(store, "p-c", S.ENROLLED).enrolled_at == enrolled_at

    def test_skipping_a_step_rejected(self, store, newcomer):
        with pytest.raises(InvalidTransitionError):
            transition_status(store, newcomer, S.ENROLLED)
        assert store.get_participant(newcomer).status == S.INVITED

    @pytest.mark.parametrize("terminal", [S.COMPLETED, S.WITHDRAWN, S.INELIGIBLE])
    def test_terminal_states_are_final(self, store, terminal):
        store.save_participant(Participant(id="p-t", study_id="study-1", status=terminal))
        with pytest.raises(InvalidTransitionError):
            transition_status(store, "p-t", S.ACTIVE)

    def test_withdraw_from_active(self, store):
        assert transition_status(store, "p-1", "withdrawn").status == S.WITHDRAWN

    def test_unknown_participant(self, store):
        with pytest.raises(NotFoundError):
            transition_status(store, "ghost", S.ACTIVE)


class TestReferenceRanges:
    @pytest.mark.parametrize("raw,expected", [
        ("38-50", (38.0, 50.0)),
        (" 0.5-4.0 ", (0.5, 4.0)),
        ("", None),
        (None, None),
        ("<5", None),
        ("low-high", None),
    ])
    def test_parse(self, raw, expected):
        assert parse_reference_range(raw) == expected

    def test_flags(self):
        assert abnormal_flag(37, "38-50") == "L"
        assert abnormal_flag(51, "38-50") == "H"
        assert abnormal_flag(38, "38-50") is None
        assert abnormal_flag(50, "38-50") is None
        assert abnormal_flag(999, None) is None


class TestRecordLabResult:
    def test_stores_row_with_flag(self, store):
        lab, alerts = record_lab_result(store, "p-1", "baseline", "psa", 1.2, unit="ng/mL", reference_range="0-4")
        assert alerts == []
        assert lab.abnormal_flag is None
        assert store.list_lab_results("p-1", "baseline") == [lab]

    def test_threshold_breach_writes_alert(self, store):
        _, alerts = record_lab_result(store, "p-1", "week_12", "hematocrit", 55, unit="%", reference_range="38-50")
        assert [a.message for a in alerts] == ["hematocrit 55 %: Consider dose reduction or phlebotomy"]
        (row,) = store.list_alerts("p-1")
        assert row.type == AlertType.LAB_THRESHOLD
        assert row.trigger_source == "hematocrit"
        assert row.trigger_value == "55"
        assert row.threshold == "hematocrit >= 54"

    def test_boundary_is_strict_for_greater_than(self, store):
        _, alerts = record_lab_result(store, "p-1", "baseline", "psa", 4)
        assert alerts == []

    def test_same_marker_twice_rejected(self, store):
        record_lab_result(store, "p-1", "baseline", "psa", 1.0)
        with pytest.raises(PersistenceError):
            record_lab_result(store, "p-1", "baseline", "psa", 2.0)
        assert len(store.list_lab_results("p-1")) == 1

    def test_unknown_participant(self, store):
        with pytest.raises(NotFoundError):
            record_lab_result(store, "ghost", "baseline", "psa", 1.0)
