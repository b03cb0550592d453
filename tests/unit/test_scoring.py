"""Unit tests for submission validation and scoring."""

import pytest

from study_pulse.engine import scoring
from study_pulse.engine.scoring import calculate_scores, register_scoring_method, validate_responses
from study_pulse.errors import ValidationError
from study_pulse.schemas.protocol import Instrument


class TestValidation:
    def test_valid_phq2(self, protocol, answers):
        validate_responses(protocol.instrument("phq-2"), answers(q1=1, q2=2))

    def test_missing_required_question(self, protocol, answers):
        with pytest.raises(ValidationError, match="Required question q2 not answered"):
            validate_responses(protocol.instrument("phq-2"), answers(q1=1))

    def test_single_choice_value_not_an_option(self, protocol, answers):
        with pytest.raises(ValidationError, match="Invalid value for question q1"):
            validate_responses(protocol.instrument("phq-2"), answers(q1=4, q2=0))

    def test_numeric_scale_out_of_range(self, protocol, answers):
        with pytest.raises(ValidationError, match="Value out of range for question level"):
            validate_responses(protocol.instrument("fatigue"), answers(level=11))

    def test_numeric_scale_bounds_inclusive(self, protocol, answers):
        validate_responses(protocol.instrument("fatigue"), answers(level=0))
        validate_responses(protocol.instrument("fatigue"), answers(level=10))

    def test_unknown_question_ignored(self, protocol, answers):
        validate_responses(protocol.instrument("phq-2"), answers(q1=0, q2=0, extra=42))

    def test_optional_question_may_be_omitted(self, protocol, answers):
        validate_responses(protocol.instrument("fatigue"), answers(level=3))

    def test_minimal_mode_rejects_only_empty(self, answers):
        validate_responses(None, answers(anything=999))
        with pytest.raises(ValidationError, match="No responses provided"):
            validate_responses(None, [])


class TestScoring:
    def test_sum_with_echo(self, protocol, answers):
        scores = calculate_scores(protocol.instrument("phq-2"), answers(q1=1, q2=2))
        assert scores == {"total": 3, "q1": 1, "q2": 2}

    def test_average(self, answers):
        instrument = Instrument(id="mood", scoring={"method": "average"})
        assert calculate_scores(instrument, answers(a=1, b=2, c=6))["total"] == 3

    def test_average_of_nothing_is_zero(self):
        instrument = Instrument(id="mood", scoring={"method": "average"})
        assert calculate_scores(instrument, [])["total"] == 0

    def test_custom_falls_back_to_sum(self, answers):
        instrument = Instrument(id="mood", scoring={"method": "custom"})
        assert calculate_scores(instrument, answers(a=1, b=2))["total"] == 3

    def test_minimal_mode_sums(self, answers):
        assert calculate_scores(None, answers(a=2, b=5))["total"] == 7

    def test_answer_named_total_does_not_overwrite_score(self, answers):
        assert calculate_scores(None, answers(total=100, a=1))["total"] == 101

    def test_registered_custom_method(self, answers, monkeypatch):
        monkeypatch.setattr(scoring, "_SCORING_METHODS", dict(scoring._SCORING_METHODS))
        register_scoring_method("custom", lambda values: max(values, default=0))
        instrument = Instrument(id="mood", scoring={"method": "custom"})
        assert calculate_scores(instrument, answers(a=1, b=7, c=3))["total"] == 7
