"""Unit tests for safety rule evaluation."""

from unittest.mock import MagicMock

from study_pulse.engine.safety import evaluate_lab_safety, evaluate_pro_safety, persist_alerts
from study_pulse.errors import PersistenceError
from study_pulse.schemas.protocol import AlertRule, LabThreshold, ProAlert, load_protocol
from study_pulse.schemas.records import AlertType
from study_pulse.schemas.results import SafetyAlert


def _types(evaluation):
    return [a.type for a in evaluation.alerts]


def _scores(**answers):
    return {"total": sum(answers.values()), **answers}


class TestPhq2:
    def test_total_three_triggers_phq9(self):
        result = evaluate_pro_safety("phq-2", _scores(q1=1, q2=2), {"q1": 1, "q2": 2})
        assert _types(result) == [AlertType.TRIGGER_INSTRUMENT]
        assert result.alerts[0].target_instrument == "phq-9"
        assert result.trigger_follow_up == "phq-9"
        assert result.show_crisis_resources is False

    def test_total_two_triggers_nothing(self):
        result = evaluate_pro_safety("phq-2", _scores(q1=1, q2=1), {"q1": 1, "q2": 1})
        assert result.alerts == []
        assert result.trigger_follow_up is None


class TestPhq9:
    def test_q9_positive_low_total(self):
        answers = {"q1": 1, "q2": 1, "q3": 1, "q9": 1}
        result = evaluate_pro_safety("phq-9", _scores(**answers), answers)
        assert _types(result) == [AlertType.URGENT_ALERT, AlertType.CRISIS_RESOURCES]
        assert result.alerts[0].urgency == "1hr"
        assert result.show_crisis_resources is True

    def test_moderate_total_without_q9(self):
        answers = {"q1": 3, "q2": 3, "q3": 3, "q4": 3, "q9": 0}
        result = evaluate_pro_safety("phq-9", _scores(**answers), answers)
        assert _types(result) == [AlertType.COORDINATOR_ALERT]
        assert result.alerts[0].urgency == "24hr"
        assert result.show_crisis_resources is False

    def test_severe_total_with_q9_fires_both_checks(self):
        answers = {"q1": 3, "q2": 3, "q3": 3, "q4": 3, "q5": 2, "q9": 2}
        result = evaluate_pro_safety("phq-9", _scores(**answers), answers)
        assert _types(result) == [AlertType.URGENT_ALERT, AlertType.CRISIS_RESOURCES, AlertType.URGENT_ALERT]
        assert [a.urgency for a in result.alerts] == ["1hr", None, "4hr"]

    def test_total_exactly_fifteen_is_urgent_not_coordinator(self):
        answers = {"q1": 3, "q2": 3, "q3": 3, "q4": 3, "q5": 3, "q9": 0}
        result = evaluate_pro_safety("phq-9", _scores(**answers), answers)
        assert _types(result) == [AlertType.URGENT_ALERT]
        assert result.alerts[0].urgency == "4hr"

    def test_prefixed_q9(self):
        answers = {"phq9_q1": 0, "phq9_q9": 3}
        result = evaluate_pro_safety("phq-9", _scores(**answers), answers)
        assert result.show_crisis_resources is True

    def test_other_instruments_have_no_fixed_rules(self):
        answers = {"q1": 3, "q9": 3}
        assert evaluate_pro_safety("gad-7", _scores(**answers), answers).alerts == []


class TestDeclaredRules:
    def _rules(self, *rules):
        protocol = load_protocol({"instruments": [{"id": "mood", "alerts": list(rules)}]})
        return protocol.instrument("mood").alerts

    def test_rule_fires_after_fixed_rules(self):
        rules = self._rules({"condition": "total >= 3", "type": "coordinator_alert", "message": "Check in"})
        result = evaluate_pro_safety("phq-2", _scores(q1=2, q2=2), {"q1": 2, "q2": 2}, alert_rules=rules)
        assert _types(result) == [AlertType.TRIGGER_INSTRUMENT, AlertType.COORDINATOR_ALERT]
        assert result.alerts[1].message == "Check in"
        assert result.alerts[1].condition == "total >= 3"

    def test_trigger_rule_sets_follow_up(self):
        rules = self._rules({"condition": "sleep_q3 >= 2", "type": "trigger_instrument", "target": "isi"})
        result = evaluate_pro_safety("sleep", _scores(sleep_q3=2), {"sleep_q3": 2}, alert_rules=rules)
        assert result.trigger_follow_up == "isi"
        assert result.alerts[0].target_instrument == "isi"

    def test_crisis_rule_sets_flag(self):
        rules = self._rules({"condition": "harm > 0", "type": "crisis_resources"})
        result = evaluate_pro_safety("mood", _scores(harm=1), {"harm": 1}, alert_rules=rules)
        assert result.show_crisis_resources is True

    def test_unresolved_identifier_skipped(self):
        rules = self._rules({"condition": "missing > 0", "type": "urgent_alert"})
        result = evaluate_pro_safety("mood", _scores(a=5), {"a": 5}, alert_rules=rules)
        assert result.alerts == []

    def test_uncompiled_rule_skipped(self):
        rule = AlertRule.model_validate(
            {"condition": "total >>> 1", "type": "urgent_alert"}, context={"strict_conditions": False},
        )
        assert rule.comparison is None
        result = evaluate_pro_safety("mood", _scores(a=5), {"a": 5}, alert_rules=[rule])
        assert result.alerts == []

    def test_pro_alerts_become_coordinator_alerts(self):
        pro_alert = ProAlert(instrument="fatigue", condition="total >= 9", action="Call participant")
        result = evaluate_pro_safety("fatigue", _scores(level=9), {"level": 9}, pro_alerts=[pro_alert])
        assert _types(result) == [AlertType.COORDINATOR_ALERT]
        assert result.alerts[0].message == "Call participant"


class TestLabSafety:
    def _thresholds(self):
        return [
            LabThreshold(marker="hematocrit", threshold="hematocrit >= 54", action="Reduce dose"),
            LabThreshold(marker="psa", threshold="psa > 4", action="Refer"),
        ]

    def test_threshold_fires_with_exact_condition_text(self):
        alerts = evaluate_lab_safety("hematocrit", 55, self._thresholds(), unit="%")
        assert len(alerts) == 1
        assert alerts[0].type == AlertType.LAB_THRESHOLD
        assert alerts[0].condition == "hematocrit >= 54"
        assert alerts[0].message == "hematocrit 55 %: Reduce dose"

    def test_below_threshold_fires_nothing(self):
        assert evaluate_lab_safety("hematocrit", 53, self._thresholds()) == []

    def test_other_markers_ignored(self):
        assert evaluate_lab_safety("estradiol", 500, self._thresholds()) == []

    def test_no_builtin_lab_rules(self):
        assert evaluate_lab_safety("hematocrit", 70, []) == []


class TestPersistAlerts:
    def _alerts(self):
        return [
            SafetyAlert(type=AlertType.URGENT_ALERT, condition="q9 > 0", message="a", urgency="1hr"),
            SafetyAlert(type=AlertType.CRISIS_RESOURCES, condition="q9 > 0", message="b"),
        ]

    def test_rows_written(self, store):
        assert persist_alerts(store, "p-1", "phq-9", 4, self._alerts()) == (2, 0)
        rows = store.list_alerts("p-1")
        assert [r.type for r in rows] == [AlertType.URGENT_ALERT, AlertType.CRISIS_RESOURCES]
        assert rows[0].trigger_value == "4"
        assert rows[0].threshold == "q9 > 0"
        assert rows[0].status == "open"

    def test_failures_counted_not_raised(self):
        failing = MagicMock()
        failing.insert_alert.side_effect = [PersistenceError("db down"), MagicMock()]
        assert persist_alerts(failing, "p-1", "phq-9", 4, self._alerts()) == (1, 1)
