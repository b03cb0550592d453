"""
Safety rule evaluation.

PRO path (``evaluate_pro_safety``), in order:
  1. Fixed clinical rules, always applied:
       phq-2  total >= 3         -> trigger_instrument (phq-9), follow-up required
       phq-9  q9 > 0             -> urgent_alert (1hr) + crisis_resources, regardless of total
       phq-9  total >= 15        -> urgent_alert (4hr)
              else total >= 10   -> coordinator_alert (24hr)
  2. Rules declared on the instrument (``alerts``).
  3. PRO alerts declared under ``safetyMonitoring.proAlerts`` for the instrument.

Lab path (``evaluate_lab_safety``): one lab_threshold alert per declared
threshold whose condition holds. There are no built-in lab rules.

Rules that cannot be evaluated are skipped and logged. Persisting alerts is a
secondary effect: ``persist_alerts`` never raises.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from study_pulse.conditions import evaluate
from study_pulse.logging import log
from study_pulse.schemas.protocol import AlertRule, LabThreshold, ProAlert
from study_pulse.schemas.records import Alert, AlertType
from study_pulse.schemas.results import SafetyAlert, SafetyEvaluation
from study_pulse.storage.base import StudyStore

PHQ2 = "phq-2"
PHQ9 = "phq-9"

CRISIS_RESOURCES = {
    "title": "If you're having thoughts of harming yourself, please reach out for support:",
    "resources": [
        {"name": "National Suicide Prevention Lifeline", "value": "988", "type": "phone"},
        {"name": "Crisis Text Line", "value": "Text HOME to 741741", "type": "text"},
        {"name": "Emergency", "value": "Call 911 or go to your nearest ER", "type": "emergency"},
    ],
    "footer": "A member of our team will also be reaching out to you.",
}

_DEFAULT_MESSAGES = {
    AlertType.TRIGGER_INSTRUMENT: "Follow-up instrument triggered by {instrument}",
    AlertType.COORDINATOR_ALERT: "{instrument} score requires coordinator review",
    AlertType.URGENT_ALERT: "{instrument} score requires urgent attention",
    AlertType.CRISIS_RESOURCES: "Crisis resources displayed to participant",
}


def evaluate_pro_safety(
    instrument_id: str,
    scores: Mapping[str, float],
    answers: Mapping[str, float],
    alert_rules: Iterable[AlertRule] = (),
    pro_alerts: Iterable[ProAlert] = (),
) -> SafetyEvaluation:
    result = SafetyEvaluation()
    total = scores.get("total", 0.0)

    if instrument_id == PHQ2:
        _apply_phq2(total, result)
    elif instrument_id == PHQ9:
        _apply_phq9(total, answers, result)

    for rule in alert_rules:
        if rule.comparison is None:
            log.warning("safety.rule_skipped", instrument=instrument_id, condition=rule.condition)
            continue
        if not evaluate(rule.comparison, scores, answers):
            continue

        alert_type = AlertType(rule.type)
        alert = SafetyAlert(
            type=alert_type,
            condition=rule.condition,
            message=rule.message or _DEFAULT_MESSAGES[alert_type].format(instrument=instrument_id),
            urgency=rule.urgency,
        )
        if alert_type == AlertType.TRIGGER_INSTRUMENT and rule.target:
            alert.target_instrument = rule.target
            result.trigger_follow_up = rule.target
        if alert_type == AlertType.CRISIS_RESOURCES:
            result.show_crisis_resources = True
        result.alerts.append(alert)

    for pro_alert in pro_alerts:
        if pro_alert.comparison is None:
            log.warning("safety.rule_skipped", instrument=instrument_id, condition=pro_alert.condition)
            continue
        if evaluate(pro_alert.comparison, scores, answers):
            result.alerts.append(SafetyAlert(
                type=AlertType.COORDINATOR_ALERT,
                condition=pro_alert.condition,
                message=pro_alert.action or _DEFAULT_MESSAGES[AlertType.COORDINATOR_ALERT].format(
                    instrument=instrument_id,
                ),
            ))

    if result.alerts:
        log.info(
            "safety.alerts_raised",
            instrument=instrument_id,
            total=total,
            alerts=[a.type for a in result.alerts],
            crisis=result.show_crisis_resources,
            follow_up=result.trigger_follow_up,
        )
    return result


def evaluate_lab_safety(
    marker: str,
    value: float,
    thresholds: Iterable[LabThreshold],
    unit: str = "",
) -> list[SafetyAlert]:
    alerts: list[SafetyAlert] = []
    for threshold in thresholds:
        if threshold.marker != marker:
            continue
        if threshold.comparison is None:
            log.warning("safety.lab_threshold_skipped", marker=marker, condition=threshold.threshold)
            continue
        if evaluate(threshold.comparison, {marker: value}):
            reading = f"{value:g} {unit}".strip()
            alerts.append(SafetyAlert(
                type=AlertType.LAB_THRESHOLD,
                condition=threshold.threshold,
                message=f"{marker.replace('_', ' ')} {reading}: {threshold.action}".rstrip(": "),
            ))
    return alerts


def persist_alerts(
    store: StudyStore,
    participant_id: str,
    trigger_source: str,
    trigger_value: float,
    alerts: Iterable[SafetyAlert],
) -> tuple[int, int]:
    """Insert one Alert row per alert. Returns (persisted, failed); never raises."""
    persisted = failed = 0
    for alert in alerts:
        try:
            store.insert_alert(Alert(
                participant_id=participant_id,
                type=alert.type,
                trigger_source=trigger_source,
                trigger_value=f"{trigger_value:g}",
                threshold=alert.condition,
                message=alert.message,
                urgency=alert.urgency,
            ))
            persisted += 1
        except Exception as exc:  # noqa: BLE001
            failed += 1
            log.error(
                "safety.alert_persist_failed",
                participant_id=participant_id,
                alert_type=alert.type,
                error=str(exc),
            )
    return persisted, failed


# ---------------------------------------------------------------------------
# Fixed clinical rules
# ---------------------------------------------------------------------------

def _apply_phq2(total: float, result: SafetyEvaluation) -> None:
    if total >= 3:
        result.alerts.append(SafetyAlert(
            type=AlertType.TRIGGER_INSTRUMENT,
            condition="total >= 3",
            message="PHQ-2 score indicates possible depression. PHQ-9 follow-up triggered.",
            target_instrument=PHQ9,
        ))
        result.trigger_follow_up = PHQ9


def _apply_phq9(total: float, answers: Mapping[str, float], result: SafetyEvaluation) -> None:
    q9 = _suicidal_ideation_answer(answers)
    if q9 > 0:
        result.alerts.append(SafetyAlert(
            type=AlertType.URGENT_ALERT,
            condition="q9 > 0",
            message="Participant reported thoughts of self-harm. Immediate follow-up required.",
            urgency="1hr",
        ))
        result.alerts.append(SafetyAlert(
            type=AlertType.CRISIS_RESOURCES,
            condition="q9 > 0",
            message="Crisis resources displayed to participant.",
        ))
        result.show_crisis_resources = True

    # Independent of the Q9 check above.
    if total >= 15:
        result.alerts.append(SafetyAlert(
            type=AlertType.URGENT_ALERT,
            condition="total >= 15",
            message=f"PHQ-9 score of {total:g} indicates moderately severe depression. Urgent follow-up required.",
            urgency="4hr",
        ))
    elif total >= 10:
        result.alerts.append(SafetyAlert(
            type=AlertType.COORDINATOR_ALERT,
            condition="total >= 10",
            message=f"PHQ-9 score of {total:g} indicates moderate depression. Coordinator review required.",
            urgency="24hr",
        ))


def _suicidal_ideation_answer(answers: Mapping[str, float]) -> float:
    if "q9" in answers:
        return answers["q9"]
    for key, value in answers.items():
        if key.endswith("_q9"):
            return value
    return 0.0
