from study_pulse.engine.scoring import calculate_scores, validate_responses
from study_pulse.engine.schedule import calculate_schedule, get_participant_schedule
from study_pulse.engine.safety import evaluate_lab_safety, evaluate_pro_safety
from study_pulse.engine.submission import handle_submission
from study_pulse.engine.participants import record_lab_result, transition_status
from study_pulse.engine.reminders import process_reminders, reminder_for_day, send_single_reminder
from study_pulse.engine.simulation import advance_participant_time, demo_state, simulate_lab_results

__all__ = [
    "calculate_scores",
    "validate_responses",
    "calculate_schedule",
    "get_participant_schedule",
    "evaluate_lab_safety",
    "evaluate_pro_safety",
    "handle_submission",
    "record_lab_result",
    "transition_status",
    "process_reminders",
    "reminder_for_day",
    "send_single_reminder",
    "advance_participant_time",
    "demo_state",
    "simulate_lab_results",
]
