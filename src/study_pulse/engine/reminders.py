"""
Reminder escalation.

A reminder is owed only on these exact days after a timepoint's due date:

    day  stage     channel
    0    initial   sms
    1    initial   email
    2    followUp  sms
    4    followUp  email
    6    final     sms
    7    final     email

Each (participant, "{stage}_{timepoint}", channel) is sent at most once per
local calendar day. The message log is checked first, then a queued row is
inserted under the store's unique key before the send happens; losing that
insert to a concurrent run counts as "already sent".
"""

from __future__ import annotations

from collections.abc import Mapping
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from jinja2 import TemplateError

from study_pulse.config import settings
from study_pulse.engine.participants import ACTIVE_STATUSES
from study_pulse.engine.schedule import get_participant_schedule
from study_pulse.errors import DuplicateMessageError, StudyPulseError
from study_pulse.logging import log
from study_pulse.messaging.senders import Sender, build_senders
from study_pulse.messaging.templates import build_email, render_text
from study_pulse.schemas.records import Channel, Message, MessageStatus, Participant, Study
from study_pulse.schemas.results import ReminderBatchResult, ReminderResult, SendResult
from study_pulse.schemas.schedule import ScheduleTimepoint, TimepointStatus
from study_pulse.storage.base import StudyStore
from study_pulse.utils.clock import ensure_aware, start_of_local_day, utcnow, whole_days_between


@dataclass(frozen=True)
class ReminderStep:
    stage: str
    channel: Channel


ESCALATION_TABLE: dict[int, ReminderStep] = {
    0: ReminderStep("initial", Channel.SMS),
    1: ReminderStep("initial", Channel.EMAIL),
    2: ReminderStep("followUp", Channel.SMS),
    4: ReminderStep("followUp", Channel.EMAIL),
    6: ReminderStep("final", Channel.SMS),
    7: ReminderStep("final", Channel.EMAIL),
}

DEFAULT_EMAIL_SUBJECT = "Your {{timepoint}} check-in is ready"
DEFAULT_EMAIL_BODY = (
    "Hi {{firstName}},\n\n"
    "It's time for your {{timepoint}} check-in for {{studyName}}.\n\n"
    "This quick survey takes about 5 minutes."
)
DEFAULT_SMS_BODY = "Hi {{firstName}}! Your {{timepoint}} check-in is ready: {{link}}"
CTA_TEXT = "Complete Check-in"


def reminder_for_day(days_since_due: int) -> ReminderStep | None:
    return ESCALATION_TABLE.get(days_since_due)


def template_id(stage: str, timepoint: str) -> str:
    return f"{stage}_{timepoint}"


def format_timepoint(timepoint: str) -> str:
    """``baseline`` -> ``Baseline``, ``week_6`` -> ``Week 6``, ``end_of_study`` -> ``End Of Study``."""
    if timepoint == "baseline":
        return "Baseline"
    lowered = timepoint.lower()
    if lowered.startswith("week"):
        digits = lowered[4:].lstrip("_")
        if digits.isdigit():
            return f"Week {int(digits)}"
    return timepoint.replace("_", " ").title()


def assessment_link(timepoint: str) -> str:
    return f"{settings.app_base_url.rstrip('/')}/study/assessment/{timepoint}"


# ---------------------------------------------------------------------------
# Batch
# ---------------------------------------------------------------------------

def process_reminders(
    store: StudyStore,
    senders: Mapping[Channel, Sender] | None = None,
    now: datetime | None = None,
    workers: int | None = None,
) -> ReminderBatchResult:
    """
    Send every reminder owed today to enrolled and active participants.

    Participants are independent: a failure for one becomes an error result
    and the batch carries on. Order across participants is not defined.
    """
    now = ensure_aware(now or utcnow())
    senders = senders if senders is not None else build_senders()
    workers = workers or settings.reminder_workers

    try:
        participants = store.list_participants(ACTIVE_STATUSES)
    except StudyPulseError as exc:
        log.error("reminders.participants_unavailable", error=str(exc))
        return ReminderBatchResult(errors=1)

    log.info("reminders.batch_started", participants=len(participants), workers=workers)

    def run(participant: Participant) -> list[ReminderResult]:
        return _remind_participant(store, participant, senders, now)

    if workers <= 1 or len(participants) <= 1:
        outcomes = [run(p) for p in participants]
    else:
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="reminders") as pool:
            outcomes = list(pool.map(run, participants))

    batch = ReminderBatchResult(processed=len(participants))
    for results in outcomes:
        for result in results:
            if result.skipped:
                batch.skipped += 1
                continue
            if result.sent:
                batch.sent += 1
            else:
                batch.errors += 1
            batch.results.append(result)

    log.info(
        "reminders.batch_done",
        processed=batch.processed,
        sent=batch.sent,
        skipped=batch.skipped,
        errors=batch.errors,
    )
    return batch


def _remind_participant(
    store: StudyStore,
    participant: Participant,
    senders: Mapping[Channel, Sender],
    now: datetime,
) -> list[ReminderResult]:
    name = participant.first_name or "Unknown"
    try:
        schedule = get_participant_schedule(store, participant.id, now=now)
        if schedule is None:
            return []
        study = store.get_study(participant.study_id)

        results: list[ReminderResult] = []
        for timepoint in schedule.timepoints:
            if timepoint.status not in (TimepointStatus.DUE, TimepointStatus.MISSED):
                continue
            step = reminder_for_day(whole_days_between(timepoint.due_date, schedule.as_of))
            if step is None:
                results.append(ReminderResult(
                    participant_id=participant.id,
                    participant_name=name,
                    timepoint=timepoint.timepoint,
                    sent=False,
                    skipped=True,
                ))
                continue
            results.append(_deliver(store, participant, study, timepoint, step, senders, now))
        return results
    except Exception as exc:  # noqa: BLE001
        log.error("reminders.participant_failed", participant_id=participant.id, error=str(exc))
        return [ReminderResult(participant_id=participant.id, participant_name=name, sent=False, error=str(exc))]


# ---------------------------------------------------------------------------
# Single reminder (manual trigger)
# ---------------------------------------------------------------------------

def send_single_reminder(
    store: StudyStore,
    participant_id: str,
    timepoint: str,
    channel: Channel = Channel.EMAIL,
    senders: Mapping[Channel, Sender] | None = None,
    now: datetime | None = None,
) -> ReminderResult:
    """Send the ``initial`` reminder for *timepoint* as if it were due right now."""
    now = ensure_aware(now or utcnow())
    senders = senders if senders is not None else build_senders()

    participant = store.get_participant(participant_id)
    if participant is None:
        return ReminderResult(
            participant_id=participant_id,
            participant_name="Unknown",
            timepoint=timepoint,
            sent=False,
            error="Participant not found",
        )

    study = store.get_study(participant.study_id)
    entry = study.protocol.schedule_entry(timepoint) if study else None
    assessment = ScheduleTimepoint(
        timepoint=timepoint,
        week=entry.week if entry else 0,
        due_date=now,
        window_start=now,
        window_end=now + timedelta(days=7),
        instruments=list(entry.instruments) if entry else [],
        status=TimepointStatus.DUE,
        days_remaining=7,
    )
    log.info("reminders.manual_send", participant_id=participant_id, timepoint=timepoint, channel=channel)
    return _deliver(store, participant, study, assessment, ReminderStep("initial", Channel(channel)), senders, now)


# ---------------------------------------------------------------------------
# Delivery
# ---------------------------------------------------------------------------

def _deliver(
    store: StudyStore,
    participant: Participant,
    study: Study | None,
    timepoint: ScheduleTimepoint,
    step: ReminderStep,
    senders: Mapping[Channel, Sender],
    now: datetime,
) -> ReminderResult:
    result = ReminderResult(
        participant_id=participant.id,
        participant_name=participant.first_name or "Unknown",
        timepoint=timepoint.timepoint,
        reminder_type=step.stage,
        channel=step.channel,
        sent=False,
    )

    address = participant.email if step.channel == Channel.EMAIL else participant.phone
    if not address:
        result.error = "No email address on file" if step.channel == Channel.EMAIL else "No phone number on file"
        log.warning("reminders.no_contact", participant_id=participant.id, channel=step.channel)
        return result

    tid = template_id(step.stage, timepoint.timepoint)
    since = start_of_local_day(now, settings.tz)
    if store.find_messages(participant.id, tid, step.channel, since):
        log.debug("reminders.already_sent", participant_id=participant.id, template_id=tid, channel=step.channel)
        result.skipped = True
        return result

    variables = {
        "firstName": participant.first_name or "there",
        "studyName": study.name if study else "Study",
        "timepoint": format_timepoint(timepoint.timepoint),
        "link": assessment_link(timepoint.timepoint),
        "daysRemaining": str(timepoint.days_remaining),
    }
    copy = _study_copy(study, step)
    subject, body, html = _render(copy, step.channel, variables, participant.id)

    message = Message(
        participant_id=participant.id,
        channel=step.channel,
        template_id=tid,
        subject=subject,
        body=body,
        created_at=now,
    )
    claimed = True
    try:
        store.insert_message(message)
    except DuplicateMessageError:
        log.info("reminders.claim_lost", participant_id=participant.id, template_id=tid, channel=step.channel)
        result.skipped = True
        return result
    except Exception as exc:  # noqa: BLE001
        claimed = False
        log.error("reminders.message_log_failed", participant_id=participant.id, template_id=tid, error=str(exc))

    sender = senders.get(step.channel)
    if sender is None:
        outcome = SendResult(success=False, error=f"No sender configured for {step.channel}")
    else:
        try:
            outcome = sender.send(address, body, subject=subject, html=html)
        except Exception as exc:  # noqa: BLE001
            log.error("reminders.sender_raised", participant_id=participant.id, channel=step.channel, error=str(exc))
            outcome = SendResult(success=False, error=str(exc) or type(exc).__name__)

    if claimed:
        message.status = MessageStatus.SENT if outcome.success else MessageStatus.FAILED
        message.external_id = outcome.id
        message.error = outcome.error
        message.sent_at = utcnow() if outcome.success else None
        try:
            store.update_message(message)
        except Exception as exc:  # noqa: BLE001
            log.error("reminders.message_update_failed", message_id=message.id, error=str(exc))

    result.sent = outcome.success
    result.error = outcome.error
    log.info(
        "reminders.delivered" if outcome.success else "reminders.delivery_failed",
        participant_id=participant.id,
        template_id=tid,
        channel=step.channel,
        error=outcome.error,
    )
    return result


def _study_copy(study: Study | None, step: ReminderStep) -> Any:
    if study is None:
        return None
    node: Any = study.message_templates
    for key in ("reminders", "assessment", step.stage, step.channel.value):
        if not isinstance(node, Mapping):
            return None
        node = node.get(key)
    return node


def _render(
    copy: Any,
    channel: Channel,
    variables: Mapping[str, str],
    participant_id: str,
) -> tuple[str | None, str, str | None]:
    """Returns (subject, text body, html body). Bad study copy falls back to the defaults."""
    if channel == Channel.SMS:
        source = copy if isinstance(copy, str) and copy else DEFAULT_SMS_BODY
        try:
            return None, render_text(source, variables), None
        except TemplateError as exc:
            log.warning("reminders.template_invalid", participant_id=participant_id, channel=channel, error=str(exc))
            return None, render_text(DEFAULT_SMS_BODY, variables), None

    subject = DEFAULT_EMAIL_SUBJECT
    body = DEFAULT_EMAIL_BODY
    if isinstance(copy, Mapping):
        subject = copy.get("subject") or subject
        body = copy.get("body") or body
    try:
        email = build_email(subject, body, variables, cta_text=CTA_TEXT, cta_link=variables["link"])
    except TemplateError as exc:
        log.warning("reminders.template_invalid", participant_id=participant_id, channel=channel, error=str(exc))
        email = build_email(
            DEFAULT_EMAIL_SUBJECT, DEFAULT_EMAIL_BODY, variables, cta_text=CTA_TEXT, cta_link=variables["link"],
        )
    return email.subject, email.text, email.html
