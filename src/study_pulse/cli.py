"""
Simple CLI for working with protocol documents offline.

Usage:
    study-pulse validate path/to/protocol.json
    study-pulse schedule path/to/protocol.json --enrolled-at 2025-01-06T09:00:00+00:00
    study-pulse score path/to/protocol.json phq-9 --responses '{"q1": 2, "q9": 1}'
"""

from __future__ import annotations

import json
import sys
from datetime import datetime
from pathlib import Path

from rich.console import Console
from rich.table import Table

console = Console()


def app(argv: list[str] | None = None) -> None:
    import argparse

    parser = argparse.ArgumentParser(
        prog="study-pulse",
        description="Longitudinal assessment scheduling, scoring and safety rules",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    # validate sub-command
    p_validate = sub.add_parser("validate", help="Load a protocol document and report problems")
    p_validate.add_argument("protocol", type=Path, help="Path to the protocol JSON")
    p_validate.add_argument("--strict", action="store_true", help="Reject the protocol on a malformed condition")

    # schedule sub-command
    p_schedule = sub.add_parser("schedule", help="Print the visit schedule for an enrollment date")
    p_schedule.add_argument("protocol", type=Path, help="Path to the protocol JSON")
    p_schedule.add_argument("--enrolled-at", required=True, help="ISO-8601 enrollment timestamp")
    p_schedule.add_argument("--now", help="ISO-8601 timestamp to evaluate status at (default: now)")

    # score sub-command
    p_score = sub.add_parser("score", help="Validate, score and run safety rules for one instrument")
    p_score.add_argument("protocol", type=Path, help="Path to the protocol JSON")
    p_score.add_argument("instrument", help="Instrument id, e.g. phq-9")
    p_score.add_argument("--responses", required=True, help='JSON object of answers, e.g. \'{"q1": 2}\'')

    args = parser.parse_args(argv)

    if args.command == "validate":
        _cmd_validate(args)
    elif args.command == "schedule":
        _cmd_schedule(args)
    elif args.command == "score":
        _cmd_score(args)


def _load(path: Path, strict: bool | None = None):
    from study_pulse.errors import ProtocolError
    from study_pulse.logging import configure_logging
    from study_pulse.schemas.protocol import load_protocol

    configure_logging()
    try:
        return load_protocol(path.read_text(encoding="utf-8"), strict_conditions=strict)
    except (OSError, ProtocolError) as exc:
        console.print(f"[red]Could not load {path}: {exc}[/red]")
        sys.exit(1)


def _parse_time(value: str, flag: str) -> datetime:
    from study_pulse.utils.clock import ensure_aware

    try:
        return ensure_aware(datetime.fromisoformat(value))
    except ValueError:
        console.print(f"[red]Invalid {flag} timestamp: {value}[/red]")
        sys.exit(1)


def _cmd_validate(args) -> None:
    protocol = _load(args.protocol, strict=args.strict or None)

    table = Table(title=f"Instruments: {args.protocol.name}")
    table.add_column("Instrument", style="bold")
    table.add_column("Questions", justify="right")
    table.add_column("Scoring")
    table.add_column("Alert rules")

    for instrument in protocol.instruments.values():
        rules = ", ".join(
            r.condition if r.comparison else f"[yellow]{r.condition} (skipped)[/yellow]"
            for r in instrument.alerts
        )
        table.add_row(instrument.id, str(len(instrument.questions)), instrument.scoring.method, rules or "-")

    console.print(table)
    console.print(
        f"\n[green]OK[/green] {len(protocol.schedule)} timepoints, "
        f"{len(protocol.safety_monitoring.lab_thresholds)} lab thresholds, "
        f"{len(protocol.safety_monitoring.pro_alerts)} PRO alerts"
    )


def _cmd_schedule(args) -> None:
    from study_pulse.engine.schedule import calculate_schedule

    protocol = _load(args.protocol)
    enrolled_at = _parse_time(args.enrolled_at, "--enrolled-at")
    now = _parse_time(args.now, "--now") if args.now else None

    timepoints = calculate_schedule(enrolled_at, protocol.schedule, [], now=now) or []

    status_style = {"completed": "green", "due": "bold yellow", "missed": "red", "upcoming": "dim"}
    table = Table(title=f"Schedule, enrolled {enrolled_at:%Y-%m-%d}")
    table.add_column("Timepoint", style="bold")
    table.add_column("Week", justify="right")
    table.add_column("Due")
    table.add_column("Window")
    table.add_column("Instruments")
    table.add_column("Labs")
    table.add_column("Status")

    for tp in timepoints:
        style = status_style.get(tp.status.value, "")
        table.add_row(
            tp.timepoint,
            str(tp.week),
            f"{tp.due_date:%Y-%m-%d}",
            f"{tp.window_start:%m-%d} → {tp.window_end:%m-%d}",
            ", ".join(tp.instruments),
            ", ".join(tp.labs) or "-",
            f"[{style}]{tp.status.value}[/{style}]" if style else tp.status.value,
        )

    console.print(table)


def _cmd_score(args) -> None:
    from study_pulse.engine.safety import evaluate_pro_safety
    from study_pulse.engine.scoring import calculate_scores, validate_responses
    from study_pulse.errors import ValidationError
    from study_pulse.schemas.results import ResponseItem

    protocol = _load(args.protocol)
    instrument = protocol.instrument(args.instrument)
    if instrument is None:
        console.print(f"[yellow]Instrument '{args.instrument}' not in protocol; minimal validation only[/yellow]")

    try:
        raw = json.loads(args.responses)
    except json.JSONDecodeError as exc:
        console.print(f"[red]Invalid --responses JSON: {exc}[/red]")
        sys.exit(1)
    if isinstance(raw, dict):
        raw = [{"questionId": k, "value": v} for k, v in raw.items()]
    responses = [ResponseItem.model_validate(item) for item in raw]

    try:
        validate_responses(instrument, responses)
    except ValidationError as exc:
        console.print(f"[red]Rejected:[/red] {exc}")
        sys.exit(1)

    scores = calculate_scores(instrument, responses)
    answers = {r.question_id: r.value for r in responses}
    safety = evaluate_pro_safety(
        args.instrument,
        scores,
        answers,
        alert_rules=instrument.alerts if instrument else (),
        pro_alerts=protocol.pro_alerts_for(args.instrument),
    )

    console.print(f"\nTotal score: [bold]{scores['total']:g}[/bold]")

    if safety.alerts:
        table = Table(title="Safety alerts")
        table.add_column("Type", style="bold red")
        table.add_column("Condition")
        table.add_column("Urgency")
        table.add_column("Message")
        for alert in safety.alerts:
            table.add_row(alert.type.value, alert.condition, alert.urgency or "-", alert.message)
        console.print(table)
    else:
        console.print("[green]No safety alerts[/green]")

    if safety.trigger_follow_up:
        console.print(f"Follow-up instrument required: [bold]{safety.trigger_follow_up}[/bold]")
    if safety.show_crisis_resources:
        console.print("[bold red]Crisis resources would be shown to the participant.[/bold red]")
