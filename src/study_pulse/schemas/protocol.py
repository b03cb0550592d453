"""
Schemas for the protocol document consumed by the engine.

The document is JSON-shaped and usually camelCase (``windowDays``,
``safetyMonitoring``); snake_case field names are accepted as well.
Parsing happens once, at ingestion:
  - ``instruments`` may be an array or a map; it is normalised into a map keyed by id.
  - every rule condition is compiled into a ``Comparison``. A malformed condition
    is logged and its rule kept uncompiled, so it is skipped at evaluation time.
    With strict conditions enabled it rejects the whole protocol instead.
"""

from __future__ import annotations

import json
from typing import Any, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    ValidationInfo,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from study_pulse.conditions import Comparison, parse_condition
from study_pulse.config import settings
from study_pulse.errors import ConditionSyntaxError, ProtocolError
from study_pulse.logging import log

QuestionType = Literal[
    "single_choice",
    "multiple_choice",
    "numeric_scale",
    "likert_scale",
    "visual_analog_scale",
    "number_input",
    "yes_no",
    "text",
    "date_input",
    "time_input",
    "duration_input",
]


class _ProtocolModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


def _compile(condition: str, info: ValidationInfo, where: str) -> Comparison | None:
    strict = (info.context or {}).get("strict_conditions", settings.strict_conditions)
    try:
        return parse_condition(condition)
    except ConditionSyntaxError as exc:
        if strict:
            raise ValueError(f"{where}: {exc}") from exc
        log.warning("protocol.condition_not_compiled", where=where, condition=condition)
        return None


# ---------------------------------------------------------------------------
# Instrument catalog
# ---------------------------------------------------------------------------

class Option(_ProtocolModel):
    value: float
    label: str = ""


class Scale(_ProtocolModel):
    min: float
    max: float
    min_label: str = ""
    max_label: str = ""

    @model_validator(mode="after")
    def _ordered(self) -> "Scale":
        if self.min > self.max:
            raise ValueError(f"scale min {self.min} exceeds max {self.max}")
        return self


class Question(_ProtocolModel):
    id: str
    text: str = ""
    type: QuestionType = "single_choice"
    options: list[Option] | None = None
    scale: Scale | None = None
    required: bool = False


class ScoreThreshold(_ProtocolModel):
    value: float
    label: str
    severity: str | None = None


class ScoreRange(_ProtocolModel):
    min: float
    max: float


class ScoringConfig(_ProtocolModel):
    method: Literal["sum", "average", "custom"] = "sum"
    range: ScoreRange | None = None
    interpretation: Literal["higher_better", "lower_better"] | None = None
    thresholds: list[ScoreThreshold] = Field(default_factory=list)


class AlertRule(_ProtocolModel):
    condition: str
    type: Literal["trigger_instrument", "coordinator_alert", "urgent_alert", "crisis_resources"]
    target: str | None = None
    urgency: str | None = None
    message: str | None = None
    comparison: Comparison | None = Field(default=None, exclude=True)

    @model_validator(mode="after")
    def _compile_condition(self, info: ValidationInfo) -> "AlertRule":
        self.comparison = _compile(self.condition, info, where="instrument alert")
        return self


class TriggerConfig(_ProtocolModel):
    instrument_id: str
    condition: str


class Instrument(_ProtocolModel):
    id: str
    name: str = ""
    description: str = ""
    instructions: str = ""
    estimated_minutes: int | None = None
    questions: list[Question] = Field(default_factory=list)
    scoring: ScoringConfig = Field(default_factory=ScoringConfig)
    alerts: list[AlertRule] = Field(default_factory=list)
    triggered_by: TriggerConfig | None = None

    def question(self, question_id: str) -> Question | None:
        return next((q for q in self.questions if q.id == question_id), None)


# ---------------------------------------------------------------------------
# Schedule & safety monitoring
# ---------------------------------------------------------------------------

class ScheduleEntry(_ProtocolModel):
    timepoint: str
    week: int = Field(ge=0)
    instruments: list[str] = Field(min_length=1)
    labs: list[str] = Field(default_factory=list)
    window_days: int = Field(default_factory=lambda: settings.default_window_days, ge=1)


class LabThreshold(_ProtocolModel):
    marker: str
    threshold: str
    action: str = ""
    comparison: Comparison | None = Field(default=None, exclude=True)

    @model_validator(mode="after")
    def _compile_condition(self, info: ValidationInfo) -> "LabThreshold":
        self.comparison = _compile(self.threshold, info, where=f"lab threshold for {self.marker}")
        return self


class ProAlert(_ProtocolModel):
    instrument: str
    condition: str
    action: str = ""
    comparison: Comparison | None = Field(default=None, exclude=True)

    @model_validator(mode="after")
    def _compile_condition(self, info: ValidationInfo) -> "ProAlert":
        self.comparison = _compile(self.condition, info, where=f"PRO alert for {self.instrument}")
        return self


class SafetyMonitoring(_ProtocolModel):
    lab_thresholds: list[LabThreshold] = Field(default_factory=list)
    pro_alerts: list[ProAlert] = Field(default_factory=list)


class Protocol(BaseModel):
    # The surrounding document also carries criteria, summary and endpoints,
    # which the engine does not read.
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    instruments: dict[str, Instrument] = Field(default_factory=dict)
    schedule: list[ScheduleEntry] = Field(default_factory=list)
    safety_monitoring: SafetyMonitoring = Field(default_factory=SafetyMonitoring)
    duration_weeks: int | None = None

    @field_validator("instruments", mode="before")
    @classmethod
    def _instruments_by_id(cls, value: Any) -> Any:
        if value is None:
            return {}
        if isinstance(value, list):
            by_id: dict[str, Any] = {}
            for item in value:
                instrument_id = item.get("id") if isinstance(item, dict) else getattr(item, "id", None)
                if not instrument_id:
                    raise ValueError("instrument in list form is missing its 'id'")
                if instrument_id in by_id:
                    raise ValueError(f"duplicate instrument id {instrument_id!r}")
                by_id[instrument_id] = item
            return by_id
        if isinstance(value, dict):
            return {
                key: ({"id": key, **item} if isinstance(item, dict) and "id" not in item else item)
                for key, item in value.items()
            }
        return value

    @model_validator(mode="after")
    def _check_references(self) -> "Protocol":
        for instrument_id, instrument in self.instruments.items():
            if instrument.id != instrument_id:
                raise ValueError(f"instrument key {instrument_id!r} does not match its id {instrument.id!r}")
        seen: set[str] = set()
        for entry in self.schedule:
            if entry.timepoint in seen:
                raise ValueError(f"duplicate timepoint {entry.timepoint!r} in schedule")
            seen.add(entry.timepoint)
            unknown = [i for i in entry.instruments if i not in self.instruments]
            if unknown:
                log.warning("protocol.unknown_schedule_instruments", timepoint=entry.timepoint, instruments=unknown)
        return self

    def instrument(self, instrument_id: str) -> Instrument | None:
        return self.instruments.get(instrument_id)

    def schedule_entry(self, timepoint: str) -> ScheduleEntry | None:
        return next((e for e in self.schedule if e.timepoint == timepoint), None)

    def lab_thresholds_for(self, marker: str) -> list[LabThreshold]:
        return [t for t in self.safety_monitoring.lab_thresholds if t.marker == marker]

    def pro_alerts_for(self, instrument_id: str) -> list[ProAlert]:
        return [a for a in self.safety_monitoring.pro_alerts if a.instrument == instrument_id]


def load_protocol(data: dict[str, Any] | str | bytes, strict_conditions: bool | None = None) -> Protocol:
    """
    Validate a raw protocol document (dict or JSON text).

    Raises:
        ProtocolError: if the document is not valid JSON or fails validation.
    """
    if isinstance(data, (str, bytes)):
        try:
            data = json.loads(data)
        except json.JSONDecodeError as exc:
            raise ProtocolError(f"Protocol is not valid JSON: {exc}") from exc

    context = {}
    if strict_conditions is not None:
        context["strict_conditions"] = strict_conditions

    try:
        protocol = Protocol.model_validate(data, context=context)
    except ValidationError as exc:
        log.error("protocol.invalid", errors=exc.error_count())
        raise ProtocolError(f"Invalid protocol: {exc}") from exc

    log.info(
        "protocol.loaded",
        instruments=len(protocol.instruments),
        timepoints=len(protocol.schedule),
        lab_thresholds=len(protocol.safety_monitoring.lab_thresholds),
    )
    return protocol
