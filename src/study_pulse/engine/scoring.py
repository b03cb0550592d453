"""
Submission validation and scoring.

Validation rules (first failure rejects the whole batch, nothing is saved):
  - every required question must be answered
  - single_choice values must be one of the option values
  - numeric_scale values must lie within [min, max]
  - answers to unknown question ids are ignored
  - without an instrument schema, only an empty batch is rejected

Scoring methods are looked up in a registry keyed by the protocol's
``scoring.method``. ``custom`` is registered as a plain sum until a study
registers its own formula with ``register_scoring_method``.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence

from study_pulse.errors import ValidationError
from study_pulse.logging import log
from study_pulse.schemas.protocol import Instrument
from study_pulse.schemas.results import ResponseItem

ScoringMethod = Callable[[Sequence[float]], float]


def _sum(values: Sequence[float]) -> float:
    return float(sum(values))


def _average(values: Sequence[float]) -> float:
    return float(sum(values)) / len(values) if values else 0.0


_SCORING_METHODS: dict[str, ScoringMethod] = {
    "sum": _sum,
    "average": _average,
    "custom": _sum,
}


def register_scoring_method(name: str, method: ScoringMethod) -> None:
    """Register (or replace) the scoring function used for *name*."""
    _SCORING_METHODS[name] = method
    log.info("scoring.method_registered", method=name)


def scoring_method(name: str) -> ScoringMethod:
    method = _SCORING_METHODS.get(name)
    if method is None:
        log.warning("scoring.unknown_method", method=name, fallback="sum")
        return _sum
    return method


def validate_responses(instrument: Instrument | None, responses: Sequence[ResponseItem]) -> None:
    """Raise ValidationError describing the first problem found in *responses*."""
    if instrument is None:
        if not responses:
            raise ValidationError("No responses provided")
        return

    answered = {r.question_id for r in responses}
    for question in instrument.questions:
        if question.required and question.id not in answered:
            raise ValidationError(f"Required question {question.id} not answered")

    for response in responses:
        question = instrument.question(response.question_id)
        if question is None:
            continue

        if question.type == "single_choice" and question.options:
            if response.value not in {o.value for o in question.options}:
                raise ValidationError(f"Invalid value for question {question.id}")

        if question.type == "numeric_scale" and question.scale:
            if not question.scale.min <= response.value <= question.scale.max:
                raise ValidationError(f"Value out of range for question {question.id}")


def calculate_scores(instrument: Instrument | None, responses: Sequence[ResponseItem]) -> dict[str, float]:
    """Return ``{"total": ..., <question_id>: <raw value>, ...}``."""
    values = [r.value for r in responses]
    method = instrument.scoring.method if instrument is not None else "sum"
    scores: dict[str, float] = {"total": scoring_method(method)(values)}
    for response in responses:
        if response.question_id != "total":
            scores[response.question_id] = response.value
    return scores
