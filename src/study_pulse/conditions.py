"""
Rule condition language.

A condition is a single comparison of the form ``<identifier> <op> <integer>``,
e.g. ``total >= 10`` or ``q9 > 0``. Conditions are parsed once into a
``Comparison`` when the protocol is loaded; evaluation resolves the identifier
against a score map and a raw answer map.

Identifier resolution order:
  1. the literal ``total``
  2. any other key of the score map
  3. any key of the raw answer map
  4. an answer key ending in ``_<identifier>`` (instrument-prefixed ids)

An identifier that does not resolve makes the comparison evaluate to False.
Leading and trailing whitespace around a condition is accepted and ignored.
"""

from __future__ import annotations

import operator
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass

from study_pulse.errors import ConditionSyntaxError
from study_pulse.logging import log

OPERATORS: dict[str, Callable[[float, float], bool]] = {
    ">=": operator.ge,
    "<=": operator.le,
    ">": operator.gt,
    "<": operator.lt,
    "==": operator.eq,
    "!=": operator.ne,
}

# Two-character operators must be tried before their one-character prefixes.
_CONDITION_RE = re.compile(r"^\s*(\w+)\s*(>=|<=|==|!=|>|<)\s*(\d+)\s*$")


@dataclass(frozen=True)
class Comparison:
    identifier: str
    operator: str
    literal: int

    def __str__(self) -> str:
        return f"{self.identifier} {self.operator} {self.literal}"


def parse_condition(text: str) -> Comparison:
    """Parse *text* into a Comparison or raise ConditionSyntaxError."""
    match = _CONDITION_RE.match(text or "")
    if not match:
        raise ConditionSyntaxError(f"Invalid condition format: {text!r}")
    identifier, op, literal = match.groups()
    return Comparison(identifier=identifier, operator=op, literal=int(literal))


def resolve_identifier(
    identifier: str,
    scores: Mapping[str, float],
    answers: Mapping[str, float],
) -> float | None:
    if identifier == "total":
        return scores.get("total")
    if identifier in scores:
        return scores[identifier]
    if identifier in answers:
        return answers[identifier]
    suffix = f"_{identifier}"
    for key, value in answers.items():
        if key.endswith(suffix):
            return value
    return None


def evaluate(
    comparison: Comparison,
    scores: Mapping[str, float],
    answers: Mapping[str, float] | None = None,
) -> bool:
    """Return True when *comparison* holds; False (logged) when it cannot be resolved."""
    value = resolve_identifier(comparison.identifier, scores, answers or {})
    if value is None:
        log.warning("conditions.unresolved_identifier", condition=str(comparison))
        return False
    return OPERATORS[comparison.operator](value, comparison.literal)


def evaluate_text(
    text: str,
    scores: Mapping[str, float],
    answers: Mapping[str, float] | None = None,
) -> bool:
    """Parse and evaluate *text* in one step; a malformed condition is logged and evaluates to False."""
    try:
        comparison = parse_condition(text)
    except ConditionSyntaxError:
        log.warning("conditions.malformed", condition=text)
        return False
    return evaluate(comparison, scores, answers)
