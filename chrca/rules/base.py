"""Declarative diagnostic rules and their evaluation.

A RuleSpec names a candidate cause and lists Indicators. An Indicator is a
plain record holding a description, two flags and a pure match function over
the investigation's observations; it captures no hidden state, so rule sets
can be inspected and built from data.

    required -- when unmatched, the cause's score is capped at 0.49
    blocker  -- when matched, the cause's score is capped at 0.29
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field

from chrca.models.evidence import QueryResults


@dataclass(frozen=True)
class IndicatorMatch:
    """Outcome of one indicator: match flag and the literal value observed."""

    matched: bool
    actual: str | int | float


IndicatorMatcher = Callable[[QueryResults], IndicatorMatch]


@dataclass(frozen=True)
class Indicator:
    description: str
    match: IndicatorMatcher
    required: bool = False
    blocker: bool = False


@dataclass(frozen=True)
class RuleSpec:
    cause: str
    indicators: tuple[Indicator, ...]
    next_check_hints: tuple[str, ...] = ()


@dataclass(frozen=True)
class EvaluatedIndicator:
    """An indicator after evaluation; ``description`` includes the actual value."""

    matched: bool
    description: str
    required: bool = False
    blocker: bool = False


@dataclass(frozen=True)
class EvaluatedRule:
    cause: str
    indicators: list[EvaluatedIndicator] = field(default_factory=list)
    next_check_hints: tuple[str, ...] = ()


def format_actual(value: str | int | float) -> str:
    """Render an indicator's actual value; whole floats print without ``.0``."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def evaluate_indicator(indicator: Indicator, results: QueryResults) -> EvaluatedIndicator:
    outcome = indicator.match(results)
    return EvaluatedIndicator(
        matched=outcome.matched,
        description=f"{indicator.description} (actual {format_actual(outcome.actual)})",
        required=indicator.required,
        blocker=indicator.blocker,
    )


def evaluate_rules(rule_specs: list[RuleSpec], results: QueryResults) -> list[EvaluatedRule]:
    """Evaluate every indicator of every rule against the completed observations."""
    return [
        EvaluatedRule(
            cause=spec.cause,
            indicators=[evaluate_indicator(ind, results) for ind in spec.indicators],
            next_check_hints=spec.next_check_hints,
        )
        for spec in rule_specs
    ]


def metric(results: QueryResults, observation_id: str, name: str) -> object:
    """Look up a metric by observation id; None when either is missing."""
    observation = results.get(observation_id)
    if observation is None:
        return None
    return observation.metrics.get(name)
