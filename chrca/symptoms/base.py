"""Symptom handler base class and indicator helpers.

A handler bundles the probes, rules and remediation actions for one
symptom. Handlers are stateless; everything per-investigation travels in the
SymptomContext passed to ``collect``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable

from chrca.evidence.runner import QuerySpec, as_number
from chrca.models.evidence import (
    CauseCandidate,
    PossibleAction,
    QueryResults,
    Symptom,
    SymptomContext,
    SymptomResult,
)
from chrca.rules.base import Indicator, IndicatorMatch, RuleSpec, evaluate_rules, metric
from chrca.rules.confidence import score_rules


class SymptomHandler(ABC):
    """Abstract base class for all symptom handlers.

    Subclasses MUST define class-level attributes:
        symptom  -- the Symptom this handler investigates
        queries  -- QuerySpecs run concurrently per investigation
        rules    -- RuleSpecs, in declaration order (ties keep this order)
        actions  -- static remediation suggestions tied to rule causes
    """

    symptom: Symptom
    queries: tuple[QuerySpec, ...]
    rules: tuple[RuleSpec, ...]
    actions: tuple[PossibleAction, ...]

    @abstractmethod
    async def collect(self, context: SymptomContext) -> SymptomResult:
        """Collect observations and rank candidate causes."""

    def analyse(self, results: QueryResults) -> list[CauseCandidate]:
        """Evaluate this handler's rules against ``results`` and rank them."""
        return score_rules(evaluate_rules(list(self.rules), results))

    def stage(self, name: str) -> str:
        return f"rca {self.symptom.value}: {name}"


def fixed2(value: float) -> str:
    return f"{value:.2f}"


def seconds(value: float) -> str:
    return f"{value:.2f}s"


def millis(value: float) -> str:
    return f"{value:.2f}ms"


def percent(value: float) -> str:
    return f"{value:.2f}%"


def numeric_indicator(
    description: str,
    observation_id: str,
    metric_name: str,
    predicate: Callable[[float], bool],
    *,
    render: Callable[[float], str | float] = lambda v: v,
    required: bool = False,
    blocker: bool = False,
) -> Indicator:
    """Indicator over one numeric metric; missing values read as 0."""

    def _match(results: QueryResults) -> IndicatorMatch:
        value = as_number(metric(results, observation_id, metric_name))
        return IndicatorMatch(matched=predicate(value), actual=render(value))

    return Indicator(description=description, match=_match, required=required, blocker=blocker)


def ratio_indicator(
    description: str,
    observation_id: str,
    numerator: str,
    denominator: str,
    threshold: float,
    *,
    required: bool = False,
) -> Indicator:
    """Indicator matching when ``numerator / denominator`` exceeds ``threshold``."""

    def _match(results: QueryResults) -> IndicatorMatch:
        top = as_number(metric(results, observation_id, numerator))
        bottom = as_number(metric(results, observation_id, denominator))
        ratio = top / bottom if bottom > 0 else 0.0
        return IndicatorMatch(matched=bottom > 0 and ratio > threshold, actual=fixed2(ratio))

    return Indicator(description=description, match=_match, required=required)


def text_metric(results: QueryResults, observation_id: str, metric_name: str, default: str = "") -> str:
    value = metric(results, observation_id, metric_name)
    return default if value is None else str(value)
