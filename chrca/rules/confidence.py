"""Signal-strength scoring for evaluated rules.

The formula is deterministic and deliberately conservative: a rule cannot
score highly on partial matches if a required precondition is unmet, if a
blocker is present, or if it rests on fewer than three indicators.

    ratio = matched / total                     (0 when total == 0)
    caps  = [ratio]
          + 0.29  if any blocker indicator matched
          + 0.49  if any required indicator did not match
          + 0.39  if total < 3
    signal_strength = round(min(caps), 2)
"""

from __future__ import annotations

from chrca.models.evidence import CauseCandidate
from chrca.observability.logging import get_logger
from chrca.observability.metrics import candidates_scored_total, invariant_violations_total
from chrca.rules.base import EvaluatedRule

_logger = get_logger("confidence")

BLOCKER_CAP = 0.29
MISSING_REQUIRED_CAP = 0.49
FEW_INDICATORS_CAP = 0.39
MIN_INDICATORS = 3


def compute_signal_strength(rule: EvaluatedRule) -> float:
    """Compute the capped signal strength of one evaluated rule."""
    total = len(rule.indicators)
    matched = sum(1 for ind in rule.indicators if ind.matched)
    caps = [matched / total if total > 0 else 0.0]

    if any(ind.blocker and ind.matched for ind in rule.indicators):
        caps.append(BLOCKER_CAP)
    if any(ind.required and not ind.matched for ind in rule.indicators):
        caps.append(MISSING_REQUIRED_CAP)
    if total < MIN_INDICATORS:
        caps.append(FEW_INDICATORS_CAP)

    score = round(min(caps), 2)
    if not 0.0 <= score <= 1.0:
        _logger.error(
            "invariant_violated",
            invariant="signal_strength_range",
            value=score,
            cause=rule.cause,
        )
        invariant_violations_total.labels(invariant_name="signal_strength_range").inc()
        score = max(0.0, min(score, 1.0))
    return score


def _dedupe(items: list[str]) -> list[str]:
    return [item for item in dict.fromkeys(items) if item]


def score_candidate(rule: EvaluatedRule) -> CauseCandidate:
    """Turn an evaluated rule into a CauseCandidate with explainable evidence."""
    matched = [ind for ind in rule.indicators if ind.matched]
    unmatched = [ind for ind in rule.indicators if not ind.matched]
    blockers = [ind for ind in matched if ind.blocker]
    missing_required = [ind for ind in unmatched if ind.required]

    candidates_scored_total.labels(cause=rule.cause).inc()
    return CauseCandidate(
        cause=rule.cause,
        signal_strength=compute_signal_strength(rule),
        indicators_matched=len(matched),
        indicators_checked=len(rule.indicators),
        evidence_for=[ind.description for ind in matched],
        evidence_against=[ind.description for ind in unmatched] + [f"[blocker] {ind.description}" for ind in blockers],
        next_checks=_dedupe([f"verify: {ind.description}" for ind in missing_required] + list(rule.next_check_hints)),
    )


def rank_candidates(candidates: list[CauseCandidate]) -> list[CauseCandidate]:
    """Sort by descending signal strength; ties keep declaration order."""
    return sorted(candidates, key=lambda c: c.signal_strength, reverse=True)


def score_rules(rules: list[EvaluatedRule]) -> list[CauseCandidate]:
    """Score and rank a list of evaluated rules."""
    return rank_candidates([score_candidate(rule) for rule in rules])
