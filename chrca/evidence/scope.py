"""Scope resolution with deterministic fallback.

Each symptom supports a fixed set of scopes. A request for an unsupported
scope walks a fixed fallback chain and records the downgrade as a gap.
"""

from __future__ import annotations

from chrca.models.evidence import EvidenceGap, Scope, Symptom
from chrca.observability.logging import get_logger

_logger = get_logger("scope_resolver")

SUPPORTED_SCOPES: dict[Symptom, tuple[Scope, ...]] = {
    Symptom.HIGH_QUERY_LATENCY: (Scope.CLUSTER, Scope.NODE, Scope.TABLE, Scope.QUERY_PATTERN),
    Symptom.HIGH_PART_COUNT: (Scope.CLUSTER, Scope.NODE, Scope.TABLE),
    Symptom.HIGH_PARTITION_COUNT: (Scope.CLUSTER, Scope.TABLE),
    Symptom.REPLICATION_LAG: (Scope.CLUSTER, Scope.NODE, Scope.TABLE),
    Symptom.MERGE_BACKLOG: (Scope.CLUSTER, Scope.NODE, Scope.TABLE),
    Symptom.MUTATION_BACKLOG: (Scope.CLUSTER, Scope.NODE, Scope.TABLE),
    Symptom.UNKNOWN: (Scope.CLUSTER, Scope.NODE, Scope.TABLE, Scope.QUERY_PATTERN),
}

SCOPE_FALLBACK_ORDER: dict[Scope, tuple[Scope, ...]] = {
    Scope.QUERY_PATTERN: (Scope.TABLE, Scope.CLUSTER),
    Scope.TABLE: (Scope.CLUSTER,),
    Scope.NODE: (Scope.CLUSTER,),
    Scope.CLUSTER: (),
}


def _downgrade_gap(symptom: Symptom, requested: Scope, resolved: Scope) -> EvidenceGap:
    return EvidenceGap(
        description="scope downgraded",
        reason=(
            f"symptom={symptom.value} does not support scope={requested.value}; downgraded to {resolved.value}"
        ),
    )


def resolve_scope(symptom: Symptom, requested: Scope) -> tuple[Scope, list[EvidenceGap]]:
    """Map a requested scope onto one the symptom supports.

    Pure: the result depends only on the static support tables. Returns the
    resolved scope and the gaps to append (empty when no downgrade happened).
    """
    supported = SUPPORTED_SCOPES[symptom]
    if requested in supported:
        return requested, []

    resolved = next(
        (candidate for candidate in SCOPE_FALLBACK_ORDER[requested] if candidate in supported),
        supported[0] if supported else Scope.CLUSTER,
    )
    _logger.info(
        "scope_downgraded",
        symptom=symptom.value,
        requested=requested.value,
        resolved=resolved.value,
    )
    return resolved, [_downgrade_gap(symptom, requested, resolved)]
