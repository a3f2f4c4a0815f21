"""Fallback for free-text symptoms that match no canonical handler.

The text is mapped onto coarse dimensions by keyword, a reduced generic
probe set runs for the matched dimensions, and a single low-confidence
candidate asks the caller to retry with a specific symptom.
"""

from __future__ import annotations

import re

from chrca.evidence.runner import QuerySpec, as_number, cell, run_queries
from chrca.evidence.templates import TemplateContext
from chrca.models.evidence import (
    CauseCandidate,
    Observation,
    PossibleAction,
    Risk,
    Row,
    Symptom,
    SymptomContext,
    SymptomResult,
)
from chrca.observability.logging import get_logger

_logger = get_logger("symptom.unknown")

_STAGE = "rca unknown"

INSUFFICIENT_SIGNAL_CAUSE = "insufficient_specific_signal"
INSUFFICIENT_SIGNAL_STRENGTH = 0.25

# Ordered: dimensions are reported in this order.
DIMENSION_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("latency", re.compile(r"slow|latenc|time[sd]? ?out|timing out|duration|lag")),
    ("errors", re.compile(r"error|fail|exception")),
    ("ingestion", re.compile(r"insert|ingest|batch|part")),
    ("replication", re.compile(r"replica|readonly|read-only")),
    ("storage", re.compile(r"disk|storage|space|partition")),
    ("resources", re.compile(r"cpu|memory|resource|pressure")),
    ("workload", re.compile(r"quer(?:y|ies)|workload|throughput|qps")),
)
DEFAULT_DIMENSION = "workload"


def map_symptom_text_to_dimensions(symptom_text: str) -> list[str]:
    """Map free text onto the dimensions it mentions; ``workload`` if none."""
    lowered = symptom_text.lower()
    dimensions = [name for name, pattern in DIMENSION_PATTERNS if pattern.search(lowered)]
    return dimensions or [DEFAULT_DIMENSION]


def _processes_observation(row: Row | None, ctx: TemplateContext) -> Observation:
    return Observation(
        source="system.processes",
        description="Active query pressure snapshot",
        metrics={
            "active_queries": int(as_number(cell(row, 0))),
            "max_running_seconds": round(as_number(cell(row, 1)), 2),
        },
    )


def _errors_observation(row: Row | None, ctx: TemplateContext) -> Observation:
    return Observation(
        source="system.errors",
        description="Error counter snapshot",
        metrics={"error_count": int(as_number(cell(row, 0)))},
    )


def _parts_observation(row: Row | None, ctx: TemplateContext) -> Observation:
    return Observation(
        source="system.parts",
        description="Global part inventory snapshot",
        metrics={
            "active_parts": int(as_number(cell(row, 0))),
            "tables_with_parts": int(as_number(cell(row, 1))),
        },
    )


def _replicas_observation(row: Row | None, ctx: TemplateContext) -> Observation:
    return Observation(
        source="system.replicas",
        description="Replica health snapshot",
        metrics={
            "readonly_replicas": int(as_number(cell(row, 0))),
            "max_absolute_delay_seconds": int(as_number(cell(row, 1))),
            "max_queue_size": int(as_number(cell(row, 2))),
        },
    )


def _memory_observation(row: Row | None, ctx: TemplateContext) -> Observation:
    return Observation(
        source="system.asynchronous_metrics",
        description="Memory usage snapshot",
        metrics={"memory_used_percent": round(as_number(cell(row, 0)), 2)},
    )


PROCESSES_PROBE = QuerySpec(
    id="processes",
    progress_stage=f"{_STAGE}: processes",
    progress_weight=40,
    sql_template="""
SELECT
  count() AS active_queries,
  max(elapsed) AS max_running_seconds
FROM {clusterAllReplicas:system.processes}""",
    to_observation=_processes_observation,
)

ERRORS_PROBE = QuerySpec(
    id="errors",
    progress_stage=f"{_STAGE}: errors",
    progress_weight=45,
    sql_template="""
SELECT
  sum(value) AS error_count
FROM {clusterAllReplicas:system.errors}""",
    to_observation=_errors_observation,
)

PARTS_PROBE = QuerySpec(
    id="parts",
    progress_stage=f"{_STAGE}: parts",
    progress_weight=50,
    sql_template="""
SELECT
  count() AS active_parts,
  uniqExact(concat(database, '.', table)) AS tables_with_parts
FROM {clusterAllReplicas:system.parts}
WHERE active""",
    to_observation=_parts_observation,
)

REPLICAS_PROBE = QuerySpec(
    id="replicas",
    progress_stage=f"{_STAGE}: replicas",
    progress_weight=55,
    sql_template="""
SELECT
  countIf(is_readonly) AS readonly_replicas,
  max(absolute_delay) AS max_absolute_delay_seconds,
  max(queue_size) AS max_queue_size
FROM {clusterAllReplicas:system.replicas}""",
    to_observation=_replicas_observation,
)

MEMORY_PROBE = QuerySpec(
    id="memory",
    progress_stage=f"{_STAGE}: memory",
    progress_weight=60,
    sql_template="""
SELECT
  ifNull(
    sumIf(value, metric = 'MemoryTracking')
      / nullIf(sumIf(value, metric = 'MemoryTracking') + sumIf(value, metric = 'MemoryAvailable'), 0)
      * 100,
    0
  ) AS memory_used_percent
FROM {clusterAllReplicas:system.asynchronous_metrics}""",
    to_observation=_memory_observation,
)

DIMENSION_PROBES: dict[str, tuple[QuerySpec, ...]] = {
    "latency": (PROCESSES_PROBE,),
    "workload": (PROCESSES_PROBE,),
    "errors": (ERRORS_PROBE,),
    "ingestion": (PARTS_PROBE,),
    "storage": (PARTS_PROBE,),
    "replication": (REPLICAS_PROBE,),
    "resources": (MEMORY_PROBE,),
}


def probes_for_dimensions(dimensions: list[str]) -> list[QuerySpec]:
    """Probes covering ``dimensions``, each probe once, in first-use order."""
    specs: dict[str, QuerySpec] = {}
    for dimension in dimensions:
        for spec in DIMENSION_PROBES.get(dimension, ()):
            specs.setdefault(spec.id, spec)
    return list(specs.values())


def insufficient_signal_candidate() -> CauseCandidate:
    return CauseCandidate(
        cause=INSUFFICIENT_SIGNAL_CAUSE,
        signal_strength=INSUFFICIENT_SIGNAL_STRENGTH,
        indicators_matched=1,
        indicators_checked=4,
        evidence_for=["generic probes detected broad pressure signals"],
        evidence_against=["symptom did not map cleanly to a canonical RCA module"],
        next_checks=[
            "refine symptom using one of: "
            + ", ".join(
                s.value for s in (Symptom.HIGH_QUERY_LATENCY, Symptom.HIGH_PART_COUNT, Symptom.HIGH_PARTITION_COUNT)
            ),
            "run a focused cluster status check before RCA",
        ],
    )


UNKNOWN_ACTIONS: tuple[PossibleAction, ...] = (
    PossibleAction(
        title="Run focused RCA with a canonical symptom key",
        risk=Risk.LOW,
        tied_to=INSUFFICIENT_SIGNAL_CAUSE,
    ),
)


async def handle_unknown(context: SymptomContext, symptom_text: str) -> SymptomResult:
    """Run generic probes for the dimensions ``symptom_text`` mentions."""
    dimensions = map_symptom_text_to_dimensions(symptom_text)
    _logger.info("unknown_symptom_dimensions", dimensions=dimensions)

    results = await run_queries(TemplateContext(base=context), probes_for_dimensions(dimensions))
    return SymptomResult(
        observations=list(results.values()),
        candidates=[insufficient_signal_candidate()],
        possible_actions=list(UNKNOWN_ACTIONS),
        target=context.target,
    )
