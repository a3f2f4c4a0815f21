"""high_query_latency: slow queries.

Probes query_log latency quantiles and read volume, merge activity and
memory pressure, then weighs three causes: full scans, merge pressure and
memory pressure. In query_pattern scope the sampled normalized query hash
is adopted as the target when the caller did not provide one.
"""

from __future__ import annotations

from dataclasses import replace

from chrca.evidence.predicates import build_node_predicate, build_query_log_predicate
from chrca.evidence.runner import QuerySpec, as_number, cell, run_queries
from chrca.evidence.templates import TemplateContext
from chrca.models.evidence import (
    Observation,
    PossibleAction,
    QueryResults,
    Risk,
    Row,
    Scope,
    Symptom,
    SymptomContext,
    SymptomResult,
    Target,
)
from chrca.observability.logging import get_logger
from chrca.rules.base import RuleSpec
from chrca.symptoms.base import SymptomHandler, fixed2, millis, numeric_indicator, percent, seconds, text_metric

_logger = get_logger("symptom.high_query_latency")

_STAGE = "rca high_query_latency"

_ONE_GB = 1_000_000_000


def _query_log_observation(row: Row | None, ctx: TemplateContext) -> Observation:
    return Observation(
        source="system.query_log",
        description=f"Latency summary over last {ctx.time_window_minutes} minutes",
        metrics={
            "p95_ms": round(as_number(cell(row, 0)), 2),
            "p99_ms": round(as_number(cell(row, 1)), 2),
            "avg_read_rows": round(as_number(cell(row, 2)), 2),
            "avg_read_bytes": round(as_number(cell(row, 3)), 2),
            "avg_memory_bytes": round(as_number(cell(row, 4)), 2),
            "sample_query_hash": str(cell(row, 5) or ""),
        },
    )


def _merges_observation(row: Row | None, ctx: TemplateContext) -> Observation:
    return Observation(
        source="system.merges",
        description="Merge pressure snapshot",
        metrics={
            "active_merges": int(as_number(cell(row, 0))),
            "max_merge_elapsed_seconds": round(as_number(cell(row, 1)), 2),
        },
    )


def _memory_observation(row: Row | None, ctx: TemplateContext) -> Observation:
    return Observation(
        source="system.asynchronous_metrics",
        description="Memory pressure snapshot",
        metrics={"memory_used_percent": round(as_number(cell(row, 0)), 2)},
    )


QUERIES: tuple[QuerySpec, ...] = (
    QuerySpec(
        id="query_log",
        progress_stage=f"{_STAGE}: query_log",
        progress_weight=40,
        sql_template="""
SELECT
  quantileExact(0.95)(query_duration_ms) AS p95_ms,
  quantileExact(0.99)(query_duration_ms) AS p99_ms,
  avg(read_rows) AS avg_read_rows,
  avg(read_bytes) AS avg_read_bytes,
  avg(memory_usage) AS avg_memory_bytes,
  any(toString(normalized_query_hash)) AS sample_query_hash
FROM {clusterAllReplicas:system.query_log}
WHERE {time_filter}
  AND type = 'QueryFinish'
  AND {scope_filter}""",
        to_observation=_query_log_observation,
    ),
    QuerySpec(
        id="merges",
        progress_stage=f"{_STAGE}: merges",
        progress_weight=45,
        sql_template="""
SELECT
  count() AS active_merges,
  max(elapsed) AS max_merge_elapsed_seconds
FROM {clusterAllReplicas:system.merges}
WHERE {node_filter}""",
        to_observation=_merges_observation,
    ),
    QuerySpec(
        id="metrics",
        progress_stage=f"{_STAGE}: metrics",
        progress_weight=50,
        sql_template="""
SELECT
  ifNull(
    sumIf(value, metric = 'MemoryTracking')
      / nullIf(sumIf(value, metric = 'MemoryTracking') + sumIf(value, metric = 'MemoryAvailable'), 0)
      * 100,
    0
  ) AS memory_used_percent
FROM {clusterAllReplicas:system.asynchronous_metrics}
WHERE {node_filter}""",
        to_observation=_memory_observation,
    ),
)

RULES: tuple[RuleSpec, ...] = (
    RuleSpec(
        cause="full_scan",
        next_check_hints=("inspect query plan for high-latency hashes and verify predicate selectivity",),
        indicators=(
            numeric_indicator(
                "avg read rows >= 1M", "query_log", "avg_read_rows", lambda v: v >= 1_000_000, render=fixed2
            ),
            numeric_indicator(
                "avg read bytes >= 1GB", "query_log", "avg_read_bytes", lambda v: v >= _ONE_GB, render=fixed2
            ),
            numeric_indicator(
                "p99 latency >= 2000ms", "query_log", "p99_ms", lambda v: v >= 2000, render=millis, required=True
            ),
        ),
    ),
    RuleSpec(
        cause="merge_pressure",
        next_check_hints=("check part churn and merge scheduler pressure on top tables",),
        indicators=(
            numeric_indicator("active merges > 10", "merges", "active_merges", lambda v: v > 10, required=True),
            numeric_indicator(
                "max merge elapsed > 600s", "merges", "max_merge_elapsed_seconds", lambda v: v > 600, render=seconds
            ),
            numeric_indicator("p95 latency >= 1000ms", "query_log", "p95_ms", lambda v: v >= 1000, render=millis),
        ),
    ),
    RuleSpec(
        cause="memory_pressure",
        indicators=(
            numeric_indicator(
                "memory used >= 85%", "metrics", "memory_used_percent", lambda v: v >= 85, render=percent, required=True
            ),
            numeric_indicator(
                "avg query memory >= 1GB",
                "query_log",
                "avg_memory_bytes",
                lambda v: v >= _ONE_GB,
                render=fixed2,
            ),
            numeric_indicator("p99 latency >= 2000ms", "query_log", "p99_ms", lambda v: v >= 2000, render=millis),
        ),
    ),
)

ACTIONS: tuple[PossibleAction, ...] = (
    PossibleAction(
        title="Inspect top slow query patterns and optimize filters/index usage",
        risk=Risk.LOW,
        tied_to="full_scan",
    ),
    PossibleAction(
        title="Reduce merge pressure by smoothing ingest and checking part churn",
        risk=Risk.MEDIUM,
        tied_to="merge_pressure",
    ),
    PossibleAction(
        title="Review memory-heavy queries and memory limits",
        risk=Risk.MEDIUM,
        tied_to="memory_pressure",
    ),
)


def resolve_latency_target(context: SymptomContext, results: QueryResults) -> Target | None:
    """Adopt the sampled query hash for query_pattern scope when none was given."""
    sample_hash = text_metric(results, "query_log", "sample_query_hash")
    if context.scope == Scope.QUERY_PATTERN and sample_hash:
        target = context.target or Target()
        return replace(target, query_hash=target.query_hash or sample_hash)
    return context.target


class HighQueryLatencyHandler(SymptomHandler):
    """Collects latency, merge and memory evidence for slow queries."""

    symptom = Symptom.HIGH_QUERY_LATENCY
    queries = QUERIES
    rules = RULES
    actions = ACTIONS

    async def collect(self, context: SymptomContext) -> SymptomResult:
        ctx = TemplateContext(
            base=context,
            scope_predicate=build_query_log_predicate(context.scope, context.target),
            node_predicate=build_node_predicate(context.scope, context.target),
        )
        results = await run_queries(ctx, list(self.queries))
        candidates = self.analyse(results)
        _logger.info(
            "latency_evidence_collected",
            scope=context.scope.value,
            top_cause=candidates[0].cause if candidates else None,
            top_signal=candidates[0].signal_strength if candidates else None,
        )
        return SymptomResult(
            observations=list(results.values()),
            candidates=candidates,
            possible_actions=list(self.actions),
            target=resolve_latency_target(context, results),
        )
