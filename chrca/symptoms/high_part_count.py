"""high_part_count: too many active parts.

Discovers the table under the most part pressure (unless pinned by the
caller), then probes its part inventory, merge activity, insert pattern and
table metadata. Flags ``high_partition_count`` as a related symptom when
distinct-partition pressure is itself high.
"""

from __future__ import annotations

import re

from chrca.evidence.discovery import discover_target_table
from chrca.evidence.predicates import build_node_predicate, build_parts_table_predicate, build_query_log_predicate
from chrca.evidence.runner import QuerySpec, as_number, cell, run_probe, run_queries
from chrca.evidence.templates import TemplateContext
from chrca.models.evidence import (
    CauseCandidate,
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
from chrca.rules.base import Indicator, IndicatorMatch, RuleSpec, metric
from chrca.symptoms.base import (
    SymptomHandler,
    fixed2,
    numeric_indicator,
    ratio_indicator,
    seconds,
    text_metric,
)

_logger = get_logger("symptom.high_part_count")

_STAGE = "rca high_part_count"

_MERGE_TREE_RE = re.compile(r"MergeTree", re.IGNORECASE)

RELATED_PARTITION_THRESHOLD = 100
RELATED_SIGNAL_THRESHOLD = 0.3


def _parts_summary_observation(row: Row | None, ctx: TemplateContext) -> Observation:
    return Observation(
        source="system.parts",
        description="Part inventory for target table",
        metrics={
            "total_active_parts": int(as_number(cell(row, 0))),
            "distinct_partitions": int(as_number(cell(row, 1))),
            "max_parts_per_partition": int(as_number(cell(row, 2))),
        },
    )


def _merges_observation(row: Row | None, ctx: TemplateContext) -> Observation:
    return Observation(
        source="system.merges",
        description="Merge pressure around target scope",
        metrics={
            "active_merges": int(as_number(cell(row, 0))),
            "max_merge_elapsed_seconds": round(as_number(cell(row, 1)), 2),
        },
    )


def _insert_pattern_observation(row: Row | None, ctx: TemplateContext) -> Observation:
    inserts = as_number(cell(row, 0))
    avg_rows = as_number(cell(row, 1))
    window = ctx.time_window_minutes
    per_minute = inserts / window if window > 0 else inserts
    return Observation(
        source="system.query_log",
        description=f"Insert pattern over last {window} minutes",
        metrics={
            "inserts": int(inserts),
            "inserts_per_minute": round(per_minute, 2),
            "avg_rows_per_insert": round(avg_rows, 2),
        },
    )


def _table_meta_observation(row: Row | None, ctx: TemplateContext) -> Observation:
    engine = cell(row, 0)
    partition_key = cell(row, 1)
    return Observation(
        source="system.tables",
        description="Table engine and partition key",
        metrics={
            "engine": str(engine) if engine else "unknown",
            "partition_key": str(partition_key or ""),
        },
    )


QUERIES: tuple[QuerySpec, ...] = (
    QuerySpec(
        id="parts_summary",
        progress_stage=f"{_STAGE}: parts_summary",
        progress_weight=40,
        sql_template="""
SELECT
  sum(active_parts_per_partition) AS total_active_parts,
  uniqExact(partition) AS distinct_partitions,
  max(active_parts_per_partition) AS max_parts_per_partition
FROM (
  SELECT
    partition,
    count() AS active_parts_per_partition
  FROM {clusterAllReplicas:system.parts}
  WHERE active AND {parts_table_filter} AND {node_filter}
  GROUP BY partition
)""",
        to_observation=_parts_summary_observation,
    ),
    QuerySpec(
        id="merges",
        progress_stage=f"{_STAGE}: merges",
        progress_weight=45,
        sql_template="""
SELECT
  count() AS active_merges,
  max(elapsed) AS max_merge_elapsed
FROM {clusterAllReplicas:system.merges}
WHERE {node_filter}""",
        to_observation=_merges_observation,
    ),
    QuerySpec(
        id="insert_pattern",
        progress_stage=f"{_STAGE}: insert_pattern",
        progress_weight=50,
        sql_template="""
SELECT
  count() AS inserts,
  avg(written_rows) AS avg_rows_per_insert
FROM {clusterAllReplicas:system.query_log}
WHERE {time_filter}
  AND type = 'QueryFinish'
  AND query_kind = 'Insert'
  AND {query_log_table_filter}""",
        to_observation=_insert_pattern_observation,
    ),
    QuerySpec(
        id="table_meta",
        progress_stage=f"{_STAGE}: table_meta",
        progress_weight=55,
        sql_template="""
SELECT
  any(engine) AS engine,
  any(partition_key) AS partition_key
FROM {clusterAllReplicas:system.tables}
WHERE database = '{target_database}'
  AND name = '{target_table}'""",
        to_observation=_table_meta_observation,
    ),
)


def _total_parts_over_3000() -> Indicator:
    return numeric_indicator(
        "total active parts > 3000", "parts_summary", "total_active_parts", lambda v: v > 3000, required=True
    )


def _engine_is_merge_tree(results: QueryResults) -> IndicatorMatch:
    engine = text_metric(results, "table_meta", "engine", "unknown")
    return IndicatorMatch(matched=bool(_MERGE_TREE_RE.search(engine)), actual=engine)


def _partition_key_configured(results: QueryResults) -> IndicatorMatch:
    key = text_metric(results, "table_meta", "partition_key")
    return IndicatorMatch(matched=len(key) > 0, actual=key or "none")


RULES: tuple[RuleSpec, ...] = (
    RuleSpec(
        cause="insert_too_frequent",
        next_check_hints=("increase insert batch size and reduce insert frequency",),
        indicators=(
            numeric_indicator(
                "inserts per minute > 10", "insert_pattern", "inserts_per_minute", lambda v: v > 10, render=fixed2
            ),
            numeric_indicator(
                "avg rows per insert < 10000",
                "insert_pattern",
                "avg_rows_per_insert",
                lambda v: 0 < v < 10_000,
                render=fixed2,
            ),
            _total_parts_over_3000(),
        ),
    ),
    RuleSpec(
        cause="merge_backlog",
        next_check_hints=("inspect system.merges for long-running merges on the busiest replicas",),
        indicators=(
            numeric_indicator("active merges > 20", "merges", "active_merges", lambda v: v > 20, required=True),
            numeric_indicator(
                "max merge elapsed > 600s", "merges", "max_merge_elapsed_seconds", lambda v: v > 600, render=seconds
            ),
            _total_parts_over_3000(),
        ),
    ),
    RuleSpec(
        cause="partition_granularity_pressure",
        next_check_hints=("run RCA evidence collection with symptom=high_partition_count for partition-key RCA",),
        indicators=(
            numeric_indicator(
                "distinct partitions > 500", "parts_summary", "distinct_partitions", lambda v: v > 500, required=True
            ),
            ratio_indicator(
                "partition/parts ratio > 0.2", "parts_summary", "distinct_partitions", "total_active_parts", 0.2
            ),
            Indicator(description="partition key is configured", match=_partition_key_configured),
        ),
    ),
    RuleSpec(
        cause="wrong_engine_settings",
        next_check_hints=("review merge-tree table settings and per-table insert patterns",),
        indicators=(
            Indicator(description="engine is MergeTree family", match=_engine_is_merge_tree, blocker=True),
            _total_parts_over_3000(),
            numeric_indicator(
                "max parts in one partition > 1000",
                "parts_summary",
                "max_parts_per_partition",
                lambda v: v > 1000,
                required=True,
            ),
        ),
    ),
)

ACTIONS: tuple[PossibleAction, ...] = (
    PossibleAction(
        title="Increase insert batch size and reduce insert frequency",
        risk=Risk.LOW,
        tied_to="insert_too_frequent",
    ),
    PossibleAction(
        title="Investigate merge backlog and node merge pressure",
        risk=Risk.MEDIUM,
        tied_to="merge_backlog",
    ),
    PossibleAction(
        title="Review partition key granularity and lifecycle alignment",
        risk=Risk.HIGH,
        tied_to="partition_granularity_pressure",
    ),
    PossibleAction(
        title="Review table engine and merge settings for the affected table",
        risk=Risk.MEDIUM,
        tied_to="wrong_engine_settings",
    ),
)


def related_symptoms(results: QueryResults, candidates: list[CauseCandidate]) -> list[Symptom]:
    """Suggest a partition-count follow-up when partition pressure is high."""
    distinct_partitions = as_number(metric(results, "parts_summary", "distinct_partitions"))
    pressure = next((c for c in candidates if c.cause == "partition_granularity_pressure"), None)
    pressure_signal = pressure.signal_strength if pressure is not None else 0.0
    if distinct_partitions >= RELATED_PARTITION_THRESHOLD or pressure_signal >= RELATED_SIGNAL_THRESHOLD:
        return [Symptom.HIGH_PARTITION_COUNT]
    return []


class HighPartCountHandler(SymptomHandler):
    """Collects part, merge and insert evidence for the busiest table."""

    symptom = Symptom.HIGH_PART_COUNT
    queries = QUERIES
    rules = RULES
    actions = ACTIONS

    async def collect(self, context: SymptomContext) -> SymptomResult:
        resolved = await run_probe(
            context,
            self.stage("target_table"),
            35,
            lambda: discover_target_table(context.transport, context.scope, context.target, context.cluster),
        )
        target = resolved or Target()
        ctx = TemplateContext(
            base=context,
            resolved_target=target,
            parts_table_predicate=build_parts_table_predicate(resolved),
            query_log_table_predicate=build_query_log_predicate(Scope.TABLE, resolved),
            node_predicate=build_node_predicate(context.scope, resolved),
        )
        results = await run_queries(ctx, list(self.queries))
        candidates = self.analyse(results)
        related = related_symptoms(results, candidates)
        _logger.info(
            "part_count_evidence_collected",
            database=target.database,
            table=target.table,
            top_cause=candidates[0].cause if candidates else None,
            related=[s.value for s in related],
        )
        return SymptomResult(
            observations=list(results.values()),
            candidates=candidates,
            possible_actions=list(self.actions),
            target=resolved,
            related_symptoms=related,
        )
