"""high_partition_count: too many partitions.

Looks at partition cardinality, recent partition growth, the partition key
expression and insert fragmentation for the target table.
"""

from __future__ import annotations

import re

from chrca.evidence.discovery import discover_target_table
from chrca.evidence.predicates import build_parts_table_predicate, build_query_log_predicate
from chrca.evidence.runner import QuerySpec, as_number, cell, run_probe, run_queries
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
from chrca.rules.base import Indicator, IndicatorMatch, RuleSpec
from chrca.symptoms.base import SymptomHandler, fixed2, numeric_indicator, ratio_indicator, text_metric

_logger = get_logger("symptom.high_partition_count")

_STAGE = "rca high_partition_count"

# Partition expressions that usually create far too many partitions.
_GRANULAR_KEY_RE = re.compile(
    r"toDate\(|toStartOfHour|toYYYYMMDD|toYYYYMMDDhh|cityHash|user_id|trace_id",
    re.IGNORECASE,
)
_MERGE_TREE_RE = re.compile(r"MergeTree", re.IGNORECASE)


def _partition_stats_observation(row: Row | None, ctx: TemplateContext) -> Observation:
    return Observation(
        source="system.parts",
        description="Partition inventory and growth",
        metrics={
            "partition_count": int(as_number(cell(row, 0))),
            "active_parts": int(as_number(cell(row, 1))),
            "max_parts_per_partition": int(as_number(cell(row, 2))),
        },
    )


def _partition_growth_observation(row: Row | None, ctx: TemplateContext) -> Observation:
    return Observation(
        source="system.parts",
        description="Recent partition growth",
        metrics={"recent_partitions": int(as_number(cell(row, 0)))},
    )


def _table_meta_observation(row: Row | None, ctx: TemplateContext) -> Observation:
    partition_key = cell(row, 0)
    engine = cell(row, 1)
    return Observation(
        source="system.tables",
        description="Partition key definition",
        metrics={
            "partition_key": str(partition_key or ""),
            "engine": str(engine) if engine else "unknown",
        },
    )


def _insert_pattern_observation(row: Row | None, ctx: TemplateContext) -> Observation:
    return Observation(
        source="system.query_log",
        description="Insert pressure for target table",
        metrics={
            "inserts": int(as_number(cell(row, 0))),
            "avg_rows_per_insert": round(as_number(cell(row, 1)), 2),
        },
    )


QUERIES: tuple[QuerySpec, ...] = (
    QuerySpec(
        id="partition_stats",
        progress_stage=f"{_STAGE}: partition_stats",
        progress_weight=40,
        sql_template="""
SELECT
  uniqExact(partition) AS partition_count,
  sum(partition_parts) AS active_parts,
  max(partition_parts) AS max_parts_per_partition
FROM (
  SELECT
    partition,
    count() AS partition_parts
  FROM {clusterAllReplicas:system.parts}
  WHERE active AND {parts_table_filter}
  GROUP BY partition
)""",
        to_observation=_partition_stats_observation,
    ),
    QuerySpec(
        id="partition_growth",
        progress_stage=f"{_STAGE}: partition_growth",
        progress_weight=45,
        sql_template="""
SELECT
  uniqExact(partition) AS recent_partitions
FROM {clusterAllReplicas:system.parts}
WHERE active
  AND modification_time >= now() - INTERVAL {time_window_minutes} MINUTE
  AND {parts_table_filter}""",
        to_observation=_partition_growth_observation,
    ),
    QuerySpec(
        id="table_meta",
        progress_stage=f"{_STAGE}: table_meta",
        progress_weight=50,
        sql_template="""
SELECT
  any(partition_key) AS partition_key,
  any(engine) AS engine
FROM {clusterAllReplicas:system.tables}
WHERE database = '{target_database}'
  AND name = '{target_table}'""",
        to_observation=_table_meta_observation,
    ),
    QuerySpec(
        id="insert_pattern",
        progress_stage=f"{_STAGE}: insert_pattern",
        progress_weight=55,
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
)


def _granular_partition_key(results: QueryResults) -> IndicatorMatch:
    key = text_metric(results, "table_meta", "partition_key")
    return IndicatorMatch(matched=bool(_GRANULAR_KEY_RE.search(key)), actual=key or "none")


def _engine_is_merge_tree(results: QueryResults) -> IndicatorMatch:
    engine = text_metric(results, "table_meta", "engine", "unknown")
    return IndicatorMatch(matched=bool(_MERGE_TREE_RE.search(engine)), actual=engine)


def _partitions_over(threshold: int, *, required: bool = False) -> Indicator:
    return numeric_indicator(
        f"partition count > {threshold}",
        "partition_stats",
        "partition_count",
        lambda v: v > threshold,
        required=required,
    )


def _recent_partitions_over_100(*, required: bool = False) -> Indicator:
    return numeric_indicator(
        "recent partitions > 100 in window",
        "partition_growth",
        "recent_partitions",
        lambda v: v > 100,
        required=required,
    )


RULES: tuple[RuleSpec, ...] = (
    RuleSpec(
        cause="partition_key_too_granular",
        indicators=(
            _partitions_over(1000, required=True),
            Indicator(description="partition key expression appears granular", match=_granular_partition_key),
            _recent_partitions_over_100(),
        ),
    ),
    RuleSpec(
        cause="high_cardinality_partition_key",
        indicators=(
            _partitions_over(1000, required=True),
            ratio_indicator(
                "partition/parts ratio > 0.3",
                "partition_stats",
                "partition_count",
                "active_parts",
                0.3,
                required=True,
            ),
            numeric_indicator(
                "avg rows per insert < 10000",
                "insert_pattern",
                "avg_rows_per_insert",
                lambda v: 0 < v < 10_000,
                render=fixed2,
            ),
        ),
    ),
    RuleSpec(
        cause="unbounded_partition_growth",
        next_check_hints=("review partition lifecycle policy and retention granularity",),
        indicators=(
            _recent_partitions_over_100(required=True),
            _partitions_over(500),
            Indicator(description="engine is MergeTree family", match=_engine_is_merge_tree),
        ),
    ),
)

ACTIONS: tuple[PossibleAction, ...] = (
    PossibleAction(
        title="Coarsen partition key granularity (for example month-level time partition)",
        risk=Risk.HIGH,
        tied_to="partition_key_too_granular",
    ),
    PossibleAction(
        title="Align partitioning with lifecycle management and retention",
        risk=Risk.MEDIUM,
        tied_to="unbounded_partition_growth",
    ),
    PossibleAction(
        title="Reduce insert fragmentation to avoid compounding partition pressure",
        risk=Risk.LOW,
        tied_to="high_cardinality_partition_key",
    ),
)


class HighPartitionCountHandler(SymptomHandler):
    """Collects partition cardinality and growth evidence for the target table."""

    symptom = Symptom.HIGH_PARTITION_COUNT
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
        ctx = TemplateContext(
            base=context,
            resolved_target=resolved or Target(),
            parts_table_predicate=build_parts_table_predicate(resolved),
            query_log_table_predicate=build_query_log_predicate(Scope.TABLE, resolved),
        )
        results = await run_queries(ctx, list(self.queries))
        candidates = self.analyse(results)
        _logger.info(
            "partition_count_evidence_collected",
            database=resolved.database if resolved else None,
            table=resolved.table if resolved else None,
            top_cause=candidates[0].cause if candidates else None,
        )
        return SymptomResult(
            observations=list(results.values()),
            candidates=candidates,
            possible_actions=list(self.actions),
            target=resolved,
        )
