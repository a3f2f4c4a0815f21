"""Concurrent execution of templated telemetry probes.

All QuerySpecs of one handler run at the same time. Results are keyed by
spec id so rules can address observations by name regardless of completion
order. The first failing probe fails the whole batch; the remaining probes
are cancelled.
"""

from __future__ import annotations

import asyncio
import math
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from chrca.clickhouse.errors import describe_error
from chrca.evidence.templates import TemplateContext, render_template, validate_template
from chrca.models.evidence import (
    Observation,
    ProgressStatus,
    QueryResults,
    Row,
    SymptomContext,
)
from chrca.observability.logging import get_logger
from chrca.observability.metrics import probe_queries_total

_logger = get_logger("query_runner")

T = TypeVar("T")

RowMapper = Callable[[Row | None, TemplateContext], Observation]


@dataclass(frozen=True)
class QuerySpec:
    """One telemetry probe: a SQL template and the mapping of its first row.

    The template is validated on construction so a spec referencing an
    unregistered placeholder fails at import time.
    """

    id: str
    progress_stage: str
    progress_weight: int
    sql_template: str
    to_observation: RowMapper

    def __post_init__(self) -> None:
        validate_template(self.sql_template)


def as_number(value: object) -> float:
    """Coerce a ClickHouse cell to a finite float; anything else becomes 0.

    JSONCompact renders 64-bit integers as strings, so numeric strings are
    accepted.
    """
    if isinstance(value, bool):
        return float(value)
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 0.0
    return number if math.isfinite(number) else 0.0


def cell(row: Row | None, index: int) -> object:
    """Return ``row[index]`` or None when the row is absent or too short."""
    if row is None or index >= len(row):
        return None
    return row[index]


async def run_probe(
    context: SymptomContext,
    stage: str,
    progress: int,
    fn: Callable[[], Awaitable[T]],
) -> T:
    """Run ``fn`` reporting started, then success or failed, to the progress sink."""
    context.report(stage, progress, ProgressStatus.STARTED)
    try:
        result = await fn()
    except Exception as exc:
        message = describe_error(exc)
        probe_queries_total.labels(status=ProgressStatus.FAILED.value).inc()
        _logger.warning("probe_failed", stage=stage, error=message)
        context.report(stage, progress, ProgressStatus.FAILED, message)
        raise
    probe_queries_total.labels(status=ProgressStatus.SUCCESS.value).inc()
    context.report(stage, progress, ProgressStatus.SUCCESS)
    return result


async def run_queries(ctx: TemplateContext, specs: list[QuerySpec]) -> QueryResults:
    """Execute every spec concurrently and collect observations keyed by spec id."""
    base = ctx.base

    async def _run(spec: QuerySpec) -> tuple[str, Observation]:
        sql = render_template(spec.sql_template, ctx)
        rows = await run_probe(
            base,
            spec.progress_stage,
            spec.progress_weight,
            lambda: base.transport.query(sql),
        )
        row = rows[0] if rows else None
        return spec.id, spec.to_observation(row, ctx)

    tasks = [asyncio.ensure_future(_run(spec)) for spec in specs]
    try:
        entries = await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        raise
    return dict(entries)
