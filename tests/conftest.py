"""Shared fixtures: an in-memory telemetry transport and context builders."""

from __future__ import annotations

import pytest

from chrca.evidence.progress import ProgressRecorder
from chrca.models.evidence import Row, Scope, SymptomContext, Target, TimeFilter

# SQL fragments identifying each probe in the fake transport. Order matters:
# the first fragment found in the SQL wins.
DISCOVERY = "ORDER BY parts DESC"
PARTS_SUMMARY = "total_active_parts"
PARTITION_STATS = "partition_parts"
PARTITION_GROWTH = "recent_partitions"
MERGES = "system.merges"
INSERTS = "query_kind = 'Insert'"
TABLE_META = "system.tables"
QUERY_LOG_LATENCY = "quantileExact"
MEMORY = "system.asynchronous_metrics"
PROCESSES = "system.processes"
ERRORS = "system.errors"
REPLICAS = "system.replicas"


class FakeTransport:
    """TelemetryTransport answering queries by SQL fragment.

    ``responses`` maps a fragment to rows, or to an exception instance that
    is raised instead. Unmatched SQL returns no rows. Every executed
    statement is kept in ``queries``.
    """

    def __init__(self, responses: dict[str, list[Row] | BaseException] | None = None) -> None:
        self.responses = dict(responses or {})
        self.queries: list[str] = []

    async def query(self, sql: str) -> list[Row]:
        self.queries.append(sql)
        for fragment, response in self.responses.items():
            if fragment in sql:
                if isinstance(response, BaseException):
                    raise response
                return response
        return []

    def executed(self, fragment: str) -> list[str]:
        return [sql for sql in self.queries if fragment in sql]


def make_context(
    transport: FakeTransport,
    scope: Scope = Scope.CLUSTER,
    target: Target | None = None,
    minutes: int = 60,
    cluster: str = "",
    progress: ProgressRecorder | None = None,
) -> SymptomContext:
    return SymptomContext(
        transport=transport,
        scope=scope,
        time_filter=TimeFilter(
            where_clause=f"event_time >= now() - INTERVAL {minutes} MINUTE",
            minutes=minutes,
        ),
        target=target,
        progress=progress,
        cluster=cluster,
    )


@pytest.fixture
def recorder() -> ProgressRecorder:
    return ProgressRecorder()
