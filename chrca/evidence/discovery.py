"""Target discovery: pick the table under the most part pressure.

When the caller has not pinned the investigation to a table, the table with
the highest active part count on any single host is adopted as the target.
"""

from __future__ import annotations

from dataclasses import replace

from chrca.evidence.runner import cell
from chrca.evidence.templates import escape_sql_string, expand_cluster_macros
from chrca.models.evidence import Scope, Target, TelemetryTransport
from chrca.observability.logging import get_logger

_logger = get_logger("target_discovery")

_TOP_TABLE_BY_PARTS_SQL = """
SELECT
  database,
  table,
  max(parts) AS parts
FROM (
  SELECT
    FQDN() AS host_name,
    database,
    table,
    count() AS parts
  FROM {clusterAllReplicas:system.parts}
  WHERE {where_clause}
  GROUP BY host_name, database, table
)
GROUP BY database, table
ORDER BY parts DESC
LIMIT 1"""


def normalize_target_table(target: Target | None) -> Target | None:
    """Normalize the table field of a caller-supplied target.

    ``@events`` becomes ``events``; ``analytics.events`` becomes database
    ``analytics`` and table ``events`` unless a database was given explicitly.
    """
    if target is None or not target.table:
        return target

    raw_table = target.table.strip().removeprefix("@")
    database = (target.database or "").strip()
    table = raw_table

    first_dot = raw_table.find(".")
    if first_dot > 0:
        db_from_table = raw_table[:first_dot].strip()
        table_from_table = raw_table[first_dot + 1 :].strip()
        if db_from_table and table_from_table:
            if not database:
                database = db_from_table
            table = table_from_table

    return replace(target, database=database or None, table=table.removeprefix("@"))


async def discover_target_table(
    transport: TelemetryTransport,
    scope: Scope,
    target: Target | None,
    cluster: str = "",
) -> Target | None:
    """Return the target to investigate.

    A table-scoped request that already names a table is returned normalized.
    Otherwise the busiest ``(database, table)`` by active parts is adopted,
    restricted to ``target.node`` for node scope. When nothing is found the
    normalized caller target is returned unchanged.
    """
    normalized = normalize_target_table(target)
    if scope == Scope.TABLE and normalized is not None and normalized.table:
        return normalized

    where_clause = "active"
    if scope == Scope.NODE and target is not None and target.node:
        where_clause += f" AND FQDN() = '{escape_sql_string(target.node)}'"

    sql = expand_cluster_macros(_TOP_TABLE_BY_PARTS_SQL, cluster).replace("{where_clause}", where_clause)
    rows = await transport.query(sql)
    row = rows[0] if rows else None
    database = str(cell(row, 0) or "")
    table = str(cell(row, 1) or "")
    if not table:
        _logger.info("target_discovery_empty", scope=scope.value)
        return normalized

    _logger.info("target_discovered", database=database, table=table, parts=cell(row, 2))
    return replace(normalized or Target(), database=database or None, table=table)
