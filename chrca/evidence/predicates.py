"""SQL predicate builders for scope- and target-narrowed probes."""

from __future__ import annotations

from chrca.evidence.templates import escape_sql_string
from chrca.models.evidence import Scope, Target

MATCH_ALL = "1 = 1"


def build_node_predicate(scope: Scope, target: Target | None, expr: str = "FQDN()") -> str:
    if scope == Scope.NODE and target is not None and target.node:
        return f"{expr} = '{escape_sql_string(target.node)}'"
    return MATCH_ALL


def build_query_log_predicate(scope: Scope, target: Target | None) -> str:
    """Narrow ``system.query_log`` rows to the investigated scope."""
    if target is None:
        return MATCH_ALL
    if scope == Scope.QUERY_PATTERN and target.query_hash:
        return f"toString(normalized_query_hash) = '{escape_sql_string(target.query_hash)}'"
    if scope == Scope.TABLE and target.table:
        table = escape_sql_string(target.table)
        if target.database:
            database = escape_sql_string(target.database)
            return f"has(databases, '{database}') AND has(tables, '{database}.{table}')"
        # query_log stores qualified names: match any database
        return f"arrayExists(t -> t = '{table}' OR endsWith(t, '.{table}'), tables)"
    if scope == Scope.NODE and target.node:
        return build_node_predicate(scope, target)
    return MATCH_ALL


def build_parts_table_predicate(target: Target | None) -> str:
    """Narrow ``system.parts`` rows to the target table, if any."""
    if target is None or not target.table:
        return MATCH_ALL
    table = escape_sql_string(target.table)
    if target.database:
        return f"database = '{escape_sql_string(target.database)}' AND table = '{table}'"
    return f"table = '{table}'"
