"""Named-placeholder SQL templating.

Templates reference context values as ``{placeholder}``. Each placeholder
has exactly one resolver in ``PLACEHOLDER_RESOLVERS``. Templates are checked
against that table when a QuerySpec is declared, and rendering refuses to
substitute a placeholder whose resolver has no value. Both failures are
internal contract violations, not bad input.

Cluster macros such as ``{clusterAllReplicas:system.parts}`` are expanded
in the same pass as placeholders.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass

from chrca.models.evidence import SymptomContext, Target

_PLACEHOLDER_RE = re.compile(r"\{([A-Za-z_][A-Za-z0-9_]*)\}")
_CLUSTER_MACRO_RE = re.compile(r"\{(clusterAllReplicas|cluster):([^{}]+)\}")
_TOKEN_RE = re.compile(
    r"\{(?:(?P<function>clusterAllReplicas|cluster):(?P<table>[^{}]+)|(?P<name>[A-Za-z_][A-Za-z0-9_]*))\}"
)


class TemplateError(RuntimeError):
    """A template references a placeholder that cannot be resolved."""


def escape_sql_string(value: str) -> str:
    """Escape a value for use inside a single-quoted ClickHouse string literal."""
    return value.replace("\\", "\\\\").replace("'", "\\'")


@dataclass(frozen=True)
class TemplateContext:
    """A SymptomContext plus the handler-specific values templates may use."""

    base: SymptomContext
    parts_table_predicate: str | None = None
    query_log_table_predicate: str | None = None
    node_predicate: str | None = None
    scope_predicate: str | None = None
    resolved_target: Target | None = None

    @property
    def time_window_minutes(self) -> int:
        return self.base.time_window_minutes


def _target_field(ctx: TemplateContext, name: str) -> str | None:
    if ctx.resolved_target is None:
        return None
    return escape_sql_string(getattr(ctx.resolved_target, name) or "")


PLACEHOLDER_RESOLVERS: dict[str, Callable[[TemplateContext], str | None]] = {
    "parts_table_filter": lambda ctx: ctx.parts_table_predicate,
    "query_log_table_filter": lambda ctx: ctx.query_log_table_predicate,
    "node_filter": lambda ctx: ctx.node_predicate,
    "scope_filter": lambda ctx: ctx.scope_predicate,
    "time_filter": lambda ctx: ctx.base.time_filter.where_clause,
    "time_window_minutes": lambda ctx: str(ctx.base.time_window_minutes),
    "target_database": lambda ctx: _target_field(ctx, "database"),
    "target_table": lambda ctx: _target_field(ctx, "table"),
}


def template_placeholders(template: str) -> set[str]:
    """Return the placeholder names referenced by a template."""
    return set(_PLACEHOLDER_RE.findall(template))


def validate_template(template: str) -> set[str]:
    """Raise TemplateError if the template uses a placeholder with no resolver."""
    placeholders = template_placeholders(template)
    unknown = sorted(placeholders - PLACEHOLDER_RESOLVERS.keys())
    if unknown:
        raise TemplateError(f"Template references unregistered placeholders: {unknown}")
    return placeholders


def _expand_macro(function: str, table: str, cluster: str) -> str:
    table = table.strip()
    if not cluster:
        return table
    return f"{function}('{escape_sql_string(cluster)}', {table})"


def expand_cluster_macros(sql: str, cluster: str) -> str:
    """Expand ``{clusterAllReplicas:tbl}`` / ``{cluster:tbl}`` macros.

    With a cluster name the table is wrapped in the matching table function;
    without one the bare table is used.
    """
    return _CLUSTER_MACRO_RE.sub(lambda m: _expand_macro(m.group(1), m.group(2), cluster), sql)


def render_template(template: str, ctx: TemplateContext) -> str:
    """Substitute every placeholder and expand cluster macros.

    All values are resolved before anything is substituted, and the template
    is rewritten in a single pass, so text inside a substituted value is never
    read as a placeholder or macro. Raises TemplateError when a referenced
    placeholder resolves to None.
    """
    values: dict[str, str] = {}
    for placeholder in sorted(validate_template(template)):
        value = PLACEHOLDER_RESOLVERS[placeholder](ctx)
        if value is None:
            raise TemplateError(f"Template placeholder {{{placeholder}}} requires context value but none provided")
        values[placeholder] = value

    def _replace(match: re.Match[str]) -> str:
        if match.group("name") is not None:
            return values[match.group("name")]
        return _expand_macro(match.group("function"), match.group("table"), ctx.base.cluster)

    return _TOKEN_RE.sub(_replace, template)
