"""RCA evidence data structures.

Every entity here is created fresh per investigation and discarded once the
response has been returned. Nothing in this module is persisted.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Protocol, runtime_checkable

SCHEMA_VERSION = 1

MetricValue = int | float | str | None
Row = list[Any]


class Symptom(StrEnum):
    """Canonical diagnostic topic selecting a symptom handler."""

    HIGH_QUERY_LATENCY = "high_query_latency"
    HIGH_PART_COUNT = "high_part_count"
    HIGH_PARTITION_COUNT = "high_partition_count"
    REPLICATION_LAG = "replication_lag"
    MERGE_BACKLOG = "merge_backlog"
    MUTATION_BACKLOG = "mutation_backlog"
    UNKNOWN = "unknown"


class Scope(StrEnum):
    """Investigation granularity."""

    CLUSTER = "cluster"
    NODE = "node"
    TABLE = "table"
    QUERY_PATTERN = "query_pattern"


class Risk(StrEnum):
    """Risk level of a suggested remediation."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ProgressStatus(StrEnum):
    """Status reported to a progress sink."""

    STARTED = "started"
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


class StatusScope(StrEnum):
    """Scope of an externally generated cluster-status snapshot."""

    SINGLE_NODE = "single_node"
    CLUSTER = "cluster"


class AnalysisMode(StrEnum):
    """How a cluster-status snapshot was computed."""

    SNAPSHOT = "snapshot"
    WINDOWED = "windowed"


@dataclass(frozen=True)
class Target:
    """Identifying attributes narrowing an investigation. All optional."""

    database: str | None = None
    table: str | None = None
    node: str | None = None
    query_hash: str | None = None

    def to_dict(self) -> dict[str, str]:
        return {
            key: value
            for key, value in (
                ("database", self.database),
                ("table", self.table),
                ("node", self.node),
                ("query_hash", self.query_hash),
            )
            if value is not None
        }


@dataclass(frozen=True)
class TimeRange:
    """Absolute ISO-8601 time range (``from``/``to`` on the wire)."""

    start: str
    end: str


@dataclass(frozen=True)
class TimeFilter:
    """Normalized time predicate plus the window length it covers."""

    where_clause: str
    minutes: int


@dataclass(frozen=True)
class Observation:
    """One piece of collected telemetry evidence."""

    source: str
    description: str
    metrics: dict[str, MetricValue]

    def to_dict(self) -> dict[str, object]:
        return {
            "source": self.source,
            "description": self.description,
            "metrics": dict(self.metrics),
        }


QueryResults = dict[str, Observation]


@dataclass(frozen=True)
class CauseCandidate:
    """A scored hypothesis explaining the symptom."""

    cause: str
    signal_strength: float
    indicators_matched: int
    indicators_checked: int
    evidence_for: list[str] = field(default_factory=list)
    evidence_against: list[str] = field(default_factory=list)
    next_checks: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        return {
            "cause": self.cause,
            "signal_strength": self.signal_strength,
            "indicators_matched": self.indicators_matched,
            "indicators_checked": self.indicators_checked,
            "evidence_for": list(self.evidence_for),
            "evidence_against": list(self.evidence_against),
            "next_checks": list(self.next_checks),
        }


@dataclass(frozen=True)
class PossibleAction:
    """Statically declared remediation suggestion tied to a cause."""

    title: str
    risk: Risk
    tied_to: str
    command: str | None = None

    def to_dict(self) -> dict[str, object]:
        data: dict[str, object] = {"title": self.title, "risk": self.risk.value, "tied_to": self.tied_to}
        if self.command is not None:
            data["command"] = self.command
        return data


@dataclass(frozen=True)
class EvidenceGap:
    """A compensation the engine made for missing, stale or unsupported input."""

    description: str
    reason: str

    def to_dict(self) -> dict[str, str]:
        return {"description": self.description, "reason": self.reason}


@dataclass(frozen=True)
class StatusContext:
    """Previously generated cluster-status snapshot offered as a hint."""

    generated_at: str
    analysis_mode: AnalysisMode
    scope: StatusScope
    time_window: int | None = None
    time_range: TimeRange | None = None
    categories: dict[str, dict[str, object]] = field(default_factory=dict)


@dataclass(frozen=True)
class RcaEvidenceRequest:
    """Input to the orchestrator."""

    symptom: Symptom
    scope: Scope = Scope.CLUSTER
    target: Target | None = None
    symptom_text: str | None = None
    time_window: int | None = None
    time_range: TimeRange | None = None
    status_context: StatusContext | None = None


@runtime_checkable
class TelemetryTransport(Protocol):
    """Capability to submit a SQL string and receive tabular rows."""

    async def query(self, sql: str) -> list[Row]: ...


ProgressSink = Callable[[str, int, ProgressStatus, str | None], None]


@dataclass
class SymptomContext:
    """Per-investigation bundle passed by reference to every step.

    ``gaps`` is appended to by scope resolution, status-context validation
    and handlers; it is never shared across investigations.
    """

    transport: TelemetryTransport
    scope: Scope
    time_filter: TimeFilter
    target: Target | None = None
    gaps: list[EvidenceGap] = field(default_factory=list)
    progress: ProgressSink | None = None
    cluster: str = ""

    @property
    def time_window_minutes(self) -> int:
        return self.time_filter.minutes

    def report(self, stage: str, progress: int, status: ProgressStatus, error: str | None = None) -> None:
        if self.progress is not None:
            self.progress(stage, progress, status, error)


@dataclass
class SymptomResult:
    """Output of one symptom handler."""

    observations: list[Observation] = field(default_factory=list)
    candidates: list[CauseCandidate] = field(default_factory=list)
    possible_actions: list[PossibleAction] = field(default_factory=list)
    target: Target | None = None
    related_symptoms: list[Symptom] = field(default_factory=list)


@dataclass
class RcaEvidenceOutput:
    """Terminal, versioned response of the evidence engine."""

    success: bool
    symptom: Symptom
    scope: Scope
    generated_at: str
    target: Target | None = None
    related_symptoms: list[Symptom] = field(default_factory=list)
    observations: list[Observation] = field(default_factory=list)
    candidates: list[CauseCandidate] = field(default_factory=list)
    possible_actions: list[PossibleAction] = field(default_factory=list)
    gaps: list[EvidenceGap] = field(default_factory=list)
    error: str | None = None
    schema_version: int = SCHEMA_VERSION

    def to_dict(self) -> dict[str, object]:
        data: dict[str, object] = {
            "schema_version": self.schema_version,
            "success": self.success,
            "symptom": self.symptom.value,
            "scope": self.scope.value,
            "target": self.target.to_dict() if self.target is not None else None,
            "related_symptoms": [s.value for s in self.related_symptoms],
            "observations": [o.to_dict() for o in self.observations],
            "candidates": [c.to_dict() for c in self.candidates],
            "possible_actions": [a.to_dict() for a in self.possible_actions],
            "gaps": [g.to_dict() for g in self.gaps],
            "generated_at": self.generated_at,
        }
        if self.error is not None:
            data["error"] = self.error
        return data
