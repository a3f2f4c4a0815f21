"""Pydantic request/response models for the chrca REST API.

All models use Pydantic v2 syntax. Field descriptions are also used
by FastAPI to generate the OpenAPI spec.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, model_validator

from chrca.evidence.timewindow import MAX_WINDOW_MINUTES, MIN_WINDOW_MINUTES
from chrca.models.evidence import (
    AnalysisMode,
    RcaEvidenceOutput,
    RcaEvidenceRequest,
    Scope,
    StatusContext,
    StatusScope,
    Symptom,
    Target,
    TimeRange,
)

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class TargetSchema(BaseModel):
    """Optional attributes narrowing the investigation."""

    database: str | None = None
    table: str | None = None
    node: str | None = None
    query_hash: str | None = None

    def to_domain(self) -> Target:
        return Target(database=self.database, table=self.table, node=self.node, query_hash=self.query_hash)


class TimeRangeSchema(BaseModel):
    """Absolute ISO-8601 time range."""

    model_config = ConfigDict(populate_by_name=True)

    from_: str = Field(..., alias="from", examples=["2025-01-01T00:00:00Z"])
    to: str = Field(..., examples=["2025-01-01T01:00:00Z"])

    def to_domain(self) -> TimeRange:
        return TimeRange(start=self.from_, end=self.to)


class StatusContextSchema(BaseModel):
    """Previously generated cluster-status snapshot, used only as a hint."""

    generated_at: str = Field(..., description="ISO-8601 generation timestamp.")
    analysis_mode: AnalysisMode
    scope: StatusScope
    time_window: int | None = Field(default=None, ge=1)
    time_range: TimeRangeSchema | None = None
    categories: dict[str, dict[str, object]] = Field(default_factory=dict)

    def to_domain(self) -> StatusContext:
        return StatusContext(
            generated_at=self.generated_at,
            analysis_mode=self.analysis_mode,
            scope=self.scope,
            time_window=self.time_window,
            time_range=self.time_range.to_domain() if self.time_range is not None else None,
            categories=dict(self.categories),
        )


class RcaEvidenceRequestSchema(BaseModel):
    """Request body for ``POST /api/v1/rca/evidence``."""

    symptom: Symptom = Field(..., examples=["high_part_count"])
    scope: Scope = Field(default=Scope.CLUSTER)
    target: TargetSchema | None = None
    symptom_text: str | None = Field(
        default=None,
        description="Free-text symptom description. Required when symptom is ``unknown``.",
        examples=["queries are timing out"],
    )
    time_window: int | None = Field(
        default=None,
        ge=MIN_WINDOW_MINUTES,
        le=MAX_WINDOW_MINUTES,
        description="Relative look-back window in minutes. Defaults to 60.",
    )
    time_range: TimeRangeSchema | None = None
    status_context: StatusContextSchema | None = None

    @model_validator(mode="after")
    def check_single_time_selector(self) -> RcaEvidenceRequestSchema:
        """A request selects its window by time_window or time_range, never both."""
        if self.time_window is not None and self.time_range is not None:
            raise ValueError("provide either time_window or time_range, not both")
        return self

    def to_domain(self) -> RcaEvidenceRequest:
        return RcaEvidenceRequest(
            symptom=self.symptom,
            scope=self.scope,
            target=self.target.to_domain() if self.target is not None else None,
            symptom_text=self.symptom_text,
            time_window=self.time_window,
            time_range=self.time_range.to_domain() if self.time_range is not None else None,
            status_context=self.status_context.to_domain() if self.status_context is not None else None,
        )


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class HealthStatus(BaseModel):
    """Response body for ``GET /api/v1/health``."""

    status: str = Field(..., examples=["ok"])
    version: str = Field(..., examples=["0.1.0"])
    handlers: list[str] = Field(default_factory=list, description="Symptoms with a registered handler.")


class ObservationResponse(BaseModel):
    source: str
    description: str
    metrics: dict[str, int | float | str | None]


class CauseCandidateResponse(BaseModel):
    cause: str
    signal_strength: float = Field(..., ge=0.0, le=1.0)
    indicators_matched: int
    indicators_checked: int
    evidence_for: list[str]
    evidence_against: list[str]
    next_checks: list[str]


class PossibleActionResponse(BaseModel):
    title: str
    risk: str
    tied_to: str
    command: str | None = None


class EvidenceGapResponse(BaseModel):
    description: str
    reason: str


class RcaEvidenceResponse(BaseModel):
    """Response body for ``POST /api/v1/rca/evidence``.

    Failures are reported in-band with ``success=false`` and ``error``.
    """

    schema_version: int
    success: bool
    symptom: str
    scope: str
    target: dict[str, str] | None = None
    related_symptoms: list[str] = Field(default_factory=list)
    observations: list[ObservationResponse] = Field(default_factory=list)
    candidates: list[CauseCandidateResponse] = Field(default_factory=list)
    possible_actions: list[PossibleActionResponse] = Field(default_factory=list)
    gaps: list[EvidenceGapResponse] = Field(default_factory=list)
    generated_at: str
    error: str | None = None

    @classmethod
    def from_domain(cls, output: RcaEvidenceOutput) -> RcaEvidenceResponse:
        return cls.model_validate(output.to_dict())
