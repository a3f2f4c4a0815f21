"""RCA Coordinator: orchestrates one evidence-collection investigation.

Receives requests from the REST API or CLI, resolves scope and time window,
gates any supplied status context, dispatches to the symptom handler (or the
unknown-symptom fallback) and assembles the final RcaEvidenceOutput.
"""

from __future__ import annotations

import time
from datetime import UTC, datetime

from chrca.clickhouse.errors import describe_error
from chrca.evidence.scope import resolve_scope
from chrca.evidence.status_context import DEFAULT_SNAPSHOT_MAX_AGE_MINUTES, is_status_context_reusable
from chrca.evidence.templates import TemplateError
from chrca.evidence.timewindow import build_time_filter
from chrca.models.evidence import (
    EvidenceGap,
    ProgressSink,
    ProgressStatus,
    RcaEvidenceOutput,
    RcaEvidenceRequest,
    Symptom,
    SymptomContext,
    SymptomResult,
    TelemetryTransport,
)
from chrca.observability.logging import get_logger
from chrca.observability.metrics import invariant_violations_total, rca_duration_seconds, rca_requests_total
from chrca.symptoms import HandlerRegistry, build_handler_registry
from chrca.symptoms.unknown import handle_unknown

_logger = get_logger("rca_coordinator")

_STAGE_STATUS_CONTEXT = "validate status context"
_STAGE_COLLECT = "collect rca evidence"

UNKNOWN_WITHOUT_TEXT_ERROR = "symptom_text is required when symptom='unknown'"


def _utcnow_iso() -> str:
    return datetime.now(tz=UTC).isoformat().replace("+00:00", "Z")


def _not_implemented_message(symptom: Symptom) -> str:
    return f"symptom '{symptom.value}' is not implemented"


class RcaCoordinator:
    """Runs RCA evidence investigations against a telemetry transport.

    A coordinator is safe to share between concurrent investigations: every
    per-request value lives in the SymptomContext built by collect_evidence.
    """

    def __init__(
        self,
        transport: TelemetryTransport,
        registry: HandlerRegistry | None = None,
        *,
        cluster: str = "",
        snapshot_max_age_minutes: int = DEFAULT_SNAPSHOT_MAX_AGE_MINUTES,
    ) -> None:
        self._transport = transport
        self._registry = registry if registry is not None else build_handler_registry()
        self._cluster = cluster
        self._snapshot_max_age_minutes = snapshot_max_age_minutes

    async def collect_evidence(
        self,
        request: RcaEvidenceRequest,
        progress: ProgressSink | None = None,
    ) -> RcaEvidenceOutput:
        """Full evidence pipeline. Always returns an RcaEvidenceOutput, never raises."""
        start = time.monotonic()
        scope, gaps = resolve_scope(request.symptom, request.scope)
        time_filter = build_time_filter(request)
        context = SymptomContext(
            transport=self._transport,
            scope=scope,
            time_filter=time_filter,
            target=request.target,
            gaps=gaps,
            progress=progress,
            cluster=self._cluster,
        )

        try:
            output = await self._collect(request, context)
        except TemplateError as exc:
            message = describe_error(exc)
            invariant_violations_total.labels(invariant_name="template_totality").inc()
            context.report(_STAGE_COLLECT, 90, ProgressStatus.FAILED, message)
            _logger.error("template_render_failed", symptom=request.symptom.value, error=message)
            output = self._failure(request, context, message)
        except Exception as exc:
            message = describe_error(exc)
            context.report(_STAGE_COLLECT, 90, ProgressStatus.FAILED, message)
            _logger.warning("rca_evidence_failed", symptom=request.symptom.value, error=message)
            output = self._failure(request, context, message)

        outcome = "success" if output.success else "failure"
        rca_requests_total.labels(symptom=request.symptom.value, outcome=outcome).inc()
        rca_duration_seconds.labels(symptom=request.symptom.value).observe(time.monotonic() - start)
        _logger.info(
            "rca_evidence_collected",
            symptom=request.symptom.value,
            scope=scope.value,
            success=output.success,
            candidates=len(output.candidates),
            gaps=len(output.gaps),
        )
        return output

    async def _collect(self, request: RcaEvidenceRequest, context: SymptomContext) -> RcaEvidenceOutput:
        if request.symptom == Symptom.UNKNOWN and not (request.symptom_text or "").strip():
            _logger.warning("invalid_rca_request", error=UNKNOWN_WITHOUT_TEXT_ERROR)
            return self._failure(request, context, UNKNOWN_WITHOUT_TEXT_ERROR)

        reusable, context_gaps = is_status_context_reusable(
            request,
            context.scope,
            snapshot_max_age_minutes=self._snapshot_max_age_minutes,
        )
        context.gaps.extend(context_gaps)
        context.report(
            _STAGE_STATUS_CONTEXT,
            10,
            ProgressStatus.SUCCESS if reusable else ProgressStatus.SKIPPED,
        )

        context.report(_STAGE_COLLECT, 30, ProgressStatus.STARTED)

        if request.symptom == Symptom.UNKNOWN:
            result = await handle_unknown(context, request.symptom_text or "")
        else:
            handler = self._registry.get(request.symptom)
            if handler is None:
                message = _not_implemented_message(request.symptom)
                context.gaps.append(EvidenceGap(description="symptom handler unavailable", reason=message))
                context.report(_STAGE_COLLECT, 90, ProgressStatus.SKIPPED)
                _logger.info("symptom_not_implemented", symptom=request.symptom.value)
                return self._failure(request, context, message)
            result = await handler.collect(context)

        context.report(_STAGE_COLLECT, 90, ProgressStatus.SUCCESS)
        return self._success(request, context, result)

    @staticmethod
    def _success(request: RcaEvidenceRequest, context: SymptomContext, result: SymptomResult) -> RcaEvidenceOutput:
        return RcaEvidenceOutput(
            success=True,
            symptom=request.symptom,
            scope=context.scope,
            generated_at=_utcnow_iso(),
            target=result.target if result.target is not None else request.target,
            related_symptoms=list(result.related_symptoms),
            observations=list(result.observations),
            candidates=list(result.candidates),
            possible_actions=list(result.possible_actions),
            gaps=list(context.gaps),
        )

    @staticmethod
    def _failure(request: RcaEvidenceRequest, context: SymptomContext, error: str) -> RcaEvidenceOutput:
        return RcaEvidenceOutput(
            success=False,
            symptom=request.symptom,
            scope=context.scope,
            generated_at=_utcnow_iso(),
            target=request.target,
            gaps=list(context.gaps),
            error=error,
        )
