"""FastAPI route handlers for the chrca REST API.

All routes are registered on a single APIRouter that ``app.py`` mounts
under the ``/api/v1`` prefix.

Status code conventions:
    200  -- every evidence request the schema accepts, success or not;
            failures are reported in-band via ``success=false``
    422  -- request body fails schema validation
    500  -- unexpected server-side failure outside the coordinator
"""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from chrca.api.schemas import HealthStatus, RcaEvidenceRequestSchema, RcaEvidenceResponse
from chrca.evidence.progress import log_progress
from chrca.observability.logging import get_logger

_log = get_logger("api.routes")

router = APIRouter()


@router.post(
    "/rca/evidence",
    response_model=RcaEvidenceResponse,
    response_model_exclude_none=True,
    summary="Collect RCA evidence",
    description=(
        "Runs the read-only diagnostic probes for a symptom and returns ranked "
        "cause candidates. Investigation failures are surfaced in the response "
        "body, never as an error status."
    ),
)
async def post_rca_evidence(request: Request, body: RcaEvidenceRequestSchema) -> RcaEvidenceResponse:
    """``POST /api/v1/rca/evidence``"""
    coordinator = request.app.state.coordinator
    try:
        output = await coordinator.collect_evidence(body.to_domain(), progress=log_progress)
    except Exception as exc:
        _log.error("rca_evidence_endpoint_error", symptom=body.symptom.value, error=str(exc))
        return JSONResponse(  # type: ignore[return-value]
            status_code=500,
            content={"error": "INTERNAL_ERROR", "detail": "An unexpected error occurred."},
        )
    return RcaEvidenceResponse.from_domain(output)


@router.get(
    "/health",
    response_model=HealthStatus,
    summary="Health check",
    description="Lightweight liveness probe. Always returns 200 if the process is up.",
)
async def get_health(request: Request) -> HealthStatus:
    """``GET /api/v1/health``"""
    from chrca import __version__

    registry = getattr(request.app.state, "registry", None)
    handlers = [s.value for s in registry.symptoms] if registry is not None else []
    return HealthStatus(status="ok", version=__version__, handlers=handlers)
