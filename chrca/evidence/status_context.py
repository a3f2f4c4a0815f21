"""Freshness gate for externally supplied cluster-status context.

A status snapshot produced earlier by the cluster-status tool may be offered
as a hint. It is only trusted when its scope covers the requested scope and
it is younger than the staleness ceiling. The decision is advisory: callers
use it to report progress, evidence collection itself is unchanged.
"""

from __future__ import annotations

from datetime import UTC, datetime

from chrca.evidence.timewindow import DEFAULT_WINDOW_MINUTES, parse_iso8601, range_minutes
from chrca.models.evidence import (
    AnalysisMode,
    EvidenceGap,
    RcaEvidenceRequest,
    Scope,
    StatusScope,
)
from chrca.observability.logging import get_logger

_logger = get_logger("status_context")

DEFAULT_SNAPSHOT_MAX_AGE_MINUTES = 5


def _ignored(reason: str) -> EvidenceGap:
    return EvidenceGap(description="status_context ignored", reason=reason)


def staleness_limit_minutes(
    request: RcaEvidenceRequest,
    snapshot_max_age_minutes: int = DEFAULT_SNAPSHOT_MAX_AGE_MINUTES,
) -> int:
    """Maximum age, in minutes, at which the request's status context is reusable.

    Snapshot-mode context is only good for ``snapshot_max_age_minutes``.
    Windowed context lives as long as the investigation window: the request's
    absolute range when given, otherwise the larger of the request's and the
    context's own windows, defaulting to 60.
    """
    context = request.status_context
    if context is not None and context.analysis_mode == AnalysisMode.SNAPSHOT:
        return snapshot_max_age_minutes

    if request.time_range is not None:
        minutes = range_minutes(request.time_range)
        if minutes is not None:
            return minutes

    windows: list[int] = []
    if request.time_window is not None:
        windows.append(request.time_window)
    if context is not None:
        if context.time_window is not None:
            windows.append(context.time_window)
        if context.time_range is not None:
            context_minutes = range_minutes(context.time_range)
            if context_minutes is not None:
                windows.append(context_minutes)
    return max(windows) if windows else DEFAULT_WINDOW_MINUTES


def is_status_context_reusable(
    request: RcaEvidenceRequest,
    scope: Scope,
    *,
    now: datetime | None = None,
    snapshot_max_age_minutes: int = DEFAULT_SNAPSHOT_MAX_AGE_MINUTES,
) -> tuple[bool, list[EvidenceGap]]:
    """Decide whether ``request.status_context`` may be trusted.

    Returns (reusable, gaps). No gap is recorded when there is no context.
    """
    context = request.status_context
    if context is None:
        return False, []

    if context.scope == StatusScope.SINGLE_NODE and scope == Scope.CLUSTER:
        return False, [_ignored("scope mismatch: single_node context cannot serve cluster RCA")]

    generated_at = parse_iso8601(context.generated_at)
    if generated_at is None:
        return False, [_ignored("invalid generated_at in status_context")]

    current = now if now is not None else datetime.now(tz=UTC)
    age_minutes = (current - generated_at).total_seconds() / 60
    limit = staleness_limit_minutes(request, snapshot_max_age_minutes)

    if age_minutes > limit:
        _logger.info(
            "status_context_stale",
            age_minutes=round(age_minutes, 2),
            limit_minutes=limit,
            mode=context.analysis_mode.value,
        )
        return False, [_ignored(f"stale: generated_at older than {limit} minutes")]

    return True, []
