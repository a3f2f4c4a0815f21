"""Tests for chrca.evidence.status_context.

Covers:
  - No context: not reusable, no gap
  - Scope mismatch, invalid timestamp and staleness rejections
  - Snapshot vs windowed staleness limits
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from chrca.evidence.status_context import is_status_context_reusable, staleness_limit_minutes
from chrca.models.evidence import (
    AnalysisMode,
    RcaEvidenceRequest,
    Scope,
    StatusContext,
    StatusScope,
    Symptom,
    TimeRange,
)

_NOW = datetime(2025, 6, 1, 12, 0, tzinfo=UTC)


def _iso(minutes_ago: float) -> str:
    return (_NOW - timedelta(minutes=minutes_ago)).isoformat()


def _request(context: StatusContext | None = None, **kwargs: object) -> RcaEvidenceRequest:
    return RcaEvidenceRequest(symptom=Symptom.HIGH_PART_COUNT, status_context=context, **kwargs)  # type: ignore[arg-type]


def _context(
    minutes_ago: float,
    mode: AnalysisMode = AnalysisMode.SNAPSHOT,
    scope: StatusScope = StatusScope.CLUSTER,
    **kwargs: object,
) -> StatusContext:
    return StatusContext(generated_at=_iso(minutes_ago), analysis_mode=mode, scope=scope, **kwargs)  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# staleness_limit_minutes
# ---------------------------------------------------------------------------


class TestStalenessLimit:
    def test_snapshot_uses_max_age(self) -> None:
        assert staleness_limit_minutes(_request(_context(0)), snapshot_max_age_minutes=7) == 7

    def test_windowed_uses_request_range(self) -> None:
        request = _request(
            _context(0, AnalysisMode.WINDOWED),
            time_range=TimeRange("2025-01-01T00:00:00", "2025-01-01T03:00:00"),
        )
        assert staleness_limit_minutes(request) == 180

    def test_windowed_uses_largest_window(self) -> None:
        request = _request(_context(0, AnalysisMode.WINDOWED, time_window=240), time_window=30)
        assert staleness_limit_minutes(request) == 240

    def test_windowed_defaults_to_sixty(self) -> None:
        assert staleness_limit_minutes(_request(_context(0, AnalysisMode.WINDOWED))) == 60


# ---------------------------------------------------------------------------
# is_status_context_reusable
# ---------------------------------------------------------------------------


class TestIsStatusContextReusable:
    def test_no_context(self) -> None:
        assert is_status_context_reusable(_request(), Scope.CLUSTER, now=_NOW) == (False, [])

    def test_fresh_snapshot_is_reusable(self) -> None:
        reusable, gaps = is_status_context_reusable(_request(_context(4)), Scope.CLUSTER, now=_NOW)
        assert reusable is True
        assert gaps == []

    def test_stale_snapshot(self) -> None:
        reusable, gaps = is_status_context_reusable(_request(_context(6)), Scope.CLUSTER, now=_NOW)
        assert reusable is False
        assert gaps[0].description == "status_context ignored"
        assert gaps[0].reason == "stale: generated_at older than 5 minutes"

    def test_single_node_context_cannot_serve_cluster(self) -> None:
        request = _request(_context(1, scope=StatusScope.SINGLE_NODE))
        reusable, gaps = is_status_context_reusable(request, Scope.CLUSTER, now=_NOW)
        assert reusable is False
        assert gaps[0].reason == "scope mismatch: single_node context cannot serve cluster RCA"

    def test_single_node_context_can_serve_node_scope(self) -> None:
        request = _request(_context(1, scope=StatusScope.SINGLE_NODE))
        reusable, _ = is_status_context_reusable(request, Scope.NODE, now=_NOW)
        assert reusable is True

    def test_invalid_generated_at(self) -> None:
        context = StatusContext(generated_at="not a date", analysis_mode=AnalysisMode.SNAPSHOT, scope=StatusScope.CLUSTER)
        reusable, gaps = is_status_context_reusable(_request(context), Scope.CLUSTER, now=_NOW)
        assert reusable is False
        assert gaps[0].reason == "invalid generated_at in status_context"

    def test_windowed_context_lives_for_the_window(self) -> None:
        request = _request(_context(90, AnalysisMode.WINDOWED), time_window=120)
        reusable, gaps = is_status_context_reusable(request, Scope.CLUSTER, now=_NOW)
        assert reusable is True
        assert gaps == []

    def test_configured_snapshot_age(self) -> None:
        reusable, _ = is_status_context_reusable(
            _request(_context(6)), Scope.CLUSTER, now=_NOW, snapshot_max_age_minutes=10
        )
        assert reusable is True
