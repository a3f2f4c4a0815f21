"""Tests for chrca.symptoms.high_query_latency."""

from __future__ import annotations

import pytest
from conftest import MEMORY, MERGES, QUERY_LOG_LATENCY, FakeTransport, make_context

from chrca.models.evidence import Scope, Target
from chrca.symptoms.high_query_latency import HighQueryLatencyHandler


def _slow_scan_transport() -> FakeTransport:
    return FakeTransport(
        {
            QUERY_LOG_LATENCY: [[1500, 2500, 2_000_000, 2_000_000_000, 1_500_000_000, "123456"]],
            MERGES: [[2, 10]],
            MEMORY: [[90]],
        }
    )


class TestLatencyRanking:
    @pytest.mark.asyncio
    async def test_full_scan_and_memory_outrank_merges(self) -> None:
        result = await HighQueryLatencyHandler().collect(make_context(_slow_scan_transport()))
        assert [(c.cause, c.signal_strength) for c in result.candidates] == [
            ("full_scan", 1.0),
            ("memory_pressure", 1.0),
            ("merge_pressure", 0.33),
        ]

    @pytest.mark.asyncio
    async def test_evidence_renders_units(self) -> None:
        result = await HighQueryLatencyHandler().collect(make_context(_slow_scan_transport()))
        full_scan = result.candidates[0]
        assert "p99 latency >= 2000ms (actual 2500.00ms)" in full_scan.evidence_for
        memory = result.candidates[1]
        assert "memory used >= 85% (actual 90.00%)" in memory.evidence_for
        merges = result.candidates[2]
        assert merges.next_checks == [
            "verify: active merges > 10 (actual 2)",
            "check part churn and merge scheduler pressure on top tables",
        ]

    @pytest.mark.asyncio
    async def test_quiet_cluster(self) -> None:
        result = await HighQueryLatencyHandler().collect(make_context(FakeTransport()))
        assert all(c.signal_strength <= 0.49 for c in result.candidates)
        assert result.observations[0].metrics["sample_query_hash"] == ""


class TestLatencyTarget:
    @pytest.mark.asyncio
    async def test_query_pattern_adopts_sample_hash(self) -> None:
        context = make_context(_slow_scan_transport(), scope=Scope.QUERY_PATTERN)
        result = await HighQueryLatencyHandler().collect(context)
        assert result.target == Target(query_hash="123456")

    @pytest.mark.asyncio
    async def test_query_pattern_keeps_caller_hash(self) -> None:
        transport = _slow_scan_transport()
        context = make_context(transport, scope=Scope.QUERY_PATTERN, target=Target(query_hash="42"))
        result = await HighQueryLatencyHandler().collect(context)
        assert result.target == Target(query_hash="42")
        assert "toString(normalized_query_hash) = '42'" in transport.executed(QUERY_LOG_LATENCY)[0]

    @pytest.mark.asyncio
    async def test_cluster_scope_keeps_no_target(self) -> None:
        result = await HighQueryLatencyHandler().collect(make_context(_slow_scan_transport()))
        assert result.target is None

    @pytest.mark.asyncio
    async def test_node_scope_filters_every_probe(self) -> None:
        transport = _slow_scan_transport()
        context = make_context(transport, scope=Scope.NODE, target=Target(node="ch-1"))
        await HighQueryLatencyHandler().collect(context)
        assert len(transport.queries) == 3
        assert all("FQDN() = 'ch-1'" in sql for sql in transport.queries)

    @pytest.mark.asyncio
    async def test_time_filter_is_applied_to_query_log(self) -> None:
        transport = _slow_scan_transport()
        await HighQueryLatencyHandler().collect(make_context(transport, minutes=30))
        assert "event_time >= now() - INTERVAL 30 MINUTE" in transport.executed(QUERY_LOG_LATENCY)[0]
