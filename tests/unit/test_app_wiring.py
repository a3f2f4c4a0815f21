"""Tests for chrca.app wiring and the progress sinks."""

from __future__ import annotations

from unittest.mock import patch

import pytest
from conftest import FakeTransport

from chrca.app import build_coordinator, collect_once
from chrca.evidence.progress import ProgressRecorder, log_progress
from chrca.models.config import ChRcaConfig, ClickHouseConfig, EvidenceConfig
from chrca.models.evidence import ProgressStatus, RcaEvidenceRequest, Symptom


class _FakeClient(FakeTransport):
    """FakeTransport usable where a ClickHouseClient context manager is expected."""

    def __init__(self, config: ClickHouseConfig) -> None:
        super().__init__()
        self.config = config

    async def __aenter__(self) -> _FakeClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        return None


class TestBuildCoordinator:
    @pytest.mark.asyncio
    async def test_cluster_name_reaches_probes(self) -> None:
        config = ChRcaConfig(clickhouse=ClickHouseConfig(cluster="prod"))
        transport = FakeTransport()
        coordinator = build_coordinator(config, transport)  # type: ignore[arg-type]
        await coordinator.collect_evidence(RcaEvidenceRequest(symptom=Symptom.HIGH_QUERY_LATENCY))
        assert transport.queries
        assert all("clusterAllReplicas('prod'," in sql for sql in transport.queries)


class TestCollectOnce:
    @pytest.mark.asyncio
    async def test_runs_against_configured_client(self) -> None:
        config = ChRcaConfig(evidence=EvidenceConfig(status_snapshot_max_age_minutes=10))
        recorder = ProgressRecorder()
        with patch("chrca.app.ClickHouseClient", _FakeClient):
            output = await collect_once(
                config,
                RcaEvidenceRequest(symptom=Symptom.UNKNOWN, symptom_text="slow queries"),
                progress=recorder,
            )
        assert output.success is True
        assert recorder.statuses("rca unknown: processes") == [ProgressStatus.STARTED, ProgressStatus.SUCCESS]


class TestProgressSinks:
    def test_recorder_keeps_arrival_order(self) -> None:
        recorder = ProgressRecorder()
        recorder("a", 10, ProgressStatus.STARTED)
        recorder("b", 20, ProgressStatus.FAILED, "boom")
        recorder("a", 10, ProgressStatus.SUCCESS)
        assert [e.stage for e in recorder.events] == ["a", "b", "a"]
        assert recorder.statuses("a") == [ProgressStatus.STARTED, ProgressStatus.SUCCESS]
        assert recorder.events[1].error == "boom"

    def test_log_progress_accepts_every_status(self) -> None:
        for status in ProgressStatus:
            log_progress("stage", 50, status, "err" if status == ProgressStatus.FAILED else None)
