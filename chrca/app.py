"""Application wiring for chrca.

Builds the ClickHouse transport, handler registry and coordinator from a
ChRcaConfig, and runs either a single investigation or the REST server.
"""

from __future__ import annotations

import asyncio

from chrca.analyst.coordinator import RcaCoordinator
from chrca.clickhouse.client import ClickHouseClient
from chrca.models.config import ChRcaConfig
from chrca.models.evidence import ProgressSink, RcaEvidenceOutput, RcaEvidenceRequest
from chrca.observability.logging import get_logger, setup_logging
from chrca.symptoms import HandlerRegistry, build_handler_registry

_log = get_logger("app")


def build_coordinator(
    config: ChRcaConfig,
    client: ClickHouseClient,
    registry: HandlerRegistry | None = None,
) -> RcaCoordinator:
    return RcaCoordinator(
        client,
        registry if registry is not None else build_handler_registry(),
        cluster=config.clickhouse.cluster,
        snapshot_max_age_minutes=config.evidence.status_snapshot_max_age_minutes,
    )


async def collect_once(
    config: ChRcaConfig,
    request: RcaEvidenceRequest,
    progress: ProgressSink | None = None,
) -> RcaEvidenceOutput:
    """Run one investigation against the configured cluster."""
    async with ClickHouseClient(config.clickhouse) as client:
        coordinator = build_coordinator(config, client)
        return await coordinator.collect_evidence(request, progress=progress)


async def serve(config: ChRcaConfig, host: str = "0.0.0.0") -> None:
    """Run the REST API until the server exits."""
    import uvicorn

    from chrca.api.app import create_app

    async with ClickHouseClient(config.clickhouse) as client:
        registry = build_handler_registry()
        app = create_app(build_coordinator(config, client, registry), config, registry)
        uv_config = uvicorn.Config(
            app=app,
            host=host,
            port=config.api.port,
            log_config=None,  # structlog handles all logging
            access_log=False,
        )
        _log.info(
            "rest_api_starting",
            port=config.api.port,
            clickhouse_url=config.clickhouse.url,
            cluster=config.clickhouse.cluster or None,
        )
        await uvicorn.Server(uv_config).serve()


def run_server(config: ChRcaConfig, host: str = "0.0.0.0") -> None:
    setup_logging(config.log.level)
    asyncio.run(serve(config, host))
