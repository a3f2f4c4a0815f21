"""FastAPI application factory."""

from __future__ import annotations

from fastapi import FastAPI, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from chrca.analyst.coordinator import RcaCoordinator
from chrca.api.routes import router
from chrca.models.config import ChRcaConfig
from chrca.symptoms import HandlerRegistry


def create_app(
    coordinator: RcaCoordinator,
    config: ChRcaConfig | None = None,
    registry: HandlerRegistry | None = None,
) -> FastAPI:
    """Build the REST application around an already constructed coordinator."""
    from chrca import __version__

    app = FastAPI(
        title="chrca",
        version=__version__,
        description="Read-only RCA evidence collection for ClickHouse clusters.",
    )
    app.state.coordinator = coordinator
    app.state.config = config if config is not None else ChRcaConfig()
    app.state.registry = registry
    app.include_router(router, prefix="/api/v1")

    @app.get("/metrics", include_in_schema=False)
    async def metrics() -> Response:
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    return app
