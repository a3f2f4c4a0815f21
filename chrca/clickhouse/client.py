"""Async ClickHouse HTTP interface client.

Implements the TelemetryTransport protocol: one SQL statement in, the
``data`` rows of a JSONCompact response out.
"""

from __future__ import annotations

from types import TracebackType
from typing import Any

import httpx

from chrca.clickhouse.errors import ClickHouseQueryError
from chrca.models.config import ClickHouseConfig
from chrca.models.evidence import Row
from chrca.observability.logging import get_logger

_log = get_logger("clickhouse.client")

_FORMAT_PARAMS: dict[str, str] = {
    "default_format": "JSONCompact",
    "output_format_json_quote_64bit_integers": "0",
}


class ClickHouseClient:
    """Thin wrapper over ``httpx.AsyncClient`` for read-only system queries.

    Args:
        config: connection settings.
        transport: optional httpx transport, used by tests to stub the server.
    """

    def __init__(self, config: ClickHouseConfig, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._config = config
        self._client = httpx.AsyncClient(
            base_url=config.url,
            auth=httpx.BasicAuth(config.user, config.password),
            timeout=float(config.timeout_seconds),
            transport=transport,
        )

    async def query(self, sql: str) -> list[Row]:
        """Execute ``sql`` and return its rows.

        Raises ClickHouseQueryError on non-200 responses, undecodable bodies
        and transport failures. ``data`` carries the server error text.
        """
        try:
            response = await self._client.post("/", params=_FORMAT_PARAMS, content=sql.encode("utf-8"))
        except httpx.TimeoutException as exc:
            _log.warning("clickhouse_query_timeout", timeout_seconds=self._config.timeout_seconds)
            raise ClickHouseQueryError(f"ClickHouse query timed out after {self._config.timeout_seconds}s") from exc
        except httpx.HTTPError as exc:
            _log.warning("clickhouse_http_error", error=str(exc))
            raise ClickHouseQueryError(f"ClickHouse request failed: {exc}") from exc

        if response.status_code != 200:
            body = response.text.strip()
            _log.warning("clickhouse_query_rejected", status_code=response.status_code, body=body[:200])
            raise ClickHouseQueryError(
                f"ClickHouse returned HTTP {response.status_code}",
                data=body or None,
                status_code=response.status_code,
            )

        try:
            payload: Any = response.json()
        except ValueError as exc:
            raise ClickHouseQueryError("ClickHouse returned a non-JSON response", data=response.text[:500]) from exc

        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, list):
            return []
        return [list(row) for row in data if isinstance(row, list)]

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> ClickHouseClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()
