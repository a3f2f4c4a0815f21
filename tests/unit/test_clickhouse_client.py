"""Tests for chrca.clickhouse.client using an in-memory httpx transport."""

from __future__ import annotations

import base64
import json

import httpx
import pytest

from chrca.clickhouse.client import ClickHouseClient
from chrca.clickhouse.errors import ClickHouseQueryError, describe_error
from chrca.models.config import ClickHouseConfig

_CONFIG = ClickHouseConfig(url="http://ch.test:8123", user="rca", password="pw", timeout_seconds=7)


def _client(handler: object) -> ClickHouseClient:
    return ClickHouseClient(_CONFIG, transport=httpx.MockTransport(handler))  # type: ignore[arg-type]


class TestQuery:
    @pytest.mark.asyncio
    async def test_returns_data_rows(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"meta": [], "data": [["db", "events", 5000]], "rows": 1})

        async with _client(handler) as client:
            rows = await client.query("SELECT 1")

        assert rows == [["db", "events", 5000]]
        request = seen[0]
        assert request.method == "POST"
        assert request.url.path == "/"
        assert request.url.params["default_format"] == "JSONCompact"
        assert request.url.params["output_format_json_quote_64bit_integers"] == "0"
        assert request.content == b"SELECT 1"
        expected = "Basic " + base64.b64encode(b"rca:pw").decode()
        assert request.headers["authorization"] == expected

    @pytest.mark.asyncio
    async def test_missing_data_is_empty(self) -> None:
        async with _client(lambda request: httpx.Response(200, json={"rows": 0})) as client:
            assert await client.query("SELECT 1") == []

    @pytest.mark.asyncio
    async def test_non_200_carries_server_text(self) -> None:
        body = "Code: 60. DB::Exception: Table system.foo does not exist. (UNKNOWN_TABLE)"

        async with _client(lambda request: httpx.Response(404, text=body + "\n")) as client:
            with pytest.raises(ClickHouseQueryError) as exc_info:
                await client.query("SELECT * FROM system.foo")

        error = exc_info.value
        assert error.status_code == 404
        assert error.data == body
        assert describe_error(error) == body

    @pytest.mark.asyncio
    async def test_empty_error_body_falls_back_to_message(self) -> None:
        async with _client(lambda request: httpx.Response(500, text="")) as client:
            with pytest.raises(ClickHouseQueryError) as exc_info:
                await client.query("SELECT 1")
        assert describe_error(exc_info.value) == "ClickHouse returned HTTP 500"

    @pytest.mark.asyncio
    async def test_non_json_body(self) -> None:
        async with _client(lambda request: httpx.Response(200, text="1\tfoo\n")) as client:
            with pytest.raises(ClickHouseQueryError, match="non-JSON") as exc_info:
                await client.query("SELECT 1")
        assert exc_info.value.data == "1\tfoo\n"

    @pytest.mark.asyncio
    async def test_timeout(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("read timed out", request=request)

        async with _client(handler) as client:
            with pytest.raises(ClickHouseQueryError, match="timed out after 7s"):
                await client.query("SELECT sleep(10)")

    @pytest.mark.asyncio
    async def test_connection_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with _client(handler) as client:
            with pytest.raises(ClickHouseQueryError, match="ClickHouse request failed: connection refused"):
                await client.query("SELECT 1")


class TestDescribeError:
    def test_structured_payload_is_json(self) -> None:
        error = ClickHouseQueryError("HTTP 500", data={"code": 60})
        assert describe_error(error) == json.dumps({"code": 60})

    def test_plain_exception(self) -> None:
        assert describe_error(RuntimeError("boom")) == "boom"

    def test_empty_message_uses_type_name(self) -> None:
        assert describe_error(TimeoutError()) == "TimeoutError"
