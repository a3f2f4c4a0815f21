"""Typed errors raised by telemetry transports."""

from __future__ import annotations

import json


class ClickHouseQueryError(Exception):
    """A query was rejected by ClickHouse or could not be delivered.

    ``data`` carries the server-side error payload when one was returned.
    """

    def __init__(self, message: str, data: object | None = None, status_code: int | None = None) -> None:
        super().__init__(message)
        self.data = data
        self.status_code = status_code


def describe_error(error: BaseException) -> str:
    """Human-readable error text, preferring the server payload of query errors."""
    if isinstance(error, ClickHouseQueryError) and error.data:
        return error.data if isinstance(error.data, str) else json.dumps(error.data)
    message = str(error)
    return message if message else type(error).__name__
