"""Time-window normalization.

Turns a request's relative lookback or absolute range into a predicate over
``event_date``/``event_time`` plus the number of minutes it covers. Both a
coarse date bound and a fine timestamp bound are emitted so ClickHouse can
prune partitions of the ``system.*_log`` tables.
"""

from __future__ import annotations

import math
from datetime import UTC, datetime

from chrca.evidence.templates import escape_sql_string
from chrca.models.evidence import RcaEvidenceRequest, TimeFilter, TimeRange

DEFAULT_WINDOW_MINUTES = 60
MIN_WINDOW_MINUTES = 5
MAX_WINDOW_MINUTES = 10080


def parse_iso8601(value: str) -> datetime | None:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC.

    Returns None when the value cannot be parsed.
    """
    try:
        parsed = datetime.fromisoformat(value.strip())
    except (AttributeError, ValueError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def range_minutes(time_range: TimeRange) -> int | None:
    """Whole minutes spanned by an absolute range, floored at 1.

    Returns None if either bound is unparseable.
    """
    start = parse_iso8601(time_range.start)
    end = parse_iso8601(time_range.end)
    if start is None or end is None:
        return None
    minutes = math.floor((end - start).total_seconds() / 60)
    return max(1, minutes)


def _datetime_literal(raw: str) -> str:
    parsed = parse_iso8601(raw)
    if parsed is None:
        return f"parseDateTimeBestEffort('{escape_sql_string(raw)}')"
    normalised = parsed.astimezone(UTC).strftime("%Y-%m-%d %H:%M:%S")
    return f"toDateTime('{normalised}', 'UTC')"


def _server_date(expr: str) -> str:
    # event_date is written in the server time zone
    return f"toDate(toTimeZone({expr}, timezone()))"


def _bounds_clause(lower: str, upper: str | None = None) -> str:
    clauses = [f"event_date >= {_server_date(lower)}"]
    if upper is not None:
        clauses.append(f"event_date <= {_server_date(upper)}")
    clauses.append(f"event_time >= {lower}")
    if upper is not None:
        clauses.append(f"event_time <= {upper}")
    return " AND ".join(clauses)


def build_time_filter(request: RcaEvidenceRequest) -> TimeFilter:
    """Build the TimeFilter for a request.

    An absolute ``time_range`` wins over ``time_window``; with neither, the
    default 60-minute lookback applies. Both forms bound ``event_date`` by the
    date in the server time zone.
    """
    if request.time_range is not None and request.time_range.start and request.time_range.end:
        minutes = range_minutes(request.time_range)
        return TimeFilter(
            where_clause=_bounds_clause(
                _datetime_literal(request.time_range.start),
                _datetime_literal(request.time_range.end),
            ),
            minutes=minutes if minutes is not None and minutes > 0 else DEFAULT_WINDOW_MINUTES,
        )

    minutes = request.time_window if request.time_window is not None else DEFAULT_WINDOW_MINUTES
    return TimeFilter(where_clause=_bounds_clause(f"now() - INTERVAL {minutes} MINUTE"), minutes=minutes)
