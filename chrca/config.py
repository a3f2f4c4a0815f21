"""Environment-driven configuration loading.

Every setting is read from a ``CHRCA_*`` environment variable. Integer
settings are clamped to their documented bounds rather than rejected;
settings with a closed vocabulary raise ``ValueError`` on unknown values.
"""

from __future__ import annotations

import os

from chrca.models.config import (
    APIConfig,
    ChRcaConfig,
    ClickHouseConfig,
    EvidenceConfig,
    LogConfig,
)

_VALID_LOG_LEVELS: frozenset[str] = frozenset({"debug", "info", "warning", "error"})


def _env_str(name: str, default: str) -> str:
    return os.environ.get(name, default)


def _env_int(name: str, default: int, minimum: int, maximum: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ValueError(f"Invalid integer for {name}: {raw!r}") from exc
    return max(minimum, min(value, maximum))


def _validate_log_level(level: str) -> str:
    normalised = level.strip().lower()
    if normalised not in _VALID_LOG_LEVELS:
        raise ValueError(f"Invalid log level: {level!r}. Must be one of {sorted(_VALID_LOG_LEVELS)}")
    return normalised


def load_config() -> ChRcaConfig:
    """Build a ChRcaConfig from the current environment."""
    clickhouse = ClickHouseConfig(
        url=_env_str("CHRCA_CLICKHOUSE_URL", "http://localhost:8123"),
        user=_env_str("CHRCA_CLICKHOUSE_USER", "default"),
        password=_env_str("CHRCA_CLICKHOUSE_PASSWORD", ""),
        cluster=_env_str("CHRCA_CLICKHOUSE_CLUSTER", "").strip(),
        timeout_seconds=_env_int("CHRCA_CLICKHOUSE_TIMEOUT", 30, 1, 300),
    )
    evidence = EvidenceConfig(
        status_snapshot_max_age_minutes=_env_int("CHRCA_STATUS_SNAPSHOT_MAX_AGE", 5, 1, 60),
    )
    api = APIConfig(port=_env_int("CHRCA_API_PORT", 8080, 1024, 65535))
    log = LogConfig(level=_validate_log_level(_env_str("CHRCA_LOG_LEVEL", "info")))
    return ChRcaConfig(clickhouse=clickhouse, evidence=evidence, api=api, log=log)
