"""Configuration data structures for chrca."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class ClickHouseConfig:
    """Connection settings for the ClickHouse HTTP interface."""

    url: str = "http://localhost:8123"
    user: str = "default"
    password: str = ""
    cluster: str = ""
    timeout_seconds: int = 30


@dataclass
class EvidenceConfig:
    """Evidence engine tuning."""

    status_snapshot_max_age_minutes: int = 5


@dataclass
class APIConfig:
    port: int = 8080


@dataclass
class LogConfig:
    level: str = "info"


@dataclass
class ChRcaConfig:
    """Top-level configuration, loaded from CHRCA_* environment variables."""

    clickhouse: ClickHouseConfig = field(default_factory=ClickHouseConfig)
    evidence: EvidenceConfig = field(default_factory=EvidenceConfig)
    api: APIConfig = field(default_factory=APIConfig)
    log: LogConfig = field(default_factory=LogConfig)
