"""Tests for chrca.config: environment variable loading and validation.

Covers:
  - Default values when no CHRCA_* env vars are set
  - Each config field read from its corresponding CHRCA_* env var
  - Numeric clamping (min/max bounds for int fields)
  - Invalid values raise ValueError for validated fields
"""

from __future__ import annotations

import pytest

from chrca.config import load_config
from chrca.models.config import ChRcaConfig

_ALL_VARS = (
    "CHRCA_CLICKHOUSE_URL",
    "CHRCA_CLICKHOUSE_USER",
    "CHRCA_CLICKHOUSE_PASSWORD",
    "CHRCA_CLICKHOUSE_CLUSTER",
    "CHRCA_CLICKHOUSE_TIMEOUT",
    "CHRCA_STATUS_SNAPSHOT_MAX_AGE",
    "CHRCA_API_PORT",
    "CHRCA_LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _ALL_VARS:
        monkeypatch.delenv(name, raising=False)


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------


class TestConfigDefaults:
    def test_returns_chrca_config_type(self) -> None:
        assert isinstance(load_config(), ChRcaConfig)

    def test_clickhouse_defaults(self) -> None:
        config = load_config()
        assert config.clickhouse.url == "http://localhost:8123"
        assert config.clickhouse.user == "default"
        assert config.clickhouse.password == ""
        assert config.clickhouse.cluster == ""
        assert config.clickhouse.timeout_seconds == 30

    def test_snapshot_age_default(self) -> None:
        assert load_config().evidence.status_snapshot_max_age_minutes == 5

    def test_api_port_default(self) -> None:
        assert load_config().api.port == 8080

    def test_log_level_default(self) -> None:
        assert load_config().log.level == "info"


# ---------------------------------------------------------------------------
# Env overrides
# ---------------------------------------------------------------------------


class TestConfigOverrides:
    def test_clickhouse_settings(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CHRCA_CLICKHOUSE_URL", "https://ch.internal:8443")
        monkeypatch.setenv("CHRCA_CLICKHOUSE_USER", "rca_reader")
        monkeypatch.setenv("CHRCA_CLICKHOUSE_PASSWORD", "s3cret")
        monkeypatch.setenv("CHRCA_CLICKHOUSE_CLUSTER", "  prod  ")
        monkeypatch.setenv("CHRCA_CLICKHOUSE_TIMEOUT", "45")
        config = load_config()
        assert config.clickhouse.url == "https://ch.internal:8443"
        assert config.clickhouse.user == "rca_reader"
        assert config.clickhouse.password == "s3cret"
        assert config.clickhouse.cluster == "prod"
        assert config.clickhouse.timeout_seconds == 45

    def test_snapshot_age(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CHRCA_STATUS_SNAPSHOT_MAX_AGE", "15")
        assert load_config().evidence.status_snapshot_max_age_minutes == 15

    def test_log_level_is_normalised(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CHRCA_LOG_LEVEL", " DEBUG ")
        assert load_config().log.level == "debug"

    def test_blank_int_uses_default(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CHRCA_API_PORT", "  ")
        assert load_config().api.port == 8080


# ---------------------------------------------------------------------------
# Clamping
# ---------------------------------------------------------------------------


class TestConfigClamping:
    @pytest.mark.parametrize(
        ("var", "raw", "expected"),
        [
            ("CHRCA_CLICKHOUSE_TIMEOUT", "0", 1),
            ("CHRCA_CLICKHOUSE_TIMEOUT", "9999", 300),
            ("CHRCA_STATUS_SNAPSHOT_MAX_AGE", "0", 1),
            ("CHRCA_STATUS_SNAPSHOT_MAX_AGE", "600", 60),
            ("CHRCA_API_PORT", "80", 1024),
            ("CHRCA_API_PORT", "70000", 65535),
        ],
    )
    def test_bounds(self, monkeypatch: pytest.MonkeyPatch, var: str, raw: str, expected: int) -> None:
        monkeypatch.setenv(var, raw)
        config = load_config()
        values = {
            "CHRCA_CLICKHOUSE_TIMEOUT": config.clickhouse.timeout_seconds,
            "CHRCA_STATUS_SNAPSHOT_MAX_AGE": config.evidence.status_snapshot_max_age_minutes,
            "CHRCA_API_PORT": config.api.port,
        }
        assert values[var] == expected


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class TestConfigValidation:
    def test_non_integer_raises(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CHRCA_CLICKHOUSE_TIMEOUT", "thirty")
        with pytest.raises(ValueError, match="CHRCA_CLICKHOUSE_TIMEOUT"):
            load_config()

    def test_unknown_log_level_raises(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CHRCA_LOG_LEVEL", "verbose")
        with pytest.raises(ValueError, match="Invalid log level"):
            load_config()
