"""Tests de configuración: validación de CollectorConfig y carga desde entorno."""

import pytest

from airflow_collector.config import (
    CollectionModes,
    CollectorConfig,
    DatabaseConfig,
    LogConfig,
    RestApiConfig,
    StatsDConfig,
)
from airflow_collector.errors import ConfigError
from airflow_collector.factory import build_adapters
from common.config import load_config
from common.db import build_sqlalchemy_url


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """Entorno sin variables del colector y sin .env."""
    for var in (
        "COLLECT_REST_API", "COLLECT_DATABASE", "COLLECT_STATSD", "COLLECT_LOGS",
        "AIRFLOW_API_ENDPOINT", "AIRFLOW_DB_HOST", "AIRFLOW_DB_PORT", "STATSD_TEMPORALITY",
        "LOGS_START_POSITION", "RETRY_MAX_ATTEMPTS", "UNHEALTHY_THRESHOLD",
    ):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("AIRFLOW_COLLECTOR_ENV_FILE", str(tmp_path / "none.env"))
    return monkeypatch


# =============================================================================
# VALIDACIÓN
# =============================================================================

class TestCollectorConfigValidate:

    def test_no_modes_enabled(self):
        cfg = CollectorConfig(modes=CollectionModes(rest_api=False))
        with pytest.raises(ConfigError):
            cfg.validate()

    def test_missing_section(self):
        cfg = CollectorConfig(modes=CollectionModes(rest_api=False, database=True))
        with pytest.raises(ConfigError):
            cfg.validate()

    def test_rest_endpoint_required(self):
        cfg = CollectorConfig(rest_api=RestApiConfig(endpoint=""))
        with pytest.raises(ConfigError):
            cfg.validate()

    def test_defaults_applied(self):
        cfg = CollectorConfig(
            modes=CollectionModes(rest_api=True, database=True, statsd=True),
            rest_api=RestApiConfig(endpoint="http://airflow:8080", collection_interval=0),
            database=DatabaseConfig(host="pg", port=0, ssl_mode="", query_timeout=0),
            statsd=StatsDConfig(aggregation_interval=0),
        ).validate()

        assert cfg.rest_api.collection_interval == 30.0
        assert cfg.database.port == 5432
        assert cfg.database.ssl_mode == "disable"
        assert cfg.database.query_timeout == 15.0
        assert cfg.statsd.aggregation_interval == 60.0

    def test_unknown_temporality(self):
        cfg = CollectorConfig(
            modes=CollectionModes(rest_api=False, statsd=True),
            statsd=StatsDConfig(temporality="weekly"),
        )
        with pytest.raises(ConfigError):
            cfg.validate()

    def test_logs_validate_nested_database(self):
        cfg = CollectorConfig(
            modes=CollectionModes(rest_api=False, logs=True),
            logs=LogConfig(database=DatabaseConfig(host="")),
        )
        with pytest.raises(ConfigError):
            cfg.validate()

    def test_validate_returns_copy(self):
        original = CollectorConfig(rest_api=RestApiConfig(endpoint="http://x", collection_interval=0))
        validated = original.validate()
        assert original.rest_api.collection_interval == 0
        assert validated.rest_api.collection_interval == 30.0


# =============================================================================
# CARGA DESDE ENTORNO
# =============================================================================

class TestLoadConfig:

    def test_defaults(self, clean_env):
        cfg = load_config()
        assert cfg.modes.rest_api is True
        assert cfg.modes.database is False
        assert cfg.rest_api.endpoint == "http://localhost:8080"
        assert cfg.statsd.temporality == "cumulative"
        assert cfg.rest_api.retry.max_attempts == 3

    def test_env_overrides(self, clean_env):
        clean_env.setenv("COLLECT_DATABASE", "true")
        clean_env.setenv("AIRFLOW_DB_HOST", "metadata-db")
        clean_env.setenv("AIRFLOW_DB_PORT", "6543")
        clean_env.setenv("RETRY_MAX_ATTEMPTS", "5")
        clean_env.setenv("LOGS_START_POSITION", "LATEST")

        cfg = load_config()
        assert cfg.modes.database is True
        assert cfg.database.host == "metadata-db"
        assert cfg.database.port == 6543
        assert cfg.database.retry.max_attempts == 5
        assert cfg.logs.start_position == "latest"
        assert cfg.logs.database is cfg.database

    def test_env_file_loaded_but_real_env_wins(self, clean_env, tmp_path):
        env_file = tmp_path / "collector.env"
        env_file.write_text("AIRFLOW_API_ENDPOINT=http://from-file:8080\nAIRFLOW_DB_HOST=file-db\n")
        clean_env.setenv("AIRFLOW_COLLECTOR_ENV_FILE", str(env_file))
        clean_env.setenv("AIRFLOW_DB_HOST", "real-db")

        cfg = load_config()
        assert cfg.rest_api.endpoint == "http://from-file:8080"
        assert cfg.database.host == "real-db"

    def test_build_adapters_for_enabled_modes(self, clean_env):
        clean_env.setenv("COLLECT_STATSD", "true")
        clean_env.setenv("COLLECT_LOGS", "1")
        adapters = build_adapters(load_config().validate())
        assert [a.name for a in adapters] == ["rest_api", "statsd", "logs"]


class TestDatabaseUrl:

    def test_postgres_url(self):
        url = build_sqlalchemy_url(DatabaseConfig(host="pg", username="airflow", password="p@ss:word"))
        assert url.drivername == "postgresql+psycopg2"
        assert url.host == "pg"
        assert url.port == 5432
        assert url.password == "p@ss:word"
        assert url.query["sslmode"] == "disable"
