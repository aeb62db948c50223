"""Objetos de configuración del colector.

Valores ya validados que recibe el núcleo. La carga desde entorno vive en
common/config.py; aquí solo están los dataclasses y sus defaults.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Optional

from .errors import ConfigError
from .resilience.retry import RetryPolicy

TEMPORALITY_CUMULATIVE = "cumulative"
TEMPORALITY_DELTA = "delta"

START_BEGINNING = "beginning"
START_LATEST = "latest"


@dataclass(frozen=True)
class RestApiConfig:
    """Configuración del scraper REST."""
    endpoint: str
    username: str = ""
    password: str = ""
    collection_interval: float = 30.0
    timeout: float = 30.0
    include_past_runs: bool = False
    past_runs_lookback: float = 24 * 3600.0
    task_recency_window: float = 300.0
    page_size: int = 100
    max_pages: int = 50
    retry: RetryPolicy = field(default_factory=RetryPolicy)


@dataclass(frozen=True)
class DatabaseConfig:
    """Conexión a la base de metadatos (PostgreSQL)."""
    host: str
    port: int = 5432
    database: str = "airflow"
    username: str = "airflow"
    password: str = ""
    ssl_mode: str = "disable"
    collection_interval: float = 30.0
    query_timeout: float = 15.0
    stats_window: float = 24 * 3600.0
    retry: RetryPolicy = field(default_factory=RetryPolicy)


@dataclass(frozen=True)
class StatsDConfig:
    """Listener UDP StatsD."""
    endpoint: str = "0.0.0.0:8125"
    aggregation_interval: float = 60.0
    temporality: str = TEMPORALITY_CUMULATIVE
    read_timeout: float = 1.0
    buffer_size: int = 65535


@dataclass(frozen=True)
class LogConfig:
    """Poller incremental de la tabla `log`."""
    database: DatabaseConfig
    collection_interval: float = 30.0
    page_size: int = 1000
    start_position: str = START_BEGINNING


@dataclass(frozen=True)
class CollectionModes:
    rest_api: bool = True
    database: bool = False
    statsd: bool = False
    logs: bool = False


@dataclass(frozen=True)
class CollectorConfig:
    """Configuración completa del colector."""
    modes: CollectionModes = field(default_factory=CollectionModes)
    rest_api: Optional[RestApiConfig] = None
    database: Optional[DatabaseConfig] = None
    statsd: Optional[StatsDConfig] = None
    logs: Optional[LogConfig] = None
    unhealthy_threshold: int = 3

    def validate(self) -> "CollectorConfig":
        """Valida y devuelve una copia con defaults aplicados.

        Raises:
            ConfigError: si no hay modos habilitados o falta una sección requerida
        """
        modes = self.modes
        if not (modes.rest_api or modes.database or modes.statsd or modes.logs):
            raise ConfigError("at least one collection mode must be enabled")

        rest_api = self.rest_api
        if modes.rest_api:
            if rest_api is None:
                raise ConfigError("rest_api config required when rest_api mode enabled")
            if not rest_api.endpoint:
                raise ConfigError("rest_api: endpoint must be specified")
            if rest_api.collection_interval <= 0:
                rest_api = replace(rest_api, collection_interval=30.0)
            if rest_api.page_size <= 0:
                raise ConfigError("rest_api: page_size must be positive")

        database = self.database
        if modes.database:
            if database is None:
                raise ConfigError("database config required when database mode enabled")
            database = _validate_database(database)

        statsd = self.statsd
        if modes.statsd:
            if statsd is None:
                raise ConfigError("statsd config required when statsd mode enabled")
            if statsd.aggregation_interval <= 0:
                statsd = replace(statsd, aggregation_interval=60.0)
            if statsd.temporality not in (TEMPORALITY_CUMULATIVE, TEMPORALITY_DELTA):
                raise ConfigError(f"statsd: unknown temporality '{statsd.temporality}'")

        logs = self.logs
        if modes.logs:
            if logs is None:
                raise ConfigError("logs config required when logs mode enabled")
            if logs.collection_interval <= 0:
                logs = replace(logs, collection_interval=30.0)
            if logs.page_size <= 0:
                raise ConfigError("logs: page_size must be positive")
            if logs.start_position not in (START_BEGINNING, START_LATEST):
                raise ConfigError(f"logs: unknown start_position '{logs.start_position}'")
            logs = replace(logs, database=_validate_database(logs.database))

        if self.unhealthy_threshold < 1:
            raise ConfigError("unhealthy_threshold must be >= 1")

        return replace(
            self,
            rest_api=rest_api,
            database=database,
            statsd=statsd,
            logs=logs,
        )


def _validate_database(cfg: DatabaseConfig) -> DatabaseConfig:
    if not cfg.host:
        raise ConfigError("database host must be specified")
    if cfg.port == 0:
        cfg = replace(cfg, port=5432)
    if not cfg.ssl_mode:
        cfg = replace(cfg, ssl_mode="disable")
    if cfg.query_timeout <= 0:
        cfg = replace(cfg, query_timeout=15.0)
    if cfg.collection_interval <= 0:
        cfg = replace(cfg, collection_interval=30.0)
    return cfg
