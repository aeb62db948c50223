from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

from airflow_collector.config import (
    CollectionModes,
    CollectorConfig,
    DatabaseConfig,
    LogConfig,
    RestApiConfig,
    StatsDConfig,
)
from airflow_collector.resilience.retry import RetryPolicy


def _default_env_file() -> str:
    return str(Path.cwd() / ".env")


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def _retry_policy() -> RetryPolicy:
    return RetryPolicy(
        max_attempts=int(os.getenv("RETRY_MAX_ATTEMPTS", "3")),
        initial_interval=float(os.getenv("RETRY_INITIAL_INTERVAL", "1.0")),
        max_interval=float(os.getenv("RETRY_MAX_INTERVAL", "10.0")),
        multiplier=float(os.getenv("RETRY_MULTIPLIER", "2.0")),
    )


def _database_config(retry: RetryPolicy) -> DatabaseConfig:
    return DatabaseConfig(
        host=os.getenv("AIRFLOW_DB_HOST", "localhost"),
        port=int(os.getenv("AIRFLOW_DB_PORT", "5432")),
        database=os.getenv("AIRFLOW_DB_NAME", "airflow"),
        username=os.getenv("AIRFLOW_DB_USER", "airflow"),
        password=os.getenv("AIRFLOW_DB_PASSWORD", ""),
        ssl_mode=os.getenv("AIRFLOW_DB_SSLMODE", "disable"),
        collection_interval=float(os.getenv("AIRFLOW_DB_INTERVAL", "30")),
        query_timeout=float(os.getenv("AIRFLOW_DB_QUERY_TIMEOUT", "15")),
        stats_window=float(os.getenv("AIRFLOW_DB_STATS_WINDOW", "86400")),
        retry=retry,
    )


def load_config() -> CollectorConfig:
    """Lee CollectorConfig del entorno (sin validar).

    Carga el .env si existe, pero las variables reales del entorno tienen prioridad.
    """
    env_file = os.getenv("AIRFLOW_COLLECTOR_ENV_FILE", _default_env_file())
    if env_file and Path(env_file).exists():
        load_dotenv(env_file, override=False)

    retry = _retry_policy()

    modes = CollectionModes(
        rest_api=_flag("COLLECT_REST_API", "true"),
        database=_flag("COLLECT_DATABASE", "false"),
        statsd=_flag("COLLECT_STATSD", "false"),
        logs=_flag("COLLECT_LOGS", "false"),
    )

    rest_api = RestApiConfig(
        endpoint=os.getenv("AIRFLOW_API_ENDPOINT", "http://localhost:8080"),
        username=os.getenv("AIRFLOW_API_USERNAME", ""),
        password=os.getenv("AIRFLOW_API_PASSWORD", ""),
        collection_interval=float(os.getenv("AIRFLOW_API_INTERVAL", "30")),
        timeout=float(os.getenv("AIRFLOW_API_TIMEOUT", "30")),
        include_past_runs=_flag("AIRFLOW_API_INCLUDE_PAST_RUNS", "false"),
        past_runs_lookback=float(os.getenv("AIRFLOW_API_PAST_RUNS_LOOKBACK", "86400")),
        task_recency_window=float(os.getenv("AIRFLOW_API_TASK_RECENCY_WINDOW", "300")),
        page_size=int(os.getenv("AIRFLOW_API_PAGE_SIZE", "100")),
        retry=retry,
    )

    database = _database_config(retry)

    statsd = StatsDConfig(
        endpoint=os.getenv("STATSD_ENDPOINT", "0.0.0.0:8125"),
        aggregation_interval=float(os.getenv("STATSD_AGGREGATION_INTERVAL", "60")),
        temporality=os.getenv("STATSD_TEMPORALITY", "cumulative").strip().lower(),
    )

    logs = LogConfig(
        database=database,
        collection_interval=float(os.getenv("LOGS_INTERVAL", "30")),
        page_size=int(os.getenv("LOGS_PAGE_SIZE", "1000")),
        start_position=os.getenv("LOGS_START_POSITION", "beginning").strip().lower(),
    )

    return CollectorConfig(
        modes=modes,
        rest_api=rest_api,
        database=database,
        statsd=statsd,
        logs=logs,
        unhealthy_threshold=int(os.getenv("UNHEALTHY_THRESHOLD", "3")),
    )
