"""Fixtures compartidas por los tests del colector."""

import threading
from datetime import datetime, timezone
from typing import List

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.pool import StaticPool

from airflow_collector.adapters.base import Adapter
from airflow_collector.config import DatabaseConfig
from airflow_collector.emission.models import LogRecord, MetricPoint, ScrapeResult
from airflow_collector.errors import AdapterStartError
from airflow_collector.resilience.retry import RetryPolicy


class RecordingCancel:
    """Sustituto de threading.Event que registra las esperas sin dormir."""

    def __init__(self, set_after: int = -1):
        self.waits: List[float] = []
        self._set_after = set_after
        self._set = False

    def wait(self, timeout=None) -> bool:
        self.waits.append(timeout)
        if self._set_after >= 0 and len(self.waits) > self._set_after:
            self._set = True
        return self._set

    def is_set(self) -> bool:
        return self._set

    def set(self) -> None:
        self._set = True


@pytest.fixture
def recording_cancel() -> RecordingCancel:
    return RecordingCancel()


@pytest.fixture
def fast_policy() -> RetryPolicy:
    """Política con esperas despreciables para tests con hilos reales."""
    return RetryPolicy(max_attempts=3, initial_interval=0.001, max_interval=0.005)


@pytest.fixture
def single_attempt_policy() -> RetryPolicy:
    return RetryPolicy(max_attempts=1)


@pytest.fixture
def db_config(fast_policy) -> DatabaseConfig:
    return DatabaseConfig(host="sqlite", retry=fast_policy)


@pytest.fixture
def sqlite_engine():
    """SQLite en memoria compartido entre hilos (StaticPool)."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    yield engine
    engine.dispose()


@pytest.fixture
def airflow_schema(sqlite_engine):
    """Tablas mínimas de la base de metadatos de Airflow."""
    with sqlite_engine.begin() as conn:
        conn.execute(text(
            """
            CREATE TABLE task_instance (
                dag_id TEXT, task_id TEXT, run_id TEXT, state TEXT,
                operator TEXT, pool TEXT, queue TEXT,
                start_date TIMESTAMP, end_date TIMESTAMP
            )
            """
        ))
        conn.execute(text(
            """
            CREATE TABLE dag_run (
                dag_id TEXT, run_id TEXT, state TEXT,
                start_date TIMESTAMP, end_date TIMESTAMP
            )
            """
        ))
        conn.execute(text(
            "CREATE TABLE sla_miss (dag_id TEXT, task_id TEXT, timestamp TIMESTAMP)"
        ))
        conn.execute(text(
            """
            CREATE TABLE log (
                id INTEGER PRIMARY KEY, dttm TIMESTAMP, dag_id TEXT, task_id TEXT,
                event TEXT, execution_date TIMESTAMP, owner TEXT, extra TEXT
            )
            """
        ))
    return sqlite_engine


class FakeAdapter(Adapter):
    """Adapter configurable: puede fallar al arrancar, al scrapear o bloquearse."""

    def __init__(self, name: str, interval: float = 3600.0, fail_start: bool = False,
                 fail_scrape: bool = False, block: threading.Event = None):
        self._name = name
        self._interval = interval
        self.fail_start = fail_start
        self.fail_scrape = fail_scrape
        self.block = block
        self.entered = threading.Event()
        self.started = False
        self.shutdown_calls = 0
        self.scrapes = 0
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return self._name

    @property
    def collection_interval(self) -> float:
        return self._interval

    def start(self, cancel):
        if self.fail_start:
            raise AdapterStartError(self._name, "port in use")
        self.started = True

    def scrape(self, cancel):
        with self._lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
            self.scrapes += 1
        self.entered.set()
        try:
            if self.block is not None:
                self.block.wait(5)
            if self.fail_scrape:
                raise RuntimeError(f"{self._name} down")
            now = datetime.now(timezone.utc)
            return ScrapeResult(
                metrics=[MetricPoint(name=f"{self._name}.value", value=1.0, timestamp=now)],
                logs=[LogRecord(timestamp=now, observed_timestamp=now, severity_number=9, severity_text="INFO")],
            )
        finally:
            with self._lock:
                self.active -= 1

    def shutdown(self):
        self.shutdown_calls += 1

