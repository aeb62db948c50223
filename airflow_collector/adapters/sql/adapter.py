"""Scraper de la base de metadatos de Airflow.

Cuatro consultas agregadas por scrape, cada una aislada:
  1. estadísticas de task instances (ventana `stats_window`)
  2. estadísticas de dag runs
  3. colas del scheduler (scheduled/queued/running/success/failed/orphaned)
  4. SLA misses por DAG

Un fallo en una consulta se loguea y el resto sigue. El scrape solo falla
cuando fallan las cuatro.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional, TypeVar

from sqlalchemy import exc as sa_exc
from sqlalchemy import text
from sqlalchemy.engine import Engine

from common.db import create_db_engine

from ...config import DatabaseConfig
from ...emission.metrics_builder import MetricsBuilder
from ...emission.models import ScrapeResult
from ...errors import AdapterStartError, RetryCancelled
from ...resilience.retry import RetryExecutor, is_transient_default
from ..base import Adapter
from . import queries

logger = logging.getLogger(__name__)

T = TypeVar("T")

ORPHAN_AGE = timedelta(hours=1)

SCHEDULER_STATES = ("scheduled", "queued", "running", "success_24h", "failed_24h", "orphaned")


def is_transient_db_error(exc: BaseException) -> bool:
    """Clasifica errores SQLAlchemy.

    Transitorios: OperationalError (conexión, statement_timeout), TimeoutError
    del pool y cualquier DBAPIError que invalidó la conexión.
    El resto de errores SQLAlchemy (ProgrammingError, IntegrityError...) no.
    """
    if isinstance(exc, (sa_exc.OperationalError, sa_exc.TimeoutError)):
        return True
    if isinstance(exc, sa_exc.DBAPIError) and exc.connection_invalidated:
        return True
    if isinstance(exc, sa_exc.SQLAlchemyError):
        return False
    return is_transient_default(exc)


class DatabaseBackedAdapter(Adapter):
    """Base para adapters que leen la base de metadatos.

    Gestiona engine, conexión inicial con retry y ejecución de consultas
    bajo el RetryExecutor con el clasificador de errores SQL.
    """

    def __init__(self, db_cfg: DatabaseConfig, engine: Optional[Engine] = None):
        self._db_cfg = db_cfg
        self._engine = engine
        self._owns_engine = engine is None
        self._retry = RetryExecutor(db_cfg.retry)

    @property
    def engine(self) -> Optional[Engine]:
        return self._engine

    def start(self, cancel: threading.Event) -> None:
        if self._engine is None:
            self._engine = create_db_engine(self._db_cfg)
        try:
            self._retry.execute(
                "database connection",
                self._ping,
                cancel=cancel,
                is_transient=is_transient_db_error,
            )
        except RetryCancelled:
            self._dispose_owned_engine()
            raise
        except Exception as e:
            self._dispose_owned_engine()
            raise AdapterStartError(self.name, f"failed to connect to database: {e}") from e
        logger.info(
            "[DB] Connected to Airflow database adapter=%s host=%s db=%s",
            self.name, self._db_cfg.host, self._db_cfg.database,
        )

    def _ping(self) -> None:
        with self._engine.connect() as conn:
            conn.execute(text("SELECT 1"))

    def _query(
        self,
        operation: str,
        fn: Callable[..., T],
        cancel: Optional[threading.Event],
        *args: Any,
    ) -> T:
        def attempt() -> T:
            with self._engine.connect() as conn:
                return fn(conn, *args)

        return self._retry.execute(operation, attempt, cancel=cancel, is_transient=is_transient_db_error)

    def _dispose_owned_engine(self) -> None:
        # Un engine inyectado pertenece al llamador.
        if self._engine is not None and self._owns_engine:
            self._engine.dispose()
            self._engine = None

    def shutdown(self) -> None:
        logger.info("[DB] Shutting down adapter=%s", self.name)
        self._dispose_owned_engine()


class SqlAdapter(DatabaseBackedAdapter):
    """Métricas agregadas desde la base de metadatos."""

    def __init__(self, cfg: DatabaseConfig, engine: Optional[Engine] = None):
        super().__init__(cfg, engine)
        self._cfg = cfg
        self._query_failures = 0

    @property
    def name(self) -> str:
        return "database"

    @property
    def collection_interval(self) -> float:
        return self._cfg.collection_interval

    def scrape(self, cancel: threading.Event) -> ScrapeResult:
        mb = MetricsBuilder()
        now = datetime.now(timezone.utc)
        since = now - timedelta(seconds=self._cfg.stats_window)

        sections = (
            ("task instance stats", lambda: self._scrape_task_instances(mb, since, now, cancel)),
            ("dag run stats", lambda: self._scrape_dag_runs(mb, since, now, cancel)),
            ("scheduler metrics", lambda: self._scrape_scheduler(mb, since, now, cancel)),
            ("sla misses", lambda: self._scrape_sla_misses(mb, since, now, cancel)),
        )

        last_error: Optional[BaseException] = None
        failures = 0
        for label, section in sections:
            try:
                section()
            except RetryCancelled:
                raise
            except Exception as e:
                failures += 1
                self._query_failures += 1
                last_error = e
                logger.warning("[DB] Failed to scrape %s err=%s", label, e)

        if failures == len(sections) and last_error is not None:
            raise last_error

        return ScrapeResult(metrics=mb.emit())

    def _scrape_task_instances(self, mb: MetricsBuilder, since: datetime, now: datetime, cancel) -> None:
        rows = self._query("query task instances", queries.task_instance_stats, cancel, since)
        for row in rows:
            mb.record_task_instance_stats(
                int(row.count),
                float(row.avg_duration) if row.avg_duration is not None else None,
                float(row.max_duration) if row.max_duration is not None else None,
                row.dag_id or "",
                row.task_id or "",
                row.state or "",
                row.operator or "",
                row.pool or "",
                now,
            )
        logger.info("[DB] Scraped task instance stats records=%d", len(rows))

    def _scrape_dag_runs(self, mb: MetricsBuilder, since: datetime, now: datetime, cancel) -> None:
        rows = self._query("query dag runs", queries.dag_run_stats, cancel, since)
        for row in rows:
            mb.record_dag_run_stats(
                int(row.count),
                float(row.avg_duration) if row.avg_duration is not None else None,
                row.dag_id or "",
                row.state or "",
                now,
            )
        logger.info("[DB] Scraped DAG run stats records=%d", len(rows))

    def _scrape_scheduler(self, mb: MetricsBuilder, since: datetime, now: datetime, cancel) -> None:
        counts = self._query(
            "query scheduler metrics", queries.scheduler_task_counts, cancel, since, now - ORPHAN_AGE,
        )
        for state in SCHEDULER_STATES:
            mb.record_scheduler_tasks(state, counts.get(state, 0), now)
        logger.info(
            "[DB] Scraped scheduler metrics queued=%d running=%d",
            counts.get("queued", 0), counts.get("running", 0),
        )

    def _scrape_sla_misses(self, mb: MetricsBuilder, since: datetime, now: datetime, cancel) -> None:
        rows = self._query("query SLA misses", queries.sla_miss_counts, cancel, since)
        for row in rows:
            mb.record_sla_miss_count(int(row.count), row.dag_id or "", now)
        logger.info("[DB] Scraped SLA misses records=%d", len(rows))

    @property
    def stats(self) -> Dict[str, Any]:
        return {"query_failures": self._query_failures}
