"""Scraper REST con fan-out jerárquico.

DAGs → runs de cada DAG → task instances de cada run activo/reciente.

Reglas:
- Runs con dag_run_id vacío se saltan (ni se cuentan ni se emiten)
- Duración solo para runs terminales con start y end, end > start
- Un fallo al listar runs de un DAG no aborta el resto de DAGs
- Un fallo al listar DAGs sí falla el scrape
- AuthenticationError (401/403) falla el scrape en cualquier sección
"""

from __future__ import annotations

import logging
import threading
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from ...config import RestApiConfig
from ...emission.metrics_builder import MetricsBuilder
from ...emission.models import ScrapeResult
from ...errors import AuthenticationError, RetryCancelled
from ..base import Adapter
from .client import RestApiClient
from .schemas import (
    DAG,
    Connection,
    DAGRun,
    DagImportError,
    HealthResponse,
    Pool,
    TaskInstance,
    Variable,
)

logger = logging.getLogger(__name__)

TERMINAL_RUN_STATES = frozenset({"success", "failed"})

_POOL_SLOT_FIELDS = (
    ("open", "open_slots"),
    ("used", "occupied_slots"),
    ("queued", "queued_slots"),
    ("running", "running_slots"),
    ("deferred", "deferred_slots"),
    ("scheduled", "scheduled_slots"),
)


def _utc(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


class RestAdapter(Adapter):
    """Poller de la API REST de Airflow."""

    def __init__(self, cfg: RestApiConfig, client: Optional[RestApiClient] = None):
        self._cfg = cfg
        self._client = client
        self._skipped_runs = 0
        self._failed_fetches = 0

    @property
    def name(self) -> str:
        return "rest_api"

    @property
    def collection_interval(self) -> float:
        return self._cfg.collection_interval

    def start(self, cancel: threading.Event) -> None:
        logger.info("[REST] Starting endpoint=%s", self._cfg.endpoint)
        if self._client is None:
            self._client = RestApiClient(self._cfg)

    def shutdown(self) -> None:
        logger.info("[REST] Shutting down")
        if self._client is not None:
            self._client.close()

    def scrape(self, cancel: threading.Event) -> ScrapeResult:
        mb = MetricsBuilder()
        now = datetime.now(timezone.utc)

        self._scrape_health(mb, now, cancel)
        self._scrape_dags(mb, now, cancel)
        self._scrape_pools(mb, now, cancel)
        self._scrape_connections(mb, now, cancel)
        self._scrape_config(mb, now, cancel)

        if mb.dropped:
            logger.debug("[REST] Dropped %d records with blank correlation ids", mb.dropped)
        return ScrapeResult(metrics=mb.emit())

    # ------------------------------------------------------------------
    # Fan-out
    # ------------------------------------------------------------------

    def _scrape_dags(self, mb: MetricsBuilder, now: datetime, cancel: threading.Event) -> None:
        dags = self._client.list_paginated("/api/v1/dags", "dags", DAG, cancel=cancel)
        logger.info("[REST] Scraping DAG metrics dag_count=%d", len(dags))

        paused = 0
        for dag in dags:
            mb.record_dag_info(dag.dag_id, [t.name for t in dag.tags], dag.is_paused, now)
            if dag.is_paused:
                paused += 1
        mb.record_dag_count(paused, "paused", now)
        mb.record_dag_count(len(dags) - paused, "active", now)

        for dag in dags:
            if cancel.is_set():
                return
            try:
                runs = self._get_dag_runs(dag.dag_id, now, cancel)
            except (AuthenticationError, RetryCancelled):
                raise
            except Exception as e:
                self._failed_fetches += 1
                logger.warning("[REST] Failed to get runs dag_id=%s err=%s", dag.dag_id, e)
                continue
            self._record_runs(mb, dag.dag_id, runs, now, cancel)

    def _get_dag_runs(self, dag_id: str, now: datetime, cancel: threading.Event) -> List[DAGRun]:
        params: Dict[str, Any] = {"order_by": "-start_date"}
        if self._cfg.include_past_runs:
            since = now - timedelta(seconds=self._cfg.past_runs_lookback)
            params["start_date_gte"] = since.isoformat()
        path = f"/api/v1/dags/{quote(dag_id, safe='')}/dagRuns"
        return self._client.list_paginated(path, "dag_runs", DAGRun, params=params, cancel=cancel)

    def _record_runs(
        self,
        mb: MetricsBuilder,
        dag_id: str,
        runs: List[DAGRun],
        now: datetime,
        cancel: threading.Event,
    ) -> None:
        runs_by_state: Counter = Counter()
        recent: List[DAGRun] = []
        recency = timedelta(seconds=self._cfg.task_recency_window)

        for run in runs:
            if not run.dag_run_id:
                self._skipped_runs += 1
                logger.warning(
                    "[REST] Empty dag_run_id, skipping dag_id=%s state=%s",
                    run.dag_id or dag_id, run.state,
                )
                continue

            runs_by_state[run.state] += 1

            start, end = _utc(run.start_date), _utc(run.end_date)
            if run.state in TERMINAL_RUN_STATES and start and end and end > start:
                mb.record_dag_run_duration(
                    (end - start).total_seconds(),
                    dag_id,
                    run.dag_run_id,
                    run.run_type,
                    run.state,
                    run.external_trigger,
                    now,
                )

            if run.state == "running" or (start is not None and now - start < recency):
                recent.append(run)

        for state, count in runs_by_state.items():
            mb.record_dag_runs_by_state(count, dag_id, state, now)

        for run in recent:
            if cancel.is_set():
                return
            try:
                tasks = self._get_task_instances(dag_id, run.dag_run_id, cancel)
            except (AuthenticationError, RetryCancelled):
                raise
            except Exception as e:
                self._failed_fetches += 1
                logger.warning(
                    "[REST] Failed to get task instances dag_id=%s run_id=%s err=%s",
                    dag_id, run.dag_run_id, e,
                )
                continue
            self._record_tasks(mb, dag_id, tasks, now)

    def _get_task_instances(self, dag_id: str, dag_run_id: str, cancel: threading.Event) -> List[TaskInstance]:
        path = (
            f"/api/v1/dags/{quote(dag_id, safe='')}"
            f"/dagRuns/{quote(dag_run_id, safe='')}/taskInstances"
        )
        return self._client.list_paginated(path, "task_instances", TaskInstance, cancel=cancel)

    def _record_tasks(self, mb: MetricsBuilder, dag_id: str, tasks: List[TaskInstance], now: datetime) -> None:
        tasks_by_state: Counter = Counter()
        for task in tasks:
            tasks_by_state[task.state or "none"] += 1
            if task.duration and task.duration > 0:
                mb.record_task_instance_duration(
                    task.duration,
                    task.dag_id or dag_id,
                    task.task_id,
                    task.dag_run_id,
                    task.state,
                    task.operator,
                    task.pool,
                    task.queue,
                    task.try_number,
                    now,
                )
        for state, count in tasks_by_state.items():
            mb.record_task_instances_by_state(count, dag_id, state, now)

    # ------------------------------------------------------------------
    # Secciones independientes: un fallo solo se loguea (salvo auth)
    # ------------------------------------------------------------------

    def _scrape_health(self, mb: MetricsBuilder, now: datetime, cancel: threading.Event) -> None:
        try:
            health = self._client.get_model("/api/v1/health", HealthResponse, cancel=cancel)
        except (AuthenticationError, RetryCancelled):
            raise
        except Exception as e:
            logger.warning("[REST] Failed to get health err=%s", e)
            return

        mb.record_component_health("scheduler", health.scheduler.status or "", now)
        mb.record_component_health("database", health.metadatabase.status or "", now)
        heartbeat = _utc(health.scheduler.latest_scheduler_heartbeat)
        if heartbeat is not None:
            mb.record_scheduler_heartbeat_age((now - heartbeat).total_seconds(), now)

    def _scrape_pools(self, mb: MetricsBuilder, now: datetime, cancel: threading.Event) -> None:
        try:
            pools = self._client.list_paginated("/api/v1/pools", "pools", Pool, cancel=cancel)
        except (AuthenticationError, RetryCancelled):
            raise
        except Exception as e:
            logger.warning("[REST] Failed to get pools err=%s", e)
            return

        for pool in pools:
            if not pool.name:
                continue
            for kind, attr in _POOL_SLOT_FIELDS:
                mb.record_pool_slots(kind, getattr(pool, attr), pool.name, now)
            mb.record_pool_slots("total", pool.slots, pool.name, now, description=pool.description or "")

    def _scrape_connections(self, mb: MetricsBuilder, now: datetime, cancel: threading.Event) -> None:
        try:
            connections = self._client.list_paginated(
                "/api/v1/connections", "connections", Connection, cancel=cancel,
            )
        except (AuthenticationError, RetryCancelled):
            raise
        except Exception as e:
            logger.warning("[REST] Failed to get connections err=%s", e)
            return

        by_type = Counter(c.conn_type for c in connections if c.conn_type)
        for conn_type, count in by_type.items():
            mb.record_connection_count(count, conn_type, now)

    def _scrape_config(self, mb: MetricsBuilder, now: datetime, cancel: threading.Event) -> None:
        try:
            variables = self._client.list_paginated("/api/v1/variables", "variables", Variable, cancel=cancel)
            mb.record_variable_count(len(variables), now)
        except (AuthenticationError, RetryCancelled):
            raise
        except Exception as e:
            logger.warning("[REST] Failed to get variables err=%s", e)

        try:
            errors = self._client.list_paginated(
                "/api/v1/importErrors", "import_errors", DagImportError, cancel=cancel,
            )
            mb.record_import_error_count(len(errors), now)
        except (AuthenticationError, RetryCancelled):
            raise
        except Exception as e:
            logger.warning("[REST] Failed to get import errors err=%s", e)

    @property
    def stats(self) -> Dict[str, Any]:
        return {
            "skipped_runs": self._skipped_runs,
            "failed_fetches": self._failed_fetches,
            "requests": self._client.requests_made if self._client else 0,
        }
