"""Metrics builder.

One instance per adapter. REST/SQL/Log adapters build a fresh instance per
scrape; the StatsD adapter keeps one for its lifetime. emit() hands back the
buffered points and clears the buffer.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from .models import KIND_GAUGE, KIND_SUM, DimensionalRecord, MetricPoint

logger = logging.getLogger(__name__)

RUN_ID_DIMENSION = "dag_run.id"


class MetricsBuilder:
    """Accumulates MetricPoints for a single emission batch."""

    def __init__(self, resource: Optional[Mapping[str, str]] = None):
        self._resource: Dict[str, str] = dict(resource or {"service.name": "airflow"})
        self._points: List[MetricPoint] = []
        self.dropped = 0

    def __len__(self) -> int:
        return len(self._points)

    def _append(
        self,
        name: str,
        value: float,
        ts: datetime,
        unit: str = "",
        description: str = "",
        attributes: Optional[Mapping[str, object]] = None,
        kind: str = KIND_GAUGE,
        monotonic: bool = False,
    ) -> None:
        attrs = dict(self._resource)
        if attributes:
            attrs.update(attributes)
        self._points.append(
            MetricPoint(
                name=name,
                value=value,
                timestamp=ts,
                unit=unit,
                description=description,
                kind=kind,
                monotonic=monotonic,
                attributes=attrs,
            )
        )

    def record_dimensional(
        self,
        name: str,
        description: str,
        record: DimensionalRecord,
        ts: datetime,
        required: Sequence[str] = (),
    ) -> bool:
        """Record a DimensionalRecord; drop it if a required dimension is blank.

        Returns:
            True if the point was recorded
        """
        for key in required:
            value = record.dimension(key)
            if value is None or value == "":
                self.dropped += 1
                logger.debug("METRIC_DROPPED name=%s missing=%s", name, key)
                return False
        self._append(
            name, record.value, ts,
            unit=record.unit,
            description=description,
            attributes=dict(record.dimensions),
        )
        return True

    # ------------------------------------------------------------------
    # REST: DAGs, runs, tasks
    # ------------------------------------------------------------------

    def record_dag_info(self, dag_id: str, tags: Iterable[str], is_paused: bool, ts: datetime) -> None:
        attrs: Dict[str, object] = {"dag.id": dag_id, "is_paused": is_paused}
        tag_list = [t for t in tags if t]
        if tag_list:
            attrs["tags"] = ",".join(tag_list)
        self._append("airflow.dag.info", 1, ts, "{dag}", "DAG information with tags", attrs)

    def record_dag_count(self, count: int, status: str, ts: datetime) -> None:
        self._append(
            "airflow.dags.count", count, ts, "{dags}", "Number of DAGs by status",
            {"status": status},
        )

    def record_dag_run_duration(
        self,
        value: float,
        dag_id: str,
        dag_run_id: str,
        run_type: str,
        state: str,
        external_trigger: bool,
        ts: datetime,
    ) -> bool:
        record = DimensionalRecord(
            value=value,
            unit="s",
            dimensions=(
                ("dag.id", dag_id),
                (RUN_ID_DIMENSION, dag_run_id),
                ("run.type", run_type),
                ("state", state),
                ("external_trigger", external_trigger),
            ),
        )
        return self.record_dimensional(
            "airflow.dag.run.duration", "Duration of DAG run execution",
            record, ts, required=(RUN_ID_DIMENSION,),
        )

    def record_dag_runs_by_state(self, count: int, dag_id: str, state: str, ts: datetime) -> None:
        self._append(
            "airflow.dag_runs.by_state", count, ts, "{runs}", "DAG runs by state",
            {"dag.id": dag_id, "state": state},
        )

    def record_task_instance_duration(
        self,
        value: float,
        dag_id: str,
        task_id: str,
        dag_run_id: str,
        state: str,
        operator: str,
        pool: str,
        queue: str,
        try_number: int,
        ts: datetime,
    ) -> bool:
        record = DimensionalRecord(
            value=value,
            unit="s",
            dimensions=(
                ("dag.id", dag_id),
                ("task.id", task_id),
                (RUN_ID_DIMENSION, dag_run_id),
                ("state", state),
                ("operator", operator),
                ("pool", pool),
                ("queue", queue),
                ("try_number", int(try_number)),
            ),
        )
        return self.record_dimensional(
            "airflow.task.instance.duration", "Duration of task instance execution",
            record, ts, required=(RUN_ID_DIMENSION, "task.id"),
        )

    def record_task_instances_by_state(self, count: int, dag_id: str, state: str, ts: datetime) -> None:
        self._append(
            "airflow.task_instances.by_state", count, ts, "{tasks}", "Task instances by state",
            {"dag.id": dag_id, "state": state},
        )

    # ------------------------------------------------------------------
    # REST: platform health, pools, connections, config
    # ------------------------------------------------------------------

    def record_component_health(self, component: str, status: str, ts: datetime) -> None:
        self._append(
            f"airflow.{component}.health", 1 if status == "healthy" else 0, ts, "{status}",
            f"{component} health status (1=healthy, 0=unhealthy)",
            {"status": status or "unknown"},
        )

    def record_scheduler_heartbeat_age(self, age: float, ts: datetime) -> None:
        self._append(
            "airflow.scheduler.heartbeat.age", age, ts, "s", "Age of scheduler heartbeat in seconds",
        )

    def record_pool_slots(self, kind: str, value: int, pool_name: str, ts: datetime, description: str = "") -> None:
        attrs: Dict[str, object] = {"pool.name": pool_name}
        if description:
            attrs["pool.description"] = description
        self._append(
            f"airflow.pool.slots.{kind}", value, ts, "{slots}", f"Number of {kind} slots in pool", attrs,
        )

    def record_connection_count(self, count: int, conn_type: str, ts: datetime) -> None:
        self._append(
            "airflow.connections.count", count, ts, "{connections}", "Connections by type",
            {"conn.type": conn_type},
        )

    def record_variable_count(self, count: int, ts: datetime) -> None:
        self._append("airflow.variables.count", count, ts, "{variables}", "Number of variables")

    def record_import_error_count(self, count: int, ts: datetime) -> None:
        self._append("airflow.import_errors.count", count, ts, "{errors}", "Number of DAG import errors")

    # ------------------------------------------------------------------
    # SQL: aggregated stats
    # ------------------------------------------------------------------

    def record_task_instance_stats(
        self,
        count: int,
        avg_duration: Optional[float],
        max_duration: Optional[float],
        dag_id: str,
        task_id: str,
        state: str,
        operator: str,
        pool: str,
        ts: datetime,
    ) -> None:
        self._append(
            "airflow.task.instance.count.db", count, ts, "{tasks}",
            "Task instances in window (database)",
            {"dag.id": dag_id, "task.id": task_id, "state": state, "operator": operator, "pool": pool},
        )
        if avg_duration and avg_duration > 0:
            attrs = {"dag.id": dag_id, "task.id": task_id, "state": state}
            self._append(
                "airflow.task.instance.duration.avg", avg_duration, ts, "s",
                "Average task instance duration (database)", attrs,
            )
            self._append(
                "airflow.task.instance.duration.max", max_duration or 0.0, ts, "s",
                "Max task instance duration (database)", attrs,
            )

    def record_dag_run_stats(
        self, count: int, avg_duration: Optional[float], dag_id: str, state: str, ts: datetime,
    ) -> None:
        attrs = {"dag.id": dag_id, "state": state}
        self._append("airflow.dag.run.count.db", count, ts, "{runs}", "DAG runs in window (database)", attrs)
        if avg_duration and avg_duration > 0:
            self._append(
                "airflow.dag.run.duration.avg", avg_duration, ts, "s", "Average DAG run duration (database)", attrs,
            )

    def record_scheduler_tasks(self, state: str, count: int, ts: datetime) -> None:
        self._append(
            f"airflow.scheduler.tasks.{state}", count, ts, "{tasks}", f"Task instances {state}",
        )

    def record_sla_miss_count(self, count: int, dag_id: str, ts: datetime) -> None:
        self._append(
            "airflow.sla.miss.count", count, ts, "{misses}", "SLA misses in window", {"dag.id": dag_id},
        )

    # ------------------------------------------------------------------
    # StatsD: dynamic names
    # ------------------------------------------------------------------

    def record_generic_counter(self, value: float, name: str, tags: Mapping[str, str], ts: datetime) -> None:
        self._append(
            name, value, ts, "{count}", "StatsD counter metric", tags,
            kind=KIND_SUM, monotonic=True,
        )

    def record_generic_gauge(self, value: float, name: str, tags: Mapping[str, str], ts: datetime) -> None:
        self._append(name, value, ts, "{value}", "StatsD gauge metric", tags)

    def record_generic_timer(
        self, avg: float, min_value: float, max_value: float, name: str, tags: Mapping[str, str], ts: datetime,
    ) -> None:
        self._append(f"{name}.avg", avg, ts, "ms", "StatsD timer average", tags)
        self._append(f"{name}.min", min_value, ts, "ms", "StatsD timer minimum", tags)
        self._append(f"{name}.max", max_value, ts, "ms", "StatsD timer maximum", tags)

    # ------------------------------------------------------------------
    # Collector self-observability
    # ------------------------------------------------------------------

    def record_scraper_health(
        self,
        scraper: str,
        total: int,
        succeeded: int,
        failed: int,
        consecutive_failures: int,
        healthy: bool,
        last_duration: float,
        avg_duration: float,
        max_duration: float,
        ts: datetime,
    ) -> None:
        attrs = {"scraper.type": scraper}
        self._append("airflow.collector.scrapes.total", total, ts, "{scrapes}", "Total scrapes", attrs,
                     kind=KIND_SUM, monotonic=True)
        self._append("airflow.collector.scrapes.succeeded", succeeded, ts, "{scrapes}", "Successful scrapes",
                     attrs, kind=KIND_SUM, monotonic=True)
        self._append("airflow.collector.scrapes.failed", failed, ts, "{scrapes}", "Failed scrapes", attrs,
                     kind=KIND_SUM, monotonic=True)
        self._append("airflow.collector.health", 1 if healthy else 0, ts, "{status}",
                     "Scraper health (1=healthy, 0=unhealthy)", attrs)
        self._append("airflow.collector.consecutive_errors", consecutive_failures, ts, "{errors}",
                     "Consecutive scrape failures", attrs)
        if last_duration > 0:
            self._append("airflow.collector.duration.last", last_duration, ts, "s", "Last scrape duration", attrs)
        if avg_duration > 0:
            self._append("airflow.collector.duration.avg", avg_duration, ts, "s", "Rolling scrape duration", attrs)
        if max_duration > 0:
            self._append("airflow.collector.duration.max", max_duration, ts, "s", "Max scrape duration", attrs)

    def emit(self) -> List[MetricPoint]:
        """Return the buffered points and reset the buffer."""
        points, self._points = self._points, []
        return points
