"""Tests del scraper de base de metadatos sobre SQLite en memoria."""

import threading
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy import exc as sa_exc

from airflow_collector.adapters.sql import SqlAdapter, is_transient_db_error
from airflow_collector.adapters.sql.queries import duration_expr
from airflow_collector.errors import AdapterStartError, AuthenticationError, RetryExhausted, TransientError


def _ts(dt: datetime) -> str:
    return dt.strftime("%Y-%m-%d %H:%M:%S")


@pytest.fixture
def now() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


@pytest.fixture
def populated(airflow_schema, now):
    """Filas recientes y antiguas en task_instance, dag_run y sla_miss."""
    recent = now - timedelta(hours=1)
    old = now - timedelta(days=3)
    with airflow_schema.begin() as conn:
        conn.execute(
            text(
                "INSERT INTO task_instance (dag_id, task_id, state, operator, pool, queue, start_date, end_date) "
                "VALUES (:dag, :task, :state, :op, 'default_pool', 'default', :start, :end)"
            ),
            [
                {"dag": "etl", "task": "extract", "state": "success", "op": "PythonOperator",
                 "start": _ts(recent), "end": _ts(recent + timedelta(seconds=10))},
                {"dag": "etl", "task": "extract", "state": "success", "op": "PythonOperator",
                 "start": _ts(recent), "end": _ts(recent + timedelta(seconds=30))},
                {"dag": "etl", "task": "load", "state": "failed", "op": "BashOperator",
                 "start": _ts(recent), "end": _ts(recent + timedelta(seconds=5))},
                {"dag": "etl", "task": "extract", "state": "success", "op": "PythonOperator",
                 "start": _ts(old), "end": _ts(old + timedelta(seconds=99))},
                {"dag": "etl", "task": "wait", "state": "running", "op": "Sensor",
                 "start": _ts(now - timedelta(hours=2)), "end": None},
                {"dag": "etl", "task": "report", "state": "queued", "op": "PythonOperator",
                 "start": None, "end": None},
            ],
        )
        conn.execute(
            text("INSERT INTO dag_run (dag_id, run_id, state, start_date, end_date) VALUES (:dag, :run, :state, :start, :end)"),
            [
                {"dag": "etl", "run": "r1", "state": "success",
                 "start": _ts(recent), "end": _ts(recent + timedelta(seconds=60))},
                {"dag": "etl", "run": "r2", "state": "success",
                 "start": _ts(recent), "end": _ts(recent + timedelta(seconds=120))},
                {"dag": "etl", "run": "r0", "state": "failed",
                 "start": _ts(old), "end": _ts(old + timedelta(seconds=1))},
            ],
        )
        conn.execute(
            text("INSERT INTO sla_miss (dag_id, task_id, timestamp) VALUES (:dag, 't', :ts)"),
            [{"dag": "etl", "ts": _ts(recent)}, {"dag": "etl", "ts": _ts(recent)}, {"dag": "old", "ts": _ts(old)}],
        )
    return airflow_schema


def _named(result, name):
    return [p for p in result.metrics if p.name == name]


# =============================================================================
# CLASIFICACIÓN DE ERRORES
# =============================================================================

class TestDbErrorClassification:

    def test_operational_error_is_transient(self):
        assert is_transient_db_error(sa_exc.OperationalError("SELECT 1", {}, Exception("conn reset")))

    def test_pool_timeout_is_transient(self):
        assert is_transient_db_error(sa_exc.TimeoutError("pool exhausted"))

    def test_programming_error_is_not_transient(self):
        assert not is_transient_db_error(sa_exc.ProgrammingError("SELECT x", {}, Exception("no column")))

    def test_invalidated_connection_is_transient(self):
        err = sa_exc.DBAPIError("SELECT 1", {}, Exception("gone"), connection_invalidated=True)
        assert is_transient_db_error(err)

    def test_non_sql_errors_use_default(self):
        assert is_transient_db_error(TransientError("x"))
        assert not is_transient_db_error(AuthenticationError(401))

    def test_duration_expression_by_dialect(self):
        assert "julianday" in duration_expr("sqlite")
        assert "EXTRACT(EPOCH" in duration_expr("postgresql")


# =============================================================================
# SCRAPE
# =============================================================================

class TestSqlAdapterScrape:

    @pytest.fixture
    def adapter(self, db_config, populated) -> SqlAdapter:
        a = SqlAdapter(db_config, engine=populated)
        a.start(threading.Event())
        return a

    def test_task_instance_stats(self, adapter):
        result = adapter.scrape(threading.Event())
        counts = {
            (p.attributes["task.id"], p.attributes["state"]): p.value
            for p in _named(result, "airflow.task.instance.count.db")
        }
        # la fila de hace 3 días queda fuera de la ventana de 24h
        assert counts == {("extract", "success"): 2, ("load", "failed"): 1}

        avg = [p for p in _named(result, "airflow.task.instance.duration.avg") if p.attributes["task.id"] == "extract"]
        assert avg[0].value == pytest.approx(20.0, abs=0.01)
        mx = [p for p in _named(result, "airflow.task.instance.duration.max") if p.attributes["task.id"] == "extract"]
        assert mx[0].value == pytest.approx(30.0, abs=0.01)

    def test_dag_run_stats(self, adapter):
        result = adapter.scrape(threading.Event())
        runs = _named(result, "airflow.dag.run.count.db")
        assert [(p.attributes["state"], p.value) for p in runs] == [("success", 2)]
        assert _named(result, "airflow.dag.run.duration.avg")[0].value == pytest.approx(90.0, abs=0.01)

    def test_scheduler_metrics(self, adapter):
        result = adapter.scrape(threading.Event())
        values = {p.name: p.value for p in result.metrics if p.name.startswith("airflow.scheduler.tasks.")}
        assert values == {
            "airflow.scheduler.tasks.scheduled": 0,
            "airflow.scheduler.tasks.queued": 1,
            "airflow.scheduler.tasks.running": 1,
            "airflow.scheduler.tasks.success_24h": 2,
            "airflow.scheduler.tasks.failed_24h": 1,
            "airflow.scheduler.tasks.orphaned": 1,
        }

    def test_sla_misses_in_window(self, adapter):
        result = adapter.scrape(threading.Event())
        sla = {p.attributes["dag.id"]: p.value for p in _named(result, "airflow.sla.miss.count")}
        assert sla == {"etl": 2}

    def test_one_failing_query_does_not_fail_scrape(self, adapter, populated):
        with populated.begin() as conn:
            conn.execute(text("DROP TABLE sla_miss"))
        result = adapter.scrape(threading.Event())
        assert _named(result, "airflow.task.instance.count.db")
        assert not _named(result, "airflow.sla.miss.count")
        assert adapter.stats["query_failures"] == 1

    def test_all_queries_failing_fails_scrape(self, db_config, sqlite_engine):
        adapter = SqlAdapter(db_config, engine=sqlite_engine)
        adapter.start(threading.Event())
        with pytest.raises(RetryExhausted):
            adapter.scrape(threading.Event())


# =============================================================================
# CICLO DE VIDA
# =============================================================================

class TestSqlAdapterLifecycle:

    def test_start_failure_raises_adapter_start_error(self, db_config, tmp_path):
        engine = create_engine(f"sqlite:///{tmp_path}/missing/dir/airflow.db")
        adapter = SqlAdapter(db_config, engine=engine)
        with pytest.raises(AdapterStartError):
            adapter.start(threading.Event())

    def test_injected_engine_not_disposed(self, db_config, populated):
        adapter = SqlAdapter(db_config, engine=populated)
        adapter.start(threading.Event())
        adapter.shutdown()
        with populated.connect() as conn:
            assert conn.execute(text("SELECT COUNT(*) FROM dag_run")).scalar() == 3

    def test_start_failure_disposes_owned_engine(self, db_config, monkeypatch):
        """Si el ping inicial falla, el engine creado por el adapter se libera."""
        engine = MagicMock()
        engine.connect.side_effect = sa_exc.OperationalError("SELECT 1", {}, Exception("connection refused"))
        monkeypatch.setattr("airflow_collector.adapters.sql.adapter.create_db_engine", lambda cfg: engine)

        adapter = SqlAdapter(db_config)
        with pytest.raises(AdapterStartError):
            adapter.start(threading.Event())

        engine.dispose.assert_called_once()
        assert adapter.engine is None

    def test_start_failure_keeps_injected_engine(self, db_config):
        engine = MagicMock()
        engine.connect.side_effect = sa_exc.OperationalError("SELECT 1", {}, Exception("connection refused"))
        adapter = SqlAdapter(db_config, engine=engine)
        with pytest.raises(AdapterStartError):
            adapter.start(threading.Event())
        engine.dispose.assert_not_called()
