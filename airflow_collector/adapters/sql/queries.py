"""Consultas SQL contra la base de metadatos de Airflow.

Todas las consultas del scraper de base de datos viven aquí. Sin lógica de
negocio: cada función recibe una conexión y devuelve filas.

Las ventanas de tiempo se pasan como parámetros (:since, :orphan_cutoff)
calculados en Python, nunca con NOW() del servidor.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import DateTime, Integer, bindparam, text

TASK_INSTANCE_LIMIT = 1000


def duration_expr(dialect_name: str) -> str:
    """Expresión `end_date - start_date` en segundos según el dialecto."""
    if dialect_name == "sqlite":
        return "(julianday(end_date) - julianday(start_date)) * 86400.0"
    return "EXTRACT(EPOCH FROM (end_date - start_date))"


def task_instance_stats(conn, since: datetime) -> List[Any]:
    dur = duration_expr(conn.dialect.name)
    stmt = text(
        f"""
        SELECT
            dag_id,
            task_id,
            state,
            operator,
            pool,
            queue,
            COUNT(*) AS count,
            AVG({dur}) AS avg_duration,
            MAX({dur}) AS max_duration,
            MIN({dur}) AS min_duration
        FROM task_instance
        WHERE start_date >= :since
          AND end_date IS NOT NULL
        GROUP BY dag_id, task_id, state, operator, pool, queue
        ORDER BY count DESC
        LIMIT :limit
        """
    ).bindparams(
        bindparam("since", type_=DateTime()),
        bindparam("limit", type_=Integer()),
    )
    return conn.execute(stmt, {"since": since, "limit": TASK_INSTANCE_LIMIT}).fetchall()


def dag_run_stats(conn, since: datetime) -> List[Any]:
    dur = duration_expr(conn.dialect.name)
    stmt = text(
        f"""
        SELECT
            dag_id,
            state,
            COUNT(*) AS count,
            AVG({dur}) AS avg_duration,
            MAX({dur}) AS max_duration
        FROM dag_run
        WHERE start_date >= :since
          AND end_date IS NOT NULL
        GROUP BY dag_id, state
        ORDER BY count DESC
        """
    ).bindparams(bindparam("since", type_=DateTime()))
    return conn.execute(stmt, {"since": since}).fetchall()


def scheduler_task_counts(conn, since: datetime, orphan_cutoff: datetime) -> Dict[str, int]:
    """Conteos de cola del scheduler en una sola pasada sobre task_instance.

    orphaned = tareas en running que empezaron antes de `orphan_cutoff`.
    """
    stmt = text(
        """
        SELECT
            COALESCE(SUM(CASE WHEN state = 'scheduled' THEN 1 ELSE 0 END), 0) AS scheduled,
            COALESCE(SUM(CASE WHEN state = 'queued' THEN 1 ELSE 0 END), 0) AS queued,
            COALESCE(SUM(CASE WHEN state = 'running' THEN 1 ELSE 0 END), 0) AS running,
            COALESCE(SUM(CASE WHEN state = 'success' AND start_date >= :since THEN 1 ELSE 0 END), 0)
                AS success_24h,
            COALESCE(SUM(CASE WHEN state = 'failed' AND start_date >= :since THEN 1 ELSE 0 END), 0)
                AS failed_24h,
            COALESCE(SUM(CASE WHEN state = 'running' AND start_date < :orphan_cutoff THEN 1 ELSE 0 END), 0)
                AS orphaned
        FROM task_instance
        """
    ).bindparams(
        bindparam("since", type_=DateTime()),
        bindparam("orphan_cutoff", type_=DateTime()),
    )
    row = conn.execute(stmt, {"since": since, "orphan_cutoff": orphan_cutoff}).mappings().fetchone()
    if row is None:
        return {}
    return {key: int(value or 0) for key, value in row.items()}


def sla_miss_counts(conn, since: datetime) -> List[Any]:
    stmt = text(
        """
        SELECT dag_id, COUNT(*) AS count
        FROM sla_miss
        WHERE timestamp >= :since
        GROUP BY dag_id
        """
    ).bindparams(bindparam("since", type_=DateTime()))
    return conn.execute(stmt, {"since": since}).fetchall()


# ----------------------------------------------------------------------
# Tabla `log` (poller incremental)
# ----------------------------------------------------------------------

def fetch_log_page(conn, watermark: int, page_size: int) -> List[Any]:
    stmt = text(
        """
        SELECT id, dttm, dag_id, task_id, event, execution_date, owner, extra
        FROM log
        WHERE id > :watermark
        ORDER BY id ASC
        LIMIT :page_size
        """
    ).bindparams(
        bindparam("watermark", type_=Integer()),
        bindparam("page_size", type_=Integer()),
    )
    return conn.execute(stmt, {"watermark": watermark, "page_size": page_size}).fetchall()


def get_max_log_id(conn) -> Optional[int]:
    row = conn.execute(text("SELECT MAX(id) FROM log")).fetchone()
    if not row or row[0] is None:
        return None
    return int(row[0])
