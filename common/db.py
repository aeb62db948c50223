from __future__ import annotations

import logging

from sqlalchemy import create_engine
from sqlalchemy.engine import URL, Engine

from airflow_collector.config import DatabaseConfig


logger = logging.getLogger(__name__)


def build_sqlalchemy_url(cfg: DatabaseConfig) -> URL:
    # URL.create escapa usuario/contraseña con caracteres especiales.
    return URL.create(
        "postgresql+psycopg2",
        username=cfg.username,
        password=cfg.password or None,
        host=cfg.host,
        port=cfg.port,
        database=cfg.database,
        query={"sslmode": cfg.ssl_mode},
    )


def create_db_engine(cfg: DatabaseConfig) -> Engine:
    """Engine de solo lectura hacia la base de metadatos.

    Cada sentencia lleva statement_timeout = query_timeout, así una consulta
    colgada termina en OperationalError (transitorio) en vez de bloquear el runner.
    """
    url = build_sqlalchemy_url(cfg)
    timeout_ms = int(cfg.query_timeout * 1000)

    # Log básico de parámetros de conexión (sin contraseña)
    logger.info(
        "[DB] Crear engine PostgreSQL host=%s port=%s db=%s user=%s sslmode=%s statement_timeout=%dms",
        cfg.host,
        cfg.port,
        cfg.database,
        cfg.username,
        cfg.ssl_mode,
        timeout_ms,
    )

    return create_engine(
        url,
        pool_size=5,
        max_overflow=5,
        pool_pre_ping=True,
        pool_recycle=300,
        connect_args={
            "connect_timeout": max(1, int(cfg.query_timeout)),
            "options": f"-c statement_timeout={timeout_ms}",
        },
    )
