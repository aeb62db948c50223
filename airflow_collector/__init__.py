"""Colector de telemetría de Airflow (REST, metadatos SQL, StatsD y tabla de logs)."""

__version__ = "0.1.0"
