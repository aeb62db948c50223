"""Adapters de recolección: REST, base de datos, StatsD y tabla de logs."""

from .base import Adapter
from .logs import LogAdapter
from .rest import RestAdapter
from .sql import SqlAdapter
from .statsd import StatsDAdapter

__all__ = ["Adapter", "LogAdapter", "RestAdapter", "SqlAdapter", "StatsDAdapter"]
