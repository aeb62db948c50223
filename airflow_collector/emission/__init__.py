"""Emission module: data model, builders and sinks."""

from .models import DimensionalRecord, LogRecord, MetricPoint, ScrapeResult
from .metrics_builder import MetricsBuilder
from .logs_builder import LogsBuilder, severity_for_event
from .sink import EmissionSink, InMemorySink, LoggingSink

__all__ = [
    "DimensionalRecord",
    "LogRecord",
    "MetricPoint",
    "ScrapeResult",
    "MetricsBuilder",
    "LogsBuilder",
    "severity_for_event",
    "EmissionSink",
    "InMemorySink",
    "LoggingSink",
]
